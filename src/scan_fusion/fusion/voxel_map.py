"""
Voxel-hashed fusion map.

Space is partitioned into cubic cells of edge `voxel_size`; every cell keeps
the most recently inserted point that fell into it. Re-adding the same
geometry therefore does not grow the map, which keeps a live stream of
overlapping frames bounded.

All table access is serialized by a single lock so one capture thread can
add points while another thread exports or clears the map.
"""

import math
import numbers
import threading
from typing import Dict, NamedTuple, Union

import numpy as np

from ..errors import InvalidArgumentError
from ..geometry.point_cloud import Point, PointCloud
from ..utils.logging import setup_logger
from ..utils.point_cloud_filters import finite_mask

logger = setup_logger(__name__)

DEFAULT_VOXEL_SIZE = 0.03


class VoxelKey(NamedTuple):
    i: int
    j: int
    k: int


class VoxelFusionMap:
    """Thread-safe map from voxel cell to its last inserted point."""

    def __init__(self, voxel_size: float = DEFAULT_VOXEL_SIZE):
        if isinstance(voxel_size, bool) or not isinstance(voxel_size, numbers.Real) \
                or not math.isfinite(voxel_size) or voxel_size <= 0:
            raise InvalidArgumentError(f"voxel_size must be a positive finite number, got {voxel_size!r}")
        self._voxel_size = float(voxel_size)
        self._voxels: Dict[VoxelKey, Point] = {}
        self._lock = threading.Lock()

    @property
    def voxel_size(self) -> float:
        return self._voxel_size

    def voxel_key(self, x: float, y: float, z: float) -> VoxelKey:
        """Cell containing (x, y, z): floor(coord / voxel_size) per axis."""
        s = self._voxel_size
        return VoxelKey(math.floor(x / s), math.floor(y / s), math.floor(z / s))

    def add(self, point: Union[Point, tuple]) -> None:
        """
        Insert one point, replacing whatever its cell held.

        Coordinates are rounded to float32 first, the precision clouds store
        positions in, so `add`, `add_cloud` and `export` agree on cells.

        Raises:
            InvalidArgumentError: If a coordinate is NaN or infinite.
        """
        p = point if isinstance(point, Point) else Point(*point)
        x, y, z = (float(np.float32(c)) for c in (p.x, p.y, p.z))
        if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
            raise InvalidArgumentError(f"Cannot add non-finite point {p!r}")
        p = p._replace(x=x, y=y, z=z)
        key = self.voxel_key(x, y, z)
        with self._lock:
            self._voxels[key] = p

    def add_cloud(self, cloud: PointCloud) -> int:
        """
        Insert every finite point of `cloud` in order.

        Keys are computed before the lock is taken; the table is then updated
        in one critical section. Later points of the cloud win over earlier
        ones that share a cell.

        Returns:
            Number of points inserted (non-finite points are skipped).
        """
        if cloud.is_empty:
            return 0

        mask = finite_mask(cloud.positions)
        skipped = int(len(cloud) - mask.sum())
        if skipped:
            logger.debug(f"Skipping {skipped} non-finite points")
            cloud = cloud[mask]
            if cloud.is_empty:
                return 0

        cells = np.floor(cloud.positions.astype(np.float64) / self._voxel_size).astype(np.int64)
        keys = [VoxelKey(*c) for c in cells.tolist()]
        points = list(cloud)

        with self._lock:
            self._voxels.update(zip(keys, points))
        return len(points)

    def export(self) -> PointCloud:
        """Snapshot of the stored points (one per occupied voxel)."""
        with self._lock:
            points = list(self._voxels.values())
        return PointCloud.from_points(points)

    def size(self) -> int:
        with self._lock:
            return len(self._voxels)

    def __len__(self) -> int:
        return self.size()

    def clear(self) -> None:
        with self._lock:
            self._voxels.clear()
        logger.debug("Voxel map cleared")

    def __repr__(self) -> str:
        return f"VoxelFusionMap(voxel_size={self._voxel_size}, voxels={self.size()})"
