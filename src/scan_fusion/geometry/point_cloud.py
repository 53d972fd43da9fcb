"""
Colored point cloud model.

A PointCloud is an ordered collection of colored 3-D samples stored as two
parallel numpy arrays:

- positions: Nx3 float32, meters
- colors: Nx3 uint8, red/green/blue

Order follows insertion and only matters for deterministic I/O. Operations
that change geometry return new clouds; `extend` is the one in-place
operation and is meant for the owner of a private accumulation buffer.
"""

from __future__ import annotations

from typing import Iterable, Iterator, NamedTuple, Optional, Union, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike
    from .transform import RigidTransform


POSITION_DTYPE = np.float32
COLOR_DTYPE = np.uint8


class Point(NamedTuple):
    """A single colored sample: position in meters plus 8-bit RGB."""

    x: float
    y: float
    z: float
    r: int = 0
    g: int = 0
    b: int = 0

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @property
    def color(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


class PointCloud:
    """
    Ordered sequence of colored points.

    Example:
        >>> cloud = PointCloud([[0.0, 0.0, 1.0]], [[255, 0, 0]])
        >>> len(cloud)
        1
        >>> cloud[0]
        Point(x=0.0, y=0.0, z=1.0, r=255, g=0, b=0)
    """

    __slots__ = ("positions", "colors")

    def __init__(self, positions: Optional["ArrayLike"] = None, colors: Optional["ArrayLike"] = None):
        """
        Args:
            positions: Nx3 array-like of coordinates. None creates an empty cloud.
            colors: Nx3 array-like of 0-255 channel values. None paints every
                point black.

        Raises:
            ValueError: If shapes are not Nx3 or do not agree.
        """
        if positions is None:
            pos = np.empty((0, 3), dtype=POSITION_DTYPE)
        else:
            pos = np.array(positions, dtype=POSITION_DTYPE, copy=True)
            if pos.size == 0:
                pos = pos.reshape(0, 3)
        if pos.ndim != 2 or pos.shape[1] != 3:
            raise ValueError(f"Expected Nx3 positions, got shape {pos.shape}")

        if colors is None:
            col = np.zeros((len(pos), 3), dtype=COLOR_DTYPE)
        else:
            col = np.array(colors, copy=True)
            if col.size == 0:
                col = col.reshape(0, 3)
            if col.ndim != 2 or col.shape[1] != 3:
                raise ValueError(f"Expected Nx3 colors, got shape {col.shape}")
            if col.dtype != COLOR_DTYPE:
                col = np.clip(col, 0, 255).astype(COLOR_DTYPE)
        if len(col) != len(pos):
            raise ValueError(
                f"Positions and colors disagree in length ({len(pos)} vs {len(col)})"
            )

        self.positions = np.ascontiguousarray(pos)
        self.colors = np.ascontiguousarray(col)

    # ----------------- Constructors -----------------
    @classmethod
    def empty(cls) -> "PointCloud":
        return cls()

    @classmethod
    def from_points(cls, points: Iterable[Union[Point, tuple]]) -> "PointCloud":
        """Build a cloud from Point values (or plain 6-tuples)."""
        rows = [tuple(p) for p in points]
        if not rows:
            return cls()
        arr = np.asarray(rows, dtype=np.float64)
        if arr.shape[1] == 3:
            return cls(arr)
        return cls(arr[:, :3], arr[:, 3:6])

    # ----------------- Sequence protocol -----------------
    def __len__(self) -> int:
        return int(self.positions.shape[0])

    def __iter__(self) -> Iterator[Point]:
        for (x, y, z), (r, g, b) in zip(self.positions.tolist(), self.colors.tolist()):
            yield Point(x, y, z, r, g, b)

    def __getitem__(self, item):
        if isinstance(item, (int, np.integer)):
            x, y, z = self.positions[item].tolist()
            r, g, b = self.colors[item].tolist()
            return Point(x, y, z, r, g, b)
        return PointCloud(self.positions[item], self.colors[item])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PointCloud):
            return NotImplemented
        return (
            np.array_equal(self.positions, other.positions)
            and np.array_equal(self.colors, other.colors)
        )

    __hash__ = None  # mutable container

    def __repr__(self) -> str:
        return f"PointCloud(n_points={len(self)})"

    # ----------------- Queries -----------------
    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def centroid(self) -> np.ndarray:
        """Component-wise mean position (float64).

        Raises:
            ValueError: If the cloud is empty
        """
        if self.is_empty:
            raise ValueError("Cannot compute centroid of an empty point cloud")
        return np.mean(self.positions, axis=0, dtype=np.float64)

    # ----------------- Derivation -----------------
    def copy(self) -> "PointCloud":
        return PointCloud(self.positions, self.colors)

    def take(self, indices: "ArrayLike") -> "PointCloud":
        idx = np.asarray(indices, dtype=np.int64)
        return PointCloud(self.positions[idx], self.colors[idx])

    def translated(self, offset: "ArrayLike") -> "PointCloud":
        shift = np.asarray(offset, dtype=np.float64).reshape(3)
        return PointCloud(self.positions.astype(np.float64) + shift, self.colors)

    def transformed(self, transform: "RigidTransform") -> "PointCloud":
        """Return a new cloud with `transform` applied to every position."""
        return PointCloud(transform.apply(self.positions), self.colors)

    def extend(self, other: "PointCloud") -> None:
        """Append all points of `other` to this cloud in place."""
        if other.is_empty:
            return
        self.positions = np.concatenate([self.positions, other.positions], axis=0)
        self.colors = np.concatenate([self.colors, other.colors], axis=0)
