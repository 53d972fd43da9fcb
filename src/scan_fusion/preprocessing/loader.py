"""
Point Cloud Data Loader

This module reads and writes colored point clouds in the binary PLY exchange
format used by the scan tools:

    ply
    format binary_little_endian 1.0
    element vertex <N>
    property float x
    property float y
    property float z
    property uchar red
    property uchar green
    property uchar blue
    end_header
    <N records of 21 bytes>

Loading fails softly: an unreadable or truncated file is logged and yields an
empty cloud. Callers that cannot continue without the data (the batch
pipeline) escalate that themselves.
"""

from pathlib import Path
from typing import Union

import numpy as np
from plyfile import PlyData, PlyElement, PlyParseError

from ..geometry.point_cloud import PointCloud
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

PathLike = Union[str, Path]

# Little-endian, packed: 3 x float32 + 3 x uint8 = 21 bytes per record
VERTEX_DTYPE = np.dtype([
    ("x", "<f4"),
    ("y", "<f4"),
    ("z", "<f4"),
    ("red", "u1"),
    ("green", "u1"),
    ("blue", "u1"),
])
RECORD_SIZE = VERTEX_DTYPE.itemsize


def cloud_to_records(cloud: PointCloud) -> np.ndarray:
    """Pack a cloud into a structured array with the PLY vertex layout."""
    records = np.empty(len(cloud), dtype=VERTEX_DTYPE)
    records["x"] = cloud.positions[:, 0]
    records["y"] = cloud.positions[:, 1]
    records["z"] = cloud.positions[:, 2]
    records["red"] = cloud.colors[:, 0]
    records["green"] = cloud.colors[:, 1]
    records["blue"] = cloud.colors[:, 2]
    return records


def records_to_cloud(records: np.ndarray) -> PointCloud:
    """Unpack a structured vertex array (x/y/z/red/green/blue fields)."""
    names = records.dtype.names or ()
    positions = np.column_stack([records["x"], records["y"], records["z"]]).astype(np.float32)
    if all(c in names for c in ("red", "green", "blue")):
        colors = np.column_stack([records["red"], records["green"], records["blue"]])
    else:
        colors = None
    return PointCloud(positions, colors)


class PointCloudLoader:
    """
    Loads and saves colored point clouds as binary little-endian PLY files.

    Features:
    - Soft-failing reads (empty cloud + warning on I/O or format errors)
    - Unconditional overwriting writes
    - Header-level validation and metadata extraction
    """

    def load(self, file_path: PathLike) -> PointCloud:
        """
        Load a PLY file.

        Args:
            file_path: Path to the PLY file

        Returns:
            The loaded cloud, or an empty cloud if the file is missing,
            malformed or truncated.
        """
        file_path = Path(file_path)

        try:
            ply = PlyData.read(str(file_path), mmap=False)
        except FileNotFoundError:
            logger.warning(f"Failed to open {file_path}: file not found")
            return PointCloud.empty()
        except (OSError, PlyParseError, ValueError) as e:
            logger.warning(f"Failed to read {file_path}: {e}")
            return PointCloud.empty()

        if "vertex" not in ply:
            logger.warning(f"No vertex element in {file_path}")
            return PointCloud.empty()

        vertex = ply["vertex"].data
        missing = [c for c in ("x", "y", "z") if c not in (vertex.dtype.names or ())]
        if missing:
            logger.warning(f"Vertex element in {file_path} lacks coordinates {missing}")
            return PointCloud.empty()

        cloud = records_to_cloud(vertex)
        logger.info(f"Loaded {file_path} with {len(cloud)} points")
        return cloud

    def save(self, file_path: PathLike, cloud: PointCloud) -> Path:
        """
        Write `cloud` to `file_path`, replacing any existing file.

        Args:
            file_path: Destination path (parent directories are created)
            cloud: Cloud to write

        Returns:
            The written path
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        element = PlyElement.describe(cloud_to_records(cloud), "vertex")
        PlyData([element], text=False, byte_order="<").write(str(file_path))
        logger.info(f"Saved {file_path} with {len(cloud)} points")
        return file_path

    def validate_file(self, file_path: PathLike) -> bool:
        """
        Check that a file exists, has a readable header and holds every
        declared vertex record.
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            return False
        try:
            metadata = self.get_metadata(file_path)
        except (OSError, PlyParseError, ValueError) as e:
            logger.debug(f"Validation failed for {file_path}: {e}")
            return False
        return metadata["complete"]

    def get_metadata(self, file_path: PathLike) -> dict:
        """
        Extract header-level metadata without reading the vertex payload.

        Returns:
            dict with filename, file size, format, vertex count, property
            names and whether the payload is complete.

        Raises:
            FileNotFoundError: If the file does not exist
            PlyParseError: If the header is malformed
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        fmt = None
        num_points = 0
        properties = []
        in_vertex = False
        with file_path.open("rb") as f:
            magic = f.readline().strip()
            if magic != b"ply":
                raise PlyParseError(f"{file_path} is not a PLY file")
            while True:
                raw = f.readline()
                if not raw:
                    raise PlyParseError(f"{file_path}: header is not terminated by end_header")
                words = raw.decode("ascii", errors="replace").split()
                if not words:
                    continue
                if words[0] == "end_header":
                    break
                if words[0] == "format" and len(words) >= 2:
                    fmt = words[1]
                elif words[0] == "element" and len(words) >= 3:
                    in_vertex = words[1] == "vertex"
                    if in_vertex:
                        num_points = int(words[2])
                elif words[0] == "property" and in_vertex:
                    properties.append(words[-1])
            header_size = f.tell()

        file_size = file_path.stat().st_size
        expected = header_size + num_points * RECORD_SIZE

        return {
            "filename": file_path.name,
            "file_path": str(file_path),
            "file_size_mb": file_size / (1024 * 1024),
            "format": fmt,
            "num_points": num_points,
            "properties": properties,
            "header_bytes": header_size,
            "complete": fmt == "binary_little_endian" and file_size >= expected,
        }


_default_loader = PointCloudLoader()


def load_point_cloud(file_path: PathLike) -> PointCloud:
    """Module-level shortcut for PointCloudLoader().load()."""
    return _default_loader.load(file_path)


def save_point_cloud(file_path: PathLike, cloud: PointCloud) -> Path:
    """Module-level shortcut for PointCloudLoader().save()."""
    return _default_loader.save(file_path, cloud)
