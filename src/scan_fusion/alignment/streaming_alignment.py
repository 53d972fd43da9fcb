"""
Transform persistence and apply-to-files utilities

Provides helpers for writing per-scan transforms as 4x4 text matrices and
for re-applying a transform to PLY files on disk.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from ..geometry.transform import RigidTransform
from ..preprocessing.loader import PointCloudLoader
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

TransformLike = Union[RigidTransform, np.ndarray]


def _as_matrix(transform: TransformLike) -> np.ndarray:
    if isinstance(transform, RigidTransform):
        return transform.matrix
    matrix = np.asarray(transform, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {matrix.shape}")
    return matrix


def apply_transform_to_files(
    input_files: Sequence[Union[str, Path]],
    output_dir: Union[str, Path],
    transform: TransformLike,
    *,
    loader: Optional[PointCloudLoader] = None,
) -> List[str]:
    """Apply a rigid transform to PLY files and write aligned copies.

    Each input `<name>.ply` is written to `output_dir/<name>_aligned.ply`.
    Colors are carried over unchanged.

    Args:
        input_files: PLY files to transform
        output_dir: Directory to write transformed files
        transform: RigidTransform or 4x4 matrix

    Returns:
        List of output file paths

    Raises:
        ValueError: If transform is not a 4x4 matrix
    """
    rigid = RigidTransform.from_matrix(_as_matrix(transform))
    loader = loader if loader is not None else PointCloudLoader()

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_files = []
    logger.info(f"Applying transformation to {len(input_files)} files...")

    for input_file in input_files:
        input_path = Path(input_file)
        output_path = output_dir / f"{input_path.stem}_aligned{input_path.suffix}"

        cloud = loader.load(input_path)
        if cloud.is_empty:
            logger.warning(f"Skipping {input_path.name}: no points loaded")
            continue

        logger.info(f"Transforming {input_path.name} -> {output_path.name}")
        loader.save(output_path, cloud.transformed(rigid))
        output_files.append(str(output_path))

    logger.info(f"Transformation complete. Created {len(output_files)} files.")
    return output_files


def save_transform_matrix(transform: TransformLike, output_file: Union[str, Path]) -> None:
    """Save a transformation matrix to a text file.

    Args:
        transform: RigidTransform or 4x4 matrix
        output_file: Path to output file
    """
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(output_file, _as_matrix(transform), fmt='%.18e', header='4x4 transformation matrix')
    logger.info(f"Saved transformation matrix to {output_file}")


def load_transform_matrix(input_file: Union[str, Path]) -> RigidTransform:
    """Load a transformation matrix from a text file.

    Args:
        input_file: Path to input file

    Returns:
        The stored RigidTransform
    """
    matrix = np.loadtxt(input_file)
    if matrix.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {matrix.shape}")
    logger.info(f"Loaded transformation matrix from {input_file}")
    return RigidTransform.from_matrix(matrix)
