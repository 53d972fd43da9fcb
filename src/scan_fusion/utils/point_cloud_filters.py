"""
Point Cloud Filtering Utilities

Shared utilities for reducing point clouds before correspondence search.
These functions are used by the batch pipeline and the live fusion loop.
"""

import numpy as np

from ..errors import InvalidArgumentError
from ..geometry.point_cloud import PointCloud


def downsample(cloud: PointCloud, stride: int) -> PointCloud:
    """Keep every `stride`-th point, starting with the first.

    Brute-force correspondence search is quadratic in cloud size, so dense
    scans are reduced with this before alignment.

    Args:
        cloud: Input cloud (not modified)
        stride: Step between kept indices; 1 keeps every point

    Returns:
        New cloud with ceil(len(cloud) / stride) points in original order

    Raises:
        InvalidArgumentError: If stride is not a positive integer

    Examples:
        >>> cloud = PointCloud(np.arange(15, dtype=float).reshape(5, 3))
        >>> len(downsample(cloud, 2))
        3
    """
    if isinstance(stride, bool) or not isinstance(stride, (int, np.integer)) or stride <= 0:
        raise InvalidArgumentError(f"Downsample stride must be a positive integer, got {stride!r}")
    return cloud[::int(stride)]


def finite_mask(positions: np.ndarray) -> np.ndarray:
    """Boolean mask of rows whose three coordinates are all finite."""
    return np.all(np.isfinite(positions), axis=1)


def get_downsample_statistics(total_points: int, kept_points: int, stride: int) -> dict:
    """Generate statistics about a downsampling step.

    Useful for logging how much of a scan takes part in alignment.

    Args:
        total_points: Number of points before downsampling
        kept_points: Number of points after downsampling
        stride: Stride that was used

    Returns:
        Dictionary with counts, kept percentage and a short description
    """
    percentage = (kept_points / total_points * 100.0) if total_points > 0 else 0.0
    return {
        "total_points": total_points,
        "kept_points": kept_points,
        "percentage": percentage,
        "stride": stride,
        "description": "no reduction" if stride == 1 else f"1 in {stride} points",
    }
