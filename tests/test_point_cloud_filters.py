"""Tests for shared point cloud filtering utilities."""

import numpy as np
import pytest
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.errors import InvalidArgumentError
from scan_fusion.geometry import PointCloud
from scan_fusion.utils.point_cloud_filters import (
    downsample,
    finite_mask,
    get_downsample_statistics,
)


def _indexed_cloud(n: int) -> PointCloud:
    """Cloud whose x coordinate equals the point index."""
    positions = np.zeros((n, 3))
    positions[:, 0] = np.arange(n)
    return PointCloud(positions)


def test_downsample_stride_one_is_identity():
    cloud = _indexed_cloud(17)
    assert downsample(cloud, 1) == cloud


def test_downsample_count_and_order():
    cloud = _indexed_cloud(25)
    reduced = downsample(cloud, 10)

    # ceil(25 / 10) points, taken at indices 0, 10, 20
    assert len(reduced) == 3
    assert reduced.positions[:, 0].tolist() == [0.0, 10.0, 20.0]


def test_downsample_does_not_modify_input():
    cloud = _indexed_cloud(10)
    downsample(cloud, 3)
    assert len(cloud) == 10


def test_downsample_empty_cloud():
    assert downsample(PointCloud.empty(), 4).is_empty


@pytest.mark.parametrize("stride", [0, -3, 2.5, True])
def test_downsample_rejects_invalid_stride(stride):
    with pytest.raises(InvalidArgumentError):
        downsample(_indexed_cloud(5), stride)


def test_finite_mask():
    pts = np.array([[0.0, 1.0, 2.0], [np.nan, 0.0, 0.0], [0.0, np.inf, 0.0], [3.0, 3.0, 3.0]])
    assert finite_mask(pts).tolist() == [True, False, False, True]


def test_get_downsample_statistics():
    stats = get_downsample_statistics(1000, 100, 10)
    assert stats["percentage"] == pytest.approx(10.0)
    assert stats["description"] == "1 in 10 points"

    stats = get_downsample_statistics(0, 0, 1)
    assert stats["percentage"] == 0.0
    assert stats["description"] == "no reduction"
