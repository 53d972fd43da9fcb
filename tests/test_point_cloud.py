"""
Tests for the geometry value types (Point, PointCloud, RigidTransform).
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.geometry import Point, PointCloud, RigidTransform


def _small_cloud() -> PointCloud:
    positions = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0], [-1.5, 0.5, 2.0]])
    colors = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255]])
    return PointCloud(positions, colors)


def test_point_defaults_to_black():
    p = Point(1.0, 2.0, 3.0)
    assert p.color == (0, 0, 0)
    assert np.allclose(p.position, [1.0, 2.0, 3.0])


def test_cloud_indexing_and_iteration():
    cloud = _small_cloud()
    assert len(cloud) == 3
    assert cloud[1] == Point(1.0, 2.0, 3.0, 0, 255, 0)
    assert list(cloud)[2].b == 255
    sub = cloud[1:]
    assert isinstance(sub, PointCloud)
    assert len(sub) == 2


def test_cloud_rejects_bad_shapes():
    with pytest.raises(ValueError):
        PointCloud(np.zeros((4, 2)))
    with pytest.raises(ValueError):
        PointCloud(np.zeros((4, 3)), np.zeros((3, 3)))


def test_from_points_round_trips_values():
    cloud = _small_cloud()
    rebuilt = PointCloud.from_points(list(cloud))
    assert rebuilt == cloud


def test_transformed_returns_new_cloud():
    cloud = _small_cloud()
    shift = RigidTransform.from_translation([1.0, 0.0, 0.0])
    moved = cloud.transformed(shift)
    assert np.allclose(moved.positions, cloud.positions + [1.0, 0.0, 0.0])
    assert np.array_equal(moved.colors, cloud.colors)
    # Source untouched
    assert cloud == _small_cloud()


def test_extend_appends_in_place():
    cloud = _small_cloud()
    cloud.extend(_small_cloud())
    assert len(cloud) == 6
    assert cloud[3] == _small_cloud()[0]


def test_centroid_of_empty_cloud_raises():
    with pytest.raises(ValueError):
        PointCloud.empty().centroid()


def test_transform_compose_applies_right_operand_first():
    rot = RigidTransform.from_axis_angle([0, 0, 1], np.pi / 2)
    shift = RigidTransform.from_translation([1.0, 0.0, 0.0])
    p = np.array([[1.0, 0.0, 0.0]])

    # Shift first, then rotate: (2, 0, 0) -> (0, 2, 0)
    assert np.allclose((rot @ shift).apply(p), [[0.0, 2.0, 0.0]])
    # Rotate first, then shift: (0, 1, 0) -> (1, 1, 0)
    assert np.allclose((shift @ rot).apply(p), [[1.0, 1.0, 0.0]])


def test_transform_inverse_and_matrix_round_trip():
    T = RigidTransform.from_axis_angle([1.0, 2.0, 0.5], np.deg2rad(17.0), [0.3, -0.2, 1.1])
    assert (T @ T.inverse()).allclose(RigidTransform.identity())
    assert RigidTransform.from_matrix(T.matrix).allclose(T)
    assert T.is_proper()


def test_from_matrix_rejects_wrong_shape():
    with pytest.raises(ValueError):
        RigidTransform.from_matrix(np.eye(3))
