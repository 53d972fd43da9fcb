"""Tests for transform persistence and apply-to-files helpers."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.alignment import (
    apply_transform_to_files,
    load_transform_matrix,
    save_transform_matrix,
)
from scan_fusion.geometry import PointCloud, RigidTransform
from scan_fusion.preprocessing.loader import load_point_cloud, save_point_cloud


def _transform() -> RigidTransform:
    return RigidTransform.from_axis_angle([0.0, 0.0, 1.0], np.deg2rad(10.0), [0.5, -0.25, 0.1])


def test_transform_matrix_round_trip(tmp_path):
    T = _transform()
    path = tmp_path / "out" / "scan_1_transform.txt"
    save_transform_matrix(T, path)

    assert path.read_text().startswith("# 4x4 transformation matrix")
    assert load_transform_matrix(path).allclose(T, atol=1e-15)


def test_save_accepts_plain_matrix(tmp_path):
    path = tmp_path / "identity.txt"
    save_transform_matrix(np.eye(4), path)
    assert load_transform_matrix(path).allclose(RigidTransform.identity())


def test_load_rejects_non_4x4(tmp_path):
    path = tmp_path / "bad.txt"
    np.savetxt(path, np.eye(3))
    with pytest.raises(ValueError):
        load_transform_matrix(path)


def test_apply_transform_to_files(tmp_path):
    rng = np.random.default_rng(0)
    clouds = [
        PointCloud(rng.uniform(-1, 1, size=(20, 3)), rng.integers(0, 256, size=(20, 3)))
        for _ in range(2)
    ]
    inputs = [save_point_cloud(tmp_path / f"scan_{i}.ply", c) for i, c in enumerate(clouds)]
    missing = tmp_path / "scan_9.ply"
    T = _transform()

    outputs = apply_transform_to_files(inputs + [missing], tmp_path / "aligned", T)

    assert [Path(p).name for p in outputs] == ["scan_0_aligned.ply", "scan_1_aligned.ply"]
    for cloud, out in zip(clouds, outputs):
        aligned = load_point_cloud(out)
        assert aligned == cloud.transformed(T)


def test_apply_transform_rejects_bad_matrix(tmp_path):
    with pytest.raises(ValueError):
        apply_transform_to_files([], tmp_path, np.eye(3))
