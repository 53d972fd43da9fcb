"""
Tests for fine registration (ICP) implementation.

These tests focus on correctness of the recovered transform, the
termination states of the ICP loop and the closed-form estimator on
synthetic data.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.alignment.correspondence import CorrespondenceSet, find_correspondences
from scan_fusion.alignment.fine_registration import (
    ICPRegistration,
    ICPStatus,
    align,
    estimate_rigid_transform,
)
from scan_fusion.errors import InvalidArgumentError
from scan_fusion.geometry import PointCloud, RigidTransform


def _cube(n: int = 5, spacing: float = 0.25) -> np.ndarray:
    ax = np.arange(n) * spacing
    gx, gy, gz = np.meshgrid(ax, ax, ax, indexing="ij")
    return np.column_stack([gx.ravel(), gy.ravel(), gz.ravel()])


def _jittered_grid(seed: int = 0) -> np.ndarray:
    """6x5x4 grid with 0.5 m spacing centred on the origin, lightly jittered."""
    rng = np.random.default_rng(seed)
    gx, gy, gz = np.meshgrid(
        (np.arange(6) - 2.5) * 0.5,
        (np.arange(5) - 2.0) * 0.5,
        (np.arange(4) - 1.5) * 0.5,
        indexing="ij",
    )
    pts = np.column_stack([gx.ravel(), gy.ravel(), gz.ravel()])
    return pts + rng.uniform(-0.05, 0.05, size=pts.shape)


def _all_pairs(n: int) -> CorrespondenceSet:
    idx = np.arange(n)
    return CorrespondenceSet(idx, idx.copy(), np.zeros(n))


def test_estimator_recovers_exact_motion():
    src = _jittered_grid(seed=1)
    T = RigidTransform.from_axis_angle([0.2, 0.3, 1.0], np.deg2rad(25.0), [0.4, -1.2, 0.7])
    tgt = T.apply(src)

    est = estimate_rigid_transform(_all_pairs(len(src)), src, tgt)

    assert est.allclose(T, atol=1e-8)
    assert est.determinant() == pytest.approx(1.0, abs=1e-5)


def test_estimator_never_returns_a_reflection():
    src = _jittered_grid(seed=2)
    mirrored = src * np.array([-1.0, 1.0, 1.0])

    est = estimate_rigid_transform(_all_pairs(len(src)), src, mirrored)

    assert est.determinant() == pytest.approx(1.0, abs=1e-5)
    assert est.is_proper()


def test_estimator_rejects_empty_correspondences():
    with pytest.raises(InvalidArgumentError):
        estimate_rigid_transform(CorrespondenceSet.empty(), _cube(), _cube())


def test_icp_cube_translation_converges_in_one_iteration():
    """A cube shifted by 10 cm along x is recovered from exact matches."""
    src = _cube()
    tgt = src + np.array([0.1, 0.0, 0.0])

    result = ICPRegistration().align_point_clouds(src, tgt)

    assert result.status is ICPStatus.CONVERGED
    assert result.converged
    # The residual of the first iteration is the pre-update 0.1 m; the
    # second iteration measures the aligned state.
    assert result.iterations <= 2
    assert np.allclose(result.transform.translation, [0.1, 0.0, 0.0], atol=1e-6)
    assert np.allclose(result.transform.rotation, np.eye(3), atol=1e-6)
    assert result.final_residual < 0.01


def test_icp_inverse_composes_to_identity():
    src = _jittered_grid(seed=3)
    T = RigidTransform.from_axis_angle([0.0, 0.0, 1.0], np.deg2rad(2.0), [0.05, -0.03, 0.02])
    tgt = T.apply(src)

    result = ICPRegistration().align_point_clouds(src, tgt)

    assert result.transform.is_proper()
    assert (T.inverse() @ result.transform).allclose(RigidTransform.identity(), atol=1e-6)
    assert ICPRegistration().compute_registration_error(src, tgt, result.transform) < 1e-6


def test_icp_far_apart_clouds_stop_with_identity():
    """Nothing lies within the 0.5 m gate, so no transform is estimated."""
    src = _cube(n=5, spacing=0.1)
    tgt = src + np.array([1.0, 0.0, 0.0])

    result = ICPRegistration().align_point_clouds(src, tgt)

    assert result.status is ICPStatus.INSUFFICIENT_CORRESPONDENCES
    assert result.iterations == 0
    assert not result.has_estimate
    assert result.transform.allclose(RigidTransform.identity())
    assert result.correspondence_counts == [0]


def test_icp_empty_input_returns_identity():
    result = ICPRegistration().align_point_clouds(np.empty((0, 3)), _cube())
    assert result.status is ICPStatus.EMPTY_INPUT
    assert result.transform.allclose(RigidTransform.identity())
    assert result.final_residual == float("inf")


def test_icp_runs_at_most_max_iterations():
    src = _jittered_grid(seed=4)
    T = RigidTransform.from_axis_angle([1.0, 0.0, 0.0], np.deg2rad(3.0), [0.05, 0.0, 0.0])
    tgt = T.apply(src)

    result = ICPRegistration(max_iterations=1, convergence_rmse=1e-12).align_point_clouds(src, tgt)

    assert result.status is ICPStatus.MAX_ITERATIONS
    assert result.iterations == 1
    assert len(result.residuals) == 1


def test_align_accepts_point_clouds():
    src = PointCloud(_cube())
    tgt = src.translated([0.0, 0.05, -0.05])

    T = align(src, tgt)

    assert np.allclose(T.translation, [0.0, 0.05, -0.05], atol=1e-5)


def test_kdtree_backend_matches_brute_result():
    src = _jittered_grid(seed=5)
    T = RigidTransform.from_axis_angle([0.0, 1.0, 0.0], np.deg2rad(1.5), [0.03, 0.02, -0.04])
    tgt = T.apply(src)

    brute = ICPRegistration(nn_backend="brute").align_point_clouds(src, tgt)
    tree = ICPRegistration(nn_backend="kdtree").align_point_clouds(src, tgt)

    assert brute.transform.allclose(tree.transform, atol=1e-6)


def test_registration_error_without_matches_is_infinite():
    src = _cube(n=3, spacing=0.1)
    tgt = src + 5.0
    assert ICPRegistration().compute_registration_error(src, tgt) == float("inf")


def test_invalid_iteration_count():
    with pytest.raises(InvalidArgumentError):
        ICPRegistration(max_iterations=0)


def test_gate_counts_squared_distance():
    """0.25 m^2 gate: a 0.49 m offset matches, a 0.51 m offset does not."""
    src = _cube(n=3, spacing=2.0)
    assert len(find_correspondences(src, src + [0.49, 0.0, 0.0])) == len(src)
    assert len(find_correspondences(src, src + [0.51, 0.0, 0.0])) == 0
