"""Tests for the command line entry points."""

import sys
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.cli import align_scans_main, live_fusion_main
from scan_fusion.geometry import PointCloud, RigidTransform
from scan_fusion.preprocessing.loader import load_point_cloud, save_point_cloud


def _block(n: int = 8, spacing: float = 0.1) -> PointCloud:
    ax = (np.arange(n) + 0.5) * spacing
    gx, gy, gz = np.meshgrid(ax, ax, ax, indexing="ij")
    pts = np.column_stack([gx.ravel(), gy.ravel(), gz.ravel()])
    return PointCloud(pts, np.full((len(pts), 3), 90, dtype=np.uint8))


def _write_scans(scan_dir: Path, count: int) -> PointCloud:
    ref = _block()
    for i in range(count):
        shift = RigidTransform.from_translation([0.02 * i, -0.01 * i, 0.0])
        save_point_cloud(scan_dir / f"scan_{i}.ply", ref.transformed(shift))
    return ref


def test_align_cli_merges_scans(tmp_path):
    scan_dir = tmp_path / "scans"
    ref = _write_scans(scan_dir, 3)
    output = tmp_path / "merged.ply"

    code = align_scans_main([
        "--scan-dir", str(scan_dir),
        "--num-scans", "3",
        "--output", str(output),
        "--transforms-dir", str(tmp_path / "transforms"),
    ])

    assert code == 0
    assert len(load_point_cloud(output)) == 3 * len(ref)
    assert (tmp_path / "transforms" / "scan_2_transform.txt").exists()


def test_align_cli_discovers_all_scans_with_zero_count(tmp_path):
    scan_dir = tmp_path / "scans"
    ref = _write_scans(scan_dir, 2)
    output = tmp_path / "merged.ply"

    assert align_scans_main(["--scan-dir", str(scan_dir), "--num-scans", "0", "--output", str(output)]) == 0
    assert len(load_point_cloud(output)) == 2 * len(ref)


def test_align_cli_exit_status_on_load_failure(tmp_path):
    scan_dir = tmp_path / "scans"
    _write_scans(scan_dir, 2)
    output = tmp_path / "merged.ply"

    code = align_scans_main(["--scan-dir", str(scan_dir), "--num-scans", "3", "--output", str(output)])

    assert code == 1
    assert not output.exists()


def test_align_cli_empty_directory(tmp_path):
    (tmp_path / "scans").mkdir()
    assert align_scans_main(["--scan-dir", str(tmp_path / "scans"), "--num-scans", "0"]) == 1


def test_replay_cli_writes_fused_map(tmp_path):
    frames_dir = tmp_path / "frames"
    ref = _block(n=5, spacing=0.05)
    for i in range(4):
        # Sensor drifts +x, scene drifts -x
        save_point_cloud(frames_dir / f"frame_{i:03d}.ply", ref.translated([-0.05 * i, 0.0, 0.0]))
    output = tmp_path / "map.ply"

    code = live_fusion_main([
        str(frames_dir),
        "--output", str(output),
        "--frame-interval", "1",
        "--voxel-size", "0.05",
    ])

    assert code == 0
    assert len(load_point_cloud(output)) == len(ref)


def test_replay_cli_without_frames(tmp_path):
    (tmp_path / "frames").mkdir()
    assert live_fusion_main([str(tmp_path / "frames")]) == 1
