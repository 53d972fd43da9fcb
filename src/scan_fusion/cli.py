"""
Command line entry points.

- scan-fusion-align: merge numbered scans of a directory with ICP
- scan-fusion-replay: stream a directory of PLY frames through live fusion
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .errors import ScanLoadError
from .fusion.live import FusionSession, ReplayFrameSource
from .pipeline.batch import BatchAlignmentPipeline
from .preprocessing.data_discovery import ScanDiscovery
from .preprocessing.loader import PointCloudLoader
from .utils.config import AppConfig, load_config
from .utils.logging import set_package_log_level, setup_logger
from .visualization.point_cloud import PointCloudVisualizer


def _configure(config_path: Optional[str]):
    cfg: AppConfig = load_config(config_path)
    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    set_package_log_level(log_level)
    return cfg, logger


def _build_align_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge overlapping scans into one point cloud with ICP")
    parser.add_argument(
        "--scan-dir",
        type=str,
        default=None,
        help="Directory containing scan_<i>.ply files (default from config)",
    )
    parser.add_argument(
        "--num-scans",
        type=int,
        default=None,
        help="Number of scans to merge; 0 merges every scan found (default from config)",
    )
    parser.add_argument(
        "--pattern",
        type=str,
        default=None,
        help="Scan file name pattern containing '{index}' (default from config)",
    )
    parser.add_argument("--output", type=str, default=None, help="Merged PLY output path")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--transforms-dir", type=str, default=None, help="Write per-scan 4x4 transforms here")
    parser.add_argument("--aligned-dir", type=str, default=None, help="Write per-scan aligned PLY copies here")
    parser.add_argument("--html", type=str, default=None, help="Write an HTML rendering of the merged cloud")
    return parser


def align_scans_main(argv: Optional[List[str]] = None) -> int:
    """Batch merge. Returns 1 if any scan fails to load, 0 on success."""
    args = _build_align_parser().parse_args(argv)
    cfg, logger = _configure(args.config)

    paths_cfg = cfg.paths
    scan_dir = args.scan_dir or paths_cfg.scan_dir
    pattern = args.pattern or paths_cfg.scan_pattern
    num_scans = paths_cfg.num_scans if args.num_scans is None else (args.num_scans or None)
    output = args.output or paths_cfg.output_file

    discovery = ScanDiscovery(scan_dir, pattern=pattern)
    scan_set = discovery.collect(num_scans)
    if len(scan_set) == 0:
        logger.error(f"No scans found in {scan_dir}")
        return 1

    pipeline = BatchAlignmentPipeline.from_config(cfg)
    try:
        result = pipeline.run(
            scan_set.paths,
            output,
            transforms_dir=args.transforms_dir or paths_cfg.transforms_dir,
            aligned_dir=args.aligned_dir or paths_cfg.aligned_dir,
        )
    except ScanLoadError as e:
        logger.error(str(e))
        return 1

    for alignment in result.alignments[1:]:
        logger.info(f"Scan {alignment.index}: {alignment.transform} ({alignment.icp.status.value})")
    logger.info(f"Saved merged cloud with {len(result.merged)} points to {result.output_path}")

    if args.html:
        viz = PointCloudVisualizer(backend=cfg.visualization.backend, point_size=cfg.visualization.point_size)
        viz.visualize_clouds([result.merged], ["merged"], sample_size=cfg.visualization.sample_size,
                             output_html=args.html)
    return 0


def _build_replay_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay recorded PLY frames through live voxel fusion")
    parser.add_argument("frames_dir", type=str, help="Directory of PLY frames, replayed in name order")
    parser.add_argument("--pattern", type=str, default="*.ply", help="Glob pattern for frame files")
    parser.add_argument("--output", type=str, default="fused_map.ply", help="Fused map PLY output path")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--voxel-size", type=float, default=None, help="Override fusion.voxel_size (meters)")
    parser.add_argument("--frame-interval", type=int, default=None, help="Override fusion.frame_interval")
    parser.add_argument("--reanchor-after", type=int, default=None, help="Override fusion.reanchor_after")
    parser.add_argument("--html", type=str, default=None, help="Write an HTML rendering of the fused map")
    return parser


def live_fusion_main(argv: Optional[List[str]] = None) -> int:
    """Replay frames through a FusionSession and write the exported map."""
    args = _build_replay_parser().parse_args(argv)
    cfg, logger = _configure(args.config)

    if args.voxel_size is not None:
        cfg.fusion.voxel_size = args.voxel_size
    if args.frame_interval is not None:
        cfg.fusion.frame_interval = args.frame_interval
    if args.reanchor_after is not None:
        cfg.fusion.reanchor_after = args.reanchor_after

    frames = sorted(Path(args.frames_dir).glob(args.pattern))
    if not frames:
        logger.error(f"No frames matching '{args.pattern}' in {args.frames_dir}")
        return 1

    source = ReplayFrameSource(frames)
    with FusionSession.from_config(cfg, source) as session:
        session.wait()
        snapshot = session.snapshot()
        stats = session.stats

    logger.info(
        f"Frames: {stats.frames_received} received, {stats.frames_fused} fused, "
        f"{stats.frames_rejected} rejected, {stats.frames_reanchored} re-anchored"
    )
    PointCloudLoader().save(args.output, snapshot)
    logger.info(f"Saved fused map with {len(snapshot)} voxels to {args.output}")

    if args.html:
        viz = PointCloudVisualizer(backend=cfg.visualization.backend, point_size=cfg.visualization.point_size)
        viz.visualize_clouds([snapshot], ["map"], sample_size=cfg.visualization.sample_size,
                             output_html=args.html)
    return 0
