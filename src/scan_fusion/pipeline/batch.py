"""
Batch scan alignment.

Merges N overlapping scans into one cloud. The first scan defines the
reference frame and is taken over unchanged; every following scan is
registered with ICP against the cloud merged so far and appended to it:

    merged = scan[0]
    for i in 1..N-1:
        T = ICP(downsample(scan[i]), downsample(merged))
        merged += T(scan[i])

Downsampling only feeds the correspondence search; the full-resolution scan
is what gets transformed and merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union
import time

from ..alignment.fine_registration import ICPRegistration, ICPResult
from ..alignment.streaming_alignment import save_transform_matrix
from ..errors import ScanLoadError
from ..geometry.point_cloud import PointCloud
from ..geometry.transform import RigidTransform
from ..preprocessing.loader import PointCloudLoader
from ..utils.logging import setup_logger
from ..utils.point_cloud_filters import downsample, get_downsample_statistics

logger = setup_logger(__name__)

PathLike = Union[str, Path]

DEFAULT_DOWNSAMPLE_STRIDE = 10


@dataclass
class ScanAlignment:
    """Transform applied to one scan before it was merged."""
    index: int
    transform: RigidTransform
    num_points: int
    icp: Optional[ICPResult] = None  # None for the reference scan
    path: Optional[Path] = None


@dataclass
class BatchAlignmentResult:
    merged: PointCloud
    alignments: List[ScanAlignment] = field(default_factory=list)
    output_path: Optional[Path] = None

    @property
    def transforms(self) -> List[RigidTransform]:
        return [a.transform for a in self.alignments]


class BatchAlignmentPipeline:
    """
    Sequential ICP merge of a list of scans.

    Single-threaded and blocking. The merged cloud is private to one
    `align_scans` call.
    """

    def __init__(
        self,
        icp: Optional[ICPRegistration] = None,
        downsample_stride: int = DEFAULT_DOWNSAMPLE_STRIDE,
        loader: Optional[PointCloudLoader] = None,
    ):
        """
        Args:
            icp: Configured ICP; defaults to ICPRegistration().
            downsample_stride: Stride applied to source and merged target
                before correspondence search.
            loader: PLY codec used by `load_scans` and `run`.
        """
        self.icp = icp if icp is not None else ICPRegistration()
        self.downsample_stride = downsample_stride
        self.loader = loader if loader is not None else PointCloudLoader()

    @classmethod
    def from_config(cls, cfg) -> "BatchAlignmentPipeline":
        """Build from an AppConfig."""
        return cls(
            icp=ICPRegistration.from_config(cfg.alignment),
            downsample_stride=cfg.alignment.downsample_stride,
        )

    def load_scans(self, paths: Sequence[PathLike]) -> List[PointCloud]:
        """
        Load every scan before any processing.

        Raises:
            ScanLoadError: On the first scan that loads as empty.
        """
        scans = []
        for i, path in enumerate(paths):
            cloud = self.loader.load(path)
            if cloud.is_empty:
                logger.error(f"Scan {i} ({path}) could not be loaded")
                raise ScanLoadError(path, index=i)
            scans.append(cloud)
        logger.info(f"Loaded {len(scans)} scans ({sum(len(s) for s in scans)} points total)")
        return scans

    def align_scans(self, scans: Sequence[PointCloud]) -> BatchAlignmentResult:
        """
        Align and merge scans in order.

        Args:
            scans: Scans in merge order; the first one is the reference.

        Returns:
            BatchAlignmentResult holding the merged cloud and one
            ScanAlignment per input scan.
        """
        if not scans:
            logger.warning("No scans to align; returning an empty merged cloud.")
            return BatchAlignmentResult(merged=PointCloud.empty())

        merged = scans[0].copy()
        alignments = [ScanAlignment(index=0, transform=RigidTransform.identity(), num_points=len(scans[0]))]

        for i in range(1, len(scans)):
            scan = scans[i]
            start = time.time()

            source = downsample(scan, self.downsample_stride)
            target = downsample(merged, self.downsample_stride)
            stats = get_downsample_statistics(len(scan), len(source), self.downsample_stride)
            logger.info(
                f"Aligning scan {i}: {stats['kept_points']} of {stats['total_points']} points "
                f"({stats['description']}) against {len(target)} merged points"
            )

            result = self.icp.align_point_clouds(source, target)
            aligned = scan.transformed(result.transform)
            merged.extend(aligned)

            alignments.append(
                ScanAlignment(index=i, transform=result.transform, num_points=len(scan), icp=result)
            )
            logger.info(
                f"Scan {i} merged in {time.time() - start:.2f}s: status={result.status.value}, "
                f"iterations={result.iterations}, {result.transform}"
            )

        logger.info(f"Merged {len(scans)} scans into {len(merged)} points")
        return BatchAlignmentResult(merged=merged, alignments=alignments)

    def run(
        self,
        paths: Sequence[PathLike],
        output_path: PathLike,
        *,
        transforms_dir: Optional[PathLike] = None,
        aligned_dir: Optional[PathLike] = None,
    ) -> BatchAlignmentResult:
        """
        Load, align, merge and write.

        Nothing is aligned or written unless every scan loads.

        Args:
            paths: Scan files in merge order.
            output_path: Destination of the merged PLY.
            transforms_dir: If set, each scan's 4x4 transform is written to
                `scan_<i>_transform.txt` there.
            aligned_dir: If set, each aligned scan is written to
                `<stem>_aligned.ply` there.

        Raises:
            ScanLoadError: If any scan fails to load.
        """
        scans = self.load_scans(paths)
        result = self.align_scans(scans)
        for alignment, path in zip(result.alignments, paths):
            alignment.path = Path(path)

        if transforms_dir is not None:
            for alignment in result.alignments:
                save_transform_matrix(
                    alignment.transform,
                    Path(transforms_dir) / f"scan_{alignment.index}_transform.txt",
                )

        if aligned_dir is not None:
            for alignment, scan in zip(result.alignments, scans):
                out = Path(aligned_dir) / f"{alignment.path.stem}_aligned.ply"
                self.loader.save(out, scan.transformed(alignment.transform))

        result.output_path = self.loader.save(output_path, result.merged)
        logger.info(f"Merged cloud written to {result.output_path}")
        return result
