"""
Scan Discovery

This module locates numbered scan files in a scan directory, e.g.

scans/
├── scan_0.ply
├── scan_1.ply
├── ...
└── merged.ply

Scans are ordered by their numeric index, which is the order the batch
pipeline merges them in.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..utils.logging import setup_logger
from .loader import PointCloudLoader

logger = setup_logger(__name__)


@dataclass
class ScanSet:
    """Ordered scan files for one merge run."""
    scan_dir: Path
    paths: List[Path]
    missing: List[Path] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.paths)

    @property
    def complete(self) -> bool:
        return not self.missing


class ScanDiscovery:
    """
    Builds the list of scan files for a merge.

    Two modes are supported:
    - explicit count: scan_0 .. scan_{count-1} are expected to exist
    - discovery: every file matching the pattern, ordered by index
    """

    def __init__(self, scan_dir: str, *, pattern: str = "scan_{index}.ply",
                 loader: Optional[PointCloudLoader] = None):
        """
        Args:
            scan_dir: Directory holding the scans.
            pattern: File name pattern containing the '{index}' placeholder.
            loader: Optional PointCloudLoader used for validation.

        Raises:
            ValueError: If the pattern has no '{index}' placeholder.
        """
        if "{index}" not in pattern:
            raise ValueError(f"Scan pattern must contain '{{index}}': {pattern!r}")
        self.scan_dir = Path(scan_dir)
        self.pattern = pattern
        self.loader = loader if loader is not None else PointCloudLoader()

        prefix, suffix = pattern.split("{index}", 1)
        self._regex = re.compile(rf"^{re.escape(prefix)}(\d+){re.escape(suffix)}$")

    def expected_paths(self, count: int) -> ScanSet:
        """Paths for scans 0..count-1, recording those not present on disk."""
        if count < 1:
            raise ValueError(f"Scan count must be positive, got {count}")
        paths = [self.scan_dir / self.pattern.format(index=i) for i in range(count)]
        missing = [p for p in paths if not p.is_file()]
        if missing:
            logger.warning(f"{len(missing)} of {count} expected scans are missing in {self.scan_dir}")
        return ScanSet(scan_dir=self.scan_dir, paths=paths, missing=missing)

    def discover(self) -> ScanSet:
        """Every file in the scan directory that matches the pattern."""
        if not self.scan_dir.exists():
            logger.warning(f"Scan directory {self.scan_dir} does not exist.")
            return ScanSet(scan_dir=self.scan_dir, paths=[])

        indexed = []
        for candidate in self.scan_dir.iterdir():
            if not candidate.is_file():
                continue
            match = self._regex.match(candidate.name)
            if match:
                indexed.append((int(match.group(1)), candidate))

        indexed.sort(key=lambda item: item[0])
        paths = [p for _, p in indexed]
        logger.info(f"Discovered {len(paths)} scans in {self.scan_dir}")
        return ScanSet(scan_dir=self.scan_dir, paths=paths)

    def collect(self, count: Optional[int] = None) -> ScanSet:
        """Explicit-count mode when `count` is given, discovery otherwise."""
        if count is None:
            return self.discover()
        return self.expected_paths(count)

    def invalid_files(self, scan_set: ScanSet) -> List[Path]:
        """Files in `scan_set` that are missing, malformed or truncated."""
        return [p for p in scan_set.paths if not self.loader.validate_file(p)]
