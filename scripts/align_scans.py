"""
Merge numbered scans of a directory into one point cloud.

Example:
    python scripts/align_scans.py --scan-dir scans --num-scans 8 --output scans/merged.ply
"""

import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.cli import align_scans_main


if __name__ == "__main__":
    sys.exit(align_scans_main())
