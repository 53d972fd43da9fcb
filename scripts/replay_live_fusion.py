"""
Replay a directory of recorded PLY frames through the live fusion worker
and write the fused voxel map.

Example:
    python scripts/replay_live_fusion.py recordings/session1 --output fused_map.ply --frame-interval 1
"""

import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from scan_fusion.cli import live_fusion_main


if __name__ == "__main__":
    sys.exit(live_fusion_main())
