"""
Fusion Module

Online accumulation of a live frame stream into a deduplicated voxel map:
- VoxelFusionMap: thread-safe voxel-hashed point store
- LiveFusion: per-frame offset tracking and fusion
- LiveFusionWorker / FusionSession: background processing and its owner
"""

from .voxel_map import VoxelFusionMap, VoxelKey
from .live import (
    FrameDecision,
    FrameResult,
    FrameSource,
    FrameStatus,
    FusionSession,
    FusionStats,
    LiveFusion,
    LiveFusionWorker,
    QueueFrameSource,
    ReplayFrameSource,
)

__all__ = [
    "VoxelFusionMap",
    "VoxelKey",
    "FrameDecision",
    "FrameResult",
    "FrameSource",
    "FrameStatus",
    "FusionSession",
    "FusionStats",
    "LiveFusion",
    "LiveFusionWorker",
    "QueueFrameSource",
    "ReplayFrameSource",
]
