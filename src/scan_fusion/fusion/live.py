"""
Live fusion of a frame stream into a voxel map.

A producer (the capture side) hands projected point clouds to a FrameSource.
A background LiveFusionWorker pulls frames from it and fuses every n-th frame
into a VoxelFusionMap, while the consumer side (a viewer or the replay CLI)
takes snapshots of the map at its own pace.

Motion between fused frames is estimated from the centroid offset of
consecutive frames. Offsets that are too large are treated as tracking
failures: the frame is dropped and streaming continues. Optionally the stream
re-anchors itself by registering a frame against the map with ICP after a
number of consecutive rejections.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol, Union

import numpy as np

from ..alignment.coarse_registration import CoarseRegistration, DEFAULT_MAX_OFFSET
from ..alignment.fine_registration import ICPRegistration
from ..errors import InvalidArgumentError
from ..geometry.point_cloud import PointCloud
from ..geometry.transform import RigidTransform
from ..preprocessing.loader import PointCloudLoader
from ..utils.logging import setup_logger
from ..utils.point_cloud_filters import downsample, finite_mask
from .voxel_map import DEFAULT_VOXEL_SIZE, VoxelFusionMap

logger = setup_logger(__name__)

DEFAULT_FRAME_INTERVAL = 10
DEFAULT_POLL_TIMEOUT = 1.0
DEFAULT_DOWNSAMPLE_STRIDE = 10


# -----------------------
# Frame sources
# -----------------------


class FrameStatus(Enum):
    OK = "ok"
    NO_DATA = "no_data"
    CLOSED = "closed"


@dataclass(frozen=True)
class FrameResult:
    """Outcome of one poll of a frame source."""
    status: FrameStatus
    cloud: Optional[PointCloud] = None
    reason: str = ""

    @classmethod
    def ok(cls, cloud: PointCloud) -> "FrameResult":
        return cls(FrameStatus.OK, cloud=cloud)

    @classmethod
    def no_data(cls, reason: str = "timeout") -> "FrameResult":
        return cls(FrameStatus.NO_DATA, reason=reason)

    @classmethod
    def closed(cls) -> "FrameResult":
        return cls(FrameStatus.CLOSED, reason="source closed")


class FrameSource(Protocol):
    def next_frame(self, timeout: float) -> FrameResult:
        """Wait up to `timeout` seconds for the next projected frame."""
        ...


class QueueFrameSource:
    """
    Frame source fed by another thread.

    The capture thread calls `put` for every projected frame and `close` when
    it stops. Frames queued before `close` are still delivered.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._closed = False

    def put(self, cloud: PointCloud, timeout: Optional[float] = None) -> None:
        if self._closed:
            raise RuntimeError("Cannot put frames into a closed source")
        self._queue.put(cloud, timeout=timeout)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(self._CLOSED)

    def next_frame(self, timeout: float) -> FrameResult:
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return FrameResult.no_data("timeout")
        if item is self._CLOSED:
            # Keep the marker for any later poll
            self._queue.put(self._CLOSED)
            return FrameResult.closed()
        return FrameResult.ok(item)


class ReplayFrameSource:
    """Replays in-memory clouds or PLY files as a frame stream."""

    def __init__(self, frames: Iterable[Union[PointCloud, str, Path]],
                 loader: Optional[PointCloudLoader] = None):
        self._frames: Iterator = iter(frames)
        self.loader = loader if loader is not None else PointCloudLoader()
        self._lock = threading.Lock()

    def next_frame(self, timeout: float) -> FrameResult:
        with self._lock:
            try:
                item = next(self._frames)
            except StopIteration:
                return FrameResult.closed()
        if isinstance(item, PointCloud):
            return FrameResult.ok(item)
        cloud = self.loader.load(item)
        if cloud.is_empty:
            return FrameResult.no_data(f"no points in {item}")
        return FrameResult.ok(cloud)


# -----------------------
# Fusion loop
# -----------------------


class FrameDecision(Enum):
    SKIPPED = "skipped"          # not an n-th frame
    EMPTY = "empty"              # considered, but holds no finite points
    FIRST = "first"              # first considered frame, fused as-is
    FUSED = "fused"
    REJECTED = "rejected"        # offset too large, dropped
    REANCHORED = "reanchored"    # fused after ICP against the map


@dataclass
class FusionStats:
    frames_received: int = 0
    frames_considered: int = 0
    frames_fused: int = 0
    frames_rejected: int = 0
    frames_reanchored: int = 0
    consecutive_rejections: int = 0
    cumulative_offset: np.ndarray = field(default_factory=lambda: np.zeros(3))


class LiveFusion:
    """
    Per-frame fusion state machine.

    Not thread-safe by itself; one LiveFusionWorker (or one caller) drives
    `process_frame`, while other threads may read the shared map.
    """

    def __init__(
        self,
        voxel_map: VoxelFusionMap,
        *,
        frame_interval: int = DEFAULT_FRAME_INTERVAL,
        max_offset: float = DEFAULT_MAX_OFFSET,
        reanchor_after: int = 0,
        icp: Optional[ICPRegistration] = None,
        downsample_stride: int = DEFAULT_DOWNSAMPLE_STRIDE,
    ):
        """
        Args:
            voxel_map: Map receiving fused points.
            frame_interval: Only every n-th received frame is considered.
            max_offset: Centroid offsets at or above this norm are rejected.
            reanchor_after: Consecutive rejections that trigger ICP against
                the map; 0 disables re-anchoring.
            icp: ICP used for re-anchoring.
            downsample_stride: Stride for the re-anchoring ICP inputs.
        """
        if frame_interval < 1:
            raise InvalidArgumentError(f"frame_interval must be at least 1, got {frame_interval}")
        if reanchor_after < 0:
            raise InvalidArgumentError(f"reanchor_after must be >= 0, got {reanchor_after}")
        self.voxel_map = voxel_map
        self.frame_interval = int(frame_interval)
        self.coarse = CoarseRegistration(method="centroid", max_offset=max_offset)
        self.reanchor_after = int(reanchor_after)
        self.icp = icp if icp is not None else ICPRegistration()
        self.downsample_stride = downsample_stride

        self.stats = FusionStats()
        self._previous: Optional[PointCloud] = None

    @property
    def cumulative_offset(self) -> np.ndarray:
        return self.stats.cumulative_offset.copy()

    def reset(self) -> None:
        """Forget the previous frame and the accumulated offset."""
        self.stats = FusionStats()
        self._previous = None

    def process_frame(self, cloud: PointCloud) -> FrameDecision:
        stats = self.stats
        stats.frames_received += 1
        if stats.frames_received % self.frame_interval != 0:
            return FrameDecision.SKIPPED

        stats.frames_considered += 1
        mask = finite_mask(cloud.positions)
        if not mask.all():
            logger.debug(f"Dropping {int(len(cloud) - mask.sum())} non-finite points from frame")
            cloud = cloud[mask]
        if cloud.is_empty:
            logger.debug("Considered frame has no finite points; ignoring it")
            return FrameDecision.EMPTY

        if self._previous is None:
            self.voxel_map.add_cloud(cloud)
            self._previous = cloud
            stats.frames_fused += 1
            logger.info(f"First frame added ({len(cloud)} points)")
            return FrameDecision.FIRST

        coarse = self.coarse.compute_offset(cloud, self._previous)
        if coarse.accepted:
            stats.cumulative_offset = stats.cumulative_offset + coarse.offset
            self.voxel_map.add_cloud(cloud.translated(stats.cumulative_offset))
            self._previous = cloud
            stats.frames_fused += 1
            stats.consecutive_rejections = 0
            logger.debug(f"Frame added. Voxels: {self.voxel_map.size()}")
            return FrameDecision.FUSED

        stats.frames_rejected += 1
        stats.consecutive_rejections += 1
        logger.debug(
            f"Frame rejected: offset {coarse.norm:.3f} m "
            f"({stats.consecutive_rejections} consecutive)"
        )
        if self.reanchor_after and stats.consecutive_rejections >= self.reanchor_after:
            if self._reanchor(cloud):
                return FrameDecision.REANCHORED
        return FrameDecision.REJECTED

    def _reanchor(self, cloud: PointCloud) -> bool:
        """Register `cloud` against the map; fuse it and re-base on success."""
        stats = self.stats
        guess = RigidTransform.from_translation(stats.cumulative_offset)
        source = downsample(cloud.transformed(guess), self.downsample_stride)
        target = downsample(self.voxel_map.export(), self.downsample_stride)

        result = self.icp.align_point_clouds(source, target)
        if not result.has_estimate:
            logger.info(f"Re-anchoring failed ({result.status.value}); frame stays rejected")
            return False

        placement = result.transform @ guess
        fused = cloud.transformed(placement)
        self.voxel_map.add_cloud(fused)

        # Later frames are placed by translation only, so keep the translation
        # that moves this frame's centroid to where ICP put it.
        stats.cumulative_offset = fused.centroid() - cloud.centroid()
        self._previous = cloud
        stats.frames_fused += 1
        stats.frames_reanchored += 1
        stats.consecutive_rejections = 0
        logger.info(
            f"Re-anchored frame against the map ({result.iterations} ICP iterations, "
            f"status={result.status.value})"
        )
        return True


# -----------------------
# Worker and session
# -----------------------


class LiveFusionWorker:
    """
    Background thread that drains a FrameSource into a LiveFusion.

    The cancellation flag is checked once per loop; a pending poll finishes
    within the source timeout. An exception raised while fusing is logged
    and re-raised from `join()`.
    """

    def __init__(self, source: FrameSource, fusion: LiveFusion,
                 poll_timeout: float = DEFAULT_POLL_TIMEOUT, name: str = "live-fusion"):
        self.source = source
        self.fusion = fusion
        self.poll_timeout = float(poll_timeout)
        self._stop_event = threading.Event()
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "LiveFusionWorker":
        self._thread.start()
        logger.info(f"Live fusion worker '{self._thread.name}' started")
        return self

    def stop(self) -> None:
        """Ask the worker to finish after the current frame."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None, raise_error: bool = True) -> bool:
        """
        Wait for the worker thread.

        Args:
            timeout: Seconds to wait; None waits until the thread ends.
            raise_error: Re-raise the exception that ended the worker. When
                False the error stays stored for a later `join()`.

        Returns:
            True if the thread has finished.

        Raises:
            The exception that ended the worker, if any.
        """
        if self._thread.ident is not None:
            self._thread.join(timeout)
        if raise_error and self._error is not None:
            error, self._error = self._error, None
            raise error
        return not self._thread.is_alive()

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                result = self.source.next_frame(self.poll_timeout)
                if result.status is FrameStatus.CLOSED:
                    logger.info("Frame source closed; stopping live fusion")
                    break
                if result.status is FrameStatus.NO_DATA:
                    logger.debug(f"No frame: {result.reason}")
                    continue
                self.fusion.process_frame(result.cloud)
        except Exception as e:
            logger.exception(f"Live fusion worker failed: {e}")
            self._error = e

    def __enter__(self) -> "LiveFusionWorker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
        # An exception from the with-body takes precedence over a worker error
        self.join(raise_error=exc_type is None)


class FusionSession:
    """
    Owns one voxel map and the worker filling it.

    The consumer side uses `snapshot()`, `size()` and `clear()`; `close()`
    stops and joins the worker before the session is discarded.
    """

    def __init__(
        self,
        source: FrameSource,
        *,
        voxel_size: float = DEFAULT_VOXEL_SIZE,
        frame_interval: int = DEFAULT_FRAME_INTERVAL,
        max_offset: float = DEFAULT_MAX_OFFSET,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        reanchor_after: int = 0,
        icp: Optional[ICPRegistration] = None,
    ):
        self.voxel_map = VoxelFusionMap(voxel_size)
        self.fusion = LiveFusion(
            self.voxel_map,
            frame_interval=frame_interval,
            max_offset=max_offset,
            reanchor_after=reanchor_after,
            icp=icp,
        )
        self.worker = LiveFusionWorker(source, self.fusion, poll_timeout=poll_timeout)
        self._closed = False

    @classmethod
    def from_config(cls, cfg, source: FrameSource) -> "FusionSession":
        """Build from an AppConfig."""
        icp = ICPRegistration.from_config(cfg.alignment, max_iterations=cfg.fusion.reanchor_max_iterations)
        return cls(
            source,
            voxel_size=cfg.fusion.voxel_size,
            frame_interval=cfg.fusion.frame_interval,
            max_offset=cfg.fusion.max_offset,
            poll_timeout=cfg.fusion.poll_timeout_s,
            reanchor_after=cfg.fusion.reanchor_after,
            icp=icp,
        )

    @property
    def stats(self) -> FusionStats:
        """Copy of the worker's counters; safe to keep on the consumer side."""
        stats = self.fusion.stats
        return replace(stats, cumulative_offset=stats.cumulative_offset.copy())

    def start(self) -> "FusionSession":
        self.worker.start()
        return self

    def snapshot(self) -> PointCloud:
        return self.voxel_map.export()

    def size(self) -> int:
        return self.voxel_map.size()

    def clear(self) -> None:
        self.voxel_map.clear()
        logger.info("Map cleared")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to finish on its own (source closed)."""
        return self.worker.join(timeout)

    def close(self, timeout: Optional[float] = None, raise_error: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self.worker.stop()
        self.worker.join(timeout, raise_error=raise_error)

    def __enter__(self) -> "FusionSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(raise_error=exc_type is None)
