"""
Coarse Registration Methods

Provides translation-only alignment between consecutive frames of a live
stream, used as a cheap motion estimate before fusing a frame into the map.

Methods implemented:
- centroid: translation by the difference of centroids (target - source)

Offsets whose norm reaches `max_offset` are reported as rejected; the caller
decides what to do with such frames.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..errors import InvalidArgumentError
from ..utils.logging import setup_logger
from .correspondence import CloudLike, as_positions

logger = setup_logger(__name__)

DEFAULT_MAX_OFFSET = 0.5


@dataclass(frozen=True)
class CoarseResult:
    """Estimated translation and whether it passed the plausibility gate."""
    offset: np.ndarray
    accepted: bool

    @property
    def norm(self) -> float:
        return float(np.linalg.norm(self.offset))


@dataclass
class CoarseRegistration:
    method: str = "centroid"
    max_offset: float = DEFAULT_MAX_OFFSET

    def __post_init__(self):
        if self.method.lower() != "centroid":
            raise InvalidArgumentError(f"Unknown coarse registration method '{self.method}'")
        if not self.max_offset > 0:
            raise InvalidArgumentError(f"max_offset must be positive, got {self.max_offset}")

    def compute_offset(self, source: CloudLike, target: CloudLike) -> CoarseResult:
        """
        Estimate the translation moving source onto target.

        Args:
            source: Current frame (N points)
            target: Reference frame (M points)

        Returns:
            CoarseResult; `accepted` is False when the offset norm is at or
            above `max_offset`.

        Raises:
            InvalidArgumentError: If either cloud is empty (no centroid).
        """
        src = as_positions(source)
        dst = as_positions(target)
        if len(src) == 0 or len(dst) == 0:
            raise InvalidArgumentError("CoarseRegistration: cannot compute an offset for an empty cloud")

        offset = self._centroid_offset(src, dst)
        result = CoarseResult(offset=offset, accepted=bool(np.linalg.norm(offset) < self.max_offset))
        if not result.accepted:
            logger.debug(
                f"Centroid offset {result.norm:.3f} m exceeds limit {self.max_offset:.3f} m"
            )
        return result

    # ------------------------ Methods ------------------------
    def _centroid_offset(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        c_src = np.mean(src, axis=0)
        c_dst = np.mean(dst, axis=0)
        return c_dst - c_src
