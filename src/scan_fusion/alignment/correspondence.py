"""
Nearest-neighbor correspondence search between two point clouds.

For every source point the closest target point is located and kept as a
correspondence if it lies inside a squared-distance gate. Two backends are
available:

- brute: exhaustive scan of the target that stops at the first candidate
  closer than EARLY_EXIT_SQUARED_DISTANCE (an almost-exact match is taken as
  good enough). Quadratic in cloud size; callers downsample first.
- kdtree: exact nearest neighbor with scikit-learn's KD-tree, no early exit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Literal, NamedTuple, Optional, Union

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..errors import InvalidArgumentError
from ..geometry.point_cloud import PointCloud
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

MIN_CORRESPONDENCES = 10
EARLY_EXIT_SQUARED_DISTANCE = 1e-3
DEFAULT_MAX_SQUARED_DISTANCE = 0.25  # 0.5 m radius

# Bound on distance evaluations held in memory at once by the brute backend
_MAX_PAIRS_PER_CHUNK = 2_000_000

CloudLike = Union[PointCloud, np.ndarray]


def as_positions(cloud: CloudLike) -> np.ndarray:
    """Nx3 float64 coordinates of a PointCloud or array."""
    if isinstance(cloud, PointCloud):
        return cloud.positions.astype(np.float64)
    pts = np.asarray(cloud, dtype=np.float64)
    if pts.size == 0:
        return pts.reshape(0, 3)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise InvalidArgumentError(f"Expected Nx3 array, got shape {pts.shape}")
    return pts


class Correspondence(NamedTuple):
    source_index: int
    target_index: int
    squared_distance: float


@dataclass
class CorrespondenceSet:
    """Matched index pairs with the squared distance of each match."""

    source_indices: np.ndarray
    target_indices: np.ndarray
    squared_distances: np.ndarray

    @classmethod
    def empty(cls) -> "CorrespondenceSet":
        return cls(
            np.empty(0, dtype=np.int64),
            np.empty(0, dtype=np.int64),
            np.empty(0, dtype=np.float64),
        )

    def __len__(self) -> int:
        return int(self.source_indices.shape[0])

    def __iter__(self) -> Iterator[Correspondence]:
        for s, t, d in zip(self.source_indices.tolist(), self.target_indices.tolist(),
                           self.squared_distances.tolist()):
            yield Correspondence(s, t, d)

    def is_sufficient(self, minimum: int = MIN_CORRESPONDENCES) -> bool:
        """False signals that alignment cannot proceed on this set."""
        return len(self) >= minimum

    def mean_squared_distance(self) -> float:
        if len(self) == 0:
            return float("inf")
        return float(np.mean(self.squared_distances))

    def rmse(self) -> float:
        """Square root of the mean squared match distance."""
        return float(np.sqrt(self.mean_squared_distance()))


class CorrespondenceFinder:
    """
    Correspondence search against a fixed target.

    The target is prepared once (a KD-tree for the kdtree backend) and reused
    for every query, which is how the ICP loop calls it.
    """

    def __init__(
        self,
        target: CloudLike,
        max_squared_distance: float = DEFAULT_MAX_SQUARED_DISTANCE,
        *,
        backend: Literal["brute", "kdtree"] = "brute",
        early_exit_squared_distance: float = EARLY_EXIT_SQUARED_DISTANCE,
    ):
        """
        Args:
            target: Target cloud or Mx3 array.
            max_squared_distance: Matches at or beyond this squared distance
                are dropped.
            backend: 'brute' (early-exit scan) or 'kdtree' (exact search).
            early_exit_squared_distance: Brute backend only; a candidate below
                this squared distance ends the scan for that source point.

        Raises:
            InvalidArgumentError: On a non-positive gate or unknown backend.
        """
        if not max_squared_distance > 0:
            raise InvalidArgumentError(
                f"max_squared_distance must be positive, got {max_squared_distance}"
            )
        if backend not in ("brute", "kdtree"):
            raise InvalidArgumentError(f"Unknown correspondence backend '{backend}'")

        self.target = as_positions(target)
        self.max_squared_distance = float(max_squared_distance)
        self.backend = backend
        self.early_exit_squared_distance = float(early_exit_squared_distance)

        self._nbrs: Optional[NearestNeighbors] = None
        if backend == "kdtree" and len(self.target) > 0:
            logger.debug("Building KD-Tree for %d target points...", len(self.target))
            self._nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(self.target)

    def find(self, source: CloudLike) -> CorrespondenceSet:
        """Correspondences of every source point that passes the gate."""
        src = as_positions(source)
        if len(src) == 0 or len(self.target) == 0:
            return CorrespondenceSet.empty()

        if self.backend == "kdtree":
            best_idx, best_d2 = self._nearest_kdtree(src)
        else:
            best_idx, best_d2 = self._nearest_brute(src)

        keep = best_d2 < self.max_squared_distance
        source_indices = np.nonzero(keep)[0].astype(np.int64)
        result = CorrespondenceSet(
            source_indices=source_indices,
            target_indices=best_idx[keep].astype(np.int64),
            squared_distances=best_d2[keep],
        )
        logger.debug(
            "Correspondences: %d of %d source points within gate %.4f m^2",
            len(result), len(src), self.max_squared_distance,
        )
        return result

    # ------------------------ Backends ------------------------
    def _nearest_brute(self, src: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        tgt = self.target
        n_src = len(src)
        rows_per_chunk = max(1, _MAX_PAIRS_PER_CHUNK // max(1, len(tgt)))

        best_idx = np.empty(n_src, dtype=np.int64)
        best_d2 = np.empty(n_src, dtype=np.float64)

        for start in range(0, n_src, rows_per_chunk):
            stop = min(start + rows_per_chunk, n_src)
            diff = src[start:stop, None, :] - tgt[None, :, :]
            dsq = np.einsum("ijk,ijk->ij", diff, diff)

            # A scan that stops at the first near-exact candidate ends on that
            # candidate, since every earlier one was farther away.
            near = dsq < self.early_exit_squared_distance
            has_near = near.any(axis=1)
            idx = np.where(has_near, near.argmax(axis=1), dsq.argmin(axis=1))

            best_idx[start:stop] = idx
            best_d2[start:stop] = dsq[np.arange(stop - start), idx]

        return best_idx, best_d2

    def _nearest_kdtree(self, src: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        distances, indices = self._nbrs.kneighbors(src)
        d = distances.ravel()
        return indices.ravel().astype(np.int64), d * d


def find_correspondences(
    source: CloudLike,
    target: CloudLike,
    max_squared_distance: float = DEFAULT_MAX_SQUARED_DISTANCE,
    *,
    backend: Literal["brute", "kdtree"] = "brute",
    early_exit_squared_distance: float = EARLY_EXIT_SQUARED_DISTANCE,
) -> CorrespondenceSet:
    """
    Find closest point correspondences between source and target.

    Args:
        source: Source cloud (N points).
        target: Target cloud (M points).
        max_squared_distance: Squared distance gate.
        backend: 'brute' or 'kdtree'.
        early_exit_squared_distance: Near-exact threshold for the brute scan.

    Returns:
        CorrespondenceSet; check `is_sufficient()` before estimating a
        transform from it.
    """
    finder = CorrespondenceFinder(
        target,
        max_squared_distance,
        backend=backend,
        early_exit_squared_distance=early_exit_squared_distance,
    )
    return finder.find(source)
