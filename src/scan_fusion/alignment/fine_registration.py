"""
ICP Registration Implementation

This module implements the Iterative Closest Point (ICP) algorithm used to
align overlapping scans, together with the closed-form (Kabsch) estimator of
the rigid motion between matched point sets.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional
import time

import numpy as np

from ..errors import InvalidArgumentError
from ..geometry.transform import RigidTransform
from ..utils.logging import setup_logger
from .correspondence import (
    CloudLike,
    CorrespondenceFinder,
    CorrespondenceSet,
    DEFAULT_MAX_SQUARED_DISTANCE,
    EARLY_EXIT_SQUARED_DISTANCE,
    MIN_CORRESPONDENCES,
    as_positions,
)

logger = setup_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_CONVERGENCE_RMSE = 0.01


def estimate_rigid_transform(
    correspondences: CorrespondenceSet,
    source: CloudLike,
    target: CloudLike,
) -> RigidTransform:
    """
    Estimate the least-squares rigid transformation mapping matched source
    points onto their target points.

    Args:
        correspondences: Matched index pairs into `source` and `target`.
        source: Source cloud.
        target: Target cloud.

    Returns:
        RigidTransform with a proper rotation (det = +1).

    Raises:
        InvalidArgumentError: If `correspondences` is empty.
    """
    if len(correspondences) == 0:
        raise InvalidArgumentError("Cannot estimate a transform from an empty correspondence set")

    source_points = as_positions(source)[correspondences.source_indices]
    target_points = as_positions(target)[correspondences.target_indices]

    # Center the point sets
    source_centroid = np.mean(source_points, axis=0)
    target_centroid = np.mean(target_points, axis=0)

    source_centered = source_points - source_centroid
    target_centered = target_points - target_centroid

    # Cross-covariance matrix
    H = source_centered.T @ target_centered

    U, _, Vt = np.linalg.svd(H)
    R = Vt.T @ U.T

    # A negative determinant is a reflection; flip the axis of the smallest
    # singular value (third column of V) to get the best proper rotation.
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    t = target_centroid - R @ source_centroid

    return RigidTransform(R, t)


class ICPStatus(Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    INSUFFICIENT_CORRESPONDENCES = "insufficient_correspondences"
    EMPTY_INPUT = "empty_input"


@dataclass
class ICPResult:
    """Outcome of one ICP alignment call."""

    transform: RigidTransform
    status: ICPStatus
    iterations: int = 0
    residuals: List[float] = field(default_factory=list)
    correspondence_counts: List[int] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is ICPStatus.CONVERGED

    @property
    def final_residual(self) -> float:
        return self.residuals[-1] if self.residuals else float("inf")

    @property
    def has_estimate(self) -> bool:
        """True when at least one incremental transform was estimated."""
        return self.iterations > 0


class ICPRegistration:
    """
    Point-to-point ICP.

    Each iteration:
    1. Finds closest point correspondences inside the distance gate
    2. Stops if fewer than `min_correspondences` were found
    3. Estimates the incremental rigid transformation (Kabsch)
    4. Applies it to the working copy and composes it onto the total
    5. Stops once the mean residual drops below `convergence_rmse`
    """

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_correspondence_distance_sq: float = DEFAULT_MAX_SQUARED_DISTANCE,
        min_correspondences: int = MIN_CORRESPONDENCES,
        convergence_rmse: float = DEFAULT_CONVERGENCE_RMSE,
        early_exit_distance_sq: float = EARLY_EXIT_SQUARED_DISTANCE,
        nn_backend: Literal["brute", "kdtree"] = "brute",
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            max_correspondence_distance_sq: Squared distance gate for matches.
            min_correspondences: Fewer matches than this ends the alignment.
            convergence_rmse: Mean residual (meters) below which ICP stops.
            early_exit_distance_sq: Near-exact match threshold of the brute search.
            nn_backend: Correspondence backend, 'brute' or 'kdtree'.
        """
        if max_iterations < 1:
            raise InvalidArgumentError(f"max_iterations must be at least 1, got {max_iterations}")
        self.max_iterations = int(max_iterations)
        self.max_correspondence_distance_sq = float(max_correspondence_distance_sq)
        self.min_correspondences = int(min_correspondences)
        self.convergence_rmse = float(convergence_rmse)
        self.early_exit_distance_sq = float(early_exit_distance_sq)
        self.nn_backend = nn_backend

    @classmethod
    def from_config(cls, cfg, *, max_iterations: Optional[int] = None) -> "ICPRegistration":
        """Build from an AlignmentICPConfig."""
        return cls(
            max_iterations=max_iterations if max_iterations is not None else cfg.max_iterations,
            max_correspondence_distance_sq=cfg.max_correspondence_distance_sq,
            min_correspondences=cfg.min_correspondences,
            convergence_rmse=cfg.convergence_rmse,
            early_exit_distance_sq=cfg.early_exit_distance_sq,
            nn_backend=cfg.nn_backend,
        )

    def _finder(self, target: CloudLike) -> CorrespondenceFinder:
        return CorrespondenceFinder(
            target,
            self.max_correspondence_distance_sq,
            backend=self.nn_backend,
            early_exit_squared_distance=self.early_exit_distance_sq,
        )

    def align_point_clouds(self, source: CloudLike, target: CloudLike) -> ICPResult:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source cloud, already downsampled by the caller.
            target: Target cloud, already downsampled by the caller.

        Returns:
            ICPResult whose transform maps source into the target frame.
        """
        src = as_positions(source)
        tgt = as_positions(target)
        logger.info(
            "Starting ICP alignment with %d source points and %d target points.",
            len(src),
            len(tgt),
        )

        transform = RigidTransform.identity()
        if len(src) == 0 or len(tgt) == 0:
            logger.warning(
                "ICP called with empty source or target (source=%d, target=%d); "
                "returning identity transform.",
                len(src),
                len(tgt),
            )
            return ICPResult(transform=transform, status=ICPStatus.EMPTY_INPUT)

        finder = self._finder(tgt)
        working = src.copy()
        residuals: List[float] = []
        counts: List[int] = []
        status = ICPStatus.MAX_ITERATIONS
        n_iterations = 0
        icp_start = time.time()

        for iteration in range(self.max_iterations):
            correspondences = finder.find(working)
            counts.append(len(correspondences))

            if not correspondences.is_sufficient(self.min_correspondences):
                logger.info(
                    "Iteration %d: %d correspondences (< %d), stopping.",
                    iteration,
                    len(correspondences),
                    self.min_correspondences,
                )
                status = ICPStatus.INSUFFICIENT_CORRESPONDENCES
                break

            delta = estimate_rigid_transform(correspondences, working, tgt)

            # The working copy is private to this call, so it is updated in place
            working[:] = delta.apply(working)
            transform = delta @ transform
            n_iterations = iteration + 1

            residual = correspondences.rmse()
            residuals.append(residual)
            logger.debug(
                "Iteration %d: %d correspondences, mean residual %.6f m, |dt|=%.3e m, dtheta=%.3e rad",
                iteration,
                len(correspondences),
                residual,
                delta.translation_norm(),
                delta.rotation_angle(),
            )

            if residual < self.convergence_rmse:
                status = ICPStatus.CONVERGED
                logger.info("ICP converged after %d iterations (residual %.6f m).", n_iterations, residual)
                break
        else:
            logger.info("ICP did not converge after %d iterations.", self.max_iterations)

        logger.info(
            "ICP finished in %.4f s (%d iterations, status=%s). Final residual: %s",
            time.time() - icp_start,
            n_iterations,
            status.value,
            f"{residuals[-1]:.6f} m" if residuals else "n/a",
        )
        return ICPResult(
            transform=transform,
            status=status,
            iterations=n_iterations,
            residuals=residuals,
            correspondence_counts=counts,
        )

    def compute_registration_error(
        self,
        source: CloudLike,
        target: CloudLike,
        transform: Optional[RigidTransform] = None,
    ) -> float:
        """
        RMSE between the (transformed) source and its gated matches in target.

        Returns:
            RMSE in meters, or inf when nothing matches.
        """
        src = as_positions(source)
        if transform is not None:
            src = transform.apply(src)
        if len(src) == 0 or len(as_positions(target)) == 0:
            logger.warning("compute_registration_error called with empty input; returning inf.")
            return float("inf")
        correspondences = self._finder(target).find(src)
        if len(correspondences) == 0:
            logger.warning("No valid correspondences found for error computation.")
            return float("inf")
        return correspondences.rmse()


def align(source: CloudLike, target: CloudLike, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> RigidTransform:
    """
    Align `source` onto `target` with the default ICP settings.

    Returns the accumulated transform; identity when nothing could be estimated.
    """
    return ICPRegistration(max_iterations=max_iterations).align_point_clouds(source, target).transform
