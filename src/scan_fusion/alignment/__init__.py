"""
Spatial Alignment Module

This module provides tools for aligning overlapping scans with the ICP
(Iterative Closest Point) algorithm, translation-only coarse registration
for live frames, and persistence of the resulting transforms.
"""

from .correspondence import (
    Correspondence,
    CorrespondenceFinder,
    CorrespondenceSet,
    find_correspondences,
    MIN_CORRESPONDENCES,
    EARLY_EXIT_SQUARED_DISTANCE,
)
from .fine_registration import (
    ICPRegistration,
    ICPResult,
    ICPStatus,
    align,
    estimate_rigid_transform,
)
from .coarse_registration import CoarseRegistration, CoarseResult
from .streaming_alignment import (
    apply_transform_to_files,
    save_transform_matrix,
    load_transform_matrix,
)

__all__ = [
    "Correspondence",
    "CorrespondenceFinder",
    "CorrespondenceSet",
    "find_correspondences",
    "MIN_CORRESPONDENCES",
    "EARLY_EXIT_SQUARED_DISTANCE",
    "ICPRegistration",
    "ICPResult",
    "ICPStatus",
    "align",
    "estimate_rigid_transform",
    "CoarseRegistration",
    "CoarseResult",
    "apply_transform_to_files",
    "save_transform_matrix",
    "load_transform_matrix",
]
