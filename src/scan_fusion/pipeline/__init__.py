"""
Pipeline Module

Batch merging of discrete scans into a single cloud.
"""

from .batch import BatchAlignmentPipeline, BatchAlignmentResult, ScanAlignment

__all__ = [
    "BatchAlignmentPipeline",
    "BatchAlignmentResult",
    "ScanAlignment",
]
