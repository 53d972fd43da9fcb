"""
Point Cloud Preprocessing Module

This module contains the scan input/output layer:
- Binary PLY loading and saving
- Header validation and metadata extraction
- Discovery of numbered scan files
"""

from .loader import (
    PointCloudLoader,
    load_point_cloud,
    save_point_cloud,
    VERTEX_DTYPE,
    RECORD_SIZE,
)
from .data_discovery import ScanDiscovery, ScanSet

__all__ = [
    "PointCloudLoader",
    "load_point_cloud",
    "save_point_cloud",
    "VERTEX_DTYPE",
    "RECORD_SIZE",
    "ScanDiscovery",
    "ScanSet",
]
