"""
Visualization Module

This module provides snapshot rendering of point clouds using Plotly.
"""

from .point_cloud import PointCloudVisualizer

__all__ = [
    "PointCloudVisualizer",
]
