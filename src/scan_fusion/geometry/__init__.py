"""
Geometry Module

Shared value types: colored points, point clouds and rigid transforms.
"""

from .point_cloud import Point, PointCloud
from .transform import RigidTransform

__all__ = [
    "Point",
    "PointCloud",
    "RigidTransform",
]
