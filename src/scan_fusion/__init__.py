"""
Scan Fusion Package

A Python package for merging colored point clouds captured by a depth sensor.
This package provides tools for binary PLY I/O, ICP registration of
overlapping scans and live fusion of a frame stream into a voxel map.
Registration is implemented from scratch (correspondence search, Kabsch
estimation and the ICP loop) for fine-grained control over its behavior.
Rendering lives in the optional `visualization` subpackage and is not
imported here.
"""

__version__ = "0.1.0"

from .geometry import *
from .preprocessing import *
from .alignment import *
from .pipeline import *
from .fusion import *
from .utils import *
from .errors import InvalidArgumentError, ScanLoadError

__all__ = [
    "geometry",
    "preprocessing",
    "alignment",
    "pipeline",
    "fusion",
    "utils",
    "errors",
    "InvalidArgumentError",
    "ScanLoadError",
]
