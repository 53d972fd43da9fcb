"""
Utility Functions Module

This module provides common utility functions used across the project.
- Logging setup
- Typed YAML configuration
- Point cloud reduction helpers
"""

from .logging import setup_logger, set_package_log_level
from .config import AppConfig, load_config
from .point_cloud_filters import downsample, finite_mask, get_downsample_statistics

__all__ = [
    "setup_logger",
    "set_package_log_level",
    "AppConfig",
    "load_config",
    "downsample",
    "finite_mask",
    "get_downsample_statistics",
]
