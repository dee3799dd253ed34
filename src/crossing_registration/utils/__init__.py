"""
Utility Functions Module

This module provides common utilities used across the crossing registration project.
- Logging and per-crossing reports
- Typed configuration
- Local frame projection
- Point cloud filtering
- Debug cloud export and result records
"""

from .logging import setup_logger, CrossingReport
from .config import AppConfig, AlignmentConfig, RunConfig, load_config
from .coordinate_transform import LocalFrameProjector
from .point_cloud_filters import (
    drop_invalid,
    statistical_outlier_removal,
    reject_non_finite,
    get_filter_statistics,
)
from .export import export_colored_points, DebugCloudWriter
from .result_log import ResultLog, read_results

__all__ = [
    "setup_logger",
    "CrossingReport",
    "AppConfig",
    "AlignmentConfig",
    "RunConfig",
    "load_config",
    "LocalFrameProjector",
    "drop_invalid",
    "statistical_outlier_removal",
    "reject_non_finite",
    "get_filter_statistics",
    "export_colored_points",
    "DebugCloudWriter",
    "ResultLog",
    "read_results",
]
