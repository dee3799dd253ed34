"""
Pipeline Module

Per-crossing alignment and the scheduler that runs it over a project.
"""

from .crossing_alignment import AlignmentPipeline, AlignmentResult
from .scheduler import CrossingScheduler, BatchSummary, select_eligible

__all__ = [
    "AlignmentPipeline",
    "AlignmentResult",
    "CrossingScheduler",
    "BatchSummary",
    "select_eligible",
]
