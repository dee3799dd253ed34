"""
Crossing Registration Package

Refines the relative position of overlapping survey sections ("crossings")
of a multibeam navigation-adjustment project. For each crossing the two
swaths are sampled into point clouds, projected into a shared local frame,
filtered and registered with a point-to-point ICP engine. One CSV record is
emitted per registered crossing.
"""

__version__ = "0.1.0"

from .exceptions import (
    RegistrationError,
    EmptySwathError,
    ProjectionError,
    NonFiniteCloudError,
    CrossingNotFoundError,
)
from .workflow import run_workflow

__all__ = [
    "preprocessing",
    "alignment",
    "pipeline",
    "acceleration",
    "utils",
    "visualization",
    "run_workflow",
    "RegistrationError",
    "EmptySwathError",
    "ProjectionError",
    "NonFiniteCloudError",
    "CrossingNotFoundError",
]
