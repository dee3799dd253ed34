"""
Swath Preprocessing Module

This module turns project data into point clouds ready for registration:
- Project, section, crossing and swath data model
- Borrowing crossing swaths from a project store
- Sampling swaths into geographic point clouds
"""

from .project import Ping, Swath, Section, Tie, Crossing, Project
from .point_cloud import GeometryPoint, PointCloud
from .loader import CrossingData, ProjectStore, SwathProjectStore, InMemoryProjectStore
from .swath_sampler import SectionReference, sample_swath, central_reference

__all__ = [
    "Ping",
    "Swath",
    "Section",
    "Tie",
    "Crossing",
    "Project",
    "GeometryPoint",
    "PointCloud",
    "CrossingData",
    "ProjectStore",
    "SwathProjectStore",
    "InMemoryProjectStore",
    "SectionReference",
    "sample_swath",
    "central_reference",
]
