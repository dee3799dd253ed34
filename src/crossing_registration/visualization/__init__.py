"""
Visualization Module

Colour ramps used when dumping debug point clouds.
"""

from .colormap import DEPTH_RAMP, depth_colors, distance_colors

__all__ = [
    "DEPTH_RAMP",
    "depth_colors",
    "distance_colors",
]
