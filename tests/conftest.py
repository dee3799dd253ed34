"""
Shared synthetic survey data.

Swaths are generated on a regular local grid around a fixed reference and
converted to geographic coordinates with the same projection the pipeline
uses, so registration results can be checked against exact offsets.
"""

from pathlib import Path
import sys
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from crossing_registration.preprocessing.loader import InMemoryProjectStore
from crossing_registration.preprocessing.project import Crossing, Ping, Project, Section, Swath
from crossing_registration.utils.coordinate_transform import LocalFrameProjector

LAT0 = 60.0
LON0 = 5.0


def terrain_depth(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Smooth, non-symmetric seabed so that ICP has a unique solution."""
    return 80.0 + 4.0 * np.sin(x / 13.0) + 3.0 * np.cos(y / 9.0) + 0.01 * x * y


def make_swath(
    projector: LocalFrameProjector,
    offset: Sequence[float] = (0.0, 0.0, 0.0),
    half_extent: float = 40.0,
    spacing: float = 2.0,
    invalid_every: int = 0,
    nan_beams: int = 0,
    nan_depths: int = 0,
) -> Swath:
    """
    One ping per grid row, one beam per grid column.

    The swath is the seabed displaced by -offset, so a rough translation of
    +offset maps it exactly onto an undisplaced swath. The central ping's
    navigation fix sits on the reference point.
    """
    dx, dy, dz = offset
    coords = np.arange(-half_extent, half_extent + spacing / 2, spacing)
    pings: List[Ping] = []
    for i, y in enumerate(coords):
        x = coords.copy()
        yy = np.full_like(x, y)
        lon, lat = projector.to_geographic(x - dx, yy - dy)
        nav_lon, nav_lat = projector.to_geographic(np.array([0.0]), np.array([y]))
        depth = terrain_depth(x, yy) + dz
        valid = np.ones(len(x), dtype=bool)
        if invalid_every:
            valid[::invalid_every] = False
            depth[::invalid_every] = 9999.0
        pings.append(
            Ping(
                time_d=1000.0 + i,
                nav_lon=float(nav_lon[0]),
                nav_lat=float(nav_lat[0]),
                heading=0.0,
                beam_lon=lon,
                beam_lat=lat,
                depth=depth,
                beam_valid=valid,
            )
        )
    for k in range(nan_beams):
        pings[k].beam_lon[1] = np.nan
    for k in range(nan_depths):
        pings[k].depth[2] = np.nan
    return Swath(pings=pings)


def make_project(
    swaths: Dict[Tuple[int, int], Swath],
    crossings: List[Crossing],
    name: str = "synthetic",
) -> Tuple[Project, InMemoryProjectStore]:
    sections = [
        Section(
            file_id=file_id,
            section_id=section_id,
            num_pings=swath.num_pings,
            num_beams=swath.num_beams,
        )
        for (file_id, section_id), swath in sorted(swaths.items())
    ]
    project = Project(name=name, sections=sections, crossings=crossings)
    return project, InMemoryProjectStore(swaths)


@pytest.fixture
def projector():
    return LocalFrameProjector.create(LAT0, LON0)
