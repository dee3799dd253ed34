"""
Swath sampling.

Turns the pings and beams of a hydrated swath into a geographic PointCloud
and picks the reference position that anchors the local frame of a crossing.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .point_cloud import PointCloud
from .project import Swath
from ..exceptions import EmptySwathError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

# Subtracted from the mean sounding depth until swaths carry a sensor draft.
DRAFT_CORRECTION_M = 3.0


@dataclass(frozen=True)
class SectionReference:
    """Central position of a section and the draft used to level its depths."""

    lat: float
    lon: float
    draft: float
    heading: float


def sample_swath(swath: Swath, draft: float = 0.0) -> PointCloud:
    """
    Convert every beam of a swath into a point (lon, lat, z).

    z is measured up from the draft level, z = -(depth - draft), so that
    (lon, lat, z) projects to a right-handed east/north/up frame. Invalid
    beams are kept and flagged so callers can count them before dropping.

    Args:
        swath: Hydrated swath.
        draft: Offset (m) applied to all depths.

    Returns:
        PointCloud with one point per beam.
    """
    if swath.num_pings == 0:
        return PointCloud.empty()

    lon = np.concatenate([p.beam_lon for p in swath.pings])
    lat = np.concatenate([p.beam_lat for p in swath.pings])
    depth = np.concatenate([p.depth for p in swath.pings])
    valid = np.concatenate([p.beam_valid for p in swath.pings])

    xyz = np.column_stack([lon, lat, -(depth - draft)])
    cloud = PointCloud(xyz, valid)
    logger.debug(
        "Sampled %d beams from %d pings (%d valid).",
        len(cloud),
        swath.num_pings,
        int(valid.sum()),
    )
    return cloud


def central_reference(swath: Swath) -> SectionReference:
    """
    Reference position of a section: the ping at index floor(n / 2).

    The draft is the mean finite depth of all valid beams across the swath minus
    DRAFT_CORRECTION_M.

    Raises:
        EmptySwathError: If the swath has no pings.
    """
    n = swath.num_pings
    if n == 0:
        raise EmptySwathError("Cannot compute a central reference for a swath without pings")

    ping = swath.pings[n // 2]

    depth_sum = 0.0
    depth_count = 0
    for p in swath.pings:
        usable = p.beam_valid & np.isfinite(p.depth)
        depth_sum += float(np.sum(p.depth[usable]))
        depth_count += int(np.count_nonzero(usable))

    if depth_count > 0:
        mean_depth = depth_sum / depth_count
    else:
        logger.warning("Swath has no valid beams; using zero mean depth for the draft.")
        mean_depth = 0.0

    return SectionReference(
        lat=float(ping.nav_lat),
        lon=float(ping.nav_lon),
        draft=mean_depth - DRAFT_CORRECTION_M,
        heading=float(ping.heading),
    )
