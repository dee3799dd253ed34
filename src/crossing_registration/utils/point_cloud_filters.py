"""
Point Cloud Filtering Utilities

Filters applied to sampled clouds before registration: validity screening,
statistical outlier removal and the non-finite check that guards the ICP
engine against NaN soundings.
"""

from typing import Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..exceptions import NonFiniteCloudError
from ..preprocessing.point_cloud import PointCloud
from .logging import setup_logger

logger = setup_logger(__name__)


def drop_invalid(cloud: PointCloud) -> PointCloud:
    """Remove every point whose validity flag is False.

    Applying it twice gives the same cloud as applying it once.

    Examples:
        >>> cloud = PointCloud(np.zeros((3, 3)), np.array([True, False, True]))
        >>> len(drop_invalid(cloud))
        2
    """
    kept = cloud.select(cloud.valid)
    stats = get_filter_statistics(len(cloud), len(kept))
    logger.debug(
        "Dropped %d of %d points by %s.",
        stats["removed_points"],
        stats["total_points"],
        stats["filter_description"],
    )
    return kept


def mean_neighbor_distances(xyz: np.ndarray, k: int) -> np.ndarray:
    """Mean distance from each point to its k nearest neighbours (self excluded)."""
    nbrs = NearestNeighbors(n_neighbors=k + 1, algorithm="kd_tree").fit(xyz)
    distances, _ = nbrs.kneighbors(xyz)
    # Column 0 is the query point itself
    return distances[:, 1:].mean(axis=1)


def create_outlier_mask(
    xyz: np.ndarray,
    k: int,
    stddev_multiplier: float,
) -> np.ndarray:
    """Boolean mask of points that pass statistical outlier removal (True = keep).

    A point is an outlier when its mean k-neighbour distance exceeds
    mu + stddev_multiplier * sigma, where mu and sigma are the mean and
    sample standard deviation of the mean distances over the whole cloud.
    Non-finite points are left in (True) for `reject_non_finite` to report.
    """
    keep = np.ones(len(xyz), dtype=bool)
    finite = np.isfinite(xyz).all(axis=1)
    n = int(np.count_nonzero(finite))
    if n <= k:
        return keep

    mean_d = mean_neighbor_distances(xyz[finite], k)
    mu = float(np.mean(mean_d))
    sigma = float(np.std(mean_d, ddof=1))
    threshold = mu + stddev_multiplier * sigma
    keep[finite] = mean_d <= threshold
    return keep


def statistical_outlier_removal(
    cloud: PointCloud,
    k: int = 50,
    stddev_multiplier: float = 1.0,
) -> PointCloud:
    """Drop points whose neighbourhood is unusually sparse.

    Args:
        cloud: Projected cloud (meters).
        k: Number of nearest neighbours for the mean distance.
        stddev_multiplier: Points beyond mean + multiplier * std are dropped.

    Returns:
        Filtered cloud. Clouds with k or fewer points are returned unchanged.
    """
    if len(cloud) <= k:
        logger.debug(
            "Outlier removal skipped: %d points do not exceed k=%d.", len(cloud), k
        )
        return cloud

    mask = create_outlier_mask(cloud.xyz, k, stddev_multiplier)
    filtered = cloud.select(mask)
    stats = get_filter_statistics(len(cloud), len(filtered), k, stddev_multiplier)
    logger.debug(
        "Outlier removal kept %d/%d points (%.1f%%, %s).",
        stats["filtered_points"],
        stats["total_points"],
        stats["percentage"],
        stats["filter_description"],
    )
    return filtered


def reject_non_finite(cloud: PointCloud, side: str) -> PointCloud:
    """Raise if any coordinate of a projected cloud is NaN or infinite.

    Args:
        cloud: Cloud about to enter registration.
        side: "target" or "source", reported in the error.

    Raises:
        NonFiniteCloudError: If a non-finite coordinate is present.
    """
    finite = np.isfinite(cloud.xyz).all(axis=1)
    bad = int(len(finite) - np.count_nonzero(finite))
    if bad:
        raise NonFiniteCloudError(side, bad)
    return cloud


def get_filter_statistics(
    total_points: int,
    filtered_points: int,
    k: Optional[int] = None,
    stddev_multiplier: Optional[float] = None,
) -> dict:
    """Generate statistics about point filtering results.

    Args:
        total_points: Total number of points before filtering
        filtered_points: Number of points after filtering
        k: Neighbour count used by outlier removal, if any
        stddev_multiplier: Standard deviation multiplier, if any

    Returns:
        Dictionary with statistics including counts, percentage, and filter description
    """
    percentage = (filtered_points / total_points * 100.0) if total_points > 0 else 0.0

    if k is not None:
        filter_desc = f"statistical outliers (k={k}, std_mul={stddev_multiplier})"
    else:
        filter_desc = "validity flags"

    return {
        "total_points": total_points,
        "filtered_points": filtered_points,
        "removed_points": total_points - filtered_points,
        "percentage": percentage,
        "filter_description": filter_desc,
    }
