"""
Correspondence Rejection Strategies

Each rejector takes the correspondences found in one ICP iteration and
returns the subset it accepts. The engine applies its rejectors in list
order; `build_rejectors` produces the standard order:

1. DistanceRejector       - drop pairs farther than a cutoff
2. OverlapTrimmingRejector - keep only the closest fraction
3. OneToOneRejector       - let each target point be claimed once
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

import numpy as np


@dataclass
class Correspondences:
    """Parallel arrays of (source index, target index, distance) pairs."""

    source_idx: np.ndarray
    target_idx: np.ndarray
    distances: np.ndarray

    @classmethod
    def empty(cls) -> "Correspondences":
        return cls(
            np.empty(0, dtype=np.intp),
            np.empty(0, dtype=np.intp),
            np.empty(0, dtype=np.float64),
        )

    def __len__(self) -> int:
        return len(self.source_idx)

    def subset(self, keep: np.ndarray) -> "Correspondences":
        """Select pairs by boolean mask or index array."""
        return Correspondences(
            self.source_idx[keep],
            self.target_idx[keep],
            self.distances[keep],
        )

    def mean_squared_distance(self) -> float:
        if len(self) == 0:
            return float("inf")
        return float(np.mean(self.distances ** 2))


class CorrespondenceRejector(Protocol):
    def reject(self, correspondences: Correspondences) -> Correspondences:
        ...


@dataclass
class DistanceRejector:
    """Drop correspondences whose distance exceeds max_distance (disabled when <= 0)."""

    max_distance: float

    def reject(self, correspondences: Correspondences) -> Correspondences:
        if self.max_distance <= 0:
            return correspondences
        return correspondences.subset(correspondences.distances <= self.max_distance)


@dataclass
class OverlapTrimmingRejector:
    """Keep the floor(N * fraction) closest correspondences.

    Models the expected real overlap between two sections: the remaining
    pairs are treated as non-overlapping geometry.
    """

    fraction: float

    def __post_init__(self):
        if not (0.0 < self.fraction <= 1.0):
            raise ValueError(f"Overlap fraction must be in (0, 1], got {self.fraction}")

    def reject(self, correspondences: Correspondences) -> Correspondences:
        n = len(correspondences)
        n_keep = int(np.floor(n * self.fraction))
        if n_keep >= n:
            return correspondences
        order = np.argsort(correspondences.distances, kind="stable")
        keep = np.sort(order[:n_keep])
        return correspondences.subset(keep)


@dataclass
class OneToOneRejector:
    """For a target point claimed by several source points keep only the closest claim."""

    def reject(self, correspondences: Correspondences) -> Correspondences:
        if len(correspondences) < 2:
            return correspondences
        # Sort by target index, then distance; the first of each run wins
        order = np.lexsort((correspondences.distances, correspondences.target_idx))
        tgt_sorted = correspondences.target_idx[order]
        first = np.ones(len(order), dtype=bool)
        first[1:] = tgt_sorted[1:] != tgt_sorted[:-1]
        keep = np.sort(order[first])
        return correspondences.subset(keep)


def build_rejectors(
    max_correspondence_distance: float = 0.0,
    overlap_fraction: Optional[float] = None,
    one_to_one: bool = True,
) -> List[CorrespondenceRejector]:
    """Assemble rejectors in the fixed order distance -> overlap -> one-to-one."""
    rejectors: List[CorrespondenceRejector] = []
    if max_correspondence_distance > 0:
        rejectors.append(DistanceRejector(max_correspondence_distance))
    if overlap_fraction is not None:
        rejectors.append(OverlapTrimmingRejector(overlap_fraction))
    if one_to_one:
        rejectors.append(OneToOneRejector())
    return rejectors
