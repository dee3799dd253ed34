"""
Navigation-adjustment project data model.

These types mirror what the external project store hands to the registration
core: sections of survey data, their hydrated swaths and the crossings
(candidate overlaps) between sections. The core only ever reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np


@dataclass
class Ping:
    """One ping of a swath; all beam arrays share the same index space."""

    time_d: float
    nav_lon: float
    nav_lat: float
    heading: float
    beam_lon: np.ndarray
    beam_lat: np.ndarray
    depth: np.ndarray
    beam_valid: np.ndarray

    def __post_init__(self):
        self.beam_lon = np.asarray(self.beam_lon, dtype=np.float64)
        self.beam_lat = np.asarray(self.beam_lat, dtype=np.float64)
        self.depth = np.asarray(self.depth, dtype=np.float64)
        self.beam_valid = np.asarray(self.beam_valid, dtype=bool)
        n = len(self.depth)
        if not (len(self.beam_lon) == len(self.beam_lat) == len(self.beam_valid) == n):
            raise ValueError(
                f"Beam arrays must be parallel, got lon={len(self.beam_lon)}, "
                f"lat={len(self.beam_lat)}, depth={n}, valid={len(self.beam_valid)}"
            )

    @property
    def num_beams(self) -> int:
        return len(self.depth)


@dataclass
class Swath:
    """Ordered pings of one section."""

    pings: List[Ping] = field(default_factory=list)

    @property
    def num_pings(self) -> int:
        return len(self.pings)

    @property
    def num_beams(self) -> int:
        return sum(p.num_beams for p in self.pings)

    def release(self) -> None:
        """Drop the beam buffers; the swath is unusable afterwards."""
        self.pings = []


@dataclass(frozen=True)
class Section:
    """Metadata of one pass of the survey platform."""

    file_id: int
    section_id: int
    num_pings: int = 0
    num_beams: int = 0
    btime_d: float = 0.0
    etime_d: float = 0.0
    distance: float = 0.0

    @property
    def label(self) -> str:
        return f"{self.file_id}:{self.section_id}"


@dataclass(frozen=True)
class Tie:
    """Rough offset (meters east, north, up) of the source section relative to the target."""

    offset_x_m: float
    offset_y_m: float
    offset_z_m: float = 0.0
    status: int = 0

    @property
    def offset(self) -> Tuple[float, float, float]:
        return (self.offset_x_m, self.offset_y_m, self.offset_z_m)


@dataclass
class Crossing:
    """
    Candidate overlap between two sections.

    Section 1 is the registration target, section 2 the source.
    """

    file_id_1: int
    section_1: int
    file_id_2: int
    section_2: int
    overlap: int = 0
    ties: List[Tie] = field(default_factory=list)
    status: int = 0
    truecrossing: bool = False

    @property
    def num_ties(self) -> int:
        return len(self.ties)

    def key(self) -> Tuple[int, int, int, int]:
        return (self.file_id_1, self.section_1, self.file_id_2, self.section_2)

    @property
    def label(self) -> str:
        return f"{self.file_id_1}:{self.section_1}/{self.file_id_2}:{self.section_2}"

    def rough_offset(self) -> Optional[Tuple[float, float, float]]:
        """Offset of the first tie, or None when the crossing is untied."""
        if not self.ties:
            return None
        return self.ties[0].offset


@dataclass
class Project:
    """Sections and crossings of a navigation-adjustment project."""

    name: str
    sections: List[Section] = field(default_factory=list)
    crossings: List[Crossing] = field(default_factory=list)

    def find_section(self, file_id: int, section_id: int) -> Section:
        for section in self.sections:
            if section.file_id == file_id and section.section_id == section_id:
                return section
        raise KeyError(f"Section {file_id}:{section_id} not in project '{self.name}'")

    def find_crossing(self, key: Tuple[int, int, int, int]) -> Optional[Crossing]:
        for crossing in self.crossings:
            if crossing.key() == tuple(key):
                return crossing
        return None
