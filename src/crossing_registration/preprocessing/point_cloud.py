"""
Point containers used throughout the registration pipeline.

A `PointCloud` stores positions as an N x 3 float64 array and a parallel
validity mask. Positions are (lon, lat, z) right after sampling and
(x east, y north, z up) in meters once projected to the local frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, NamedTuple, Sequence

import numpy as np


class GeometryPoint(NamedTuple):
    """One sounding: position plus validity flag."""

    x: float
    y: float
    z: float
    valid: bool = True

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass
class PointCloud:
    """Array-backed collection of GeometryPoint values."""

    xyz: np.ndarray
    valid: np.ndarray

    def __post_init__(self):
        self.xyz = np.asarray(self.xyz, dtype=np.float64).reshape(-1, 3)
        self.valid = np.asarray(self.valid, dtype=bool).reshape(-1)
        if len(self.valid) != len(self.xyz):
            raise ValueError(
                f"valid mask has {len(self.valid)} entries for {len(self.xyz)} points"
            )

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(np.empty((0, 3)), np.empty(0, dtype=bool))

    @classmethod
    def from_xyz(cls, xyz: np.ndarray) -> "PointCloud":
        """Wrap an N x 3 array, marking every point valid."""
        xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
        return cls(xyz, np.ones(len(xyz), dtype=bool))

    @classmethod
    def from_points(cls, points: Sequence[GeometryPoint]) -> "PointCloud":
        if len(points) == 0:
            return cls.empty()
        xyz = np.array([p.position for p in points], dtype=np.float64)
        valid = np.array([p.valid for p in points], dtype=bool)
        return cls(xyz, valid)

    def __len__(self) -> int:
        return len(self.xyz)

    def __getitem__(self, i: int) -> GeometryPoint:
        x, y, z = self.xyz[i]
        return GeometryPoint(float(x), float(y), float(z), bool(self.valid[i]))

    def __iter__(self) -> Iterator[GeometryPoint]:
        for i in range(len(self)):
            yield self[i]

    def select(self, mask: np.ndarray) -> "PointCloud":
        """Return a new cloud holding only the points where mask is True."""
        return PointCloud(self.xyz[mask].copy(), self.valid[mask].copy())

    def copy(self) -> "PointCloud":
        return PointCloud(self.xyz.copy(), self.valid.copy())

    def centroid(self) -> np.ndarray:
        if len(self) == 0:
            return np.full(3, np.nan)
        return self.xyz.mean(axis=0)

    def translate(self, offset: Sequence[float]) -> "PointCloud":
        """Shift every point in place by (dx, dy, dz)."""
        self.xyz += np.asarray(offset, dtype=np.float64).reshape(1, 3)
        return self

    def transform(self, transform: np.ndarray) -> "PointCloud":
        """Apply a 4 x 4 rigid transform in place."""
        if len(self) == 0:
            return self
        R = transform[:3, :3]
        t = transform[:3, 3]
        self.xyz = self.xyz @ R.T + t
        return self
