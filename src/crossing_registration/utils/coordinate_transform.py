"""
Local Frame Projection for Crossing Registration.

Soundings arrive as geographic coordinates (lon, lat, z). ICP needs a flat,
meters-based frame so that distances along x, y and z are comparable. This
module projects geographic points onto a Transverse Mercator plane whose
origin sits at a chosen reference point:

1. Build the projection once per crossing, centred on the source section's
   central reference.
2. Project both target and source clouds with that same projection.
3. Use `to_geographic` to map local results back when needed.

Within a few kilometres of the reference the projection is conformal with
unit scale, so the local frame behaves like a tangent plane.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, TYPE_CHECKING

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from ..exceptions import ProjectionError

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from ..preprocessing.point_cloud import PointCloud


@dataclass
class LocalFrameProjector:
    """Project between geographic coordinates and a local east/north frame.

    The frame is a Transverse Mercator projection on the WGS84 ellipsoid with
    scale factor 1 and no false easting/northing, so the reference point maps
    to (0, 0).

    Attributes:
        lat0: Reference latitude (degrees)
        lon0: Reference longitude (degrees)

    Example:
        >>> projector = LocalFrameProjector.create(36.8, -122.0)
        >>> projector.project(cloud)          # rewrites cloud.xyz in place
        >>> lon, lat = projector.to_geographic(x, y)
    """

    lat0: float
    lon0: float
    _forward: Transformer = field(init=False, repr=False)
    _inverse: Transformer = field(init=False, repr=False)

    def __post_init__(self):
        if not (np.isfinite(self.lat0) and np.isfinite(self.lon0)):
            raise ProjectionError(
                f"Reference position must be finite, got lat={self.lat0}, lon={self.lon0}"
            )
        if abs(self.lat0) > 90.0 or abs(self.lon0) > 360.0:
            raise ProjectionError(
                f"Reference position out of range: lat={self.lat0}, lon={self.lon0}"
            )
        try:
            crs = CRS.from_proj4(self.proj_string())
            self._forward = Transformer.from_crs(crs.geodetic_crs, crs, always_xy=True)
            self._inverse = Transformer.from_crs(crs, crs.geodetic_crs, always_xy=True)
        except (CRSError, ProjError) as e:
            raise ProjectionError(
                f"Cannot build local projection at lat={self.lat0}, lon={self.lon0}: {e}"
            ) from e

    @classmethod
    def create(cls, lat0: float, lon0: float) -> "LocalFrameProjector":
        """Build a projector centred on (lat0, lon0)."""
        return cls(lat0=float(lat0), lon0=float(lon0))

    def proj_string(self) -> str:
        return (
            f"+proj=tmerc +lat_0={self.lat0:.10f} +lon_0={self.lon0:.10f} "
            "+k=1 +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
        )

    def to_local(
        self,
        lon: "NDArray[np.floating]",
        lat: "NDArray[np.floating]",
    ) -> Tuple["NDArray[np.floating]", "NDArray[np.floating]"]:
        """Project geographic coordinates to local (x east, y north) meters.

        Non-finite inputs come back as non-finite outputs; callers screen
        for them with `reject_non_finite`.
        """
        x, y = self._forward.transform(
            np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64)
        )
        return np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)

    def to_geographic(
        self,
        x: "NDArray[np.floating]",
        y: "NDArray[np.floating]",
    ) -> Tuple["NDArray[np.floating]", "NDArray[np.floating]"]:
        """Inverse of `to_local`: local meters back to (lon, lat) degrees."""
        lon, lat = self._inverse.transform(
            np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)
        )
        return np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64)

    def project(self, cloud: "PointCloud") -> "PointCloud":
        """Rewrite a geographic cloud in place into the local frame (z unchanged)."""
        if len(cloud) == 0:
            return cloud
        x, y = self.to_local(cloud.xyz[:, 0], cloud.xyz[:, 1])
        cloud.xyz[:, 0] = x
        cloud.xyz[:, 1] = y
        return cloud

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON/YAML storage."""
        return {"lat0": self.lat0, "lon0": self.lon0, "proj": self.proj_string()}

    @classmethod
    def from_dict(cls, data: dict) -> "LocalFrameProjector":
        return cls(lat0=float(data["lat0"]), lon0=float(data["lon0"]))

    def __str__(self) -> str:
        return f"LocalFrame(lat0={self.lat0:.6f}, lon0={self.lon0:.6f})"
