"""
Debug point-cloud export.

Writes the target and source clouds of a single crossing at three stages
(raw, outlier-filtered, final-registered) to LAS files so they can be
inspected in CloudCompare, QGIS or similar tools. Points are coloured by
depth; in the final stage, source points that took part in a correspondence
are recoloured by correspondence distance.
"""

from pathlib import Path
from typing import Optional, TYPE_CHECKING

import laspy
import numpy as np

from .logging import setup_logger
from ..visualization.colormap import depth_colors, distance_colors

if TYPE_CHECKING:
    from ..alignment.rejectors import Correspondences

logger = setup_logger(__name__)

STAGES = ("raw", "filtered", "final")


def export_colored_points(
    points: np.ndarray,
    output_path: str,
    colors: Optional[np.ndarray] = None,
) -> str:
    """
    Export points with optional 8-bit RGB colours to a LAS file.

    Non-finite points are skipped.

    Args:
        points: (N, 3) array of point coordinates
        output_path: Path for output file
        colors: Optional (N, 3) uint8 array

    Returns:
        Path to created file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"points must be (N, 3), got {points.shape}")
    if colors is not None and len(colors) != len(points):
        raise ValueError(f"colors must have {len(points)} rows, got {len(colors)}")

    finite = np.isfinite(points).all(axis=1)
    points = points[finite]

    # LAS 1.2 point format 2 carries RGB
    header = laspy.LasHeader(point_format=2, version="1.2")
    header.scales = np.array([0.001, 0.001, 0.001])
    header.offsets = points.min(axis=0) if len(points) else np.zeros(3)

    las = laspy.LasData(header)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]

    if colors is not None:
        rgb = np.asarray(colors, dtype=np.uint16)[finite] * 257
        las.red = rgb[:, 0]
        las.green = rgb[:, 1]
        las.blue = rgb[:, 2]

    las.write(str(output_path))
    logger.info(f"Exported {len(points):,} points to {output_path}")
    return str(output_path)


class DebugCloudWriter:
    """
    Writes up to six debug clouds for one crossing:
    target_raw, source_raw, target_filtered, source_filtered,
    target_final, source_final.
    """

    def __init__(self, output_dir: str, prefix: str = "", color_by_depth: bool = True):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.color_by_depth = color_by_depth
        self.written: list[str] = []

    def path_for(self, side: str, stage: str) -> Path:
        return self.output_dir / f"{self.prefix}{side}_{stage}.las"

    def _colors(self, xyz: np.ndarray) -> Optional[np.ndarray]:
        return depth_colors(xyz[:, 2]) if self.color_by_depth else None

    def _write(self, side: str, stage: str, xyz: np.ndarray, colors: Optional[np.ndarray]) -> None:
        self.written.append(export_colored_points(xyz, str(self.path_for(side, stage)), colors))

    def write_stage(self, stage: str, target: np.ndarray, source: np.ndarray) -> None:
        if stage not in STAGES:
            raise ValueError(f"Unknown debug stage '{stage}', expected one of {STAGES}")
        self._write("target", stage, target, self._colors(target))
        self._write("source", stage, source, self._colors(source))

    def write_final(
        self,
        target: np.ndarray,
        aligned_source: np.ndarray,
        correspondences: "Correspondences",
    ) -> None:
        """Final stage: source correspondence points coloured green (close) to red (far)."""
        self._write("target", "final", target, self._colors(target))

        colors = self._colors(aligned_source)
        if len(correspondences) > 0:
            if colors is None:
                colors = np.zeros((len(aligned_source), 3), dtype=np.uint8)
            colors = colors.copy()
            colors[correspondences.source_idx] = distance_colors(correspondences.distances)
        self._write("source", "final", aligned_source, colors)
