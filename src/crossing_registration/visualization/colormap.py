"""
Colour ramps for debug point-cloud dumps.

The depth ramp is a fixed 64-entry perceptual table built once at import
from plotly's Viridis anchors and never modified.
"""

from typing import List, Tuple

import numpy as np
from plotly.colors import hex_to_rgb, sequential

RAMP_SIZE = 64


def _build_ramp(anchors: List[str], size: int) -> np.ndarray:
    rgb = np.array([hex_to_rgb(c) for c in anchors], dtype=np.float64)
    positions = np.linspace(0.0, 1.0, len(anchors))
    samples = np.linspace(0.0, 1.0, size)
    table = np.column_stack([np.interp(samples, positions, rgb[:, i]) for i in range(3)])
    table = np.rint(table).astype(np.uint8)
    table.setflags(write=False)
    return table


DEPTH_RAMP: np.ndarray = _build_ramp(sequential.Viridis, RAMP_SIZE)


def ramp_entry(index: int) -> Tuple[int, int, int]:
    r, g, b = DEPTH_RAMP[index]
    return int(r), int(g), int(b)


def depth_colors(z: np.ndarray) -> np.ndarray:
    """Map z values onto the depth ramp; returns N x 3 uint8 RGB."""
    z = np.asarray(z, dtype=np.float64)
    if z.size == 0:
        return np.empty((0, 3), dtype=np.uint8)
    finite = np.isfinite(z)
    if not finite.any():
        return np.repeat(DEPTH_RAMP[:1], len(z), axis=0)
    z_min = float(z[finite].min())
    z_max = float(z[finite].max())
    span = z_max - z_min
    if span <= 0:
        idx = np.zeros(len(z), dtype=int)
    else:
        scaled = np.where(finite, (z - z_min) / span, 0.0)
        idx = np.clip((scaled * (RAMP_SIZE - 1)).round().astype(int), 0, RAMP_SIZE - 1)
    return DEPTH_RAMP[idx]


def distance_colors(distances: np.ndarray) -> np.ndarray:
    """Green for the closest correspondences through to red for the farthest."""
    d = np.asarray(distances, dtype=np.float64)
    if d.size == 0:
        return np.empty((0, 3), dtype=np.uint8)
    d_max = float(np.max(d))
    norm = d / d_max if d_max > 0 else np.zeros_like(d)
    rgb = np.column_stack([norm * 255.0, (1.0 - norm) * 255.0, np.zeros_like(norm)])
    return np.rint(rgb).astype(np.uint8)
