"""
Rough Pre-alignment

Provides the translation applied to the source cloud before ICP.

Methods implemented:
- tie: the crossing's tie offset (or the configured initial translation)
- centroid: translation between the cloud centroids
- phase: 2D phase correlation on XY occupancy grids, z from the centroids

Every method yields a pure translation so the rough estimate stays a
translation-only 4x4 transform.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .fine_registration import RegistrationEngine
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


@dataclass
class CoarseRegistration:
    method: str = "tie"  # tie | centroid | phase
    phase_grid_cell: float = 2.0

    def compute_translation(
        self,
        source: np.ndarray,
        target: np.ndarray,
        estimate: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """
        Compute the rough translation moving source onto target.

        Args:
            source: Nx3 array (local frame)
            target: Mx3 array (local frame)
            estimate: Tie or configured (x, y, z) offset used by the 'tie' method

        Returns:
            Translation vector (3,)
        """
        given = np.zeros(3) if estimate is None else np.asarray(estimate, dtype=np.float64)
        method = self.method.lower()
        if method == "tie":
            return given

        if len(source) == 0 or len(target) == 0:
            logger.warning("CoarseRegistration: empty inputs; using the given estimate.")
            return given

        if method == "centroid":
            return self._centroid_translation(source, target)
        if method == "phase":
            try:
                t = self._phase_correlation_xy(source, target, cell=self.phase_grid_cell)
            except (ValueError, MemoryError) as e:
                logger.warning(f"Phase correlation failed: {e}; falling back to centroid.")
                return self._centroid_translation(source, target)
            return self._validate_or_fallback(source, target, t)

        logger.warning(f"Unknown coarse registration method '{self.method}', using the given estimate.")
        return given

    # ------------------------ Methods ------------------------
    def _centroid_translation(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        return np.mean(dst, axis=0) - np.mean(src, axis=0)

    def _phase_correlation_xy(self, src: np.ndarray, dst: np.ndarray, *, cell: float = 2.0) -> np.ndarray:
        """Estimate XY translation using phase correlation of occupancy grids.

        The z component is the centroid difference.
        """
        if cell <= 0:
            cell = 2.0

        x_min = float(min(src[:, 0].min(), dst[:, 0].min()))
        y_min = float(min(src[:, 1].min(), dst[:, 1].min()))
        x_max = float(max(src[:, 0].max(), dst[:, 0].max()))
        y_max = float(max(src[:, 1].max(), dst[:, 1].max()))

        nx = int(np.ceil((x_max - x_min) / cell)) + 1
        ny = int(np.ceil((y_max - y_min) / cell)) + 1
        # Cap sizes to avoid very large arrays
        max_side = 4096
        if nx > max_side or ny > max_side:
            factor = max(nx / max_side, ny / max_side)
            cell *= factor
            nx = int(np.ceil((x_max - x_min) / cell)) + 1
            ny = int(np.ceil((y_max - y_min) / cell)) + 1

        def to_grid(points: np.ndarray) -> np.ndarray:
            gx = np.clip(((points[:, 0] - x_min) / cell).astype(int), 0, nx - 1)
            gy = np.clip(((points[:, 1] - y_min) / cell).astype(int), 0, ny - 1)
            img = np.zeros((ny, nx), dtype=np.float32)
            np.add.at(img, (gy, gx), 1.0)
            if img.max() > 0:
                img /= img.max()
            return img

        A = to_grid(src)
        B = to_grid(dst)

        # Cross power spectrum
        FA = np.fft.rfftn(A)
        FB = np.fft.rfftn(B)
        R_ab = FA * np.conj(FB)
        denom = np.abs(R_ab)
        denom[denom == 0] = 1.0
        R_ab /= denom
        r_ab = np.fft.irfftn(R_ab, s=A.shape)

        # Peak location => shift (wrap-aware)
        peak = np.unravel_index(np.argmax(r_ab), r_ab.shape)
        shift_y = int(peak[0])
        shift_x = int(peak[1])
        if shift_x > nx // 2:
            shift_x -= nx
        if shift_y > ny // 2:
            shift_y -= ny

        # Keep whichever roll direction actually moves A onto B
        def roll_err(sy: int, sx: int) -> float:
            diff = np.roll(A, shift=(sy, sx), axis=(0, 1)) - B
            return float(np.sum(diff * diff))

        if roll_err(-shift_y, -shift_x) < roll_err(shift_y, shift_x):
            shift_x = -shift_x
            shift_y = -shift_y

        dz = float(np.mean(dst[:, 2]) - np.mean(src[:, 2]))
        return np.array([shift_x * cell, shift_y * cell, dz], dtype=float)

    # ------------------------ Helpers ------------------------
    def _validate_or_fallback(
        self,
        src: np.ndarray,
        dst: np.ndarray,
        t: np.ndarray,
        *,
        threshold: float = 1.1,
    ) -> np.ndarray:
        """Fallback to the centroid translation if the candidate is clearly worse."""
        rmse_t = self._score_rmse(src, dst, t)
        t_cent = self._centroid_translation(src, dst)
        rmse_c = self._score_rmse(src, dst, t_cent)
        if not np.isfinite(rmse_t) or rmse_t > threshold * rmse_c:
            logger.warning(
                "CoarseRegistration: candidate translation worse than centroid (rmse %.3f vs %.3f). Using centroid.",
                rmse_t, rmse_c,
            )
            return t_cent
        return t

    def _score_rmse(self, src: np.ndarray, dst: np.ndarray, t: np.ndarray, *, max_pairs: int = 3000) -> float:
        if src.size == 0 or dst.size == 0:
            return float("inf")
        rng = np.random.default_rng(0)
        n_src = min(max_pairs, len(src))
        idx_s = rng.choice(len(src), n_src, replace=False) if len(src) > n_src else np.arange(len(src))
        T = np.eye(4)
        T[:3, 3] = t
        moved = RegistrationEngine.apply_transformation(src[idx_s], T)
        nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(dst)
        d, _ = nn.kneighbors(moved)
        return float(np.sqrt(np.mean(d.reshape(-1) ** 2)))
