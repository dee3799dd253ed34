"""
ICP Registration Engine

This module implements the Iterative Closest Point (ICP) algorithm used to
register the source section of a crossing onto its target section.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING
import sys
import time

import numpy as np
from scipy.spatial.transform import Rotation
from sklearn.neighbors import NearestNeighbors

from .rejectors import Correspondences, CorrespondenceRejector, build_rejectors
from ..utils.logging import setup_logger

if TYPE_CHECKING:
    from ..utils.config import AlignmentConfig

logger = setup_logger(__name__)

# Fitness reported when no correspondences survive
FITNESS_SENTINEL = sys.float_info.max

# Fewest correspondences that still define a rigid transform
MIN_CORRESPONDENCES = 3


class RegistrationState(str, Enum):
    INIT = "init"
    SEARCHING = "searching"
    REJECTING = "rejecting"
    SOLVING = "solving"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RegistrationState.CONVERGED,
            RegistrationState.MAX_ITER_REACHED,
            RegistrationState.FAILED,
        )


@dataclass
class RegistrationOutcome:
    """Result of one engine run."""

    transform: np.ndarray
    correspondences: Correspondences
    state: RegistrationState
    iterations: int
    aligned_source: np.ndarray


class RegistrationEngine:
    """
    Point-to-point ICP with pluggable correspondence rejection.

    Each iteration:
    1. Finds the nearest target point for every source point
    2. Passes the correspondences through the rejectors, in order
    3. Solves the least-squares rigid transform (SVD) on the survivors
    4. Accumulates it and re-applies the total to the original source
    until the incremental transform or the fitness change falls below its
    epsilon, or the iteration cap is reached.

    One engine instance registers one crossing; `release` drops its buffers.
    """

    def __init__(
        self,
        max_iterations: int = 100,
        transform_epsilon: float = 1e-8,
        fitness_epsilon: float = 1e-6,
        rejectors: Optional[Sequence[CorrespondenceRejector]] = None,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            transform_epsilon: Converged when the Frobenius norm of
                (incremental transform - identity) drops below this.
            fitness_epsilon: Converged when the mean squared correspondence
                distance changes by less than this between iterations.
            rejectors: Correspondence rejectors applied in order. Defaults to
                one-to-one enforcement only.
        """
        self.max_iterations = max_iterations
        self.transform_epsilon = transform_epsilon
        self.fitness_epsilon = fitness_epsilon
        self.rejectors: List[CorrespondenceRejector] = (
            list(rejectors) if rejectors is not None else build_rejectors()
        )
        self.state = RegistrationState.INIT

        self.transform = np.eye(4)
        self.correspondences = Correspondences.empty()
        self._source: Optional[np.ndarray] = None
        self._target: Optional[np.ndarray] = None
        self._nbrs: Optional[NearestNeighbors] = None

    @classmethod
    def from_config(cls, config: "AlignmentConfig") -> "RegistrationEngine":
        return cls(
            max_iterations=config.max_iterations,
            transform_epsilon=config.transform_epsilon,
            fitness_epsilon=config.fitness_epsilon,
            rejectors=build_rejectors(
                max_correspondence_distance=config.max_correspondence_distance,
                overlap_fraction=config.overlap_fraction,
                one_to_one=config.one_to_one,
            ),
        )

    def align(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_transform: Optional[np.ndarray] = None,
    ) -> RegistrationOutcome:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source point cloud (N x 3), already roughly aligned.
            target: Target point cloud (M x 3).
            initial_transform: Initial accumulated transform (4 x 4) or None.

        Returns:
            RegistrationOutcome with the accumulated transform, the final
            correspondence set and the terminal state.
        """
        self._source = np.asarray(source, dtype=np.float64)
        self._target = np.asarray(target, dtype=np.float64)
        self.transform = np.eye(4) if initial_transform is None else initial_transform.copy()
        self.correspondences = Correspondences.empty()
        self.state = RegistrationState.INIT

        n_src = len(self._source)
        n_tgt = len(self._target)
        logger.debug(
            "Starting ICP alignment with %d source points and %d target points.",
            n_src,
            n_tgt,
        )

        if n_src < MIN_CORRESPONDENCES or n_tgt < MIN_CORRESPONDENCES:
            logger.warning(
                "ICP called with too few points (source=%d, target=%d); "
                "keeping the initial transform.",
                n_src,
                n_tgt,
            )
            self.state = RegistrationState.FAILED
            return self._outcome(0)

        # Build the nearest-neighbor search structure for the target ONCE.
        build_start = time.time()
        self._nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(self._target)
        logger.debug("KD-Tree built in %.4f s.", time.time() - build_start)

        current_source = self.apply_transformation(self._source, self.transform)
        previous_error = float("inf")
        n_iterations = 0

        for iteration in range(self.max_iterations):
            self.state = RegistrationState.SEARCHING
            found = self.find_correspondences(current_source)

            self.state = RegistrationState.REJECTING
            accepted = self.reject(found)
            self.correspondences = accepted
            if len(accepted) < MIN_CORRESPONDENCES:
                logger.warning(
                    "Only %d correspondences left after rejection (iteration %d). Stopping ICP.",
                    len(accepted),
                    iteration + 1,
                )
                self.state = RegistrationState.FAILED
                break

            self.state = RegistrationState.SOLVING
            delta_transform = self.estimate_transformation(
                current_source[accepted.source_idx],
                self._target[accepted.target_idx],
            )
            self.transform = delta_transform @ self.transform
            # Re-apply the total to the ORIGINAL source to avoid compounding error
            current_source = self.apply_transformation(self._source, self.transform)
            n_iterations = iteration + 1

            current_error = accepted.mean_squared_distance()
            delta_norm = float(np.linalg.norm(delta_transform - np.eye(4)))
            logger.debug(
                "Iteration %d: %d/%d correspondences, MSE=%.6f, |dT|=%.3e",
                n_iterations,
                len(accepted),
                len(found),
                current_error,
                delta_norm,
            )

            if delta_norm < self.transform_epsilon:
                logger.debug(
                    "ICP converged after %d iterations (transform change < %.3e).",
                    n_iterations,
                    self.transform_epsilon,
                )
                self.state = RegistrationState.CONVERGED
                break

            if abs(previous_error - current_error) < self.fitness_epsilon:
                logger.debug(
                    "ICP converged after %d iterations (MSE change < %.3e).",
                    n_iterations,
                    self.fitness_epsilon,
                )
                self.state = RegistrationState.CONVERGED
                break

            previous_error = current_error
        else:
            logger.debug("ICP did not converge after %d iterations.", self.max_iterations)
            self.state = RegistrationState.MAX_ITER_REACHED

        return self._outcome(n_iterations, current_source)

    def _outcome(self, iterations: int, aligned: Optional[np.ndarray] = None) -> RegistrationOutcome:
        if aligned is None:
            aligned = self.apply_transformation(self._source, self.transform)
        return RegistrationOutcome(
            transform=self.transform.copy(),
            correspondences=self.correspondences,
            state=self.state,
            iterations=iterations,
            aligned_source=aligned,
        )

    def find_correspondences(self, source: np.ndarray) -> Correspondences:
        """
        Find the closest target point for every source point.

        Args:
            source: Source point cloud (N x 3) in its current pose.

        Returns:
            Correspondences covering all N source points.
        """
        if self._nbrs is None:
            raise RuntimeError("Target index not built; call align() first.")
        distances, indices = self._nbrs.kneighbors(source)
        return Correspondences(
            source_idx=np.arange(len(source)),
            target_idx=indices.ravel(),
            distances=distances.ravel(),
        )

    def reject(self, correspondences: Correspondences) -> Correspondences:
        for rejector in self.rejectors:
            correspondences = rejector.reject(correspondences)
        return correspondences

    def estimate_transformation(
        self,
        source_points: np.ndarray,
        target_points: np.ndarray,
    ) -> np.ndarray:
        """
        Estimate optimal rigid transformation between paired point sets.

        Args:
            source_points: Source points (N x 3).
            target_points: Corresponding target points (N x 3).

        Returns:
            Transformation matrix (4 x 4).
        """
        source_centroid = np.mean(source_points, axis=0)
        target_centroid = np.mean(target_points, axis=0)

        source_centered = source_points - source_centroid
        target_centered = target_points - target_centroid

        # Cross-covariance matrix
        H = source_centered.T @ target_centered

        U, _, Vt = np.linalg.svd(H)
        R = Vt.T @ U.T

        # Ensure proper rotation (det(R) should be 1)
        if np.linalg.det(R) < 0:
            Vt[-1, :] *= -1
            R = Vt.T @ U.T

        t = target_centroid - R @ source_centroid

        transform = np.eye(4)
        transform[:3, :3] = R
        transform[:3, 3] = t
        return transform

    @staticmethod
    def apply_transformation(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
        """
        Apply a transformation matrix to a set of points.

        Args:
            points: Point cloud (N x 3).
            transform: Transformation matrix (4 x 4).

        Returns:
            Transformed point cloud (N x 3).
        """
        if points.size == 0:
            return points
        R = transform[:3, :3]
        t = transform[:3, 3]
        return points @ R.T + t

    def fitness_correspondence(self, transform: Optional[np.ndarray] = None) -> float:
        """
        Mean squared distance over the final correspondence set.

        Each paired source point is moved by `transform` (identity when None)
        before measuring its distance to its paired target point. Identity
        gives the rough score, the final transform the fine score.

        Returns:
            Mean squared distance, or FITNESS_SENTINEL without correspondences.
        """
        corr = self.correspondences
        if len(corr) == 0 or self._source is None or self._target is None:
            return FITNESS_SENTINEL
        T = np.eye(4) if transform is None else transform
        src = self.apply_transformation(self._source[corr.source_idx], T)
        diff = src - self._target[corr.target_idx]
        return float(np.mean(np.einsum("ij,ij->i", diff, diff)))

    def fitness_global(self, transform: Optional[np.ndarray] = None, max_range: float = float("inf")) -> float:
        """
        Mean squared nearest-neighbour distance over all transformed source points.

        Nearest-neighbour distances above `max_range` are left out of the mean.

        Returns:
            Mean squared distance, or FITNESS_SENTINEL when no point qualifies.
        """
        if self._nbrs is None or self._source is None or len(self._source) == 0:
            return FITNESS_SENTINEL
        T = np.eye(4) if transform is None else transform
        distances, _ = self._nbrs.kneighbors(self.apply_transformation(self._source, T))
        distances = distances.ravel()
        within = distances <= max_range
        if not np.any(within):
            return FITNESS_SENTINEL
        return float(np.mean(distances[within] ** 2))

    def release(self) -> None:
        """Drop the clouds and the KD-tree held for the last run."""
        self._source = None
        self._target = None
        self._nbrs = None


def translation_transform(offset: Sequence[float]) -> np.ndarray:
    """Pure-translation 4 x 4 transform."""
    T = np.eye(4)
    T[:3, 3] = np.asarray(offset, dtype=np.float64)
    return T


def decompose_transform(transform: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a rigid transform into translation (Tx, Ty, Tz) and Euler angles (Rx, Ry, Rz).

    Angles are radians with R = Rz(Rz) @ Ry(Ry) @ Rx(Rx), i.e. roll about x,
    then pitch about y, then yaw about z, all about fixed axes.
    """
    translation = np.asarray(transform[:3, 3], dtype=np.float64).copy()
    angles = Rotation.from_matrix(transform[:3, :3]).as_euler("xyz")
    return translation, np.asarray(angles, dtype=np.float64)
