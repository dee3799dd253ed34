"""
Crossing Alignment Pipeline

Runs the full registration of one crossing:

    swaths -> geographic points -> shared local frame -> validity filter
    -> rough translation -> outlier removal -> non-finite check -> ICP
    -> AlignmentResult

Both clouds are projected around the source section's central reference so
their distances are directly comparable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple
import time

import numpy as np

from ..alignment.coarse_registration import CoarseRegistration
from ..alignment.fine_registration import (
    RegistrationEngine,
    RegistrationState,
    decompose_transform,
    translation_transform,
)
from ..exceptions import EmptySwathError, NonFiniteCloudError
from ..preprocessing.loader import CrossingData
from ..preprocessing.point_cloud import PointCloud
from ..preprocessing.project import Crossing
from ..preprocessing.swath_sampler import central_reference, sample_swath
from ..utils.config import AlignmentConfig
from ..utils.coordinate_transform import LocalFrameProjector
from ..utils.export import DebugCloudWriter
from ..utils.logging import CrossingReport, setup_logger
from ..utils.point_cloud_filters import (
    drop_invalid,
    reject_non_finite,
    statistical_outlier_removal,
)

logger = setup_logger(__name__)


@dataclass(frozen=True)
class AlignmentResult:
    """Outcome of registering one crossing; owned by the caller."""

    file_id_1: int
    section_1: int
    file_id_2: int
    section_2: int
    overlap: int
    target_points: int
    source_points: int
    correspondence_count: int
    fitness_rough: float
    fitness_fine: float
    milliseconds: float
    translation: Tuple[float, float, float]
    rotation: Tuple[float, float, float]
    transform: np.ndarray = field(repr=False)
    state: RegistrationState = RegistrationState.CONVERGED
    iterations: int = 0
    source_centroid_initial: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    source_centroid_rough: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def crossing_label(self) -> str:
        return f"{self.file_id_1}:{self.section_1}/{self.file_id_2}:{self.section_2}"

    @property
    def succeeded(self) -> bool:
        return self.state != RegistrationState.FAILED


def _as_tuple(values: Sequence[float]) -> Tuple[float, float, float]:
    return (float(values[0]), float(values[1]), float(values[2]))


class AlignmentPipeline:
    """
    Registers the source section of a crossing onto its target section.

    Example:
        pipeline = AlignmentPipeline(config)
        with store.load_crossing_data(project, crossing) as data:
            result = pipeline.run(crossing, data, rough_offset=(12.0, -3.5, 0.0))
    """

    def __init__(
        self,
        config: AlignmentConfig,
        verbosity: int = 0,
        debug_writer: Optional[DebugCloudWriter] = None,
    ):
        self.config = config
        self.verbosity = verbosity
        self.debug_writer = debug_writer
        self.coarse = CoarseRegistration(
            method=config.coarse_method,
            phase_grid_cell=config.phase_grid_cell,
        )

    def run(
        self,
        crossing: Crossing,
        data: CrossingData,
        rough_offset: Optional[Sequence[float]] = None,
    ) -> AlignmentResult:
        """
        Align one crossing.

        Args:
            crossing: Crossing being registered (target = section 1).
            data: Borrowed sections and swaths of the crossing.
            rough_offset: Rough (x, y, z) estimate; None uses the configured
                initial translation.

        Returns:
            AlignmentResult for the crossing.

        Raises:
            EmptySwathError: If either swath has no pings.
            ProjectionError: If the local frame cannot be built.
            NonFiniteCloudError: If a cloud holds non-finite coordinates
                before registration; the engine is not run.
        """
        report = CrossingReport(crossing.label)
        try:
            return self._run(crossing, data, rough_offset, report)
        finally:
            if self.verbosity > 0:
                report.flush(logger)

    def _run(
        self,
        crossing: Crossing,
        data: CrossingData,
        rough_offset: Optional[Sequence[float]],
        report: CrossingReport,
    ) -> AlignmentResult:
        for side, swath in (("target", data.target_swath), ("source", data.source_swath)):
            if swath.num_pings == 0:
                raise EmptySwathError(f"{side} swath of crossing {crossing.label} has no pings")

        # 1. Sample both swaths with the source section's draft
        reference = central_reference(data.source_swath)
        target = sample_swath(data.target_swath, reference.draft)
        source = sample_swath(data.source_swath, reference.draft)
        report.add(
            "reference lat=%.8f lon=%.8f draft=%.3f heading=%.2f",
            reference.lat, reference.lon, reference.draft, reference.heading,
        )

        # 2. Shared local frame at the source reference
        projector = LocalFrameProjector.create(reference.lat, reference.lon)
        projector.project(target)
        projector.project(source)

        # 3. Validity filter
        target = drop_invalid(target)
        source = drop_invalid(source)
        report.add("valid points: target=%d source=%d", len(target), len(source))

        # 4. Diagnostics before rough alignment
        centroid_initial = source.centroid()

        # 5. Rough translation
        estimate = rough_offset if rough_offset is not None else self.config.initial_translation
        rough_t = self.coarse.compute_translation(
            _finite_rows(source.xyz), _finite_rows(target.xyz), estimate
        )
        rough_transform = translation_transform(rough_t)
        source.translate(rough_t)
        centroid_rough = source.centroid()
        report.add("rough translation: %.3f %.3f %.3f", *rough_t)
        report.add(
            "source centroid: %.3f %.3f %.3f -> %.3f %.3f %.3f",
            *centroid_initial, *centroid_rough,
        )
        self._dump("raw", target, source)

        start = time.perf_counter()

        # 6. Outlier removal per side
        target = self._remove_outliers(target, self.config.target_outliers)
        source = self._remove_outliers(source, self.config.source_outliers)
        report.add("after outlier removal: target=%d source=%d", len(target), len(source))
        self._dump("filtered", target, source)

        # 7. Non-finite screening; abort before the engine runs
        self._check_finite(crossing, target, source, report)

        # 8. ICP
        engine = RegistrationEngine.from_config(self.config)
        try:
            outcome = engine.align(source.xyz, target.xyz)
            fitness_rough = engine.fitness_correspondence()
            fitness_fine = engine.fitness_correspondence(outcome.transform)
            if self.debug_writer is not None:
                self.debug_writer.write_final(
                    target.xyz, outcome.aligned_source, outcome.correspondences
                )
        finally:
            engine.release()

        total = outcome.transform @ rough_transform
        translation, rotation = decompose_transform(total)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        report.add(
            "ICP %s after %d iterations, %d correspondences",
            outcome.state.value, outcome.iterations, len(outcome.correspondences),
        )
        report.add("fitness rough=%.6g fine=%.6g", fitness_rough, fitness_fine)
        report.add("translation: %.4f %.4f %.4f", *translation)
        report.add("rotation: %.6f %.6f %.6f", *rotation)

        return AlignmentResult(
            file_id_1=crossing.file_id_1,
            section_1=crossing.section_1,
            file_id_2=crossing.file_id_2,
            section_2=crossing.section_2,
            overlap=crossing.overlap,
            target_points=len(target),
            source_points=len(source),
            correspondence_count=len(outcome.correspondences),
            fitness_rough=fitness_rough,
            fitness_fine=fitness_fine,
            milliseconds=elapsed_ms,
            translation=_as_tuple(translation),
            rotation=_as_tuple(rotation),
            transform=total,
            state=outcome.state,
            iterations=outcome.iterations,
            source_centroid_initial=_as_tuple(centroid_initial),
            source_centroid_rough=_as_tuple(centroid_rough),
        )

    def _remove_outliers(self, cloud: PointCloud, settings) -> PointCloud:
        if not settings.enabled:
            return cloud
        return statistical_outlier_removal(cloud, settings.k_neighbors, settings.stddev_multiplier)

    def _check_finite(
        self,
        crossing: Crossing,
        target: PointCloud,
        source: PointCloud,
        report: CrossingReport,
    ) -> None:
        failures = []
        for side, cloud in (("target", target), ("source", source)):
            try:
                reject_non_finite(cloud, side)
            except NonFiniteCloudError as e:
                logger.error("Fatal: crossing %s: %s", crossing.label, e)
                report.add("FATAL: %s", e)
                failures.append(e)
        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise NonFiniteCloudError(
                " and ".join(e.side for e in failures),
                sum(e.count for e in failures),
            )

    def _dump(self, stage: str, target: PointCloud, source: PointCloud) -> None:
        if self.debug_writer is None:
            return
        self.debug_writer.write_stage(stage, target.xyz, source.xyz)


def _finite_rows(xyz: np.ndarray) -> np.ndarray:
    return xyz[np.isfinite(xyz).all(axis=1)]
