"""
Crossing scheduling.

Selects the crossings to register, spreads them over a fixed pool of worker
threads and routes every outcome to the result log. A failure in one
crossing is reported and the worker moves on to its next crossing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import time

from .crossing_alignment import AlignmentPipeline, AlignmentResult
from ..acceleration.parallel_executor import ChunkParallelExecutor
from ..exceptions import CrossingNotFoundError, RegistrationError
from ..preprocessing.loader import ProjectStore
from ..preprocessing.project import Crossing, Project
from ..utils.config import AlignmentConfig, CrossingSelector, OutputConfig, RunConfig
from ..utils.export import DebugCloudWriter
from ..utils.logging import setup_logger
from ..utils.result_log import ResultLog

logger = setup_logger(__name__)


def select_eligible(project: Project, min_overlap: int, include_untied: bool) -> List[Crossing]:
    """
    Crossings worth registering.

    A crossing qualifies when it has at least one tie (or untied crossings
    are included) and its overlap exceeds min_overlap.
    """
    return [
        c for c in project.crossings
        if (c.num_ties > 0 or include_untied) and c.overlap > min_overlap
    ]


@dataclass
class BatchSummary:
    results: List[AlignmentResult] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    elapsed_s: float = 0.0

    @property
    def attempted(self) -> int:
        return len(self.results) + len(self.failed)


class CrossingScheduler:
    """
    Drives the alignment pipeline over a project's crossings.

    Example:
        with ResultLog() as sink:
            scheduler = CrossingScheduler(project, store, alignment_cfg, run_cfg, sink)
            summary = scheduler.run()
    """

    def __init__(
        self,
        project: Project,
        store: ProjectStore,
        alignment: AlignmentConfig,
        run: RunConfig,
        result_log: ResultLog,
        output: Optional[OutputConfig] = None,
    ):
        self.project = project
        self.store = store
        self.alignment = alignment
        self.run_config = run
        self.result_log = result_log
        self.output = output if output is not None else OutputConfig()

    # ------------------------ Entry points ------------------------
    def run(self) -> BatchSummary:
        """Single-crossing mode when a crossing is configured, batch mode otherwise."""
        if self.alignment.crossing is not None:
            return self.run_single(self.alignment.crossing)
        return self.run_all()

    def run_all(self) -> BatchSummary:
        """Register every eligible crossing across the worker pool."""
        start = time.time()
        crossings = select_eligible(
            self.project,
            self.run_config.min_overlap,
            self.run_config.all_crossings,
        )
        logger.info(
            "%d of %d crossings eligible (min overlap %d%%, untied %s).",
            len(crossings),
            len(self.project.crossings),
            self.run_config.min_overlap,
            "included" if self.run_config.all_crossings else "excluded",
        )

        self.result_log.write_header()
        executor = ChunkParallelExecutor(n_workers=self.run_config.effective_workers)
        chunk_outcomes = executor.map_chunks(crossings, self._process_chunk)

        summary = BatchSummary()
        for outcomes in chunk_outcomes:
            for label, result in outcomes:
                if result is None:
                    summary.failed.append(label)
                else:
                    summary.results.append(result)
        summary.elapsed_s = time.time() - start
        logger.info(
            "Processed %d crossings (%d failed) in %.2f s.",
            summary.attempted,
            len(summary.failed),
            summary.elapsed_s,
        )
        return summary

    def run_single(self, selector: CrossingSelector) -> BatchSummary:
        """Register one explicitly selected crossing, with debug dumps when verbose."""
        start = time.time()
        summary = BatchSummary()
        crossing = self.project.find_crossing(selector.key())
        if crossing is None:
            error = CrossingNotFoundError(f"Crossing {selector} not found in project '{self.project.name}'")
            logger.error(str(error))
            self.result_log.error(str(selector), str(error))
            summary.failed.append(str(selector))
            return summary

        debug_writer = None
        if self.run_config.verbosity > 0:
            debug_writer = DebugCloudWriter(
                str(Path(self.output.debug_dir)),
                prefix=f"crossing_{crossing.file_id_1}_{crossing.section_1}_"
                       f"{crossing.file_id_2}_{crossing.section_2}_",
                color_by_depth=self.output.color_by_depth,
            )

        self.result_log.write_header()
        result = self.process_crossing(crossing, self._make_pipeline(debug_writer))
        if result is None:
            summary.failed.append(crossing.label)
        else:
            summary.results.append(result)
        summary.elapsed_s = time.time() - start
        return summary

    # ------------------------ Workers ------------------------
    def _make_pipeline(self, debug_writer: Optional[DebugCloudWriter] = None) -> AlignmentPipeline:
        return AlignmentPipeline(
            self.alignment,
            verbosity=self.run_config.verbosity,
            debug_writer=debug_writer,
        )

    def _process_chunk(self, idx: int, chunk: List[Crossing]) -> List[Tuple[str, Optional[AlignmentResult]]]:
        pipeline = self._make_pipeline()
        logger.debug("Worker %d starting %d crossings.", idx, len(chunk))
        return [(crossing.label, self.process_crossing(crossing, pipeline)) for crossing in chunk]

    def rough_offset_for(self, crossing: Crossing) -> Optional[Tuple[float, float, float]]:
        """Zero in ignore-ties mode, else the first tie's offset, else None (configured default)."""
        if self.run_config.ignore_ties:
            return (0.0, 0.0, 0.0)
        return crossing.rough_offset()

    def process_crossing(self, crossing: Crossing, pipeline: AlignmentPipeline) -> Optional[AlignmentResult]:
        """
        Load, register and report one crossing.

        Returns the result, or None when the crossing failed; failures are
        logged and written to the error stream, never raised.
        """
        try:
            with self.store.load_crossing_data(self.project, crossing) as data:
                result = pipeline.run(crossing, data, rough_offset=self.rough_offset_for(crossing))
        except RegistrationError as e:
            logger.error("Crossing %s aborted: %s", crossing.label, e)
            self.result_log.error(crossing.label, str(e))
            return None
        except Exception as e:
            logger.error("Crossing %s failed unexpectedly: %s", crossing.label, e, exc_info=True)
            self.result_log.error(crossing.label, f"{type(e).__name__}: {e}")
            return None

        self.result_log.emit(result)
        return result
