"""
Batch entry point.

Wires configuration, logging, the external project loader and store, the
scheduler and the result log together. Command-line parsing lives outside
this package; callers pass an already-built AppConfig (or a YAML path).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .pipeline.scheduler import BatchSummary, CrossingScheduler
from .preprocessing.loader import ProjectStore
from .preprocessing.project import Project
from .utils.config import AppConfig, load_config
from .utils.logging import attach_package_log_file, set_package_level, setup_logger
from .utils.result_log import ResultLog

logger = setup_logger(__name__)


def _log_level(cfg: AppConfig) -> int:
    level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    if cfg.run.verbosity > 1:
        level = min(level, logging.DEBUG)
    return level


def run_workflow(
    project_loader: Callable[[], Project],
    store: ProjectStore,
    config: Optional[Union[AppConfig, str, Path]] = None,
    result_log: Optional[ResultLog] = None,
) -> BatchSummary:
    """
    Register the crossings of a project and emit one CSV record per success.

    Args:
        project_loader: Opens the project database; called once at startup.
        store: Hydrates the swaths of each crossing.
        config: AppConfig, a YAML path, or None for config/default.yaml.
        result_log: Sink for records; defaults to stdout/stderr plus the
            configured results file.

    Returns:
        BatchSummary of the run.

    Raises:
        SystemExit: If the project cannot be loaded.
    """
    cfg = config if isinstance(config, AppConfig) else load_config(config)

    level = _log_level(cfg)
    if cfg.logging.file:
        attach_package_log_file(cfg.logging.file, level)
    set_package_level(level)

    logger.info("Crossing Registration Workflow")
    logger.info("==============================")

    try:
        project = project_loader()
    except Exception as e:
        logger.critical("Unable to load project: %s", e, exc_info=True)
        raise SystemExit(1) from e

    logger.info(
        "Project '%s': %d sections, %d crossings.",
        project.name,
        len(project.sections),
        len(project.crossings),
    )

    sink = result_log if result_log is not None else ResultLog(results_file=cfg.output.results_file)
    with sink:
        scheduler = CrossingScheduler(
            project=project,
            store=store,
            alignment=cfg.alignment,
            run=cfg.run,
            result_log=sink,
            output=cfg.output,
        )
        summary = scheduler.run()

    logger.info(
        "Done: %d aligned, %d failed, total time %.2f s.",
        len(summary.results),
        len(summary.failed),
        summary.elapsed_s,
    )
    return summary
