"""
Logging Utilities

This module sets up logging for the project and provides a per-crossing
message builder so that diagnostics produced by concurrent workers are
emitted as whole records instead of interleaved lines.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None,
                 stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Console output goes to stderr by default because stdout is reserved
    for the CSV result records.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file
        stream: Console stream (default: sys.stderr)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        _add_file_handler(logger, log_file, level, file_formatter)

    return logger


def _add_file_handler(logger: logging.Logger, log_file: str, level: int,
                      formatter: logging.Formatter) -> None:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def attach_package_log_file(log_file: str, level: int = logging.INFO) -> None:
    """
    Send records from every module of this package to a log file.

    The handler sits on the package logger; module loggers propagate to it.
    """
    package_logger = logging.getLogger(__name__.split(".")[0])
    for handler in package_logger.handlers:
        if isinstance(handler, logging.FileHandler) and \
                Path(handler.baseFilename) == Path(log_file).resolve():
            return
    _add_file_handler(
        package_logger,
        log_file,
        level,
        logging.Formatter(
            '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ),
    )


def set_package_level(level: int) -> None:
    """Apply a level to every logger already created under this package."""
    root_name = __name__.split(".")[0]
    for name, obj in logging.root.manager.loggerDict.items():
        if not isinstance(obj, logging.Logger):
            continue
        if name == root_name or name.startswith(root_name + "."):
            obj.setLevel(level)
            for handler in obj.handlers:
                handler.setLevel(level)


class CrossingReport:
    """
    Accumulates diagnostic lines for one crossing and logs them as a single record.

    Workers never share a report; the logging handler's own lock then
    guarantees that the multi-line record is written in one piece.

    Example:
        report = CrossingReport("3:0/7:2")
        report.add("target points: %d", 1200)
        report.flush(logger)
    """

    def __init__(self, label: str, level: int = logging.INFO):
        self.label = label
        self.level = level
        self._lines: List[str] = []

    def add(self, msg: str, *args) -> None:
        self._lines.append(msg % args if args else msg)

    def __len__(self) -> int:
        return len(self._lines)

    def render(self) -> str:
        body = "\n".join(f"    {line}" for line in self._lines)
        return f"Crossing {self.label}:\n{body}" if body else f"Crossing {self.label}"

    def flush(self, logger: logging.Logger) -> None:
        """Log the accumulated lines as one record and reset the buffer."""
        if not self._lines:
            return
        logger.log(self.level, self.render())
        self._lines = []
