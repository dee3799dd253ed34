"""
Result records.

Each processed crossing produces one CSV line. A record is formatted in full
by the worker that produced it and handed to the sink as a single string, so
lines from concurrent workers never interleave mid-record. Failed crossings
produce a diagnostic line on the error stream instead.
"""

from __future__ import annotations

import csv
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, TextIO, TYPE_CHECKING

from .logging import setup_logger

if TYPE_CHECKING:
    from ..pipeline.crossing_alignment import AlignmentResult

logger = setup_logger(__name__)

CSV_COLUMNS = [
    "crossing",
    "overlap",
    "targetPoints",
    "sourcePoints",
    "milliseconds",
    "fitness_rough",
    "fitness_fine",
    "correspondenceCount",
    "Tx", "Ty", "Tz",
    "Rx", "Ry", "Rz",
] + [f"T{i}" for i in range(16)]

CSV_HEADER = ", ".join(CSV_COLUMNS)


def format_record(result: "AlignmentResult") -> str:
    """Render one result as a CSV line (no trailing newline)."""
    fields = [
        result.crossing_label,
        str(result.overlap),
        str(result.target_points),
        str(result.source_points),
        f"{result.milliseconds:.3f}",
        f"{result.fitness_rough:.10g}",
        f"{result.fitness_fine:.10g}",
        str(result.correspondence_count),
    ]
    fields += [f"{v:.6f}" for v in result.translation]
    fields += [f"{v:.8f}" for v in result.rotation]
    fields += [f"{v:.10g}" for v in result.transform.reshape(-1)]
    return ", ".join(fields)


class ResultLog:
    """
    Ordering-safe sink for result records.

    Records go to `stream` (stdout by default) and, when configured, to a
    results file as well. Diagnostics for failed crossings go to
    `error_stream`.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        error_stream: Optional[TextIO] = None,
        results_file: Optional[str] = None,
    ):
        self.stream = stream if stream is not None else sys.stdout
        self.error_stream = error_stream if error_stream is not None else sys.stderr
        self.results_path = Path(results_file) if results_file else None
        self._file: Optional[TextIO] = None
        self._lock = threading.Lock()
        self.records = 0
        self.failures = 0

    def __enter__(self) -> "ResultLog":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self.results_path is not None and self._file is None:
            self.results_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.results_path.open("w", encoding="utf-8")
            logger.info(f"Writing results to {self.results_path}")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _write(self, stream: TextIO, text: str) -> None:
        stream.write(text)
        stream.flush()

    def write_header(self) -> None:
        line = CSV_HEADER + "\n"
        with self._lock:
            self._write(self.stream, line)
            if self._file is not None:
                self._write(self._file, line)

    def emit(self, result: "AlignmentResult") -> None:
        line = format_record(result) + "\n"
        with self._lock:
            self._write(self.stream, line)
            if self._file is not None:
                self._write(self._file, line)
            self.records += 1

    def error(self, label: str, message: str) -> None:
        line = f"Crossing {label} failed: {message}\n"
        with self._lock:
            self._write(self.error_stream, line)
            self.failures += 1


def read_results(path: str) -> List[Dict[str, str]]:
    """Load a results file written by ResultLog into a list of row dicts."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f, skipinitialspace=True)
        return [dict(row) for row in reader]
