"""
Configuration management for crossing-registration.

Provides typed pydantic models and a YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Tuple, Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import yaml


MAX_WORKERS = 8


# -----------------------
# Typed config structures
# -----------------------


class OutlierRemovalConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    k_neighbors: int = Field(default=50, ge=1, description="Neighbours used for the mean distance")
    stddev_multiplier: float = Field(default=1.0, description="Points beyond mean + m * std are dropped")


class CrossingSelector(BaseModel):
    """Explicit (file, section, file, section) key for single-crossing mode."""

    model_config = ConfigDict(frozen=True)

    file_id_1: int
    section_1: int
    file_id_2: int
    section_2: int

    @classmethod
    def parse(cls, text: str) -> "CrossingSelector":
        """Parse 'f1:s1/f2:s2' (the same form used in the results CSV)."""
        try:
            first, second = text.split("/")
            f1, s1 = first.split(":")
            f2, s2 = second.split(":")
            return cls(file_id_1=int(f1), section_1=int(s1), file_id_2=int(f2), section_2=int(s2))
        except ValueError as e:
            raise ValueError(f"Invalid crossing selector '{text}', expected 'f1:s1/f2:s2'") from e

    def key(self) -> Tuple[int, int, int, int]:
        return (self.file_id_1, self.section_1, self.file_id_2, self.section_2)

    def __str__(self) -> str:
        return f"{self.file_id_1}:{self.section_1}/{self.file_id_2}:{self.section_2}"


class AlignmentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=100, ge=1)
    max_correspondence_distance: float = Field(
        default=0.0,
        description="Correspondences farther than this (m) are rejected; <= 0 disables the cutoff",
    )
    overlap_fraction: Optional[float] = Field(
        default=None,
        description="Keep only this closest fraction of correspondences (0, 1]; None disables trimming",
    )
    one_to_one: bool = Field(default=True, description="Allow a target point to be claimed only once")
    target_outliers: OutlierRemovalConfig = Field(default_factory=OutlierRemovalConfig)
    source_outliers: OutlierRemovalConfig = Field(default_factory=OutlierRemovalConfig)
    transform_epsilon: float = Field(
        default=1e-8,
        description="Stop when the incremental transform differs from identity by less than this",
    )
    fitness_epsilon: float = Field(
        default=1e-6,
        description="Stop when the mean squared correspondence distance changes by less than this",
    )
    initial_translation: Tuple[float, float, float] = Field(
        default=(0.0, 0.0, 0.0),
        description="Rough (x, y, z) translation applied to the source when no tie is used",
    )
    coarse_method: Literal["tie", "centroid", "phase"] = Field(
        default="tie",
        description="How the rough translation is obtained",
    )
    phase_grid_cell: float = Field(default=2.0, description="Grid cell size for phase correlation (meters)")
    crossing: Optional[CrossingSelector] = Field(
        default=None,
        description="Process only this crossing (single-crossing mode)",
    )

    @field_validator("overlap_fraction")
    @classmethod
    def _check_overlap_fraction(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not (0.0 < value <= 1.0):
            raise ValueError("overlap_fraction must be in (0, 1]")
        return value

    @field_validator("crossing", mode="before")
    @classmethod
    def _parse_crossing(cls, value: Any) -> Any:
        if isinstance(value, str):
            return CrossingSelector.parse(value)
        return value

    def with_translation(self, translation: Tuple[float, float, float]) -> "AlignmentConfig":
        return self.model_copy(update={"initial_translation": tuple(float(v) for v in translation)})


class RunConfig(BaseModel):
    verbosity: int = Field(default=0, ge=0, description="0 = quiet, 1 = per-crossing report, 2 = debug")
    min_overlap: int = Field(default=0, description="Crossings must exceed this overlap percentage")
    ignore_ties: bool = Field(default=False, description="Zero the rough estimate instead of using ties")
    all_crossings: bool = Field(default=False, description="Also process crossings without ties")
    n_workers: int = Field(default=1, ge=1, description=f"Worker threads (capped at {MAX_WORKERS})")

    @property
    def effective_workers(self) -> int:
        return min(self.n_workers, MAX_WORKERS)


class OutputConfig(BaseModel):
    results_file: Optional[str] = Field(default=None, description="Also write CSV records to this file")
    debug_dir: str = Field(default="debug_clouds", description="Directory for single-crossing debug dumps")
    color_by_depth: bool = Field(default=True, description="Colour debug dumps with the depth ramp")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/crossing_registration/utils/config.py
    parents sequence:
      0 -> .../src/crossing_registration/utils
      1 -> .../src/crossing_registration
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")
