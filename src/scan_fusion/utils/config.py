"""
Configuration management for scan-fusion.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class PathsConfig(BaseModel):
    scan_dir: str = Field(default="scans")
    scan_pattern: str = Field(
        default="scan_{index}.ply",
        description="File name pattern for numbered scans; must contain '{index}'",
    )
    num_scans: Optional[int] = Field(
        default=8,
        description="Number of scans to merge (None = every scan matching the pattern)",
    )
    output_file: str = Field(default="scans/merged.ply")
    transforms_dir: Optional[str] = Field(
        default=None,
        description="Directory for per-scan 4x4 transform files (None = do not save)",
    )
    aligned_dir: Optional[str] = Field(
        default=None,
        description="Directory for per-scan aligned PLY copies (None = do not write)",
    )


class AlignmentICPConfig(BaseModel):
    max_iterations: int = Field(default=10, ge=1)
    max_correspondence_distance_sq: float = Field(
        default=0.25,
        gt=0.0,
        description="Squared distance gate for correspondences (0.25 = 0.5 m radius)",
    )
    min_correspondences: int = Field(default=10, ge=1)
    convergence_rmse: float = Field(
        default=0.01,
        description="Stop once the mean residual (meters) falls below this value",
    )
    early_exit_distance_sq: float = Field(
        default=1e-3,
        description="Squared distance treated as an exact match during brute-force search",
    )
    downsample_stride: int = Field(default=10, ge=1)
    nn_backend: Literal["brute", "kdtree"] = Field(default="brute")


class FusionConfig(BaseModel):
    voxel_size: float = Field(default=0.03, gt=0.0)
    frame_interval: int = Field(default=10, ge=1, description="Fuse every n-th frame")
    max_offset: float = Field(
        default=0.5,
        gt=0.0,
        description="Centroid offsets (meters) at or above this norm are rejected",
    )
    poll_timeout_s: float = Field(default=1.0, gt=0.0)
    reanchor_after: int = Field(
        default=0,
        ge=0,
        description="Re-register against the map with ICP after this many consecutive rejections (0 = off)",
    )
    reanchor_max_iterations: int = Field(default=10, ge=1)


class VisualizationConfig(BaseModel):
    backend: Literal["plotly"] = Field(default="plotly")
    sample_size: int = Field(default=50000)
    point_size: float = Field(default=1.5)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    alignment: AlignmentICPConfig = Field(default_factory=AlignmentICPConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    visualization: VisualizationConfig = Field(default_factory=VisualizationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/scan_fusion/utils/config.py
    parents sequence:
      0 -> .../src/scan_fusion/utils
      1 -> .../src/scan_fusion
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
