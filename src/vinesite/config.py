#!/usr/bin/env python3
"""vinesite.config

Shared configuration utilities for the vinesite subsystems.

This module provides common helpers used across vinesite.ingest,
vinesite.registry, vinesite.model, etc.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Bbox handling supports both top-level and per-region bounds in regions YAML.
- Pipeline settings are frozen dataclasses; the defaults are the calibrated
  values the suitability thresholds were derived against.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def load_regions_yaml(path: Path) -> List[dict]:
    """Load regions from a regions YAML file.

    Expects structure like:
        regions:
          - uid: "gbr-kent"
            name: "Kent"
            scheme: "GBR_ADM2"

    Returns the list of region dicts.
    Raises ValueError if structure is invalid.
    """
    data = load_yaml(path)
    if "regions" not in data or not isinstance(data["regions"], list):
        raise ValueError(f"{path} must have a top-level 'regions:' list.")
    return data["regions"]


# -----------------------------------------------------------------------------
# Bounding box utilities
# -----------------------------------------------------------------------------
# Used by ingest (for AOI subsetting) and registry (for bounds extraction).

BBox = Tuple[float, float, float, float]


def coerce_bbox(x: Any) -> Optional[BBox]:
    """Try to coerce [xmin, ymin, xmax, ymax] into a bbox tuple.

    Returns None if input is invalid or missing.
    """
    if x is None:
        return None
    if isinstance(x, (list, tuple)) and len(x) == 4:
        try:
            xmin, ymin, xmax, ymax = map(float, x)
        except (TypeError, ValueError):
            return None
        return (xmin, ymin, xmax, ymax)
    return None


def union_bbox(bboxes: Iterable[BBox]) -> Optional[BBox]:
    """Compute the bounding box that contains all input bboxes.

    Returns None if input is empty.
    """
    bboxes = list(bboxes)
    if not bboxes:
        return None
    xmin = min(b[0] for b in bboxes)
    ymin = min(b[1] for b in bboxes)
    xmax = max(b[2] for b in bboxes)
    ymax = max(b[3] for b in bboxes)
    return (xmin, ymin, xmax, ymax)


def aoi_from_regions_yaml(regions_yaml: Dict[str, Any]) -> Optional[BBox]:
    """Resolve AOI bbox from a regions YAML dict.

    Accepts either:
    - top-level `bounds: [xmin, ymin, xmax, ymax]`
    - per-region entries with `bounds: [...]` under `regions:`

    If per-region bounds exist, returns their union.
    Returns None if no valid bounds found.
    """
    bbox = coerce_bbox(regions_yaml.get("bounds"))
    if bbox:
        return bbox

    regions = regions_yaml.get("regions")
    if isinstance(regions, list):
        bboxes: List[BBox] = []
        for r in regions:
            if isinstance(r, dict):
                b = coerce_bbox(r.get("bounds"))
                if b:
                    bboxes.append(b)
        return union_bbox(bboxes)

    return None


def format_bbox(b: BBox, precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


# -----------------------------------------------------------------------------
# Pipeline settings
# -----------------------------------------------------------------------------
# Every number here is part of the numeric behaviour of the suitability
# pipeline. The threshold ranges were calibrated against GDD computed with
# 30-day months; changing one without the other shifts the mask.

@dataclass(frozen=True)
class Thresholds:
    """Inclusive (low, high) ranges for the threshold suitability mask."""

    gst: Tuple[float, float] = (14.0, 16.0)
    gdd: Tuple[float, float] = (950.0, 1250.0)
    gsp: Tuple[float, float] = (250.0, 600.0)
    slope: Tuple[float, float] = (2.0, 15.0)
    elevation: Tuple[float, float] = (5.0, 250.0)


@dataclass(frozen=True)
class ClimateSettings:
    source: str = "terraclimate"
    growing_months: Tuple[int, int] = (4, 10)
    base_temp: float = 10.0
    days_per_month: int = 30
    # TerraClimate stores tmmx/tmmn in tenths of a degree
    temperature_scale: float = 0.1


@dataclass(frozen=True)
class SamplingSettings:
    vineyard_dataset: str = "vineyards"
    min_vineyards: int = 5
    points_per_vineyard: int = 10
    max_positive_points: int = 200
    min_positive_points: int = 5
    negative_candidates: int = 400
    min_negative_points: int = 5
    min_extracted_rows: int = 10
    vineyard_point_buffer_m: float = 50.0


@dataclass(frozen=True)
class ModelSettings:
    n_trees: int = 50
    variables_per_split: int = 2
    train_fraction: float = 0.7
    min_split_rows: int = 5
    high_suitability_threshold: float = 0.7
    score_scale_m: float = 250.0
    score_tile_rows: int = 256


@dataclass(frozen=True)
class Seeds:
    positive: int = 123
    negative: int = 456
    model: int = 42
    split: int = 0


@dataclass(frozen=True)
class Settings:
    thresholds: Thresholds = field(default_factory=Thresholds)
    climate: ClimateSettings = field(default_factory=ClimateSettings)
    sampling: SamplingSettings = field(default_factory=SamplingSettings)
    model: ModelSettings = field(default_factory=ModelSettings)
    seeds: Seeds = field(default_factory=Seeds)
    elevation_source: str = "dem"
    # Nominal resolution of the analysis grid; also the feature sampling scale.
    analysis_scale_m: float = 100.0


_SECTIONS = {
    "thresholds": Thresholds,
    "climate": ClimateSettings,
    "sampling": SamplingSettings,
    "model": ModelSettings,
    "seeds": Seeds,
}


def _coerce_value(current: Any, value: Any, where: str) -> Any:
    if isinstance(current, tuple):
        if not isinstance(value, (list, tuple)) or len(value) != len(current):
            raise SystemExit(f"{where} must be a list of {len(current)} numbers")
        return tuple(type(c)(v) for c, v in zip(current, value))
    if isinstance(current, bool):
        return bool(value)
    if isinstance(current, (int, float)):
        try:
            return type(current)(value)
        except (TypeError, ValueError) as e:
            raise SystemExit(f"{where} must be numeric, got {value!r}") from e
    return str(value)


def _apply_section(obj: Any, overrides: Any, section: str) -> Any:
    if not isinstance(overrides, dict):
        raise SystemExit(f"Settings section '{section}' must be a mapping")
    known = {f.name for f in fields(obj)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise SystemExit(f"Unknown keys in settings section '{section}': {unknown}")
    changes = {
        k: _coerce_value(getattr(obj, k), v, f"{section}.{k}")
        for k, v in overrides.items()
    }
    return replace(obj, **changes)


def settings_from_dict(data: Dict[str, Any]) -> Settings:
    """Build Settings from a parsed YAML mapping, starting from the defaults."""
    settings = Settings()
    top_level = {f.name for f in fields(Settings)} - set(_SECTIONS)
    unknown = sorted(set(data) - set(_SECTIONS) - top_level)
    if unknown:
        raise SystemExit(f"Unknown settings keys: {unknown}")

    changes: Dict[str, Any] = {}
    for name in _SECTIONS:
        if name in data:
            changes[name] = _apply_section(getattr(settings, name), data[name], name)
    for name in top_level:
        if name in data:
            changes[name] = _coerce_value(getattr(settings, name), data[name], name)
    return replace(settings, **changes)


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load pipeline settings from YAML; no path means the calibrated defaults."""
    if path is None:
        return Settings()
    return settings_from_dict(load_yaml(path))


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_SOURCES_YAML = Path("config/sources.yaml")
DEFAULT_REGIONS_YAML = Path("config/regions_uk.yaml")
DEFAULT_SETTINGS_YAML = Path("config/suitability.yaml")
DEFAULT_REGIONS_GPKG = Path("data/interim/vectors/regions_uk.gpkg")
DEFAULT_BOUNDS_PARQUET = Path("data/interim/tables/regions_uk_bounds.parquet")
