#!/usr/bin/env python3


# build_features.py

# *how raw data becomes signals*

##### Goals
# Read gridded records through the injected provider (never from globals)
# Compute growing-season climate factors and terrain
# Align every factor on one analysis grid and clip to the region
# Enforce reproducibility (same inputs → same factors; nothing cached)
# Stack the factors into the 7-band feature image the classifier sees

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from vinesite.config import Settings
from vinesite.errors import NoDataError
from vinesite.features.derived_features import monthly_gdd, monthly_tmean, nan_mean, nan_sum, terrain
from vinesite.features.validate_features import check_factors
from vinesite.geo.raster import GridSpec, Raster, latitude_raster, scale_to_degrees
from vinesite.geo.region import Region

log = logging.getLogger(__name__)

# Band order of the feature image (and column order of extracted tables).
FEATURE_NAMES: List[str] = ["GST", "GDD", "GSP", "slope", "aspect", "elevation", "latitude"]

# Extra degrees read around the region so edge cells resample from real data.
_READ_MARGIN_DEG = 0.05


@dataclass(frozen=True)
class EnvironmentalFactors:
    gst: Raster
    gdd: Raster
    gsp: Raster
    slope: Raster
    aspect: Raster
    elevation: Raster
    latitude: Raster
    year: int

    @property
    def grid(self) -> GridSpec:
        return self.gst.grid

    def layers(self) -> Dict[str, Raster]:
        return {
            "gst": self.gst,
            "gdd": self.gdd,
            "gsp": self.gsp,
            "slope": self.slope,
            "aspect": self.aspect,
            "elevation": self.elevation,
            "latitude": self.latitude,
        }


def analysis_grid(region: Region, scale_m: float) -> GridSpec:
    """EPSG:4326 grid over the region bounds at a nominal scale in metres."""
    return GridSpec.from_bounds(region.bounds, scale_to_degrees(scale_m))


def _padded(bounds, margin: float = _READ_MARGIN_DEG):
    xmin, ymin, xmax, ymax = bounds
    return (xmin - margin, ymin - margin, xmax + margin, ymax + margin)


def _climate_factors(region: Region, year: int, gridded, settings: Settings, grid: GridSpec):
    climate = settings.climate
    start, end = date(year, 1, 1), date(year, 12, 31)
    records = gridded.read(climate.source, start, end, _padded(region.bounds))

    first, last = climate.growing_months
    season = [r for r in records if r.when is not None and first <= r.when.month <= last]
    if not season:
        raise NoDataError(
            f"No {climate.source} records for months {first}-{last} of {year} over {region.name}"
        )
    log.info(f"[{region.name}] {len(season)} growing-season months of {climate.source} for {year}")

    tmeans, gdds, precips = [], [], []
    for record in sorted(season, key=lambda r: r.when):
        tmean = monthly_tmean(
            record.band("tmmx").data, record.band("tmmn").data, climate.temperature_scale
        )
        tmean = Raster(tmean, record.grid).resample(grid).data
        tmeans.append(tmean)
        gdds.append(monthly_gdd(tmean, climate.base_temp, climate.days_per_month))
        precips.append(record.band("pr").resample(grid).data)

    return (
        Raster(nan_mean(tmeans), grid, "gst"),
        Raster(nan_sum(gdds), grid, "gdd"),
        Raster(nan_sum(precips), grid, "gsp"),
    )


def _terrain_factors(region: Region, year: int, gridded, settings: Settings, grid: GridSpec):
    start, end = date(year, 1, 1), date(year, 12, 31)
    records = gridded.read(settings.elevation_source, start, end, _padded(region.bounds))
    if not records:
        raise NoDataError(f"No {settings.elevation_source} record over {region.name}")

    # slope/aspect need the native resolution; resampling first flattens relief
    dem = records[0].band("elevation")
    slope, aspect = terrain(dem)
    return (
        slope.resample(grid),
        aspect.resample(grid),
        dem.resample(grid).renamed("elevation"),
    )


def compute_factors(region: Region, year: int, gridded, settings: Settings = Settings()) -> EnvironmentalFactors:
    """Build the seven environmental factor rasters for `region` in `year`.

    Every factor lands on the same analysis grid (region bounds at
    settings.analysis_scale_m) and is NaN outside the region.

    Raises NoDataError when the climate source has no growing-season months
    for the year or the elevation source has nothing for the region.
    """
    grid = analysis_grid(region, settings.analysis_scale_m)

    gst, gdd, gsp = _climate_factors(region, year, gridded, settings, grid)
    slope, aspect, elevation = _terrain_factors(region, year, gridded, settings, grid)
    latitude = latitude_raster(grid)

    geometry = region.geometry
    factors = EnvironmentalFactors(
        gst=gst.clip(geometry),
        gdd=gdd.clip(geometry),
        gsp=gsp.clip(geometry),
        slope=slope.renamed("slope").clip(geometry),
        aspect=aspect.renamed("aspect").clip(geometry),
        elevation=elevation.clip(geometry),
        latitude=latitude.clip(geometry),
        year=year,
    )

    for issue in check_factors(factors):
        log.warning(f"[{region.name} {year}] {issue}")

    return factors


# -----------------------------------------------------------------------------
# Feature image
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class FeatureImage:
    """Bands stacked as (band, row, col) on one grid, in `names` order."""

    names: Sequence[str]
    grid: GridSpec
    data: np.ndarray

    def __post_init__(self):
        if self.data.shape != (len(self.names),) + self.grid.shape:
            raise ValueError(f"Feature stack shape {self.data.shape} does not match {len(self.names)} bands on {self.grid.shape}")

    def band(self, name: str) -> Raster:
        return Raster(self.data[list(self.names).index(name)], self.grid, name)

    def sample(self, xs, ys) -> pd.DataFrame:
        """Nearest-pixel values of every band at the given points (NaN off-grid or missing)."""
        rows, cols, inside = self.grid.index(xs, ys)
        values = np.full((len(rows), len(self.names)), np.nan)
        values[inside] = self.data[:, rows[inside], cols[inside]].T
        return pd.DataFrame(values, columns=list(self.names))


def build_feature_image(factors: EnvironmentalFactors) -> FeatureImage:
    layers = [
        factors.gst,
        factors.gdd,
        factors.gsp,
        factors.slope,
        factors.aspect,
        factors.elevation,
        factors.latitude,
    ]
    data = np.stack([layer.data for layer in layers], axis=0)
    return FeatureImage(tuple(FEATURE_NAMES), factors.grid, data)
