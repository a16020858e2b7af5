#!/usr/bin/env python3

"""
derived_features.py

# *how monthly records become growing-season factors*

##### Goals
- The viticulturally meaningful numbers that aren't directly measured but
  computed from raw inputs.
- Plain array arithmetic; no I/O, no grids beyond what a Raster carries.

##### Specific Examples
- Monthly mean temperature from tenths-of-a-degree max/min
- Growing degree days (base 10 °C, 30-day months)
- Growing season temperature / precipitation (NaN-aware mean / sum over months)
- Slope and aspect from a DEM
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

from vinesite.geo.raster import METRES_PER_DEGREE, Raster


# -----------------------------------------------------------------------------
# Climate
# -----------------------------------------------------------------------------

def monthly_tmean(tmax: np.ndarray, tmin: np.ndarray, scale: float = 0.1) -> np.ndarray:
    """Mean monthly temperature (°C) from raw max/min values stored as `value / scale`."""
    return (np.asarray(tmax, dtype=float) * scale + np.asarray(tmin, dtype=float) * scale) / 2.0


def monthly_gdd(tmean: np.ndarray, base_temp: float = 10.0, days_per_month: int = 30) -> np.ndarray:
    """Growing degree days accumulated in one month.

    Every month counts as `days_per_month` days; the suitability thresholds
    were calibrated against that, so don't swap in calendar lengths.
    NaN stays NaN.
    """
    return np.maximum(np.asarray(tmean, dtype=float) - base_temp, 0.0) * days_per_month


def _stack(layers: Sequence[np.ndarray]) -> np.ndarray:
    if not layers:
        raise ValueError("Need at least one monthly layer")
    return np.stack([np.asarray(a, dtype=float) for a in layers], axis=0)


def nan_mean(layers: Sequence[np.ndarray]) -> np.ndarray:
    """Per-pixel mean over months, skipping missing months; NaN where every month is missing."""
    stack = _stack(layers)
    valid = np.isfinite(stack)
    count = valid.sum(axis=0)
    total = np.where(valid, stack, 0.0).sum(axis=0)
    out = np.full(count.shape, np.nan)
    np.divide(total, count, out=out, where=count > 0)
    return out


def nan_sum(layers: Sequence[np.ndarray]) -> np.ndarray:
    """Per-pixel sum over months, skipping missing months; NaN where every month is missing."""
    stack = _stack(layers)
    valid = np.isfinite(stack)
    total = np.where(valid, stack, 0.0).sum(axis=0)
    return np.where(valid.any(axis=0), total, np.nan)


# -----------------------------------------------------------------------------
# Terrain
# -----------------------------------------------------------------------------

def _gradient(z: np.ndarray, axis: int) -> np.ndarray:
    if z.shape[axis] < 2:
        return np.zeros_like(z)
    return np.gradient(z, axis=axis)


def _cell_size_m(dem: Raster) -> Tuple[np.ndarray, np.ndarray]:
    """(dx, dy) cell sizes in metres, broadcastable against the DEM."""
    t = dem.grid.transform
    if not dem.grid.is_geographic:
        return np.full((dem.grid.height, 1), abs(t.a)), np.full((dem.grid.height, 1), abs(t.e))
    rows = np.arange(dem.grid.height) + 0.5
    lat = np.radians(t.f + rows * t.e)
    dx = abs(t.a) * METRES_PER_DEGREE * np.cos(lat)
    dy = np.full_like(dx, abs(t.e) * METRES_PER_DEGREE)
    return dx[:, None], dy[:, None]


def terrain(dem: Raster) -> Tuple[Raster, Raster]:
    """Slope and aspect (degrees) of a north-up DEM, on the DEM's own grid.

    Aspect is the compass bearing the slope faces (0 = north, clockwise),
    0 on flat cells. Cells next to missing elevation come out NaN.
    """
    z = np.asarray(dem.data, dtype=float)
    dx, dy = _cell_size_m(dem)

    dzdx = _gradient(z, axis=1) / dx
    # rows run southward
    dzdn = -_gradient(z, axis=0) / dy

    slope = np.degrees(np.arctan(np.hypot(dzdx, dzdn)))
    aspect = np.mod(np.degrees(np.arctan2(-dzdx, -dzdn)), 360.0)
    aspect = np.where((dzdx == 0) & (dzdn == 0), 0.0, aspect)
    aspect = np.where(np.isfinite(slope), aspect, np.nan)

    return Raster(slope, dem.grid, "slope"), Raster(aspect, dem.grid, "aspect")
