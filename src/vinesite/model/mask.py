"""vinesite.model.mask

Threshold suitability mask: a pixel is suitable when every factor falls in
its inclusive range. Pure; no I/O, no randomness.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from vinesite.config import Thresholds
from vinesite.features.build_features import EnvironmentalFactors
from vinesite.geo.raster import Raster


def _within(raster: Raster, bounds: Tuple[float, float]) -> np.ndarray:
    lo, hi = bounds
    return (raster.data >= lo) & (raster.data <= hi)


def compute_suitability_mask(factors: EnvironmentalFactors, thresholds: Thresholds = Thresholds()) -> Raster:
    """1 where all five range tests pass, 0 where any fails, NaN where any input is missing."""
    tests = [
        (factors.gst, thresholds.gst),
        (factors.gdd, thresholds.gdd),
        (factors.gsp, thresholds.gsp),
        (factors.slope, thresholds.slope),
        (factors.elevation, thresholds.elevation),
    ]

    suitable = np.ones(factors.grid.shape, dtype=bool)
    valid = np.ones(factors.grid.shape, dtype=bool)
    for raster, bounds in tests:
        suitable &= _within(raster, bounds)
        valid &= raster.valid

    data = np.where(valid, suitable.astype(float), np.nan)
    return Raster(data, factors.grid, "suitability_mask")
