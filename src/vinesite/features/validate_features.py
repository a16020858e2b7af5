#!/usr/bin/env python3

"""
validate_features.py

##### Goal
- QA on freshly built environmental factors
- Check:
	- are values within plausible ranges?
	- how much of the region is missing?
	- constant layers (a DEM with no relief, a climate file of fill values)

Issues are reported, never fixed: compute_factors logs them as warnings and
carries on, since an odd-looking layer still yields a valid (if empty) mask.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

import numpy as np

# Physically plausible ranges for a UK growing season; wider than any real value.
PLAUSIBLE_RANGES: Dict[str, Tuple[float, float]] = {
    "gst": (-20.0, 40.0),
    "gdd": (0.0, 6000.0),
    "gsp": (0.0, 5000.0),
    "slope": (0.0, 90.0),
    "aspect": (0.0, 360.0),
    "elevation": (-100.0, 1500.0),
    "latitude": (-90.0, 90.0),
}

MAX_MISSING_FRACTION = 0.5


def check_factors(factors) -> List[str]:
    """Return human-readable QA issues for an EnvironmentalFactors value."""
    issues: List[str] = []
    # latitude is defined for every in-region cell, so it marks the region
    inside = factors.latitude.valid
    n_inside = int(inside.sum())
    if n_inside == 0:
        return ["region covers no cells of the analysis grid"]

    for name, raster in factors.layers().items():
        values = raster.data[inside]
        finite = values[np.isfinite(values)]

        missing = 1.0 - finite.size / n_inside
        if finite.size == 0:
            issues.append(f"{name}: no data inside the region")
            continue
        if missing > MAX_MISSING_FRACTION:
            issues.append(f"{name}: {missing:.0%} of the region is missing")

        lo, hi = PLAUSIBLE_RANGES.get(name, (-np.inf, np.inf))
        n_bad = int(((finite < lo) | (finite > hi)).sum())
        if n_bad:
            issues.append(
                f"{name}: {n_bad} cells outside plausible range [{lo}, {hi}] "
                f"(min={finite.min():.2f}, max={finite.max():.2f})"
            )

        if name not in ("aspect", "latitude") and finite.size > 1 and np.ptp(finite) == 0:
            issues.append(f"{name}: constant value {finite[0]:.2f} across the region")

    return issues
