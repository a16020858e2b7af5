"""vinesite.geo.area

Pixel-area integration: how much ground a mask covers inside a region.

Geographic grids use the spherical-earth cell area
    R² · Δλ · |sin φ_top − sin φ_bottom|
so cells shrink toward the poles; projected grids use |det(transform)|.
"""

from __future__ import annotations

import numpy as np

from vinesite.geo.raster import GridSpec, Raster

# Mean earth radius (IUGG), metres.
EARTH_RADIUS_M = 6_371_008.8


def pixel_area_m2(grid: GridSpec) -> np.ndarray:
    """Area of every cell of `grid` in square metres."""
    t = grid.transform
    if not grid.is_geographic:
        return np.full(grid.shape, abs(t.a * t.e - t.b * t.d), dtype=float)

    rows = np.arange(grid.height)
    lat_top = np.radians(t.f + rows * t.e)
    lat_bottom = np.radians(t.f + (rows + 1) * t.e)
    dlon = np.radians(abs(t.a))
    row_area = EARTH_RADIUS_M ** 2 * dlon * np.abs(np.sin(lat_top) - np.sin(lat_bottom))
    return np.repeat(row_area[:, None], grid.width, axis=1)


def compute_area(mask: Raster, region) -> float:
    """Area (km²) of the mask's true pixels that lie inside `region`.

    `region` is anything with a `.geometry` (a Region) or a bare shapely
    geometry. NaN pixels count as false, so the result is >= 0 and exactly
    0 for an all-false mask.
    """
    geometry = getattr(region, "geometry", region)
    inside = mask.grid.region_mask(geometry)
    selected = mask.as_bool() & inside
    if not selected.any():
        return 0.0
    area_m2 = float(pixel_area_m2(mask.grid)[selected].sum())
    return area_m2 / 1e6
