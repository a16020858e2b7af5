#!/usr/bin/env python3

from __future__ import annotations

import math

import numpy as np
import pytest
from shapely.geometry import box

from vinesite.geo.area import EARTH_RADIUS_M, compute_area, pixel_area_m2
from vinesite.geo.raster import GridSpec, Raster
from vinesite.geo.region import Region


def _band_area_km2(lat0, lat1, dlon):
    return EARTH_RADIUS_M ** 2 * math.radians(dlon) * (math.sin(math.radians(lat1)) - math.sin(math.radians(lat0))) / 1e6


def test_full_mask_matches_spherical_band():
    region = Region("r", box(0.0, 51.0, 1.0, 51.5))
    grid = GridSpec.from_bounds(region.bounds, 0.01)
    mask = Raster.full(grid, 1.0)
    assert compute_area(mask, region) == pytest.approx(_band_area_km2(51.0, 51.5, 1.0), rel=1e-6)


def test_pixel_area_shrinks_poleward():
    grid = GridSpec.from_bounds((0.0, 50.0, 1.0, 60.0), 1.0)
    areas = pixel_area_m2(grid)[:, 0]
    # row 0 is the northernmost
    assert (np.diff(areas) > 0).all()


def test_projected_grid_uses_cell_size():
    grid = GridSpec.from_bounds((500000.0, 100000.0, 501000.0, 101000.0), 100.0, crs="EPSG:27700")
    mask = Raster.full(grid, 1.0)
    assert compute_area(mask, box(*grid.bounds)) == pytest.approx(1.0)


def test_empty_and_nan_masks_are_zero():
    region = Region("r", box(0.0, 51.0, 1.0, 51.5))
    grid = GridSpec.from_bounds(region.bounds, 0.05)
    assert compute_area(Raster.full(grid, 0.0), region) == 0.0
    assert compute_area(Raster.full(grid, np.nan), region) == 0.0


def test_only_pixels_inside_region_count():
    grid = GridSpec.from_bounds((0.0, 51.0, 1.0, 51.5), 0.01)
    mask = Raster.full(grid, 1.0)
    half = Region("half", box(0.0, 51.0, 0.5, 51.5))
    assert compute_area(mask, half) == pytest.approx(_band_area_km2(51.0, 51.5, 0.5), rel=1e-6)
    assert compute_area(mask, half) >= 0
