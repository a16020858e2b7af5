#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box

from vinesite.geo.raster import (
    GridSpec,
    Raster,
    latitude_raster,
    read_raster,
    scale_to_degrees,
    write_raster,
)


def test_grid_from_bounds_covers_bounds():
    grid = GridSpec.from_bounds((0.0, 51.0, 1.0, 51.5), 0.1)
    assert grid.shape == (5, 10)
    assert grid.bounds == pytest.approx((0.0, 51.0, 1.0, 51.5))
    assert grid.is_geographic


def test_grid_rounds_partial_cells_up():
    grid = GridSpec.from_bounds((0.0, 0.0, 1.0, 1.0), 0.3)
    assert grid.shape == (4, 4)


def test_scale_to_degrees():
    assert scale_to_degrees(111_320.0) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        scale_to_degrees(0)


def test_index_and_sample():
    grid = GridSpec.from_bounds((0.0, 0.0, 2.0, 2.0), 1.0)
    data = np.array([[1.0, 2.0], [3.0, 4.0]])
    r = Raster(data, grid)
    # row 0 is the northern row
    out = r.sample([0.5, 1.5, 0.5, 5.0], [1.5, 1.5, 0.5, 0.5])
    assert out[:3].tolist() == [1.0, 2.0, 3.0]
    assert np.isnan(out[3])


def test_raster_rejects_wrong_shape():
    grid = GridSpec.from_bounds((0.0, 0.0, 2.0, 2.0), 1.0)
    with pytest.raises(ValueError):
        Raster(np.zeros((3, 3)), grid)


def test_clip_uses_cell_centres():
    grid = GridSpec.from_bounds((0.0, 0.0, 4.0, 4.0), 1.0)
    r = Raster.full(grid, 7.0)
    clipped = r.clip(box(0.0, 0.0, 2.0, 4.0))
    assert clipped.valid[:, :2].all()
    assert not clipped.valid[:, 2:].any()


def test_resample_nearest_to_finer_grid():
    coarse = GridSpec.from_bounds((0.0, 0.0, 2.0, 2.0), 1.0)
    fine = GridSpec.from_bounds((0.0, 0.0, 2.0, 2.0), 0.5)
    r = Raster(np.array([[1.0, 2.0], [3.0, 4.0]]), coarse)
    out = r.resample(fine)
    assert out.grid == fine
    assert out.data[0, 0] == 1.0 and out.data[0, 3] == 2.0
    assert out.data[3, 0] == 3.0 and out.data[3, 3] == 4.0
    assert r.resample(coarse) is r


def test_resample_outside_source_is_nan():
    src = GridSpec.from_bounds((0.0, 0.0, 1.0, 1.0), 0.5)
    dst = GridSpec.from_bounds((0.0, 0.0, 2.0, 1.0), 0.5)
    out = Raster.full(src, 1.0).resample(dst)
    assert (out.data[:, :2] == 1.0).all()
    assert np.isnan(out.data[:, 2:]).all()


def test_as_bool_treats_nan_as_false():
    grid = GridSpec.from_bounds((0.0, 0.0, 3.0, 1.0), 1.0)
    r = Raster(np.array([[1.0, 0.0, np.nan]]), grid)
    assert r.as_bool().tolist() == [[True, False, False]]


def test_latitude_raster_is_cell_centre():
    grid = GridSpec.from_bounds((0.0, 50.0, 1.0, 52.0), 1.0)
    lat = latitude_raster(grid)
    assert lat.data[:, 0].tolist() == [51.5, 50.5]


def test_geotiff_roundtrip_with_window(tmp_path):
    grid = GridSpec.from_bounds((0.0, 50.0, 4.0, 52.0), 0.5)
    data = np.arange(grid.height * grid.width, dtype=float).reshape(grid.shape)
    data[0, 0] = np.nan
    path = write_raster(tmp_path / "r.tif", Raster(data, grid, "demo"))

    full = read_raster(path)
    assert full.grid.shape == grid.shape
    assert np.isnan(full.data[0, 0])
    assert full.data[1, 1] == data[1, 1]

    window = read_raster(path, bounds=(1.0, 50.0, 2.0, 51.0))
    assert window.grid.shape == (2, 2)
    assert window.data.tolist() == data[2:4, 2:4].tolist()


def test_uint8_mask_writes_nan_as_nodata(tmp_path):
    grid = GridSpec.from_bounds((0.0, 0.0, 3.0, 1.0), 1.0)
    path = write_raster(tmp_path / "m.tif", Raster(np.array([[1.0, 0.0, np.nan]]), grid), dtype="uint8")
    back = read_raster(path)
    assert back.data[0, :2].tolist() == [1.0, 0.0]
    assert np.isnan(back.data[0, 2])
