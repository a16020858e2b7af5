#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box

from conftest import climate_records, dem_record, make_session
from vinesite.errors import NoDataError
from vinesite.geo.area import compute_area
from vinesite.geo.region import Region
from vinesite.ingest.providers import InMemoryGriddedProvider
from vinesite.model.mask import compute_suitability_mask
from vinesite.features.build_features import compute_factors
from vinesite.model.timeseries import persistent_suitability, screen_regions, suitable_area_series


def _session_with_warm_2022():
    # 2022 is half a degree warmer, which shifts the suitable band westward
    records = climate_records(2022, warming=0.5) + climate_records(2023)
    return make_session(gridded=InMemoryGriddedProvider({"terraclimate": records, "dem": [dem_record()]}))


def test_area_series_one_row_per_year():
    session = _session_with_warm_2022()
    df = suitable_area_series(session, "Testshire", [2022, 2023])

    assert list(df.columns) == ["year", "area_km2"]
    assert df["year"].tolist() == [2022, 2023]
    assert (df["area_km2"] > 0).all()

    region = session.resolve("Testshire")
    factors = compute_factors(region, 2023, session.providers.gridded, session.settings)
    expected = compute_area(compute_suitability_mask(factors), region)
    assert df.loc[df["year"] == 2023, "area_km2"].iloc[0] == pytest.approx(expected)


def test_area_series_missing_year_raises():
    with pytest.raises(NoDataError):
        suitable_area_series(make_session(), "Testshire", [2022, 2023])


def test_persistent_is_subset_of_every_year():
    session = _session_with_warm_2022()
    region = session.resolve("Testshire")
    persistent = persistent_suitability(session, region, 2022, 2023)

    masks = []
    for year in (2022, 2023):
        factors = compute_factors(region, year, session.providers.gridded, session.settings)
        masks.append(compute_suitability_mask(factors))

    both = (masks[0].data == 1.0) & (masks[1].data == 1.0)
    assert np.array_equal(persistent.data == 1.0, both)
    assert np.isnan(persistent.data[np.isnan(masks[0].data) & np.isnan(masks[1].data)]).all()
    assert compute_area(persistent, region) < min(compute_area(m, region) for m in masks)


def test_persistent_single_year_equals_mask():
    session = make_session()
    region = session.resolve("Testshire")
    persistent = persistent_suitability(session, region, 2023, 2023)
    factors = compute_factors(region, 2023, session.providers.gridded, session.settings)
    assert np.array_equal(persistent.data, compute_suitability_mask(factors).data, equal_nan=True)


def test_persistent_rejects_reversed_range():
    with pytest.raises(ValueError):
        persistent_suitability(make_session(), "Testshire", 2023, 2022)


def test_screen_regions():
    regions = {
        "West": Region("West", box(0.0, 51.0, 0.3, 51.5)),
        "East": Region("East", box(0.6, 51.0, 0.95, 51.5)),
    }
    session = make_session(regions=regions)
    screening = screen_regions(session, ["West", "East"], 2023)

    assert screening.suitable == ["East"]
    assert screening.unsuitable == ["West"]
    assert screening.unsuitable_geometry.equals(regions["West"].geometry)


def test_screen_regions_all_suitable_has_no_geometry():
    regions = {"East": Region("East", box(0.6, 51.0, 0.95, 51.5))}
    screening = screen_regions(make_session(regions=regions), ["East"], 2023)
    assert screening.unsuitable == []
    assert screening.unsuitable_geometry is None
