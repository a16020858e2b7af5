#!/usr/bin/env python3

from __future__ import annotations

import threading

import numpy as np
import pytest
from shapely.geometry import box

from conftest import make_session
from vinesite.errors import AnalysisCancelled, NoDataError
from vinesite.features.build_features import FEATURE_NAMES
from vinesite.geo.area import pixel_area_m2
from vinesite.geo.region import Region
from vinesite.ingest.providers import InMemoryGriddedProvider
from vinesite.model.pipeline import AnalysisSession, analyze_regions, analyze_suitability
from vinesite.model.results import (
    EXTRACT_FEATURES,
    GENERATE_SAMPLES,
    INSUFFICIENT_VINEYARDS,
    MLFailure,
    MLSuccess,
)


@pytest.fixture(scope="module")
def success():
    return analyze_suitability(make_session(), "Testshire", 2023)


def test_full_analysis_succeeds(success):
    ml = success.ml_results
    assert isinstance(ml, MLSuccess)
    assert ml.success
    assert success.region.name == "Testshire"
    assert success.year == 2023

    assert ml.positive_count == 80
    assert ml.negative_count >= 5
    assert len(ml.sampled_points) == ml.positive_count + ml.negative_count
    assert ml.training_count >= 5 and ml.testing_count >= 5

    assert 0.0 <= ml.accuracy <= 1.0
    assert ml.accuracy_method in ("confusion_matrix", "direct_count", "default")
    assert list(ml.importance) == FEATURE_NAMES
    assert sum(ml.importance.values()) == pytest.approx(1.0)

    assert ml.area_km2 > 0
    assert success.area_km2 == ml.area_km2


def test_area_matches_pixel_integration(success):
    ml = success.ml_results
    high = ml.high_suitability_areas
    inside = high.grid.region_mask(success.region.geometry)
    reference = pixel_area_m2(high.grid)[(high.data == 1.0) & inside].sum() / 1e6
    assert ml.area_km2 == pytest.approx(reference)
    # and it can't exceed the region
    assert ml.area_km2 <= pixel_area_m2(high.grid)[inside].sum() / 1e6


def test_high_suitability_follows_probability(success):
    ml = success.ml_results
    p = ml.suitability_score.data
    valid = np.isfinite(p)
    assert np.array_equal(ml.high_suitability_areas.data[valid] == 1.0, p[valid] > 0.7)
    assert np.isnan(ml.high_suitability_areas.data[~valid]).all()


def test_analysis_is_deterministic(success):
    again = analyze_suitability(make_session(), "Testshire", 2023)
    a, b = success.ml_results, again.ml_results
    assert a.accuracy == b.accuracy
    assert a.area_km2 == b.area_km2
    assert np.array_equal(a.confusion_matrix, b.confusion_matrix)
    assert np.array_equal(a.suitability_score.data, b.suitability_score.data, equal_nan=True)
    assert np.array_equal(a.sampled_points.geometry.x, b.sampled_points.geometry.x)
    assert np.array_equal(success.suitability_mask.data, again.suitability_mask.data, equal_nan=True)


def test_too_few_vineyards_falls_back_to_mask():
    result = analyze_suitability(make_session(n_vineyards=3), "Testshire", 2023)
    ml = result.ml_results
    assert isinstance(ml, MLFailure)
    assert not ml.success
    assert ml.reason == INSUFFICIENT_VINEYARDS
    assert ml.stage == GENERATE_SAMPLES
    assert ml.fallback_mask is result.suitability_mask
    assert result.area_km2 is None


def test_missing_climate_raises():
    gridded = InMemoryGriddedProvider({"terraclimate": [], "dem": []})
    with pytest.raises(NoDataError):
        analyze_suitability(make_session(gridded=gridded), "Testshire", 2023)


def test_unknown_region_propagates():
    from vinesite.errors import ProviderError

    with pytest.raises(ProviderError):
        analyze_suitability(make_session(), "Nowhere", 2023)


def test_cancelled_before_start():
    session = make_session()
    session.token.cancel()
    with pytest.raises(AnalysisCancelled) as exc:
        analyze_suitability(session, "Testshire", 2023)
    assert exc.value.stage == "build_factors"


def test_cancelled_between_stages():
    base = make_session()

    class CancellingVineyards:
        def __init__(self, inner, token):
            self.inner = inner
            self.token = token

        def vineyards(self, dataset_id):
            self.token.cancel()
            return self.inner.vineyards(dataset_id)

    from dataclasses import replace

    providers = replace(base.providers, vineyards=CancellingVineyards(base.providers.vineyards, base.token))
    session = replace(base, providers=providers)
    with pytest.raises(AnalysisCancelled) as exc:
        analyze_suitability(session, "Testshire", 2023)
    assert exc.value.stage == EXTRACT_FEATURES


def test_analyze_regions_runs_concurrently():
    regions = {
        "Testshire": Region("Testshire", box(0.0, 51.0, 1.0, 51.5)),
        "Westshire": Region("Westshire", box(0.0, 51.0, 0.4, 51.5)),
    }
    session = make_session(regions=regions)
    results = analyze_regions(session, ["Testshire", "Westshire"], 2023, max_workers=2)

    assert set(results) == {"Testshire", "Westshire"}
    assert isinstance(results["Testshire"].ml_results, MLSuccess)
    # no vineyards in the western strip
    assert results["Westshire"].ml_results.reason == INSUFFICIENT_VINEYARDS

    # same answer as running alone
    alone = analyze_suitability(make_session(regions=regions), "Testshire", 2023)
    assert results["Testshire"].ml_results.accuracy == alone.ml_results.accuracy


def test_session_defaults_follow_settings():
    session = make_session()
    assert isinstance(session, AnalysisSession)
    assert session.random.seeds == session.settings.seeds
    assert isinstance(session.token._event, threading.Event)
