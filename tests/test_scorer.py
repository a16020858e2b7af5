#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest

from vinesite.config import ModelSettings
from vinesite.features.build_features import build_feature_image
from vinesite.geo.area import compute_area
from vinesite.geo.raster import scale_to_degrees
from vinesite.model.scorer import predict_probability, score


class WarmthModel:
    """Stand-in classifier: P(suitable) rises with GST (band 0)."""

    classes_ = np.array([0, 1])

    def __init__(self):
        self.calls = 0

    def predict_proba(self, X):
        self.calls += 1
        p = np.clip((X[:, 0] - 12.0) / 4.0, 0.0, 1.0)
        return np.column_stack([1.0 - p, p])


class NegativesOnlyModel:
    classes_ = np.array([0])

    def predict_proba(self, X):
        return np.ones((len(X), 1))


def test_tiling_does_not_change_the_result(factors):
    image = build_feature_image(factors)
    one_tile = predict_probability(WarmthModel(), image, tile_rows=10_000)
    model = WarmthModel()
    tiled = predict_probability(model, image, tile_rows=7)
    assert np.array_equal(one_tile.data, tiled.data, equal_nan=True)
    assert model.calls > 1


def test_probability_is_nan_where_features_are_missing(factors):
    image = build_feature_image(factors)
    prob = predict_probability(WarmthModel(), image)
    assert np.array_equal(np.isnan(prob.data), ~np.isfinite(image.data).all(axis=0))


def test_missing_positive_class_scores_zero(factors):
    prob = predict_probability(NegativesOnlyModel(), build_feature_image(factors))
    assert np.nanmax(prob.data) == 0.0


def test_score_outputs(factors, region):
    settings = ModelSettings(score_scale_m=2500.0)
    scored = score(WarmthModel(), build_feature_image(factors), region, settings)

    grid = scored.probability.grid
    assert grid.crs == "EPSG:4326"
    assert grid.transform.a == pytest.approx(scale_to_degrees(2500.0))
    assert scored.high_suitability.grid == grid

    inside = grid.region_mask(region.geometry)
    assert np.isnan(scored.probability.data[~inside]).all()

    valid = scored.probability.valid
    assert np.array_equal(scored.high_suitability.data[valid] == 1.0, scored.probability.data[valid] > 0.7)
    assert scored.area_km2 == pytest.approx(compute_area(scored.high_suitability, region))
    assert scored.area_km2 > 0


def test_threshold_is_strict(factors, region):
    class Flat:
        classes_ = np.array([0, 1])

        def predict_proba(self, X):
            return np.column_stack([np.full(len(X), 0.3), np.full(len(X), 0.7)])

    scored = score(Flat(), build_feature_image(factors), region, ModelSettings(score_scale_m=2500.0))
    assert scored.area_km2 == 0.0
