#!/usr/bin/env python3

from __future__ import annotations

import pytest

from vinesite.config import (
    Settings,
    aoi_from_regions_yaml,
    coerce_bbox,
    load_settings,
    load_yaml,
    settings_from_dict,
    union_bbox,
)


def test_coerce_bbox():
    assert coerce_bbox([0, 1, 2, 3]) == (0.0, 1.0, 2.0, 3.0)
    assert coerce_bbox([0, 1, 2]) is None
    assert coerce_bbox(["a", 1, 2, 3]) is None
    assert coerce_bbox(None) is None


def test_aoi_prefers_top_level_bounds():
    assert aoi_from_regions_yaml({"bounds": [-8.65, 49.86, 1.77, 60.86]}) == (-8.65, 49.86, 1.77, 60.86)


def test_aoi_unions_region_bounds():
    data = {"regions": [{"bounds": [0, 50, 1, 51]}, {"bounds": [-1, 51, 0.5, 52]}, {"name": "x"}]}
    assert aoi_from_regions_yaml(data) == (-1.0, 50.0, 1.0, 52.0)
    assert union_bbox([]) is None


def test_load_yaml_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        load_yaml(tmp_path / "nope.yaml")


def test_load_yaml_rejects_non_mapping(tmp_path):
    p = tmp_path / "list.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        load_yaml(p)


def test_default_settings():
    s = load_settings()
    assert s == Settings()
    assert s.thresholds.gdd == (950.0, 1250.0)
    assert s.climate.growing_months == (4, 10)
    assert (s.seeds.positive, s.seeds.negative, s.seeds.model, s.seeds.split) == (123, 456, 42, 0)
    assert s.model.n_trees == 50
    assert s.model.high_suitability_threshold == 0.7


def test_settings_overrides_are_typed():
    s = settings_from_dict({
        "thresholds": {"gst": [13, 17]},
        "model": {"score_scale_m": 500},
        "analysis_scale_m": 250,
    })
    assert s.thresholds.gst == (13.0, 17.0)
    assert s.thresholds.gdd == Settings().thresholds.gdd
    assert s.model.score_scale_m == 500.0
    assert isinstance(s.model.score_scale_m, float)
    assert s.analysis_scale_m == 250.0


@pytest.mark.parametrize("data", [
    {"bogus": 1},
    {"thresholds": {"gst": [1, 2], "ph": [5, 7]}},
    {"thresholds": {"gst": [1, 2, 3]}},
    {"model": "fast"},
])
def test_settings_reject_bad_input(data):
    with pytest.raises(SystemExit):
        settings_from_dict(data)


def test_repo_settings_file_matches_defaults():
    from pathlib import Path

    path = Path(__file__).resolve().parents[1] / "config" / "suitability.yaml"
    assert load_settings(path) == Settings()
