#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import shapely
from shapely.geometry import MultiPolygon, Point, box

from vinesite.geo.points import random_points


def test_points_fall_inside_geometry():
    geom = MultiPolygon([box(0, 0, 1, 1), box(5, 5, 5.1, 5.1)])
    xs, ys = random_points(geom, 200, np.random.default_rng(1))
    assert len(xs) == 200
    assert shapely.contains_xy(geom, xs, ys).all()


def test_points_are_reproducible_per_seed():
    geom = Point(0, 0).buffer(1.0)
    a = random_points(geom, 50, np.random.default_rng(123))
    b = random_points(geom, 50, np.random.default_rng(123))
    c = random_points(geom, 50, np.random.default_rng(456))
    assert np.array_equal(a[0], b[0]) and np.array_equal(a[1], b[1])
    assert not np.array_equal(a[0], c[0])


def test_parts_share_points_by_area():
    big, small = box(0, 0, 9, 1), box(20, 0, 21, 1)
    xs, _ = random_points(MultiPolygon([big, small]), 1000, np.random.default_rng(0))
    share_big = (xs < 10).mean()
    assert 0.8 < share_big < 0.98


def test_degenerate_inputs_give_no_points():
    rng = np.random.default_rng(0)
    assert len(random_points(box(0, 0, 1, 1), 0, rng)[0]) == 0
    assert len(random_points(Point(0, 0), 10, rng)[0]) == 0
    assert len(random_points(shapely.Polygon(), 10, rng)[0]) == 0
