"""vinesite.model.samples

Training points for the classifier.

Positives are random points inside existing vineyards; negatives are random
points inside the region that the threshold mask calls unsuitable. Each of
the three count gates (vineyards, positives, negatives) has its own failure
reason, returned as a StageFailure value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely

from vinesite.config import SamplingSettings
from vinesite.geo.points import random_points
from vinesite.geo.raster import Raster, scale_to_degrees
from vinesite.geo.region import Region
from vinesite.model.random_source import RandomSource
from vinesite.model.results import (
    GENERATE_SAMPLES,
    INSUFFICIENT_NEGATIVES,
    INSUFFICIENT_POSITIVES,
    INSUFFICIENT_VINEYARDS,
    StageFailure,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleSet:
    positives: gpd.GeoDataFrame
    negatives: gpd.GeoDataFrame
    vineyard_count: int

    @property
    def points(self) -> gpd.GeoDataFrame:
        """Positives then negatives, one frame, `class` column kept."""
        merged = pd.concat([self.positives, self.negatives], ignore_index=True)
        return gpd.GeoDataFrame(merged, geometry="geometry", crs="EPSG:4326")


def _points_frame(xs: np.ndarray, ys: np.ndarray, label: int) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"class": np.full(len(xs), label, dtype=int)},
        geometry=gpd.points_from_xy(xs, ys),
        crs="EPSG:4326",
    )


def regional_vineyards(vineyards: gpd.GeoDataFrame, region: Region) -> gpd.GeoDataFrame:
    """Vineyard features that touch the region."""
    return vineyards[vineyards.intersects(region.geometry)]


def _vineyard_union(vineyards: gpd.GeoDataFrame, buffer_m: float):
    """Union of vineyard footprints; point features get a small disc so they have area."""
    geoms = np.array(vineyards.geometry.to_numpy(), dtype=object)
    is_point = shapely.get_type_id(geoms) == 0
    if is_point.any():
        geoms[is_point] = shapely.buffer(geoms[is_point], scale_to_degrees(buffer_m))
    return shapely.union_all(geoms)


def generate_samples(
    mask: Raster,
    region: Region,
    vineyards: gpd.GeoDataFrame,
    random: RandomSource = RandomSource(),
    settings: SamplingSettings = SamplingSettings(),
) -> Union[SampleSet, StageFailure]:
    """Draw positive and negative training points for one region.

    Returns a StageFailure (stage generate_samples) when fewer than
    `min_vineyards` vineyards intersect the region, or either class ends
    up with fewer than its minimum number of points.
    """
    regional = regional_vineyards(vineyards, region)
    n_vineyards = len(regional)
    log.info(f"[{region.name}] {n_vineyards} vineyards intersect the region")
    if n_vineyards < settings.min_vineyards:
        return StageFailure(INSUFFICIENT_VINEYARDS, GENERATE_SAMPLES)

    n_positive = min(n_vineyards * settings.points_per_vineyard, settings.max_positive_points)
    footprint = _vineyard_union(regional, settings.vineyard_point_buffer_m)
    xs, ys = random_points(footprint, n_positive, random.generator("positive"))
    positives = _points_frame(xs, ys, 1)
    log.info(f"[{region.name}] positives: {len(positives)} of {n_positive} requested")
    if len(positives) < settings.min_positive_points:
        return StageFailure(INSUFFICIENT_POSITIVES, GENERATE_SAMPLES)

    # sample the whole region, then keep what the mask calls unsuitable
    xs, ys = random_points(region.geometry, settings.negative_candidates, random.generator("negative"))
    keep = mask.sample(xs, ys) == 0
    negatives = _points_frame(xs[keep], ys[keep], 0)
    log.info(f"[{region.name}] negatives: {len(negatives)} of {len(xs)} candidates unsuitable")
    if len(negatives) < settings.min_negative_points:
        return StageFailure(INSUFFICIENT_NEGATIVES, GENERATE_SAMPLES)

    return SampleSet(positives, negatives, n_vineyards)
