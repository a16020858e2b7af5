"""vinesite.model.scorer

Probability surface from a trained classifier.

Pixels are scored in row tiles so memory stays bounded on large regions;
the surface is then resampled to the output scale and clipped to the region.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from vinesite.config import ModelSettings
from vinesite.features.build_features import FeatureImage
from vinesite.geo.area import compute_area
from vinesite.geo.raster import GridSpec, Raster, scale_to_degrees
from vinesite.geo.region import Region

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scored:
    probability: Raster
    high_suitability: Raster
    area_km2: float


def _positive_column(classifier) -> int:
    classes = list(getattr(classifier, "classes_", []))
    return classes.index(1) if 1 in classes else -1


def predict_probability(classifier, feature_image: FeatureImage, tile_rows: int = 256) -> Raster:
    """P(class 1) for every pixel with a complete feature vector; NaN elsewhere."""
    n_bands, height, width = feature_image.data.shape
    out = np.full((height, width), np.nan)
    column = _positive_column(classifier)

    for r0 in range(0, height, tile_rows):
        block = feature_image.data[:, r0:r0 + tile_rows, :]
        pixels = block.reshape(n_bands, -1).T
        ok = np.isfinite(pixels).all(axis=1)
        if not ok.any():
            continue
        if column < 0:
            # a forest trained on negatives only never predicts suitable
            probs = np.zeros(int(ok.sum()))
        else:
            probs = classifier.predict_proba(pixels[ok])[:, column]
        tile = np.full(pixels.shape[0], np.nan)
        tile[ok] = probs
        out[r0:r0 + block.shape[1], :] = tile.reshape(block.shape[1], width)

    return Raster(out, feature_image.grid, "suitability_score")


def score(
    classifier,
    feature_image: FeatureImage,
    region: Region,
    settings: ModelSettings = ModelSettings(),
) -> Scored:
    """Probability surface, high-suitability mask (p > threshold) and its area in km²."""
    probability = predict_probability(classifier, feature_image, settings.score_tile_rows)

    grid = GridSpec.from_bounds(region.bounds, scale_to_degrees(settings.score_scale_m))
    probability = probability.resample(grid).clip(region.geometry)

    high = np.where(
        probability.valid,
        (probability.data > settings.high_suitability_threshold).astype(float),
        np.nan,
    )
    high = Raster(high, grid, "high_suitability_areas")
    area = compute_area(high, region)
    log.info(f"[{region.name}] high suitability area {area:.2f} km2")

    return Scored(probability, high, area)
