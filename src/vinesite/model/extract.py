"""vinesite.model.extract

Feature table for the classifier: every band of the feature image at every
sample point (nearest pixel), incomplete rows dropped.
"""

from __future__ import annotations

import logging
from typing import Union

import pandas as pd

from vinesite.features.build_features import FeatureImage
from vinesite.model.results import EXTRACT_FEATURES, INSUFFICIENT_EXTRACTED, StageFailure
from vinesite.model.samples import SampleSet

log = logging.getLogger(__name__)

def extract_features(
    feature_image: FeatureImage,
    samples: SampleSet,
    min_rows: int = 10,
) -> Union[pd.DataFrame, StageFailure]:
    """One row per sample point with a value in every band.

    Columns: the feature names, then `class`, `lon`, `lat`. Fewer than
    `min_rows` complete rows is a StageFailure.
    """
    points = samples.points
    xs = points.geometry.x.to_numpy()
    ys = points.geometry.y.to_numpy()

    table = feature_image.sample(xs, ys)
    table["class"] = points["class"].to_numpy()
    table["lon"] = xs
    table["lat"] = ys

    complete = table.dropna(subset=list(feature_image.names)).reset_index(drop=True)
    log.info(f"Extracted {len(complete)} complete rows from {len(table)} points")
    if len(complete) < min_rows:
        return StageFailure(INSUFFICIENT_EXTRACTED, EXTRACT_FEATURES)
    return complete
