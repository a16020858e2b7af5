"""vinesite.model.results

Value types passed between pipeline stages and handed back to callers.

A stage that runs short of data returns a StageFailure instead of raising;
the orchestrator turns it into MLFailure. AnalysisResult.ml_results is
exactly one of MLSuccess / MLFailure, so callers branch on the type (or on
the `success` flag both carry) rather than probing optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

import geopandas as gpd
import numpy as np
from sklearn.ensemble import RandomForestClassifier

from vinesite.features.build_features import EnvironmentalFactors, FeatureImage
from vinesite.geo.raster import Raster
from vinesite.geo.region import Region

# Stage names, in pipeline order
BUILD_FACTORS = "build_factors"
BUILD_MASK = "build_mask"
GENERATE_SAMPLES = "generate_samples"
EXTRACT_FEATURES = "extract_features"
TRAIN_EVALUATE = "train_evaluate"
SCORE = "score"

STAGES = (BUILD_FACTORS, BUILD_MASK, GENERATE_SAMPLES, EXTRACT_FEATURES, TRAIN_EVALUATE, SCORE)

# Reasons reported when a stage runs short of data
INSUFFICIENT_VINEYARDS = "Insufficient vineyard data in the selected region for machine learning prediction"
INSUFFICIENT_POSITIVES = "Unable to generate enough positive sample points"
INSUFFICIENT_NEGATIVES = "Unable to generate enough negative sample points"
INSUFFICIENT_EXTRACTED = "Feature extraction failed: not enough sample points"
INSUFFICIENT_SPLIT = "Insufficient training or testing samples"


@dataclass(frozen=True)
class StageFailure:
    reason: str
    stage: str


@dataclass(frozen=True)
class MLSuccess:
    suitability_score: Raster
    high_suitability_areas: Raster
    area_km2: float
    accuracy: float
    accuracy_method: str
    confusion_matrix: np.ndarray
    importance: Dict[str, float]
    feature_image: FeatureImage
    classifier: RandomForestClassifier
    sampled_points: gpd.GeoDataFrame
    positive_count: int
    negative_count: int
    training_count: int
    testing_count: int

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class MLFailure:
    reason: str
    stage: str
    fallback_mask: Raster

    @property
    def success(self) -> bool:
        return False


MLResult = Union[MLSuccess, MLFailure]


@dataclass(frozen=True)
class AnalysisResult:
    region: Region
    year: int
    factors: EnvironmentalFactors
    suitability_mask: Raster
    ml_results: MLResult

    @property
    def area_km2(self) -> Optional[float]:
        """High-suitability area when the classifier ran, else None."""
        if isinstance(self.ml_results, MLSuccess):
            return self.ml_results.area_km2
        return None
