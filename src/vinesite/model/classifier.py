"""vinesite.model.classifier

Random forest training and evaluation on an extracted feature table.

The table is split with a uniform random column from the `split` stream:
rows below `train_fraction` train, the rest test. Accuracy is computed from
the confusion matrix first; when that is undefined (a class missing from
the test split) it falls back to a direct count, then to 0.0. The method
that produced the value is reported alongside it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import confusion_matrix

from vinesite.config import ModelSettings
from vinesite.features.build_features import FEATURE_NAMES
from vinesite.model.random_source import RandomSource
from vinesite.model.results import INSUFFICIENT_SPLIT, TRAIN_EVALUATE, StageFailure

log = logging.getLogger(__name__)

LABELS = [0, 1]

METHOD_CONFUSION_MATRIX = "confusion_matrix"
METHOD_DIRECT_COUNT = "direct_count"
METHOD_DEFAULT = "default"


@dataclass(frozen=True)
class TrainedModel:
    classifier: RandomForestClassifier
    feature_names: Tuple[str, ...]
    accuracy: float
    accuracy_method: str
    confusion_matrix: np.ndarray
    importance: Dict[str, float]
    training_count: int
    testing_count: int


# -----------------------------------------------------------------------------
# Accuracy
# -----------------------------------------------------------------------------

def matrix_accuracy(cm: np.ndarray) -> float:
    """Support-weighted mean of per-class recall.

    A class with no test rows has undefined recall, which makes the whole
    value NaN. Otherwise this equals overall accuracy.
    """
    cm = np.asarray(cm, dtype=float)
    support = cm.sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        recall = np.diag(cm) / support
        return float((recall * support).sum() / support.sum())


def direct_accuracy(predicted: Sequence, actual: Sequence) -> float:
    """Share of predictions equal to the actual label; NaN with nothing to compare."""
    predicted = np.asarray(predicted)
    actual = np.asarray(actual)
    if predicted.size == 0 or predicted.shape != actual.shape:
        return float("nan")
    return float(np.mean(predicted == actual))


def evaluate_accuracy(cm: np.ndarray, predicted: Sequence, actual: Sequence) -> Tuple[float, str]:
    """Accuracy in [0, 1] and the method that produced it. Never NaN."""
    value = matrix_accuracy(cm)
    if np.isfinite(value):
        return value, METHOD_CONFUSION_MATRIX

    value = direct_accuracy(predicted, actual)
    if np.isfinite(value):
        return value, METHOD_DIRECT_COUNT

    return 0.0, METHOD_DEFAULT


# -----------------------------------------------------------------------------
# Training
# -----------------------------------------------------------------------------

def split_table(table: pd.DataFrame, random: RandomSource, train_fraction: float) -> Tuple[pd.DataFrame, pd.DataFrame]:
    r = random.uniform("split", len(table))
    train = r < train_fraction
    return table[train], table[~train]


def train_and_evaluate(
    table: pd.DataFrame,
    feature_names: Sequence[str] = FEATURE_NAMES,
    random: RandomSource = RandomSource(),
    settings: ModelSettings = ModelSettings(),
) -> Union[TrainedModel, StageFailure]:
    """Fit the random forest on a ~70% split and evaluate it on the rest.

    `table` needs the feature columns and an integer `class` column.
    Returns a StageFailure when either split has fewer than
    `settings.min_split_rows` rows.
    """
    names = list(feature_names)
    training, testing = split_table(table, random, settings.train_fraction)
    log.info(f"Split {len(table)} rows -> {len(training)} training / {len(testing)} testing")
    if len(training) < settings.min_split_rows or len(testing) < settings.min_split_rows:
        return StageFailure(INSUFFICIENT_SPLIT, TRAIN_EVALUATE)

    clf = RandomForestClassifier(
        n_estimators=settings.n_trees,
        max_features=settings.variables_per_split,
        random_state=random.seed("model"),
    )
    clf.fit(training[names].to_numpy(dtype=float), training["class"].to_numpy(dtype=int))

    actual = testing["class"].to_numpy(dtype=int)
    predicted = clf.predict(testing[names].to_numpy(dtype=float))
    cm = confusion_matrix(actual, predicted, labels=LABELS)

    accuracy, method = evaluate_accuracy(cm, predicted, actual)
    log.info(f"Accuracy {accuracy:.3f} ({method})")

    importance = {name: float(v) for name, v in zip(names, clf.feature_importances_)}

    return TrainedModel(
        classifier=clf,
        feature_names=tuple(names),
        accuracy=accuracy,
        accuracy_method=method,
        confusion_matrix=cm,
        importance=importance,
        training_count=len(training),
        testing_count=len(testing),
    )
