#!/usr/bin/env python3

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
import pytest

from vinesite.features.build_features import FEATURE_NAMES
from vinesite.model.classifier import (
    METHOD_CONFUSION_MATRIX,
    METHOD_DEFAULT,
    METHOD_DIRECT_COUNT,
    direct_accuracy,
    evaluate_accuracy,
    matrix_accuracy,
    train_and_evaluate,
)
from vinesite.model.random_source import RandomSource
from vinesite.model.results import INSUFFICIENT_SPLIT, TRAIN_EVALUATE, StageFailure


@dataclass(frozen=True)
class FixedSplit(RandomSource):
    """RandomSource whose split draws are given up front."""

    draws: Tuple[float, ...] = ()

    def uniform(self, stream, size):
        if stream == "split":
            return np.asarray(self.draws[:size], dtype=float)
        return super().uniform(stream, size)


def _table(labels) -> pd.DataFrame:
    rng = np.random.default_rng(7)
    n = len(labels)
    labels = np.asarray(labels, dtype=int)
    data = {name: rng.normal(size=n) for name in FEATURE_NAMES}
    # class 1 is warm
    data["GST"] = np.where(labels == 1, 15.0, 11.0) + rng.normal(scale=0.2, size=n)
    df = pd.DataFrame(data)
    df["class"] = labels
    return df


# -----------------------------------------------------------------------------
# Accuracy
# -----------------------------------------------------------------------------

def test_matrix_accuracy_matches_overall_accuracy():
    cm = np.array([[8, 2], [1, 9]])
    assert matrix_accuracy(cm) == pytest.approx(17 / 20)


def test_matrix_accuracy_is_nan_when_a_class_is_absent():
    assert np.isnan(matrix_accuracy(np.array([[0, 0], [2, 8]])))
    assert np.isnan(matrix_accuracy(np.zeros((2, 2))))


def test_direct_accuracy():
    assert direct_accuracy([1, 1, 0, 1], [1, 1, 1, 1]) == pytest.approx(0.75)
    assert np.isnan(direct_accuracy([], []))


def test_evaluate_accuracy_fallbacks():
    assert evaluate_accuracy(np.array([[3, 1], [0, 4]]), [0, 0, 0, 1, 1, 1, 1, 1], [0, 0, 0, 0, 1, 1, 1, 1]) == (
        pytest.approx(7 / 8),
        METHOD_CONFUSION_MATRIX,
    )
    assert evaluate_accuracy(np.array([[0, 0], [2, 8]]), [0] * 2 + [1] * 8, [1] * 10) == (
        pytest.approx(0.8),
        METHOD_DIRECT_COUNT,
    )
    assert evaluate_accuracy(np.zeros((2, 2)), [], []) == (0.0, METHOD_DEFAULT)


# -----------------------------------------------------------------------------
# Training
# -----------------------------------------------------------------------------

def test_train_and_evaluate_on_separable_table():
    table = _table([0, 1] * 30)
    model = train_and_evaluate(table)

    assert not isinstance(model, StageFailure)
    assert model.accuracy_method == METHOD_CONFUSION_MATRIX
    assert 0.0 <= model.accuracy <= 1.0
    assert model.accuracy > 0.9
    assert model.training_count + model.testing_count == 60
    assert model.confusion_matrix.shape == (2, 2)
    assert model.confusion_matrix.sum() == model.testing_count
    assert list(model.importance) == FEATURE_NAMES
    assert sum(model.importance.values()) == pytest.approx(1.0)
    assert max(model.importance, key=model.importance.get) == "GST"

    clf = model.classifier
    assert clf.n_estimators == 50
    assert clf.max_features == 2
    assert clf.random_state == 42


def test_single_class_test_split_uses_direct_count():
    # 20 mixed training rows, 10 testing rows that are all class 1
    labels = [0, 1] * 10 + [1] * 10
    draws = tuple([0.1] * 20 + [0.9] * 10)
    model = train_and_evaluate(_table(labels), random=FixedSplit(draws=draws))

    assert model.testing_count == 10
    assert model.confusion_matrix[0].sum() == 0
    assert model.accuracy_method == METHOD_DIRECT_COUNT
    assert np.isfinite(model.accuracy)
    assert 0.0 <= model.accuracy <= 1.0


def test_small_testing_split_fails():
    draws = tuple([0.1] * 27 + [0.9] * 3)
    out = train_and_evaluate(_table([0, 1] * 15), random=FixedSplit(draws=draws))
    assert out == StageFailure(INSUFFICIENT_SPLIT, TRAIN_EVALUATE)


def test_split_is_deterministic():
    table = _table([0, 1] * 30)
    a = train_and_evaluate(table)
    b = train_and_evaluate(table)
    assert (a.training_count, a.testing_count) == (b.training_count, b.testing_count)
    assert a.accuracy == b.accuracy
    assert np.array_equal(a.confusion_matrix, b.confusion_matrix)
