"""
Tests for actual-vs-predicted pairing and the downstream scores.
"""

import numpy as np
import pandas as pd
import pytest

from nypd_shootings.evaluation import pair_predictions, score_pairs
from nypd_shootings.models import AlignmentError
from nypd_shootings.schemas import PAIRS_SCHEMA, validate_schema


@pytest.fixture
def rows():
    return pd.DataFrame(
        {"boro": ["QUEENS", "BRONX", "BRONX"], "hour": [3, 23, 0], "count": [4, 9, 1]},
        index=[17, 2, 40],
    )


class TestPairPredictions:
    """Pairs keep evaluation order and values untouched."""

    def test_order_and_values(self, rows):
        pairs = pair_predictions(rows, [4.5, 8.25, 0.1])
        assert pairs["actual"].tolist() == [4, 9, 1]
        assert pairs["predicted"].tolist() == [4.5, 8.25, 0.1]
        validate_schema(pairs, PAIRS_SCHEMA)

    def test_predictions_not_rounded(self, rows):
        pairs = pair_predictions(rows, np.array([1.49, 2.51, 3.5]))
        assert pairs["predicted"].tolist() == [1.49, 2.51, 3.5]

    def test_key_columns_carried(self, rows):
        pairs = pair_predictions(rows, [0.0, 0.0, 0.0], key_columns=["hour", "boro"])
        assert list(pairs.columns) == ["hour", "boro", "actual", "predicted"]
        assert pairs["boro"].tolist() == ["QUEENS", "BRONX", "BRONX"]

    def test_length_mismatch(self, rows):
        with pytest.raises(AlignmentError):
            pair_predictions(rows, [1.0, 2.0])

    def test_empty(self, rows):
        pairs = pair_predictions(rows.iloc[0:0], [])
        assert len(pairs) == 0
        assert list(pairs.columns) == ["actual", "predicted"]


class TestScorePairs:
    """Scores are computed from pairs without changing them."""

    def test_perfect_predictions(self, rows):
        pairs = pair_predictions(rows, rows["count"].astype(float))
        scores = score_pairs(pairs)
        assert scores["n"] == 3
        assert scores["mae"] == pytest.approx(0.0)
        assert scores["rmse"] == pytest.approx(0.0)
        assert scores["r2"] == pytest.approx(1.0)

    def test_known_errors(self, rows):
        pairs = pair_predictions(rows, [5.0, 7.0, 1.0])
        scores = score_pairs(pairs)
        assert scores["mae"] == pytest.approx(1.0)
        assert scores["rmse"] == pytest.approx(np.sqrt(5 / 3))

    def test_pairs_unchanged(self, rows):
        pairs = pair_predictions(rows, [5.0, 7.0, 1.0])
        before = pairs.copy()
        score_pairs(pairs)
        pd.testing.assert_frame_equal(pairs, before)

    def test_empty(self):
        scores = score_pairs(pd.DataFrame({"actual": [], "predicted": []}))
        assert scores == {"n": 0, "mae": None, "rmse": None, "r2": None}
