"""
Tests for the count models.

Validates:
- Both strategies share one fit/predict contract and output shape
- Predictions are unrounded floats aligned with evaluation rows
- Empty or single-borough training data raises InsufficientDataError
- Boroughs outside the fitted levels are rejected at predict time
- Random forest is reproducible for a fixed seed
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.exceptions import NotFittedError

from nypd_shootings.models import (
    STRATEGIES,
    AlignmentError,
    InsufficientDataError,
    LinearCountModel,
    RandomForestCountModel,
    borough_levels,
    build_model,
    check_alignment,
    fit_model,
    predict_counts,
)
from nypd_shootings.schemas import SchemaError
from nypd_shootings.split import split_dataset


BOROS = ["BRONX", "BROOKLYN", "MANHATTAN", "QUEENS", "STATEN ISLAND"]
OFFSETS = {"BRONX": 20, "BROOKLYN": 30, "MANHATTAN": 15, "QUEENS": 10, "STATEN ISLAND": 2}

# Small forests keep the suite fast
FAST_FOREST = {"n_estimators": 25, "random_state": 0}


@pytest.fixture
def table():
    """Exactly additive counts: offset[boro] + hour."""
    rows = [{"boro": b, "hour": h, "count": OFFSETS[b] + h} for b in BOROS for h in range(24)]
    return pd.DataFrame(rows)


@pytest.fixture
def split(table):
    return split_dataset(table, 0.8, seed=12345)


def _params(strategy):
    return FAST_FOREST if strategy == "random_forest" else {}


# =============================================================================
# Test Class: Shared Contract
# =============================================================================

@pytest.mark.parametrize("strategy", sorted(STRATEGIES))
class TestContract:
    """Both strategies accept the same input and return the same shape."""

    def test_prediction_length(self, split, table, strategy):
        model = fit_model(strategy, split.train, levels=borough_levels(table), **_params(strategy))
        predicted = predict_counts(model, split.test)
        assert predicted.shape == (len(split.test),)
        assert predicted.dtype == np.float64

    def test_prediction_length_on_any_subset(self, split, table, strategy):
        model = fit_model(strategy, split.train, levels=borough_levels(table), **_params(strategy))
        for n in [0, 1, 5, len(table)]:
            assert len(model.predict(table.iloc[:n])) == n

    def test_fit_returns_model(self, split, strategy):
        model = build_model(strategy, **_params(strategy))
        assert model.fit(split.train) is model

    def test_empty_training_raises(self, table, strategy):
        with pytest.raises(InsufficientDataError):
            fit_model(strategy, table.iloc[0:0], **_params(strategy))

    def test_single_borough_raises(self, table, strategy):
        bronx = table[table["boro"] == "BRONX"]
        with pytest.raises(InsufficientDataError):
            fit_model(strategy, bronx, levels=BOROS, **_params(strategy))

    def test_predict_before_fit(self, table, strategy):
        with pytest.raises(NotFittedError):
            build_model(strategy, **_params(strategy)).predict(table)

    def test_missing_target_column(self, table, strategy):
        with pytest.raises(SchemaError):
            fit_model(strategy, table.drop(columns=["count"]), **_params(strategy))

    def test_unknown_training_borough(self, table, strategy):
        with pytest.raises(SchemaError):
            fit_model(strategy, table, levels=["BRONX", "BROOKLYN"], **_params(strategy))

    def test_borough_outside_fitted_levels(self, table, strategy):
        train = table[table["boro"].isin(["BRONX", "BROOKLYN"])]
        model = fit_model(strategy, train, **_params(strategy))
        with pytest.raises(SchemaError, match="QUEENS"):
            model.predict(table[table["boro"] == "QUEENS"].head(1))

    def test_missing_evaluation_borough(self, table, strategy):
        model = fit_model(strategy, table, **_params(strategy))
        rows = table.head(3).copy()
        rows.loc[rows.index[1], "boro"] = None
        with pytest.raises(SchemaError, match="no borough"):
            model.predict(rows)

    def test_declared_level_predicts_without_training_rows(self, table, strategy):
        train = table[table["boro"].isin(["BRONX", "BROOKLYN"])]
        model = fit_model(strategy, train, levels=BOROS, **_params(strategy))
        queens = table[table["boro"] == "QUEENS"]
        assert len(model.predict(queens)) == len(queens)

    def test_summary(self, split, strategy):
        model = fit_model(strategy, split.train, **_params(strategy))
        info = model.summary()
        assert info["strategy"] == strategy
        assert info["n_train"] == len(split.train)


# =============================================================================
# Test Class: Linear Strategy
# =============================================================================

class TestLinearCountModel:
    """OLS with hour slope and borough fixed effects."""

    def test_recovers_additive_structure(self, split, table):
        model = LinearCountModel(levels=borough_levels(table)).fit(split.train)
        predicted = model.predict(split.test)
        np.testing.assert_allclose(predicted, split.test["count"].to_numpy(), atol=1e-6)

    def test_hour_slope(self, table):
        model = LinearCountModel().fit(table)
        assert model.summary()["params"]["hour"] == pytest.approx(1.0)

    def test_no_interaction_term(self, table):
        model = LinearCountModel().fit(table)
        assert not any(":" in name for name in model.summary()["params"])

    def test_predictions_not_rounded(self):
        train = pd.DataFrame({
            "boro": ["BRONX", "BRONX", "QUEENS", "QUEENS"],
            "hour": [0, 1, 0, 1],
            "count": [1, 2, 2, 2],
        })
        predicted = LinearCountModel().fit(train).predict(train)
        assert not np.allclose(predicted, np.round(predicted))

    def test_level_only_in_evaluation(self, table):
        train = table[table["boro"].isin(["BRONX", "BROOKLYN"])]
        test = table[table["boro"] == "QUEENS"]
        model = LinearCountModel(levels=BOROS).fit(train)
        assert len(model.predict(test)) == len(test)


# =============================================================================
# Test Class: Random-Forest Strategy
# =============================================================================

class TestRandomForestCountModel:

    def test_default_hyperparameters(self):
        model = RandomForestCountModel()
        assert model.n_estimators == 500
        assert model.min_samples_leaf == 5

    def test_max_features_default(self, table):
        model = RandomForestCountModel(**FAST_FOREST).fit(table)
        assert model.summary()["max_features"] == 1

    def test_reproducible_with_seed(self, split):
        a = RandomForestCountModel(**FAST_FOREST).fit(split.train).predict(split.test)
        b = RandomForestCountModel(**FAST_FOREST).fit(split.train).predict(split.test)
        np.testing.assert_array_equal(a, b)

    def test_predictions_within_target_range(self, split):
        predicted = RandomForestCountModel(**FAST_FOREST).fit(split.train).predict(split.test)
        assert predicted.min() >= split.train["count"].min()
        assert predicted.max() <= split.train["count"].max()


# =============================================================================
# Test Class: Alignment
# =============================================================================

class TestAlignment:

    def test_check_alignment_raises(self, table):
        with pytest.raises(AlignmentError):
            check_alignment(np.zeros(len(table) - 1), table)

    def test_misbehaving_strategy(self, split):
        class Truncating(LinearCountModel):
            def _predict(self, rows):
                return super()._predict(rows)[:-1]

        model = Truncating().fit(split.train)
        with pytest.raises(AlignmentError):
            predict_counts(model, split.test)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            build_model("gradient_boosting")
