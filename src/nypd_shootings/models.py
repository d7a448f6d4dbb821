"""
Count models over (hour, borough) aggregate rows.

Two interchangeable strategies share one contract:

    model = build_model("linear" | "random_forest", levels=...).fit(train)
    predicted = model.predict(test)   # one float per test row, same order

- ``LinearCountModel``: OLS of count on numeric hour plus borough fixed effects
  (``count ~ hour + C(boro)``), no interaction.
- ``RandomForestCountModel``: bootstrap ensemble of regression trees over the
  same two predictors; prediction is the mean over trees.

Predictions are returned unrounded.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from sklearn.ensemble import RandomForestRegressor
from sklearn.exceptions import NotFittedError

from nypd_shootings.schemas import BOROUGH_COLUMN, SchemaError, require_columns


HOUR_COLUMN = "hour"
TARGET_COLUMN = "count"
PREDICTORS = (HOUR_COLUMN, BOROUGH_COLUMN)

DEFAULT_MODEL_SEED = 12345


class InsufficientDataError(ValueError):
    """Training data is empty or the borough predictor is degenerate."""
    pass


class AlignmentError(RuntimeError):
    """Predictions do not line up one-to-one with evaluation rows."""
    pass


def borough_levels(*frames: pd.DataFrame) -> List[str]:
    """Sorted distinct borough labels across all given frames."""
    values = set()
    for frame in frames:
        if BOROUGH_COLUMN in frame.columns:
            values.update(frame[BOROUGH_COLUMN].dropna().unique().tolist())
    return sorted(values)


def check_alignment(predicted: Sequence[float], rows: pd.DataFrame, context: str = "") -> None:
    """Raise AlignmentError unless there is exactly one prediction per row."""
    if len(predicted) != len(rows):
        ctx = f" ({context})" if context else ""
        raise AlignmentError(
            f"Got {len(predicted)} predictions for {len(rows)} evaluation rows{ctx}"
        )


# =============================================================================
# Strategy Interface
# =============================================================================

class CountModel:
    """
    Base class for count-prediction strategies.

    Args:
        levels: Borough levels used to encode the categorical predictor. When
            omitted, the levels seen in the training rows are used. Passing the
            levels of the full table (train and evaluation) keeps the encoding
            identical for rows that only appear in evaluation.
    """

    name = "base"

    def __init__(self, levels: Optional[Iterable[str]] = None):
        self.levels = list(levels) if levels is not None else None
        self.levels_: Optional[List[str]] = None
        self.n_train_: Optional[int] = None

    # -- template methods -----------------------------------------------------

    def fit(self, train: pd.DataFrame) -> "CountModel":
        """
        Fit on aggregate rows with ``hour``, ``boro`` and ``count`` columns.

        Raises:
            InsufficientDataError: If ``train`` is empty or has fewer than two
                distinct borough levels
            SchemaError: If a predictor/target column is missing, or a training
                borough is not among the declared levels
        """
        if len(train) == 0:
            raise InsufficientDataError(f"{self.name}: training set is empty")
        require_columns(train, [*PREDICTORS, TARGET_COLUMN], context=f"{self.name} fit")

        seen = borough_levels(train)
        if len(seen) < 2:
            raise InsufficientDataError(
                f"{self.name}: borough predictor needs at least 2 levels, training has {seen}"
            )

        levels = list(self.levels) if self.levels is not None else seen
        self._check_boroughs(train, levels, "training")

        self.levels_ = levels
        self.n_train_ = len(train)
        self._fit(train)
        return self

    def predict(self, rows: pd.DataFrame) -> np.ndarray:
        """
        Predict a count for each row, in row order.

        Raises:
            NotFittedError: If called before ``fit``
            SchemaError: If a row's borough is missing or not among the fitted levels
            AlignmentError: If the strategy returns the wrong number of predictions
        """
        if self.levels_ is None:
            raise NotFittedError(f"{self.name} model is not fitted yet")
        if len(rows) == 0:
            return np.empty(0, dtype="float64")
        require_columns(rows, list(PREDICTORS), context=f"{self.name} predict")
        self._check_boroughs(rows, self.levels_, "evaluation")

        predicted = np.asarray(self._predict(rows), dtype="float64").ravel()
        check_alignment(predicted, rows, context=self.name)
        return predicted

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly description of the fitted model."""
        return {"strategy": self.name, "n_train": self.n_train_, "levels": self.levels_}

    # -- helpers ----------------------------------------------------------------

    def _check_boroughs(self, rows: pd.DataFrame, levels: List[str], role: str) -> None:
        boroughs = rows[BOROUGH_COLUMN]
        if boroughs.isna().any():
            raise SchemaError(f"{self.name}: {int(boroughs.isna().sum())} {role} rows have no borough")
        unknown = sorted(set(boroughs.unique()) - set(levels))
        if unknown:
            raise SchemaError(f"{self.name}: {role} boroughs {unknown} not in levels {levels}")

    def _borough_categorical(self, rows: pd.DataFrame) -> pd.Categorical:
        return pd.Categorical(rows[BOROUGH_COLUMN], categories=self.levels_)

    def _fit(self, train: pd.DataFrame) -> None:
        raise NotImplementedError

    def _predict(self, rows: pd.DataFrame) -> np.ndarray:
        raise NotImplementedError


# =============================================================================
# Linear Strategy
# =============================================================================

class LinearCountModel(CountModel):
    """Additive OLS model: count ~ hour + borough fixed effects."""

    name = "linear"
    formula = f"{TARGET_COLUMN} ~ {HOUR_COLUMN} + C({BOROUGH_COLUMN})"

    def _frame(self, rows: pd.DataFrame, with_target: bool) -> pd.DataFrame:
        data = pd.DataFrame(
            {
                HOUR_COLUMN: rows[HOUR_COLUMN].astype("float64").to_numpy(),
                BOROUGH_COLUMN: self._borough_categorical(rows),
            }
        )
        if with_target:
            data[TARGET_COLUMN] = rows[TARGET_COLUMN].astype("float64").to_numpy()
        return data

    def _fit(self, train: pd.DataFrame) -> None:
        self.result_ = smf.ols(self.formula, data=self._frame(train, with_target=True)).fit()

    def _predict(self, rows: pd.DataFrame) -> np.ndarray:
        return self.result_.predict(self._frame(rows, with_target=False))

    def summary(self) -> Dict[str, Any]:
        info = super().summary()
        info.update({
            "formula": self.formula,
            "n_obs": int(self.result_.nobs),
            "r_squared": float(self.result_.rsquared),
            "params": {k: float(v) for k, v in self.result_.params.items()},
        })
        return info


# =============================================================================
# Random-Forest Strategy
# =============================================================================

class RandomForestCountModel(CountModel):
    """
    Regression forest over hour and borough.

    The borough enters as its integer code within ``levels_``. ``max_features``
    defaults to a third of the predictors (at least one), and
    ``min_samples_leaf`` to 5, the usual regression-forest node size.
    """

    name = "random_forest"

    def __init__(
        self,
        levels: Optional[Iterable[str]] = None,
        n_estimators: int = 500,
        max_features: Optional[int] = None,
        min_samples_leaf: int = 5,
        n_jobs: Optional[int] = 1,
        random_state: int = DEFAULT_MODEL_SEED,
    ):
        super().__init__(levels)
        self.n_estimators = n_estimators
        self.max_features = max_features
        self.min_samples_leaf = min_samples_leaf
        self.n_jobs = n_jobs
        self.random_state = random_state

    def _design(self, rows: pd.DataFrame) -> np.ndarray:
        hours = rows[HOUR_COLUMN].astype("float64").to_numpy()
        codes = self._borough_categorical(rows).codes.astype("float64")
        return np.column_stack([hours, codes])

    def _fit(self, train: pd.DataFrame) -> None:
        max_features = self.max_features or max(1, len(PREDICTORS) // 3)
        self.estimator_ = RandomForestRegressor(
            n_estimators=self.n_estimators,
            max_features=max_features,
            min_samples_leaf=self.min_samples_leaf,
            bootstrap=True,
            n_jobs=self.n_jobs,
            random_state=self.random_state,
        )
        self.estimator_.fit(self._design(train), train[TARGET_COLUMN].astype("float64").to_numpy())

    def _predict(self, rows: pd.DataFrame) -> np.ndarray:
        return self.estimator_.predict(self._design(rows))

    def summary(self) -> Dict[str, Any]:
        info = super().summary()
        info.update({
            "n_estimators": self.estimator_.n_estimators,
            "max_features": self.estimator_.max_features,
            "min_samples_leaf": self.estimator_.min_samples_leaf,
            "random_state": self.random_state,
            "feature_importances": dict(
                zip(PREDICTORS, (float(v) for v in self.estimator_.feature_importances_))
            ),
        })
        return info


# =============================================================================
# Strategy Registry
# =============================================================================

STRATEGIES = {
    LinearCountModel.name: LinearCountModel,
    RandomForestCountModel.name: RandomForestCountModel,
}


def build_model(strategy: str, levels: Optional[Iterable[str]] = None, **params) -> CountModel:
    """Instantiate a strategy by name ('linear' or 'random_forest')."""
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}. Available: {list(STRATEGIES)}")
    return STRATEGIES[strategy](levels=levels, **params)


def fit_model(
    strategy: str,
    train: pd.DataFrame,
    levels: Optional[Iterable[str]] = None,
    **params,
) -> CountModel:
    """Build and fit a strategy in one call."""
    return build_model(strategy, levels=levels, **params).fit(train)


def predict_counts(model: CountModel, rows: pd.DataFrame) -> np.ndarray:
    """Predicted counts aligned one-to-one with ``rows``."""
    predicted = model.predict(rows)
    check_alignment(predicted, rows, context=model.name)
    return predicted
