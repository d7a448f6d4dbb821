"""
Actual-vs-predicted pairing for model comparison charts.

``pair_predictions`` only lines values up; it never rounds, aggregates or
scores them. ``score_pairs`` is a separate consumer of finished pairs.
"""

from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from nypd_shootings.models import TARGET_COLUMN, check_alignment


ACTUAL_COLUMN = "actual"
PREDICTED_COLUMN = "predicted"


def pair_predictions(
    rows: pd.DataFrame,
    predicted: Sequence[float],
    key_columns: Optional[Sequence[str]] = None,
    target_column: str = TARGET_COLUMN,
) -> pd.DataFrame:
    """
    Pair each evaluation row's actual count with its prediction.

    Args:
        rows: Evaluation rows, each carrying ``target_column``
        predicted: Predictions aligned one-to-one with ``rows``
        key_columns: Optional row keys (e.g. boro, hour) carried alongside
            the pair for labelling
        target_column: Column holding the actual count

    Returns:
        DataFrame with optional key columns, then ``actual`` and ``predicted``,
        in the same order as ``rows``

    Raises:
        AlignmentError: If ``predicted`` and ``rows`` differ in length
    """
    predicted = np.asarray(predicted, dtype="float64").ravel()
    check_alignment(predicted, rows, context="pair_predictions")

    pairs = pd.DataFrame(index=range(len(rows)))
    for col in key_columns or []:
        pairs[col] = rows[col].to_numpy()
    pairs[ACTUAL_COLUMN] = rows[target_column].astype("int64").to_numpy()
    pairs[PREDICTED_COLUMN] = predicted
    return pairs


def score_pairs(pairs: pd.DataFrame) -> Dict[str, Optional[float]]:
    """
    Error summary of a pair table: MAE, RMSE and R².

    Values are None when there are too few pairs to compute them.
    """
    n = len(pairs)
    scores: Dict[str, Optional[float]] = {"n": n, "mae": None, "rmse": None, "r2": None}
    if n == 0:
        return scores

    actual = pairs[ACTUAL_COLUMN].to_numpy(dtype="float64")
    predicted = pairs[PREDICTED_COLUMN].to_numpy(dtype="float64")

    scores["mae"] = float(mean_absolute_error(actual, predicted))
    scores["rmse"] = float(np.sqrt(mean_squared_error(actual, predicted)))
    if n >= 2:
        scores["r2"] = float(r2_score(actual, predicted))
    return scores
