"""
Schema filter for raw incident tables.

Two steps, applied in order:
1. Drop every column whose missing ratio (null or blank string) reaches the
   threshold.
2. Drop every row whose borough is null or blank.

Both steps return new frames; the input is never mutated. An input that loses
all of its columns or rows yields an empty table rather than an error.
"""

from dataclasses import replace
from typing import List, Tuple

import pandas as pd

from nypd_shootings.schemas import (
    BOROUGH_COLUMN,
    RAW_INCIDENT_SCHEMA,
    unexpected_columns,
    validate_schema,
)


DEFAULT_MISSING_RATIO_THRESHOLD = 0.5


def _is_blank(value) -> bool:
    return isinstance(value, str) and not value.strip()


def missing_mask(col: pd.Series) -> pd.Series:
    """Boolean mask of values that are null or an empty/whitespace-only string."""
    mask = col.isna()
    if col.dtype == object or pd.api.types.is_string_dtype(col):
        mask = mask | col.map(_is_blank).astype(bool)
    return mask.astype(bool)


def missing_ratio(df: pd.DataFrame) -> pd.Series:
    """
    Fraction of missing values per column.

    A table with no rows has nothing missing, so every ratio is 0.0.
    """
    if len(df) == 0:
        return pd.Series(0.0, index=df.columns, dtype="float64")
    return pd.Series(
        {c: float(missing_mask(df[c]).mean()) for c in df.columns},
        index=df.columns,
        dtype="float64",
    )


def drop_sparse_columns(
    df: pd.DataFrame,
    threshold: float = DEFAULT_MISSING_RATIO_THRESHOLD,
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Keep only columns whose missing ratio is strictly below ``threshold``.

    Returns:
        (filtered frame, names of dropped columns in original order)
    """
    ratios = missing_ratio(df)
    keep = [c for c in df.columns if ratios[c] < threshold]
    dropped = [c for c in df.columns if c not in keep]
    return df[keep].copy(), dropped


def drop_missing_borough(
    df: pd.DataFrame,
    borough_column: str = BOROUGH_COLUMN,
) -> pd.DataFrame:
    """
    Keep only rows with a non-blank borough.

    If the borough column was itself dropped as too sparse, no row can satisfy
    the requirement and an empty-row table with the remaining columns is returned.
    """
    if borough_column not in df.columns:
        return df.iloc[0:0].copy()
    keep = ~missing_mask(df[borough_column])
    return df[keep].copy()


def filter_schema(
    df: pd.DataFrame,
    threshold: float = DEFAULT_MISSING_RATIO_THRESHOLD,
    borough_column: str = BOROUGH_COLUMN,
) -> Tuple[pd.DataFrame, dict]:
    """
    Apply the full schema filter to a raw incident table.

    Args:
        df: Raw incident table (lower-cased column names)
        threshold: Missing-ratio threshold; columns at or above it are dropped
        borough_column: Name of the required borough column

    Returns:
        (filtered frame, stats dict with row/column counts, dropped columns
        with their missing ratios, and columns the raw schema does not declare)

    Raises:
        SchemaError: If the borough column is absent from the input entirely
    """
    schema = replace(RAW_INCIDENT_SCHEMA, required_columns=[borough_column])
    validate_schema(df, schema, context="schema filter")

    ratios = missing_ratio(df)
    filtered, dropped = drop_sparse_columns(df, threshold)
    filtered = drop_missing_borough(filtered, borough_column)

    stats = {
        "threshold": threshold,
        "rows_in": len(df),
        "rows_out": len(filtered),
        "columns_in": len(df.columns),
        "columns_out": len(filtered.columns),
        "dropped_columns": {c: round(float(ratios[c]), 4) for c in dropped},
        "unexpected_columns": unexpected_columns(df, schema),
    }
    return filtered, stats
