"""
Incident counts per group.

Every cleaned record with non-null key values lands in exactly one aggregate
row, so the counts of any complete grouping sum to the number of such records.
Output order is unspecified; use ``sort_for_display`` for presentation.
"""

from typing import Dict, List, Mapping, Sequence

import pandas as pd

from nypd_shootings.schemas import SchemaError


COUNT_COLUMN = "count"

# Descriptive groupings used by the report
DEFAULT_GROUPINGS: Dict[str, List[str]] = {
    "by_hour": ["hour"],
    "by_weekday": ["weekday"],
    "by_borough": ["boro"],
    "by_borough_hour": ["boro", "hour"],
}


def aggregate_counts(df: pd.DataFrame, keys: Sequence[str]) -> pd.DataFrame:
    """
    Count records per distinct combination of ``keys``.

    Args:
        df: Cleaned incident table
        keys: Non-empty ordered list of grouping columns

    Returns:
        DataFrame with the key columns plus an int64 ``count`` column.
        An empty input yields an empty table with the same columns.

    Raises:
        ValueError: If ``keys`` is empty
        SchemaError: If a key column is missing from a non-empty table
    """
    keys = list(keys)
    if not keys:
        raise ValueError("At least one grouping key is required")

    missing = [k for k in keys if k not in df.columns]
    if missing:
        if len(df) == 0:
            return pd.DataFrame(
                {**{k: pd.Series(dtype=object) for k in keys},
                 COUNT_COLUMN: pd.Series(dtype="int64")}
            )
        raise SchemaError(f"Grouping keys not in table: {missing}")

    if len(df) == 0:
        empty = df[keys].iloc[0:0].copy()
        empty[COUNT_COLUMN] = pd.Series(dtype="int64")
        return empty.reset_index(drop=True)

    counts = (
        df.groupby(keys, dropna=True, observed=True, sort=False)
        .size()
        .reset_index(name=COUNT_COLUMN)
    )
    counts[COUNT_COLUMN] = counts[COUNT_COLUMN].astype("int64")
    return counts


def build_descriptive_tables(
    df: pd.DataFrame,
    groupings: Mapping[str, Sequence[str]] = DEFAULT_GROUPINGS,
) -> Dict[str, pd.DataFrame]:
    """Aggregate ``df`` once per named grouping."""
    return {name: aggregate_counts(df, keys) for name, keys in groupings.items()}


def sort_for_display(agg: pd.DataFrame) -> pd.DataFrame:
    """Order by descending count, ties broken by the key columns."""
    keys = [c for c in agg.columns if c != COUNT_COLUMN]
    ascending = [False] + [True] * len(keys)
    return agg.sort_values([COUNT_COLUMN] + keys, ascending=ascending, kind="mergesort").reset_index(drop=True)
