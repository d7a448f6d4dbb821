"""
Tests for the schema filter.

Validates:
- Retained columns are exactly those with missing ratio below the threshold
- Raising the threshold never removes a retained column
- Rows without a borough are dropped
- Absent borough column is a SchemaError; empty results are not errors
- Columns outside the published field list are reported
"""

import numpy as np
import pandas as pd
import pytest

from nypd_shootings.cleaning import (
    drop_missing_borough,
    drop_sparse_columns,
    filter_schema,
    missing_mask,
    missing_ratio,
)
from nypd_shootings.schemas import SchemaError


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def raw():
    """Ten raw incidents with columns of varying sparsity."""
    return pd.DataFrame({
        "occur_date": ["01/01/2020"] * 10,
        "occur_time": ["12:00:00"] * 10,
        "boro": ["BRONX", "BROOKLYN", None, "QUEENS", " ", "MANHATTAN",
                 "BRONX", "BROOKLYN", "QUEENS", "STATEN ISLAND"],
        # 40% missing (None + empty strings)
        "perp_sex": ["M", None, "F", "", "M", None, "M", "F", " ", "M"],
        # exactly 50% missing
        "perp_race": [None, None, None, None, None, "BLACK", "WHITE", "BLACK", "ASIAN", "BLACK"],
        # 90% missing
        "loc_of_occur_desc": [None] * 9 + ["INSIDE"],
        "precinct": ["40", "73", "75", "101", "44", "14", "42", "67", "113", "120"],
    })


# =============================================================================
# Test Class: Missing Ratio
# =============================================================================

class TestMissingRatio:
    """Missing ratio counts nulls and blank strings."""

    def test_blank_strings_count_as_missing(self):
        col = pd.Series(["a", "", "  ", None, np.nan, "b"])
        assert missing_mask(col).tolist() == [False, True, True, True, True, False]

    def test_numeric_columns(self):
        col = pd.Series([1.0, np.nan, 3.0, np.nan])
        assert missing_mask(col).sum() == 2

    def test_ratios(self, raw):
        ratios = missing_ratio(raw)
        assert ratios["occur_date"] == 0.0
        assert ratios["perp_sex"] == pytest.approx(0.4)
        assert ratios["perp_race"] == pytest.approx(0.5)
        assert ratios["loc_of_occur_desc"] == pytest.approx(0.9)
        assert ratios["boro"] == pytest.approx(0.2)

    def test_empty_table_has_zero_ratios(self):
        empty = pd.DataFrame({"a": pd.Series(dtype=object), "b": pd.Series(dtype=float)})
        assert missing_ratio(empty).tolist() == [0.0, 0.0]


# =============================================================================
# Test Class: Column Filter
# =============================================================================

class TestDropSparseColumns:
    """Column retention follows the strict-below-threshold rule."""

    def test_default_threshold(self, raw):
        filtered, dropped = drop_sparse_columns(raw, 0.5)
        assert "perp_sex" in filtered.columns
        assert "perp_race" not in filtered.columns  # exactly at threshold
        assert dropped == ["perp_race", "loc_of_occur_desc"]

    @pytest.mark.parametrize("threshold", [0.0, 0.1, 0.2, 0.4, 0.41, 0.5, 0.51, 0.9, 0.95, 1.0])
    def test_retained_set_is_exact(self, raw, threshold):
        ratios = missing_ratio(raw)
        filtered, _ = drop_sparse_columns(raw, threshold)
        expected = {c for c in raw.columns if ratios[c] < threshold}
        assert set(filtered.columns) == expected

    def test_monotonic_in_threshold(self, raw):
        thresholds = np.linspace(0.0, 1.0, 21)
        previous = set()
        for t in thresholds:
            kept = set(drop_sparse_columns(raw, t)[0].columns)
            assert previous <= kept
            previous = kept

    def test_input_not_mutated(self, raw):
        before = raw.copy()
        drop_sparse_columns(raw, 0.5)
        pd.testing.assert_frame_equal(raw, before)


# =============================================================================
# Test Class: Row Filter
# =============================================================================

class TestDropMissingBorough:
    """Rows need a non-blank borough."""

    def test_drops_null_and_blank(self, raw):
        out = drop_missing_borough(raw)
        assert len(out) == 8
        assert out["boro"].str.strip().ne("").all()

    def test_absent_column_gives_empty_rows(self, raw):
        out = drop_missing_borough(raw.drop(columns=["boro"]))
        assert len(out) == 0
        assert "precinct" in out.columns


# =============================================================================
# Test Class: Full Filter
# =============================================================================

class TestFilterSchema:
    """End-to-end schema filter behaviour."""

    def test_columns_then_rows(self, raw):
        out, stats = filter_schema(raw)
        assert len(out) == 8
        assert "loc_of_occur_desc" not in out.columns
        assert stats["rows_in"] == 10
        assert stats["rows_out"] == 8
        assert set(stats["dropped_columns"]) == {"perp_race", "loc_of_occur_desc"}

    def test_missing_borough_column_raises(self, raw):
        with pytest.raises(SchemaError):
            filter_schema(raw.drop(columns=["boro"]))

    def test_all_null_borough_is_not_schema_error(self, raw):
        raw = raw.assign(boro=None)
        out, _ = filter_schema(raw, threshold=1.01)
        assert len(out) == 0

    def test_zero_threshold_gives_empty_table(self, raw):
        out, stats = filter_schema(raw, threshold=0.0)
        assert out.shape == (0, 0)
        assert stats["columns_out"] == 0

    def test_empty_input(self):
        empty = pd.DataFrame({"boro": pd.Series(dtype=object), "occur_date": pd.Series(dtype=object)})
        out, _ = filter_schema(empty)
        assert len(out) == 0
        assert list(out.columns) == ["boro", "occur_date"]

    def test_unexpected_columns_reported(self, raw):
        raw = raw.assign(shooting_id="x", **{"zip code": "10451"})
        out, stats = filter_schema(raw)
        assert stats["unexpected_columns"] == ["shooting_id", "zip code"]
        assert "shooting_id" in out.columns

    def test_published_columns_not_reported(self, raw):
        _, stats = filter_schema(raw)
        assert stats["unexpected_columns"] == []

    def test_custom_borough_column_required(self, raw):
        raw = raw.rename(columns={"boro": "borough"})
        with pytest.raises(SchemaError, match="borough"):
            filter_schema(raw)
        out, stats = filter_schema(raw, borough_column="borough")
        assert len(out) == 8
        assert stats["unexpected_columns"] == ["borough"]
