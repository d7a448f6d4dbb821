"""
Date/time parsing and derived temporal fields for incident records.

OCCUR_DATE arrives as MM/DD/YYYY and OCCUR_TIME as HH:MM:SS, both as local
New York wall-clock strings, so no timezone conversion is applied.

Parsing is vectorized and never raises on bad values: an unparseable date or
time becomes NaT, and the derived ``hour``/``weekday``/``year`` fields become NA.
Such rows are removed by ``drop_unparsed`` before aggregation.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

import pandas as pd

from nypd_shootings.schemas import (
    BOROUGH_COLUMN,
    DATE_COLUMN,
    TIME_COLUMN,
    WEEKDAYS_SUNDAY_FIRST,
)


DEFAULT_DATE_FORMAT = "%m/%d/%Y"
DEFAULT_TIME_FORMATS = ("%H:%M:%S", "%H:%M")

DERIVED_COLUMNS = ("hour", "weekday", "year")


class ParseError(ValueError):
    """A date or time string that could not be parsed."""

    def __init__(self, field: str, value, row=None):
        self.field = field
        self.value = value
        self.row = row
        where = f" at row {row}" if row is not None else ""
        super().__init__(f"Cannot parse {field}={value!r}{where}")


# =============================================================================
# Scalar Parsing
# =============================================================================

def parse_occur_date(value: str, date_format: str = DEFAULT_DATE_FORMAT) -> date:
    """
    Parse a single month/day/year string into a calendar date.

    Raises:
        ParseError: If the value is not a string in ``date_format``
    """
    if not isinstance(value, str):
        raise ParseError(DATE_COLUMN, value)
    try:
        return datetime.strptime(value.strip(), date_format).date()
    except ValueError:
        raise ParseError(DATE_COLUMN, value) from None


def parse_occur_time(
    value: str,
    time_formats: Sequence[str] = DEFAULT_TIME_FORMATS,
) -> timedelta:
    """
    Parse a single time-of-day string into a duration since midnight.

    Raises:
        ParseError: If the value matches none of ``time_formats``
    """
    if isinstance(value, str):
        for fmt in time_formats:
            try:
                t = datetime.strptime(value.strip(), fmt)
            except ValueError:
                continue
            return timedelta(hours=t.hour, minutes=t.minute, seconds=t.second)
    raise ParseError(TIME_COLUMN, value)


# =============================================================================
# Vectorized Parsing
# =============================================================================

def _as_text(series: pd.Series) -> pd.Series:
    """Stripped strings as object dtype, with every non-string value replaced by None."""
    text = series.astype(object).map(lambda v: v.strip() if isinstance(v, str) else None)
    return text.astype(object).where(text.notna(), None)


def _column_or_empty(df: pd.DataFrame, column: str) -> pd.Series:
    if column in df.columns:
        return df[column]
    return pd.Series([None] * len(df), index=df.index, dtype=object)


def parse_date_series(
    series: pd.Series,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> pd.Series:
    """Parse date strings to midnight timestamps; failures become NaT."""
    if pd.api.types.is_datetime64_any_dtype(series):
        return series.dt.normalize()
    return pd.to_datetime(_as_text(series), format=date_format, errors="coerce")


def parse_time_series(
    series: pd.Series,
    time_formats: Sequence[str] = DEFAULT_TIME_FORMATS,
) -> pd.Series:
    """
    Parse time-of-day strings to durations since midnight; failures become NaT.

    Formats are tried in order, each only on values the previous ones rejected.
    """
    if pd.api.types.is_timedelta64_dtype(series):
        return series
    text = _as_text(series)
    parsed = pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")
    for fmt in time_formats:
        todo = parsed.isna() & text.notna()
        if not todo.any():
            break
        parsed.loc[todo] = pd.to_datetime(text[todo], format=fmt, errors="coerce")
    return parsed - parsed.dt.normalize()


def weekday_levels(week_start: str = "sunday") -> List[str]:
    """Seven weekday names, rotated to begin on ``week_start``."""
    names = list(WEEKDAYS_SUNDAY_FIRST)
    lowered = [n.lower() for n in names]
    if week_start.lower() not in lowered:
        raise ValueError(f"Unknown week_start: {week_start}. Expected one of {names}")
    i = lowered.index(week_start.lower())
    return names[i:] + names[:i]


# =============================================================================
# Normalization
# =============================================================================

def normalize_fields(
    df: pd.DataFrame,
    date_column: str = DATE_COLUMN,
    time_column: str = TIME_COLUMN,
    borough_column: str = BOROUGH_COLUMN,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_formats: Sequence[str] = DEFAULT_TIME_FORMATS,
    week_start: str = "sunday",
) -> pd.DataFrame:
    """
    Parse date/time columns and derive hour, weekday and year.

    Returns a new frame where:
    - ``date_column`` holds datetime64 dates (NaT on failure)
    - ``time_column`` holds timedelta64 durations since midnight (NaT on failure)
    - ``hour`` is Int64 in 0..23, ``year`` is Int64
    - ``weekday`` is an ordered categorical with seven fixed levels
    - the borough label is stripped and upper-cased
    - ``statistical_murder_flag``, if present, is nullable boolean
    """
    out = df.copy()

    dates = parse_date_series(_column_or_empty(out, date_column), date_format)
    times = parse_time_series(_column_or_empty(out, time_column), time_formats)

    out[date_column] = dates
    out[time_column] = times

    out["hour"] = (times.dt.total_seconds() // 3600).astype("Int64")
    out["weekday"] = pd.Categorical(
        dates.dt.day_name(),
        categories=weekday_levels(week_start),
        ordered=True,
    )
    out["year"] = dates.dt.year.astype("Int64")

    if borough_column in out.columns:
        out[borough_column] = out[borough_column].map(
            lambda v: v.strip().upper() if isinstance(v, str) else v
        )

    if "statistical_murder_flag" in out.columns:
        flag = _as_text(out["statistical_murder_flag"]).map(
            lambda v: {"true": True, "false": False}.get(v.lower()) if isinstance(v, str) else None
        )
        out["statistical_murder_flag"] = flag.astype("boolean")

    return out


def drop_unparsed(df: pd.DataFrame) -> pd.DataFrame:
    """Remove rows whose derived temporal fields are NA."""
    present = [c for c in DERIVED_COLUMNS if c in df.columns]
    if not present:
        return df.iloc[0:0].copy()
    keep = df[present].notna().all(axis=1)
    return df[keep].copy()


def collect_parse_errors(
    raw: pd.DataFrame,
    normalized: pd.DataFrame,
    date_column: str = DATE_COLUMN,
    time_column: str = TIME_COLUMN,
    limit: Optional[int] = None,
) -> List[ParseError]:
    """
    One ParseError per row/field that failed to parse, in row order.

    ``raw`` and ``normalized`` must share an index (``normalized`` is the
    output of ``normalize_fields(raw)``).
    """
    errors = []
    columns = (date_column, time_column)
    raw_values = {c: _column_or_empty(raw, c).to_numpy() for c in columns}
    failed = {c: normalized[c].isna().to_numpy() for c in columns}

    for pos, row in enumerate(normalized.index):
        for column in columns:
            if failed[column][pos]:
                errors.append(ParseError(column, raw_values[column][pos], row=row))
        if limit is not None and len(errors) >= limit:
            return errors[:limit]
    return errors
