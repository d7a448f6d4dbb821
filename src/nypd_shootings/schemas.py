"""
Declared schemas for the tables passed between stages.

- Raw input is checked against ``RAW_INCIDENT_SCHEMA`` by the schema filter:
  only the borough column is required, and columns outside the published
  field list are reported as drift.
- Cleaned records, aggregate tables and prediction pairs are validated
  (dtypes, NA rules, ranges) before they are written or modeled.
Violations raise ``SchemaError`` at the boundary where they are detected.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import pandas as pd


@dataclass
class ColumnSpec:
    """Expected properties of one column."""
    name: str
    dtype: Optional[str] = None  # key of _DTYPE_CHECKS
    nullable: bool = True
    allowed_values: Optional[Set[Any]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


@dataclass
class Schema:
    """Named set of column specs; non-nullable columns are required by default."""
    name: str
    columns: List[ColumnSpec]
    required_columns: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.required_columns:
            self.required_columns = [c.name for c in self.columns if not c.nullable]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


class SchemaError(Exception):
    """Raised when a table does not match its declared schema."""
    pass


# =============================================================================
# Domain Constants
# =============================================================================

BOROUGH_COLUMN = "boro"
DATE_COLUMN = "occur_date"
TIME_COLUMN = "occur_time"

BOROUGHS = ("BRONX", "BROOKLYN", "MANHATTAN", "QUEENS", "STATEN ISLAND")

WEEKDAYS_SUNDAY_FIRST = (
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
)


# =============================================================================
# Declared Schemas
# =============================================================================

# NYPD Shooting Incident Data (Historic), dataset 833y-fsy8, lower-cased names.
# Every value arrives as text; only the borough is structurally required.
RAW_INCIDENT_SCHEMA = Schema(
    name="raw_incident",
    columns=[
        ColumnSpec(name)
        for name in (
            "incident_key", DATE_COLUMN, TIME_COLUMN, BOROUGH_COLUMN,
            "loc_of_occur_desc", "precinct", "jurisdiction_code",
            "loc_classfctn_desc", "location_desc", "statistical_murder_flag",
            "perp_age_group", "perp_sex", "perp_race",
            "vic_age_group", "vic_sex", "vic_race",
            "x_coord_cd", "y_coord_cd", "latitude", "longitude", "lon_lat",
        )
    ],
    required_columns=[BOROUGH_COLUMN],
)

CLEANED_INCIDENT_SCHEMA = Schema(
    name="cleaned_incident",
    columns=[
        ColumnSpec(BOROUGH_COLUMN, nullable=False),
        ColumnSpec(DATE_COLUMN, dtype="datetime64", nullable=False),
        ColumnSpec(TIME_COLUMN, dtype="timedelta64", nullable=False),
        ColumnSpec("hour", dtype="Int64", nullable=False, min_value=0, max_value=23),
        ColumnSpec("weekday", dtype="category", nullable=False, allowed_values=set(WEEKDAYS_SUNDAY_FIRST)),
        ColumnSpec("year", dtype="Int64", nullable=False),
    ],
)

# Key columns vary by grouping; only the count is fixed
AGGREGATE_SCHEMA = Schema(
    name="aggregate",
    columns=[ColumnSpec("count", dtype="Int64", nullable=False, min_value=0)],
)

PAIRS_SCHEMA = Schema(
    name="pairs",
    columns=[
        ColumnSpec("actual", dtype="Int64", nullable=False, min_value=0),
        ColumnSpec("predicted", dtype="float64", nullable=False),
    ],
)


# =============================================================================
# Validation
# =============================================================================

_DTYPE_CHECKS: Dict[str, Callable[[pd.Series], bool]] = {
    "Int64": pd.api.types.is_integer_dtype,
    "float64": pd.api.types.is_float_dtype,
    "category": lambda s: isinstance(s.dtype, pd.CategoricalDtype),
    "datetime64": pd.api.types.is_datetime64_any_dtype,
    "timedelta64": pd.api.types.is_timedelta64_dtype,
}


def validate_column(df: pd.DataFrame, spec: ColumnSpec) -> List[str]:
    """Problems with one column of ``df`` (empty list if it conforms)."""
    if spec.name not in df.columns:
        return [f"Missing column: {spec.name}"]

    col = df[spec.name]
    present = col.notna()
    problems = []

    if spec.dtype is not None and not _DTYPE_CHECKS[spec.dtype](col):
        problems.append(f"{spec.name}: expected {spec.dtype}, got {col.dtype}")
    if not spec.nullable and not present.all():
        problems.append(f"{spec.name}: {int((~present).sum())} NA values not allowed")
    if spec.allowed_values is not None:
        bad = present & ~col.isin(spec.allowed_values)
        if bad.any():
            problems.append(f"{spec.name}: invalid values {list(col[bad].unique()[:5])}")
    if spec.min_value is not None and (present & (col < spec.min_value)).any():
        problems.append(f"{spec.name}: values below {spec.min_value}")
    if spec.max_value is not None and (present & (col > spec.max_value)).any():
        problems.append(f"{spec.name}: values above {spec.max_value}")

    return problems


def validate_schema(
    df: pd.DataFrame,
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Check ``df`` against ``schema``.

    Required columns must be present; optional declared columns are checked
    only when present.

    Raises:
        SchemaError: If ``raise_on_error`` and any check fails
    """
    ctx = f" ({context})" if context else ""
    problems = []

    missing = [c for c in schema.required_columns if c not in df.columns]
    if missing:
        problems.append(f"Missing required columns: {missing}{ctx}")

    for spec in schema.columns:
        if spec.name in df.columns:
            problems.extend(validate_column(df, spec))

    if problems and raise_on_error:
        raise SchemaError(f"Schema '{schema.name}' violated{ctx}:\n" + "\n".join(problems))
    return problems


def unexpected_columns(df: pd.DataFrame, schema: Schema) -> List[str]:
    """Columns of ``df`` the schema does not declare, in table order."""
    declared = set(schema.column_names)
    return [c for c in df.columns if c not in declared]


def require_columns(df: pd.DataFrame, columns: Iterable[str], context: str = "") -> None:
    """
    Fail fast if any of the named columns is absent.

    A column that is present but entirely null passes; that case is handled by
    row filtering, not by the schema.

    Raises:
        SchemaError: If one or more columns are missing
    """
    missing = [c for c in columns if c not in df.columns]
    if missing:
        ctx = f" ({context})" if context else ""
        raise SchemaError(f"Missing required columns: {missing}{ctx}")
