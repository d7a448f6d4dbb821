"""
File I/O for the shooting pipeline.

Writes go to a hidden temp file beside the target and are renamed into place
only once complete, so an interrupted script never leaves a truncated table or
manifest. Parquet is the stage-to-stage format; every table is also exported
as CSV for reading by hand.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import pandas as pd
import yaml

PathLike = Union[str, Path]


# =============================================================================
# Atomic Writes
# =============================================================================

@contextmanager
def _staged(target: Path) -> Iterator[Path]:
    """Yield a temp path next to ``target``; move it onto ``target`` on success."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f".{target.stem}_", suffix=target.suffix or ".tmp", dir=target.parent)
    os.close(fd)
    staged = Path(name)
    try:
        yield staged
        staged.replace(target)
    finally:
        if staged.exists():
            staged.unlink()


@contextmanager
def atomic_write(target_path: PathLike, mode: str = "w"):
    """
    Open a file handle whose contents replace ``target_path`` only on clean exit.

    Example:
        with atomic_write(raw_path, mode="wb") as f:
            for chunk in response.iter_content():
                f.write(chunk)
    """
    with _staged(Path(target_path)) as staged:
        encoding = None if "b" in mode else "utf-8"
        with open(staged, mode, encoding=encoding) as f:
            yield f


def atomic_write_df(df: pd.DataFrame, target_path: PathLike, **kwargs) -> None:
    """Write ``df`` as .parquet or .csv (chosen by extension)."""
    target_path = Path(target_path)
    writers = {".parquet": df.to_parquet, ".csv": df.to_csv}
    writer = writers.get(target_path.suffix.lower())
    if writer is None:
        raise ValueError(f"Unsupported format: {target_path.suffix}")
    with _staged(target_path) as staged:
        writer(staged, **kwargs)


def atomic_write_json(data: Any, target_path: PathLike) -> None:
    """Pretty-printed JSON; non-serializable values are stringified."""
    with atomic_write(target_path) as f:
        json.dump(data, f, indent=2, default=str)


def write_table(
    df: pd.DataFrame,
    parquet_path: PathLike,
    csv_path: Optional[PathLike] = None,
) -> Path:
    """
    Write a stage output as Parquet plus a CSV export.

    The CSV goes beside the Parquet file unless ``csv_path`` is given.

    Returns:
        The Parquet path
    """
    parquet_path = Path(parquet_path)
    atomic_write_df(df, parquet_path, index=False)
    atomic_write_df(df, csv_path or parquet_path.with_suffix(".csv"), index=False)
    return parquet_path


# =============================================================================
# Reads
# =============================================================================

def read_yaml(path: PathLike) -> dict:
    """Parse a YAML file; an empty file gives an empty dict."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def read_json(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def read_df(path: PathLike, **kwargs) -> pd.DataFrame:
    """Read a .parquet or .csv stage table."""
    path = Path(path)
    readers = {".parquet": pd.read_parquet, ".csv": pd.read_csv}
    reader = readers.get(path.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported format: {path.suffix}")
    return reader(path, **kwargs)


def read_incidents_csv(path: PathLike) -> pd.DataFrame:
    """
    Read a raw shooting-incident CSV.

    Every column is read as text so that date/time strings, precinct codes and
    coordinates reach the cleaning stages untouched; empty fields stay NA.
    Column names are lower-cased to match the Open Data API field names.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=True)
    df.columns = df.columns.str.strip().str.lower()
    return df
