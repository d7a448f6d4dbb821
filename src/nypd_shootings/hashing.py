"""
Run provenance: content hashes, library versions and metadata sidecars.

Every table a script writes gets ``data/processed/metadata/<stem>_metadata.json``
recording the sha256 of each input file, a digest of ``params.yml``, the git
commit and the library versions. ``02_build_clean_incidents.py`` re-reads the
sidecar to skip a rebuild when neither the raw snapshot nor the parameters
changed.
"""

import hashlib
import json
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from nypd_shootings.io_utils import atomic_write_json, read_json
from nypd_shootings.paths import METADATA_DIR

PathLike = Union[str, Path]

# Libraries whose versions can change results
TRACKED_LIBRARIES = ("pandas", "numpy", "sklearn", "statsmodels", "pyarrow")


def hash_file(path: PathLike, chunk_size: int = 1 << 16) -> str:
    """sha256 of a file's bytes."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {path}")

    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def hash_dict(d: Mapping[str, Any]) -> str:
    """sha256 of a config mapping; key order does not matter."""
    payload = json.dumps(d, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def get_versions() -> Dict[str, str]:
    """Python plus tracked library versions (libraries that fail to import are skipped)."""
    versions = {"python": sys.version.split()[0]}
    for name in TRACKED_LIBRARIES:
        try:
            module = __import__(name)
        except ImportError:
            continue
        versions["scikit-learn" if name == "sklearn" else name] = module.__version__
    return versions


def _git(*args: str) -> Optional[str]:
    try:
        proc = subprocess.run(["git", *args], capture_output=True, text=True, timeout=5)
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    return proc.stdout.strip() if proc.returncode == 0 else None


# =============================================================================
# Metadata Sidecars
# =============================================================================

def sidecar_path(output_path: PathLike, metadata_dir: Optional[PathLike] = None) -> Path:
    """Where the sidecar of ``output_path`` lives."""
    base = Path(metadata_dir) if metadata_dir is not None else METADATA_DIR
    return base / f"{Path(output_path).stem}_metadata.json"


def write_metadata_sidecar(
    output_path: PathLike,
    inputs: Mapping[str, PathLike],
    config: Mapping[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
    metadata_dir: Optional[PathLike] = None,
) -> Path:
    """
    Record how ``output_path`` was produced.

    Args:
        output_path: Table that was just written
        inputs: Input name -> file path; missing files are recorded with a null hash
        config: Parameters used for the run (stored with their digest)
        run_id: Logger run id, linking the sidecar to its JSONL log
        extra: Stage statistics (row counts, dropped columns, scores, ...)
        metadata_dir: Override for the sidecar directory

    Returns:
        Path of the sidecar
    """
    status = _git("status", "--porcelain")
    metadata = {
        "output_file": str(output_path),
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs": {
            name: {
                "path": str(path),
                "hash": hash_file(path) if Path(path).exists() else None,
            }
            for name, path in inputs.items()
        },
        "config_digest": hash_dict(config),
        "config": dict(config),
        "git": {
            "commit": _git("rev-parse", "HEAD"),
            "dirty": None if status is None else bool(status),
        },
        "versions": get_versions(),
    }
    if extra:
        metadata["extra"] = extra

    path = sidecar_path(output_path, metadata_dir)
    atomic_write_json(metadata, path)
    return path


def read_metadata_sidecar(
    output_path: PathLike,
    metadata_dir: Optional[PathLike] = None,
) -> Optional[Dict[str, Any]]:
    """Sidecar contents, or None when the output has none."""
    path = sidecar_path(output_path, metadata_dir)
    return read_json(path) if path.exists() else None


# =============================================================================
# Cache Validation
# =============================================================================

def stale_reason(
    output_path: PathLike,
    inputs: Mapping[str, PathLike],
    config: Mapping[str, Any],
    metadata_dir: Optional[PathLike] = None,
) -> Optional[str]:
    """
    Why ``output_path`` must be rebuilt, or None if its sidecar still matches.

    The output is stale when it or its sidecar is missing, the config digest
    differs, or any input's current hash differs from the recorded one.
    """
    if not Path(output_path).exists():
        return "output missing"

    metadata = read_metadata_sidecar(output_path, metadata_dir)
    if metadata is None:
        return "no metadata sidecar"

    if metadata.get("config_digest") != hash_dict(config):
        return "config changed"

    recorded = metadata.get("inputs", {})
    for name, path in inputs.items():
        if not Path(path).exists():
            return f"input '{name}' missing"
        if recorded.get(name, {}).get("hash") != hash_file(path):
            return f"input '{name}' changed"

    return None

