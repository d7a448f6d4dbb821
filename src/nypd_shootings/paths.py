"""
Canonical path resolution for the NYPD shooting counts project.

This module provides the single source of truth for all paths in the project.
Scripts import paths from here rather than building relative '../' paths.

- Detect root via `.project-root` (primary) and fallback markers
- Expose canonical Paths: RAW_DIR, PROCESSED_DIR, CLEAN_DIR, etc.
"""

from pathlib import Path
from typing import Optional

# Markers to detect project root (in priority order)
ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def _search_upward(start_path: Path) -> Optional[Path]:
    """Return the first ancestor of start_path (inclusive) holding a root marker."""
    current = start_path
    
    while True:
        for marker in ROOT_MARKERS:
            if (current / marker).exists():
                return current
        if current == current.parent:
            return None
        current = current.parent


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Find the project root by searching upward for marker files.
    
    Args:
        start_path: Starting directory for search. Defaults to this file's
            location, then the current working directory.
        
    Returns:
        Path to project root directory.
        
    Raises:
        FileNotFoundError: If no root marker is found.
    """
    if start_path is not None:
        candidates = [Path(start_path).resolve()]
    else:
        # Installed (non-editable) copies live in site-packages, so fall back to cwd
        candidates = [Path(__file__).resolve().parent, Path.cwd().resolve()]
    
    for candidate in candidates:
        found = _search_upward(candidate)
        if found is not None:
            return found
    
    raise FileNotFoundError(
        f"Could not find project root. Searched for markers {ROOT_MARKERS} "
        f"starting from {candidates[0]}"
    )


# =============================================================================
# Canonical paths (resolved at import time)
# =============================================================================

PROJECT_ROOT = find_project_root()

# Config
CONFIG_DIR = PROJECT_ROOT / "configs"

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

# Raw subdirectories
RAW_SHOOTINGS_DIR = RAW_DIR / "shootings"

# Processed subdirectories
CLEAN_DIR = PROCESSED_DIR / "clean"
AGGREGATES_DIR = PROCESSED_DIR / "aggregates"
MODELS_DIR = PROCESSED_DIR / "models"
METADATA_DIR = PROCESSED_DIR / "metadata"

# Logs
LOGS_DIR = PROJECT_ROOT / "logs"

# Reports
REPORTS_DIR = PROJECT_ROOT / "reports"
TABLES_DIR = REPORTS_DIR / "tables"

# Source and scripts
SRC_DIR = PROJECT_ROOT / "src"
SCRIPTS_DIR = PROJECT_ROOT / "scripts"

# Tests
TESTS_DIR = PROJECT_ROOT / "tests"
FIXTURES_DIR = TESTS_DIR / "fixtures"


def ensure_dirs_exist() -> None:
    """Create all canonical directories if they don't exist."""
    dirs = [
        CONFIG_DIR,
        RAW_SHOOTINGS_DIR,
        CLEAN_DIR, AGGREGATES_DIR, MODELS_DIR, METADATA_DIR,
        LOGS_DIR,
        TABLES_DIR,
        FIXTURES_DIR,
    ]
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)


if __name__ == "__main__":
    # Quick verification when run directly
    print(f"PROJECT_ROOT:  {PROJECT_ROOT}")
    print(f"RAW_DIR:       {RAW_DIR}")
    print(f"PROCESSED_DIR: {PROCESSED_DIR}")
    print(f"CONFIG_DIR:    {CONFIG_DIR}")
    print(f"LOGS_DIR:      {LOGS_DIR}")
