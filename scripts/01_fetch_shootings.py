#!/usr/bin/env python3
"""
01_fetch_shootings.py

Download the historic NYPD shooting incident table from NYC Open Data.

- Streams the full CSV export (one row per incident, 2006 onward)
- Writes a dated raw snapshot atomically
- Records provenance (sha256, row count, columns) in the raw manifest

Outputs:
- data/raw/shootings/nypd_shootings_historic_YYYYMMDD.csv (raw snapshot)
- data/raw/_manifest.json (updated with provenance)

Data Source:
- NYPD Shooting Incident Data (Historic): https://data.cityofnewyork.us/d/833y-fsy8
"""

import time
from datetime import datetime, timezone
from pathlib import Path

import requests

from nypd_shootings.hashing import hash_file
from nypd_shootings.io_utils import atomic_write, atomic_write_json, read_incidents_csv, read_json, read_yaml
from nypd_shootings.logging_utils import get_logger
from nypd_shootings.paths import CONFIG_DIR, RAW_DIR, RAW_SHOOTINGS_DIR, ensure_dirs_exist

# =============================================================================
# Constants
# =============================================================================

SCRIPT_NAME = "01_fetch_shootings"

DEFAULT_CSV_URL = "https://data.cityofnewyork.us/api/views/833y-fsy8/rows.csv?accessType=DOWNLOAD"

MAX_RETRIES = 3
RETRY_DELAY = 5  # seconds
CHUNK_SIZE = 1 << 16


# =============================================================================
# Download
# =============================================================================

def download_csv(url: str, target: Path, logger, retry_count: int = 0) -> None:
    """Stream ``url`` into ``target``, retrying transient HTTP failures."""
    try:
        with requests.get(url, stream=True, timeout=300) as response:
            response.raise_for_status()
            with atomic_write(target, mode="wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)

    except requests.exceptions.RequestException as e:
        if retry_count < MAX_RETRIES:
            logger.warning(f"Download failed, retrying in {RETRY_DELAY}s... ({e})")
            time.sleep(RETRY_DELAY)
            download_csv(url, target, logger, retry_count + 1)
        else:
            logger.error(f"Max retries exceeded: {e}")
            raise


# =============================================================================
# Main
# =============================================================================

def main():
    """Main entry point."""
    with get_logger(SCRIPT_NAME) as logger:
        logger.info(f"Starting {SCRIPT_NAME}.py")

        config = read_yaml(CONFIG_DIR / "params.yml")
        logger.log_config(config)

        source = config.get("source", {})
        url = source.get("csv_url", DEFAULT_CSV_URL)
        prefix = source.get("raw_prefix", "nypd_shootings_historic")

        try:
            timestamp = datetime.now(timezone.utc)
            ensure_dirs_exist()

            filename = f"{prefix}_{timestamp.strftime('%Y%m%d')}.csv"
            raw_path = RAW_SHOOTINGS_DIR / filename

            logger.info(f"Downloading {url}")
            download_csv(url, raw_path, logger)
            logger.info(f"Saved: {raw_path}")

            df = read_incidents_csv(raw_path)
            logger.info(f"Downloaded {len(df):,} incidents, {len(df.columns)} columns")

            # Update manifest with provenance
            manifest_path = RAW_DIR / "_manifest.json"
            manifest = read_json(manifest_path) if manifest_path.exists() else {"downloads": []}

            manifest["downloads"].append({
                "source": source.get("name", "NYPD Shooting Incident Data (Historic)"),
                "dataset_id": source.get("dataset_id", "833y-fsy8"),
                "url": url,
                "download_timestamp": timestamp.isoformat(),
                "filename": filename,
                "file_path": str(raw_path),
                "sha256": hash_file(raw_path),
                "row_count": len(df),
                "columns": list(df.columns),
            })
            manifest["last_updated"] = timestamp.isoformat()

            atomic_write_json(manifest, manifest_path)
            logger.info(f"Updated manifest: {manifest_path}")

            logger.log_artifacts(outputs={"raw_shootings": raw_path})
            logger.log_metrics({"incidents": len(df), "columns": len(df.columns)})

            logger.info(f"SUCCESS: Fetched {len(df):,} shooting incidents")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
