#!/usr/bin/env python3
"""
02_build_clean_incidents.py

Clean the latest raw shooting snapshot into analysis-ready incident records.

- Drop columns that are at least half missing; drop rows with no borough
- Parse OCCUR_DATE / OCCUR_TIME; derive hour, weekday (Sunday first) and year
- Exclude rows whose date or time cannot be parsed

Outputs:
- data/processed/clean/incidents_clean.parquet (main table)
- data/processed/clean/incidents_clean.csv (human-readable)
- data/processed/metadata/incidents_clean_metadata.json
"""

from nypd_shootings.hashing import stale_reason, write_metadata_sidecar
from nypd_shootings.io_utils import read_incidents_csv, read_yaml, write_table
from nypd_shootings.logging_utils import get_logger
from nypd_shootings.paths import CLEAN_DIR, CONFIG_DIR, RAW_SHOOTINGS_DIR
from nypd_shootings.pipeline import clean_incidents

# =============================================================================
# Constants
# =============================================================================

SCRIPT_NAME = "02_build_clean_incidents"

OUTPUT_PARQUET = CLEAN_DIR / "incidents_clean.parquet"
OUTPUT_CSV = CLEAN_DIR / "incidents_clean.csv"


def find_latest_raw(logger):
    """Most recently modified raw snapshot."""
    raw_files = list(RAW_SHOOTINGS_DIR.glob("*.csv"))
    if not raw_files:
        raise FileNotFoundError(
            f"No raw shooting files found in {RAW_SHOOTINGS_DIR}. "
            "Run 01_fetch_shootings.py first."
        )
    raw_path = max(raw_files, key=lambda p: p.stat().st_mtime)
    logger.info(f"Using raw snapshot: {raw_path}")
    return raw_path


# =============================================================================
# Main
# =============================================================================

def main():
    """Main entry point."""
    with get_logger(SCRIPT_NAME) as logger:
        logger.info(f"Starting {SCRIPT_NAME}.py")

        config = read_yaml(CONFIG_DIR / "params.yml")
        logger.log_config(config)

        try:
            raw_path = find_latest_raw(logger)
            inputs = {"raw_shootings": str(raw_path)}
            logger.log_artifacts(inputs=inputs)

            reason = stale_reason(OUTPUT_PARQUET, inputs, config)
            if reason is None:
                logger.info("Cached output is up to date; nothing to do")
                return
            logger.info(f"Rebuilding: {reason}")

            raw = read_incidents_csv(raw_path)
            logger.info(f"Loaded {len(raw):,} raw records")

            cleaned, stats, failures = clean_incidents(raw, config, logger)

            write_table(cleaned, OUTPUT_PARQUET, OUTPUT_CSV)
            logger.info(f"Wrote: {OUTPUT_PARQUET} (+ CSV)")

            logger.log_artifacts(outputs={
                "incidents_clean_parquet": OUTPUT_PARQUET,
                "incidents_clean_csv": OUTPUT_CSV,
            })
            logger.log_metrics({
                "rows_raw": len(raw),
                "rows_clean": len(cleaned),
                "parse_failures": failures,
                "dropped_columns": stats["dropped_columns"],
            })

            write_metadata_sidecar(
                output_path=OUTPUT_PARQUET,
                inputs=inputs,
                config=config,
                run_id=logger.run_id,
                extra={"filter_stats": stats, "parse_failures": failures},
            )

            logger.info(f"SUCCESS: {len(cleaned):,} clean incidents")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
