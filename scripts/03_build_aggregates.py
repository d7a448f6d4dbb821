#!/usr/bin/env python3
"""
03_build_aggregates.py

Build the descriptive incident-count tables from the cleaned records.

Groupings come from params.yml (`aggregates`): by hour, weekday, borough,
borough x hour, year and borough x murder flag. Each table is written sorted
by descending count for display.

Outputs:
- data/processed/aggregates/<grouping>.parquet
- reports/tables/<grouping>.csv
"""

from nypd_shootings.aggregate import DEFAULT_GROUPINGS, sort_for_display
from nypd_shootings.hashing import write_metadata_sidecar
from nypd_shootings.io_utils import read_df, read_yaml, write_table
from nypd_shootings.logging_utils import get_logger
from nypd_shootings.paths import AGGREGATES_DIR, CLEAN_DIR, CONFIG_DIR, TABLES_DIR
from nypd_shootings.pipeline import build_aggregates
from nypd_shootings.schemas import AGGREGATE_SCHEMA, validate_schema

SCRIPT_NAME = "03_build_aggregates"

INPUT_CLEAN = CLEAN_DIR / "incidents_clean.parquet"


def main():
    """Main entry point."""
    with get_logger(SCRIPT_NAME) as logger:
        logger.info(f"Starting {SCRIPT_NAME}.py")

        config = read_yaml(CONFIG_DIR / "params.yml")
        logger.log_config(config)

        try:
            if not INPUT_CLEAN.exists():
                raise FileNotFoundError(
                    f"Clean incidents not found: {INPUT_CLEAN}. "
                    "Run 02_build_clean_incidents.py first."
                )
            cleaned = read_df(INPUT_CLEAN)
            logger.info(f"Loaded {len(cleaned):,} clean incidents")

            tables = build_aggregates(cleaned, config.get("aggregates", DEFAULT_GROUPINGS), logger)

            outputs = {}
            for name, table in tables.items():
                validate_schema(table, AGGREGATE_SCHEMA, context=name)
                table = sort_for_display(table)

                outputs[name] = write_table(
                    table, AGGREGATES_DIR / f"{name}.parquet", TABLES_DIR / f"{name}.csv"
                )

                top = table.iloc[0].to_dict() if len(table) else {}
                logger.info(f"  {name}: {len(table)} groups, top={top}")

            logger.log_artifacts(inputs={"incidents_clean": INPUT_CLEAN}, outputs=outputs)
            logger.log_metrics({
                name: {"groups": len(t), "incidents": int(t["count"].sum())}
                for name, t in tables.items()
            })

            for name in tables:
                write_metadata_sidecar(
                    output_path=AGGREGATES_DIR / f"{name}.parquet",
                    inputs={"incidents_clean": str(INPUT_CLEAN)},
                    config=config,
                    run_id=logger.run_id,
                )

            logger.info(f"SUCCESS: Built {len(tables)} aggregate tables")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
