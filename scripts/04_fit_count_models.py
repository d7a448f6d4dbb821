#!/usr/bin/env python3
"""
04_fit_count_models.py

Fit the hourly/borough count models and export actual-vs-predicted pairs.

- Aggregate clean incidents to (boro, hour) counts
- Seeded 80/20 split of the aggregate rows
- Fit each configured strategy (linear, random_forest) on the training rows
- Pair evaluation counts with predictions for the comparison charts

Outputs:
- data/processed/models/model_table.parquet
- data/processed/models/pairs_<strategy>.parquet / .csv
- data/processed/models/model_scores.json
"""

from nypd_shootings.aggregate import aggregate_counts
from nypd_shootings.hashing import write_metadata_sidecar
from nypd_shootings.io_utils import atomic_write_df, atomic_write_json, read_df, read_yaml, write_table
from nypd_shootings.logging_utils import get_logger
from nypd_shootings.models import PREDICTORS
from nypd_shootings.paths import CLEAN_DIR, CONFIG_DIR, MODELS_DIR
from nypd_shootings.pipeline import fit_and_evaluate

SCRIPT_NAME = "04_fit_count_models"

INPUT_CLEAN = CLEAN_DIR / "incidents_clean.parquet"
OUTPUT_MODEL_TABLE = MODELS_DIR / "model_table.parquet"
OUTPUT_SCORES = MODELS_DIR / "model_scores.json"


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

            grouping = config.get("modeling", {}).get("grouping", list(PREDICTORS))
            model_table = aggregate_counts(cleaned, grouping)
            logger.info(f"Model table: {len(model_table)} ({', '.join(grouping)}) rows")

            split, models, pairs, scores = fit_and_evaluate(model_table, config, logger)

            atomic_write_df(model_table, OUTPUT_MODEL_TABLE, index=False)
            outputs = {"model_table": str(OUTPUT_MODEL_TABLE)}

            for strategy, table in pairs.items():
                outputs[f"pairs_{strategy}"] = write_table(table, MODELS_DIR / f"pairs_{strategy}.parquet")

            atomic_write_json(
                {name: {"scores": scores[name], "fit": m.summary()} for name, m in models.items()},
                OUTPUT_SCORES,
            )
            outputs["model_scores"] = str(OUTPUT_SCORES)
            logger.log_artifacts(inputs={"incidents_clean": INPUT_CLEAN}, outputs=outputs)

            write_metadata_sidecar(
                output_path=OUTPUT_MODEL_TABLE,
                inputs={"incidents_clean": str(INPUT_CLEAN)},
                config=config,
                run_id=logger.run_id,
                extra={
                    "n_train": len(split.train),
                    "n_test": len(split.test),
                    "split_seed": split.seed,
                    "scores": scores,
                },
            )

            logger.info("=" * 60)
            for name, s in scores.items():
                rmse = f"{s['rmse']:.2f}" if s["rmse"] is not None else "n/a"
                logger.info(f"  {name}: n={s['n']} RMSE={rmse}")
            logger.info("=" * 60)
            logger.info("SUCCESS: Fitted count models")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
