"""
End-to-end orchestration: filter → normalize → aggregate → split → fit → pair.

Each stage receives a table and returns a new one; nothing is shared or
mutated between stages. A failing stage is logged by name and its exception
re-raised unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from nypd_shootings.aggregate import DEFAULT_GROUPINGS, aggregate_counts
from nypd_shootings.cleaning import DEFAULT_MISSING_RATIO_THRESHOLD, filter_schema
from nypd_shootings.evaluation import pair_predictions, score_pairs
from nypd_shootings.models import (
    DEFAULT_MODEL_SEED,
    PREDICTORS,
    CountModel,
    borough_levels,
    build_model,
    predict_counts,
)
from nypd_shootings.schemas import (
    BOROUGHS,
    BOROUGH_COLUMN,
    CLEANED_INCIDENT_SCHEMA,
    DATE_COLUMN,
    TIME_COLUMN,
    validate_schema,
)
from nypd_shootings.split import (
    DEFAULT_SPLIT_SEED,
    DEFAULT_TRAIN_FRACTION,
    DatasetSplit,
    split_dataset,
)
from nypd_shootings.time_utils import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_TIME_FORMATS,
    collect_parse_errors,
    drop_unparsed,
    normalize_fields,
)


@dataclass
class PipelineResult:
    """Everything a report needs from one run."""
    cleaned: pd.DataFrame
    filter_stats: Dict[str, Any]
    parse_failures: int
    descriptive: Dict[str, pd.DataFrame]
    model_table: Optional[pd.DataFrame] = None
    split: Optional[DatasetSplit] = None
    models: Dict[str, CountModel] = field(default_factory=dict)
    pairs: Dict[str, pd.DataFrame] = field(default_factory=dict)
    scores: Dict[str, Dict[str, Any]] = field(default_factory=dict)


# =============================================================================
# Individual Stages
# =============================================================================

def clean_incidents(raw: pd.DataFrame, config: Mapping[str, Any], logger) -> tuple:
    """
    Schema filter + field normalization + removal of unparseable rows.

    Returns:
        (cleaned frame, filter stats, number of rows dropped for parse failures)
    """
    filter_cfg = config.get("schema_filter", {})
    norm_cfg = config.get("normalize", {})
    borough_column = filter_cfg.get("borough_column", BOROUGH_COLUMN)

    with logger.stage("schema_filter"):
        filtered, stats = filter_schema(
            raw,
            threshold=filter_cfg.get("missing_ratio_threshold", DEFAULT_MISSING_RATIO_THRESHOLD),
            borough_column=borough_column,
        )
        logger.log_stage("schema_filter", len(raw), len(filtered), extra=stats)
        if stats["dropped_columns"]:
            logger.info(f"Dropped sparse columns: {list(stats['dropped_columns'])}")
        if stats["unexpected_columns"]:
            logger.warning(f"Columns not in the published schema: {stats['unexpected_columns']}")

    with logger.stage("normalize"):
        date_column = norm_cfg.get("date_column", DATE_COLUMN)
        time_column = norm_cfg.get("time_column", TIME_COLUMN)
        normalized = normalize_fields(
            filtered,
            date_column=date_column,
            time_column=time_column,
            borough_column=borough_column,
            date_format=norm_cfg.get("date_format", DEFAULT_DATE_FORMAT),
            time_formats=norm_cfg.get("time_formats", DEFAULT_TIME_FORMATS),
            week_start=norm_cfg.get("week_start", "sunday"),
        )
        cleaned = drop_unparsed(normalized)
        failures = len(normalized) - len(cleaned)

        if failures:
            examples = collect_parse_errors(
                filtered, normalized, date_column=date_column, time_column=time_column, limit=5
            )
            logger.warning(
                f"Excluded {failures:,} rows with unparseable date/time",
                extra={"examples": [str(e) for e in examples]},
            )

        if len(cleaned):
            validate_schema(cleaned, CLEANED_INCIDENT_SCHEMA, context="normalize")
            unexpected = sorted(set(cleaned[borough_column].unique()) - set(BOROUGHS))
            if unexpected:
                logger.warning(f"Unexpected borough labels: {unexpected}")

        logger.log_stage("normalize", len(filtered), len(cleaned), extra={"parse_failures": failures})

    return cleaned, stats, failures


def build_aggregates(
    cleaned: pd.DataFrame,
    groupings: Mapping[str, List[str]],
    logger,
) -> Dict[str, pd.DataFrame]:
    """Descriptive count tables; groupings whose keys were dropped are skipped."""
    tables = {}
    with logger.stage("aggregate"):
        for name, keys in groupings.items():
            missing = [k for k in keys if k not in cleaned.columns]
            if missing and len(cleaned):
                logger.warning(f"Skipping aggregate '{name}': columns {missing} not available")
                continue
            table = aggregate_counts(cleaned, keys)
            tables[name] = table
            logger.debug(f"Aggregate '{name}': {len(table)} groups, {int(table['count'].sum()):,} incidents")
    return tables


def fit_and_evaluate(
    model_table: pd.DataFrame,
    config: Mapping[str, Any],
    logger,
) -> tuple:
    """
    Split the (boro, hour) table, fit every configured strategy, pair predictions.

    Returns:
        (split, models by name, pairs by name, scores by name)
    """
    model_cfg = config.get("modeling", {})
    seeds = config.get("random_seeds", {})
    strategies = model_cfg.get("strategies", ["linear", "random_forest"])

    with logger.stage("split"):
        split = split_dataset(
            model_table,
            train_fraction=model_cfg.get("train_fraction", DEFAULT_TRAIN_FRACTION),
            seed=seeds.get("split", DEFAULT_SPLIT_SEED),
        )
        logger.log_stage(
            "split",
            len(model_table),
            len(split.train),
            extra={"n_train": len(split.train), "n_test": len(split.test), "seed": split.seed},
        )

    levels = borough_levels(split.train, split.test)
    models, pairs, scores = {}, {}, {}

    for strategy in strategies:
        with logger.stage(f"fit:{strategy}"):
            params = dict(model_cfg.get(strategy) or {})
            if strategy == "random_forest":
                params.setdefault("random_state", seeds.get("model", DEFAULT_MODEL_SEED))
            model = build_model(strategy, levels=levels, **params).fit(split.train)
            predicted = predict_counts(model, split.test)

        with logger.stage(f"evaluate:{strategy}"):
            pairs[strategy] = pair_predictions(split.test, predicted, key_columns=list(PREDICTORS))
            scores[strategy] = score_pairs(pairs[strategy])
            models[strategy] = model
            logger.log_metrics({"strategy": strategy, "fit": model.summary(), "scores": scores[strategy]})

    return split, models, pairs, scores


# =============================================================================
# Orchestrator
# =============================================================================

def run_pipeline(
    raw: pd.DataFrame,
    config: Mapping[str, Any],
    logger,
) -> PipelineResult:
    """
    Run every stage on a raw incident table.

    Raises:
        SchemaError: If the borough column is absent from ``raw``
        InsufficientDataError: If a model cannot be fitted on the training split
    """
    cleaned, stats, failures = clean_incidents(raw, config, logger)

    groupings = config.get("aggregates", DEFAULT_GROUPINGS)
    descriptive = build_aggregates(cleaned, groupings, logger)

    result = PipelineResult(
        cleaned=cleaned,
        filter_stats=stats,
        parse_failures=failures,
        descriptive=descriptive,
    )

    model_cfg = config.get("modeling", {})
    if not model_cfg.get("strategies", ["linear", "random_forest"]):
        logger.info("No modeling strategies configured; skipping model stage")
        return result

    with logger.stage("aggregate:model_table"):
        result.model_table = aggregate_counts(cleaned, model_cfg.get("grouping", list(PREDICTORS)))

    split, models, pairs, scores = fit_and_evaluate(result.model_table, config, logger)
    result.split = split
    result.models = models
    result.pairs = pairs
    result.scores = scores

    logger.log_metrics({
        "incidents_clean": len(cleaned),
        "parse_failures": failures,
        "model_rows": len(result.model_table),
        "total_predicted": {k: float(np.sum(v["predicted"])) for k, v in pairs.items()},
    })
    return result
