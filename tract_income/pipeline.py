"""
End-to-end composition: load -> normalize -> derive -> correlation screen ->
model selection -> coefficient table and diagnostics.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

from .config import Config, get_config
from .correlation import pairwise_correlation, strong_pairs, variance_inflation
from .features import POC_COMPONENTS, derive, log_feature, sum_feature
from .normalize import normalize_with_report
from .regression import coef_table, diagnose
from .selection import ModelSelector
from .table import TRACT_SCHEMA, Source, Table, load

logger = logging.getLogger(__name__)

# white and SSI stay in the candidate set; selection decides whether they survive
DEFAULT_PREDICTORS = [
    c for c in TRACT_SCHEMA["count_cols"] if c not in POC_COMPONENTS
] + ["poc", "log_area"]


def schema_from_config(config: Config) -> dict:
    """TRACT_SCHEMA with the population, area and response columns taken from config."""
    return {
        **TRACT_SCHEMA,
        "population_col": config.population_col,
        "area_col": config.area_col,
        "target_col": config.response_col,
    }


def build_recipe(config: Config) -> list:
    # log_area keeps its name whatever the area column is called
    return [
        log_feature(config.response_col),
        log_feature(config.area_col, name="log_area"),
        sum_feature("poc", *POC_COMPONENTS),
    ]


def prepare_modeling_table(
    source: Union[Source, Table],
    config: Optional[Config] = None,
    allow_extra: bool = False,
) -> Table:
    """Load (unless given a Table), normalize and apply the configured recipe."""
    config = config or get_config()
    table = source if isinstance(source, Table) else load(
        source, schema=schema_from_config(config), allow_extra=allow_extra
    )
    table, _ = normalize_with_report(
        table,
        population_col=config.population_col,
        exempt_cols=TRACT_SCHEMA["id_cols"],
        response_col=config.response_col,
        area_col=config.area_col,
        strict=config.strict_proportions,
    )
    return derive(table, build_recipe(config))


def run_selection_pipeline(
    source: Union[Source, Table],
    predictors: Optional[Sequence[str]] = None,
    response_col: Optional[str] = None,
    config: Optional[Config] = None,
    allow_extra: bool = False,
) -> dict:
    """
    Run the full pipeline and return everything a report renderer needs:
    the modeling table, correlation matrix, strong pairs, VIFs, the
    selection result, coefficient table and residual diagnostics.
    ``response_col`` defaults to the log of the configured response column.
    """
    config = config or get_config()
    predictors = list(predictors or DEFAULT_PREDICTORS)
    response_col = response_col or f"log_{config.response_col}"

    table = prepare_modeling_table(source, config=config, allow_extra=allow_extra)
    corr = pairwise_correlation(table, predictors + [response_col])
    pairs = strong_pairs(corr.loc[predictors, predictors], config.correlation_threshold)
    logger.info("Found %d predictor pair(s) with |r| > %.2f", len(pairs), config.correlation_threshold)

    selector = ModelSelector.from_config(table, config=config, response_col=response_col)
    result = selector.run(predictors)

    return {
        "table": result.table,
        "correlation_matrix": corr,
        "strong_pairs": pairs,
        "vif": variance_inflation(result.table, result.predictors),
        "selection": result,
        "model": result.model,
        "coef_table": coef_table(result.model),
        "diagnostics": diagnose(result.model),
        "trace": result.trace.to_frame(),
        "final_features": list(result.predictors),
    }
