# Census tract median income: normalization, feature derivation, OLS and stepwise selection
from .errors import (
    PipelineError,
    LoadError,
    InvariantViolation,
    DomainError,
    RankDeficiencyError,
    SelectionExhausted,
)
from .table import TRACT_SCHEMA, FEATURE_LABELS, Table, load
from .normalize import normalize, normalize_with_report, to_proportions
from .features import DEFAULT_RECIPE, EXPLORATORY_RECIPE, derive, log_feature, sum_feature
from .correlation import pairwise_correlation, strong_pairs
from .regression import FittedModel, fit, sequential_contribution, sig_stars
from .selection import ModelSelector, SelectionTrace
from .pipeline import build_recipe, prepare_modeling_table, run_selection_pipeline, schema_from_config

__all__ = [
    "PipelineError",
    "LoadError",
    "InvariantViolation",
    "DomainError",
    "RankDeficiencyError",
    "SelectionExhausted",
    "TRACT_SCHEMA",
    "FEATURE_LABELS",
    "Table",
    "load",
    "normalize",
    "normalize_with_report",
    "to_proportions",
    "DEFAULT_RECIPE",
    "EXPLORATORY_RECIPE",
    "derive",
    "log_feature",
    "sum_feature",
    "pairwise_correlation",
    "strong_pairs",
    "FittedModel",
    "fit",
    "sequential_contribution",
    "sig_stars",
    "ModelSelector",
    "SelectionTrace",
    "prepare_modeling_table",
    "run_selection_pipeline",
    "schema_from_config",
    "build_recipe",
]
