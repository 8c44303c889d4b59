"""
Derived columns: log transforms and composite aggregates, applied as an
ordered recipe so later entries may reference earlier ones.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

import numpy as np
import pandas as pd

from .errors import DomainError
from .table import Table

logger = logging.getLogger(__name__)

RecipeEntry = tuple[str, Callable[[pd.DataFrame], pd.Series]]

# Offset applied before logging exploratory proportions that can be zero
EXPLORATORY_LOG_OFFSET = 1.0


def log_feature(
    source: str,
    offset: float = 0.0,
    name: Optional[str] = None,
) -> RecipeEntry:
    """
    Recipe entry for ``log(source + offset)``. Raises DomainError if any
    non-missing ``source + offset`` is <= 0; values are never clipped.
    """
    def _log(df: pd.DataFrame) -> pd.Series:
        shifted = df[source] + offset
        n_bad = int((shifted <= 0).sum())
        if n_bad:
            suffix = f" + {offset:g}" if offset else ""
            raise DomainError(
                source,
                n_bad,
                f"log({source}{suffix}) undefined for {n_bad} row(s) with value <= 0",
            )
        return np.log(shifted)

    return (name or f"log_{source}", _log)


def sum_feature(name: str, *sources: str) -> RecipeEntry:
    """Recipe entry for a composite sum of ``sources``."""
    if len(sources) < 2:
        raise ValueError(f"{name}: a composite needs at least two source columns")

    def _sum(df: pd.DataFrame) -> pd.Series:
        total = df[sources[0]]
        for col in sources[1:]:
            total = total + df[col]
        return total

    return (name, _sum)


# poc is black + native_american; hispanic_latino stays its own predictor
POC_COMPONENTS = ("black", "native_american")

DEFAULT_RECIPE: list[RecipeEntry] = [
    log_feature("median_income"),
    log_feature("area"),
    sum_feature("poc", *POC_COMPONENTS),
]

EXPLORATORY_RECIPE: list[RecipeEntry] = [
    log_feature("bike", offset=EXPLORATORY_LOG_OFFSET),
    log_feature("graduate", offset=EXPLORATORY_LOG_OFFSET),
]


def derive(table: Table, recipe: Iterable[RecipeEntry]) -> Table:
    """Apply each (name, fn) entry in order via Table.add_column."""
    work = table
    for name, fn in recipe:
        work = work.add_column(name, fn)
        logger.info("Derived column %s", name)
    return work
