"""
Proportion normalization: turns absolute per-tract counts into shares of
tract population and discards structurally invalid tracts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import InvariantViolation
from .table import TRACT_SCHEMA, Table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizationReport:
    rows_in: int
    dropped_population: int
    dropped_missing_response: int
    dropped_zero_area: int
    rows_out: int
    normalized_cols: tuple[str, ...]
    out_of_range: dict


def to_proportions(table: Table, population_col: str, columns: Iterable[str]) -> Table:
    """Divide each of ``columns`` by ``population_col``, which must be positive on every row."""
    pop = table.column(population_col)
    bad = int(((pop <= 0) | pop.isna()).sum())
    if bad:
        raise InvariantViolation(
            f"{population_col} is missing or <= 0 on {bad} row(s) at the division step"
        )
    for col in columns:
        table = table.add_column(col, lambda df, c=col: df[c] / df[population_col])
    return table


def normalize_with_report(
    table: Table,
    population_col: str = TRACT_SCHEMA["population_col"],
    exempt_cols: Optional[Iterable[str]] = None,
    response_col: str = TRACT_SCHEMA["target_col"],
    area_col: str = TRACT_SCHEMA["area_col"],
    strict: bool = True,
) -> tuple[Table, NormalizationReport]:
    """
    Normalize ``table`` and return it together with a row accounting report.

    Numeric columns outside ``exempt_cols`` and the population, response and
    area columns are divided by population. Identifier columns are strings
    and never touched.
    """
    exempt = set(exempt_cols or ()) | {population_col, response_col, area_col}
    rows_in = len(table)

    # 1. Population must be positive and the response present
    frame = table.to_frame()
    bad_pop = ~(frame[population_col] > 0)
    no_response = frame[response_col].isna() & ~bad_pop
    work = table.filter_rows(lambda df: (df[population_col] > 0) & df[response_col].notna())

    # 2. Counts -> proportions
    to_scale = [c for c in work.numeric_columns() if c not in exempt]
    work = to_proportions(work, population_col, to_scale)

    out_of_range = {}
    scaled = work.to_frame()
    for col in to_scale:
        n_bad = int(((scaled[col] > 1) | (scaled[col] < 0)).sum())
        if n_bad:
            out_of_range[col] = n_bad
    if out_of_range:
        detail = ", ".join(f"{c} ({n} rows)" for c, n in out_of_range.items())
        if strict:
            raise InvariantViolation(f"Proportions outside [0, 1] after normalization: {detail}")
        logger.warning("Proportions outside [0, 1] kept (strict=False): %s", detail)

    # 3. Zero-area tracts (water-only or administrative artifacts)
    before_area = len(work)
    work = work.filter_rows(lambda df: df[area_col] != 0)
    dropped_area = before_area - len(work)

    # 4. Population is only a divisor
    work = work.drop_columns([population_col])

    report = NormalizationReport(
        rows_in=rows_in,
        dropped_population=int(bad_pop.sum()),
        dropped_missing_response=int(no_response.sum()),
        dropped_zero_area=dropped_area,
        rows_out=len(work),
        normalized_cols=tuple(to_scale),
        out_of_range=out_of_range,
    )
    logger.info(
        "Normalized %d columns: %d rows in, dropped %d (population <= 0), "
        "%d (missing %s), %d (zero area); %d rows out",
        len(to_scale), rows_in, report.dropped_population,
        report.dropped_missing_response, response_col, dropped_area, report.rows_out,
    )
    return work, report


def normalize(
    table: Table,
    population_col: str = TRACT_SCHEMA["population_col"],
    exempt_cols: Optional[Iterable[str]] = None,
    response_col: str = TRACT_SCHEMA["target_col"],
    area_col: str = TRACT_SCHEMA["area_col"],
    strict: bool = True,
) -> Table:
    """Convert counts to population proportions and drop invalid tracts."""
    work, _ = normalize_with_report(
        table,
        population_col=population_col,
        exempt_cols=exempt_cols,
        response_col=response_col,
        area_col=area_col,
        strict=strict,
    )
    return work
