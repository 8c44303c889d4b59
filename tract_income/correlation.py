"""
Collinearity screening: pairwise correlation matrix, strongly correlated
pairs, correlation with the response, and VIF.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from statsmodels.stats.outliers_influence import variance_inflation_factor

from .table import Table

logger = logging.getLogger(__name__)


class StrongPair(NamedTuple):
    col_a: str
    col_b: str
    r: float


def pairwise_correlation(
    table: Table,
    columns: Sequence[str],
    min_periods: int = 2,
) -> pd.DataFrame:
    """
    Pearson correlation over pairwise-complete observations. A row missing a
    value in one column is excluded from that column's pairs only. The
    result is exactly symmetric with a diagonal of 1.0.
    """
    columns = list(columns)
    frame = table.project(columns).to_frame().astype(float)
    raw = frame.corr(method="pearson", min_periods=min_periods).to_numpy()

    # Mirror the upper triangle so [i, j] and [j, i] are bit-identical
    upper = np.triu(raw, k=1)
    matrix = upper + upper.T
    np.fill_diagonal(matrix, 1.0)
    return pd.DataFrame(matrix, index=columns, columns=columns)


def strong_pairs(matrix: pd.DataFrame, threshold: float) -> list[StrongPair]:
    """
    Pairs with ``|r| > threshold``, strongest first. Self-pairs are excluded
    and each unordered pair appears once; ties keep matrix order.
    """
    cols = list(matrix.columns)
    pairs = []
    for i in range(len(cols)):
        for j in range(i + 1, len(cols)):
            r = matrix.iat[i, j]
            if pd.notna(r) and abs(r) > threshold:
                pairs.append(StrongPair(cols[i], cols[j], float(r)))
    return sorted(pairs, key=lambda p: -abs(p.r))


def correlate_with_response(
    table: Table,
    response_col: str,
    columns: Sequence[str],
) -> pd.DataFrame:
    """Pearson r, p-value and sample size of each column against the response."""
    frame = table.to_frame()
    y = frame[response_col]
    rows = []
    for col in columns:
        x = frame[col]
        valid = x.notna() & y.notna()
        n = int(valid.sum())
        if n < 3 or x[valid].nunique() < 2 or y[valid].nunique() < 2:
            logger.warning("Skipping %s: insufficient samples or zero variance (n=%d)", col, n)
            corr, p_value = np.nan, np.nan
        else:
            corr, p_value = stats.pearsonr(x[valid], y[valid])
        rows.append({
            "feature": col,
            "correlation": float(corr),
            "p_value": float(p_value),
            "n_samples": n,
        })
    result = pd.DataFrame(rows, columns=["feature", "correlation", "p_value", "n_samples"])
    result["abs_correlation"] = result["correlation"].abs()
    return result.sort_values("abs_correlation", ascending=False).reset_index(drop=True)


def variance_inflation(table: Table, columns: Sequence[str]) -> pd.Series:
    """VIF of each column (complete cases, intercept included in the design)."""
    columns = list(columns)
    work = table.project(columns).to_frame().astype(float).dropna()
    X_const = sm.add_constant(work, has_constant="add")
    vifs = [variance_inflation_factor(X_const.values, i + 1) for i in range(len(columns))]
    return pd.Series(vifs, index=columns, name="VIF")
