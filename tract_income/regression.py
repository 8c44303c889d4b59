"""
Ordinary least squares for tract-level median income, with per-term Type II
contributions and the residual diagnostics used by the reports. OLS only;
no robust/weighted variants.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.stats import f as f_dist
from statsmodels.stats.diagnostic import het_breuschpagan
from statsmodels.stats.stattools import jarque_bera

from .errors import RankDeficiencyError
from .table import FEATURE_LABELS, Table

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Immutable result of one OLS fit. Replaced wholesale on every refit."""

    response: str
    predictors: tuple[str, ...]
    params: pd.Series
    bse: pd.Series
    tvalues: pd.Series
    pvalues: pd.Series
    rsquared: float
    rsquared_adj: float
    fvalue: float
    f_pvalue: float
    nobs: int
    n_excluded: int
    df_resid: float
    ssr: float
    fittedvalues: pd.Series
    resid: pd.Series
    X: pd.DataFrame = field(repr=False)
    y: pd.Series = field(repr=False)
    results: Any = field(repr=False)


def sig_stars(p: float) -> str:
    """Map p-value to significance stars."""
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    if p < 0.10:
        return "."
    return ""


def fit(table: Table, response_col: str, predictor_cols: Sequence[str]) -> FittedModel:
    """
    Fit ``response_col ~ predictor_cols`` by OLS with an intercept.

    Rows missing the response or any predictor are excluded and counted in
    ``n_excluded``. Raises RankDeficiencyError when the design (intercept
    included) is not full column rank.
    """
    predictors = list(predictor_cols)
    if not predictors:
        raise ValueError("At least one predictor is required")
    if len(set(predictors)) != len(predictors):
        raise ValueError(f"Duplicate predictors: {predictors}")
    if response_col in predictors:
        raise ValueError(f"Response {response_col} cannot also be a predictor")

    cols = [response_col] + predictors
    frame = table.project(cols).to_frame()
    non_numeric = [
        c for c in cols
        if not pd.api.types.is_numeric_dtype(frame[c]) or pd.api.types.is_bool_dtype(frame[c])
    ]
    if non_numeric:
        raise ValueError(f"Non-numeric column(s) in model: {', '.join(non_numeric)}")

    frame = frame.replace([np.inf, -np.inf], np.nan)
    complete = frame.dropna()
    n_excluded = len(frame) - len(complete)
    if n_excluded:
        logger.info("Excluded %d row(s) with missing values from %s fit", n_excluded, response_col)

    n, k = len(complete), len(predictors) + 1
    if n <= k:
        raise ValueError(f"Need more than {k} complete observations to fit, got {n}")

    y = complete[response_col].astype(float)
    X = sm.add_constant(complete[predictors].astype(float), has_constant="add")

    rank = int(np.linalg.matrix_rank(X.to_numpy()))
    if rank < X.shape[1]:
        raise RankDeficiencyError(predictors, rank)

    results = sm.OLS(y, X).fit()
    logger.debug("Fitted %s ~ %s (n=%d, R²=%.4f)", response_col, " + ".join(predictors), n, results.rsquared)

    return FittedModel(
        response=response_col,
        predictors=tuple(predictors),
        params=results.params.copy(),
        bse=results.bse.copy(),
        tvalues=results.tvalues.copy(),
        pvalues=results.pvalues.copy(),
        rsquared=float(results.rsquared),
        rsquared_adj=float(results.rsquared_adj),
        fvalue=float(results.fvalue),
        f_pvalue=float(results.f_pvalue),
        nobs=int(results.nobs),
        n_excluded=n_excluded,
        df_resid=float(results.df_resid),
        ssr=float(results.ssr),
        fittedvalues=results.fittedvalues.copy(),
        resid=results.resid.copy(),
        X=X,
        y=y,
        results=results,
    )


def sequential_contribution(model: FittedModel) -> dict[str, float]:
    """
    Type II sum of squares per predictor: the reduction in SSR from adding
    that predictor last to a model holding all the others. Keys follow
    declaration order.
    """
    contributions = {}
    for name in model.predictors:
        reduced = sm.OLS(model.y, model.X.drop(columns=[name])).fit()
        contributions[name] = max(float(reduced.ssr - model.ssr), 0.0)
    return contributions


def contribution_table(model: FittedModel) -> pd.DataFrame:
    """
    Type II ANOVA table: sum_sq, F and p-value per predictor, with ``rank``
    ordering predictors from weakest (1) by SS, ties by declaration order.
    """
    ss = sequential_contribution(model)
    mse = model.ssr / model.df_resid
    table = pd.DataFrame({
        "predictor": list(ss),
        "sum_sq": list(ss.values()),
        "df": 1,
    })
    table["F"] = table["sum_sq"] / mse if mse > 0 else np.inf
    table["p_value"] = f_dist.sf(table["F"], 1, model.df_resid)
    weakest_first = sorted(range(len(table)), key=lambda i: (table["sum_sq"].iat[i], i))
    ranks = np.empty(len(table), dtype=int)
    ranks[weakest_first] = np.arange(1, len(table) + 1)
    table["rank"] = ranks
    return table.set_index("predictor")


def coef_table(model: FittedModel) -> pd.DataFrame:
    """Coefficient table with labels, standardized betas and significance stars."""
    features = list(model.predictors)
    y_sd = model.y.std()
    x_sd = model.X[features].std()
    table = pd.DataFrame({
        "Feature": features,
        "Label": [FEATURE_LABELS.get(f, f) for f in features],
        "Coef": [model.params[f] for f in features],
        "SE": [model.bse[f] for f in features],
        "t": [model.tvalues[f] for f in features],
        "pval": [model.pvalues[f] for f in features],
        "Beta": [model.params[f] * x_sd[f] / y_sd if y_sd > 0 else np.nan for f in features],
    })
    table["Significance"] = table["pval"].apply(sig_stars)
    table["Abs_Coef"] = table["Beta"].abs()
    return table.sort_values("Abs_Coef", ascending=False).reset_index(drop=True)


def diagnose(model: FittedModel) -> dict:
    """Breusch-Pagan, Jarque-Bera and RESET diagnostics for the residuals."""
    resid, X, y = model.resid, model.X, model.y
    bp_lm, bp_pval, _, _ = het_breuschpagan(resid, X)
    jb_stat, jb_pval, jb_skew, jb_kurtosis = jarque_bera(resid)

    # RESET: add squared and cubed fitted values, F-test the increment
    y_hat = model.fittedvalues
    X_reset = X.copy()
    X_reset["y_hat_sq"] = y_hat ** 2
    X_reset["y_hat_cu"] = y_hat ** 3
    reset_model = sm.OLS(y, X_reset).fit()
    r_unres, r_res = reset_model.rsquared, model.rsquared
    k_unres, k_res = reset_model.df_model, model.results.df_model
    n = model.nobs
    denom_df = n - k_unres - 1
    if k_unres > k_res and denom_df > 0 and r_unres < 1:
        reset_fstat = ((r_unres - r_res) / (k_unres - k_res)) / ((1 - r_unres) / denom_df)
        reset_pval = float(f_dist.sf(reset_fstat, k_unres - k_res, denom_df))
    else:
        reset_fstat, reset_pval = np.nan, np.nan

    return {
        "breusch_pagan": (float(bp_lm), float(bp_pval)),
        "jarque_bera": (float(jb_stat), float(jb_pval), float(jb_skew), float(jb_kurtosis)),
        "reset": (float(reset_fstat), reset_pval),
    }


def nonlinearity_pvalues(model: FittedModel) -> pd.Series:
    """
    p-value of a quadratic term when the residuals are regressed on each
    predictor (centered, plus its square). Small values flag curvature the
    linear term leaves in the residuals. NaN for predictors with fewer than
    three distinct values.
    """
    pvals = {}
    for name in model.predictors:
        x = model.X[name]
        if x.nunique() < 3:
            pvals[name] = np.nan
            continue
        xc = x - x.mean()
        Z = pd.DataFrame({"const": 1.0, "x": xc, "x_sq": xc ** 2}, index=x.index)
        aux = sm.OLS(model.resid, Z).fit()
        pvals[name] = float(aux.pvalues["x_sq"])
    return pd.Series(pvals, name="nonlinearity_pval", dtype=float)
