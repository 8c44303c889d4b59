"""
Unit tests for the regression module.
"""

import pytest
import pandas as pd
import numpy as np
import statsmodels.api as sm

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tract_income.errors import RankDeficiencyError
from tract_income.regression import (
    coef_table,
    contribution_table,
    diagnose,
    fit,
    nonlinearity_pvalues,
    sequential_contribution,
    sig_stars,
)
from tract_income.table import Table


def make_table(n=200, seed=42):
    np.random.seed(seed)
    bachelors = np.random.uniform(0, 0.6, n)
    graduate = np.random.uniform(0, 0.3, n)
    walk = np.random.uniform(0, 0.2, n)
    income = 30000 + 80000 * bachelors + 50000 * graduate + np.random.normal(0, 2000, n)
    return Table(pd.DataFrame({
        "median_income": income,
        "bachelors": bachelors,
        "graduate": graduate,
        "walk": walk,
    }))


def test_fit_recovers_coefficients():
    """Test OLS estimates close to the generating coefficients."""
    model = fit(make_table(), "median_income", ["bachelors", "graduate"])

    assert model.predictors == ("bachelors", "graduate")
    assert model.params["bachelors"] == pytest.approx(80000, rel=0.05)
    assert model.params["graduate"] == pytest.approx(50000, rel=0.1)
    assert model.rsquared > 0.9
    assert model.nobs == 200
    assert model.n_excluded == 0
    assert len(model.resid) == len(model.fittedvalues) == 200
    assert np.allclose(model.fittedvalues + model.resid, model.y)


def test_fit_is_deterministic():
    """Test that refitting the same table gives identical coefficients."""
    table = make_table()

    first = fit(table, "median_income", ["bachelors", "graduate", "walk"])
    second = fit(table, "median_income", ["bachelors", "graduate", "walk"])

    assert first.params.equals(second.params)
    assert first.bse.equals(second.bse)


def test_fit_rank_deficient():
    """Test that an exact linear combination of predictors is rejected."""
    df = make_table().to_frame()
    df["graduate"] = 2 * df["bachelors"] + 0.01

    with pytest.raises(RankDeficiencyError) as exc:
        fit(Table(df), "median_income", ["bachelors", "graduate"])

    assert exc.value.predictors == ["bachelors", "graduate"]
    assert exc.value.rank == 2


def test_fit_constant_predictor_is_rank_deficient():
    """Test that a constant predictor collides with the intercept."""
    df = make_table().to_frame()
    df["walk"] = 0.1

    with pytest.raises(RankDeficiencyError):
        fit(Table(df), "median_income", ["bachelors", "walk"])


def test_fit_excludes_incomplete_rows():
    """Test that rows missing the response or a predictor are excluded and counted."""
    df = make_table().to_frame()
    df.loc[[0, 1], "median_income"] = np.nan
    df.loc[[1, 2, 3], "graduate"] = np.nan
    df.loc[4, "walk"] = np.nan  # not in the model

    model = fit(Table(df), "median_income", ["bachelors", "graduate"])

    assert model.n_excluded == 4
    assert model.nobs == 196


def test_fit_argument_checks():
    """Test rejection of empty, duplicate, non-numeric and unknown predictors."""
    table = make_table()
    df = table.to_frame()
    df["label"] = "x"

    with pytest.raises(ValueError):
        fit(table, "median_income", [])
    with pytest.raises(ValueError):
        fit(table, "median_income", ["bachelors", "bachelors"])
    with pytest.raises(ValueError):
        fit(Table(df), "median_income", ["bachelors", "label"])
    with pytest.raises(ValueError):
        fit(table, "median_income", ["carpool"])


def test_sequential_contribution_matches_refits():
    """Test Type II SS equals the SSR increase when the term is dropped."""
    table = make_table()
    model = fit(table, "median_income", ["bachelors", "graduate", "walk"])

    ss = sequential_contribution(model)

    assert list(ss) == ["bachelors", "graduate", "walk"]
    df = table.to_frame()
    without_bachelors = sm.OLS(df["median_income"], sm.add_constant(df[["graduate", "walk"]])).fit()
    assert ss["bachelors"] == pytest.approx(without_bachelors.ssr - model.ssr)
    assert ss["bachelors"] > ss["graduate"] > ss["walk"]


def test_sequential_contribution_single_predictor():
    """Test that with one predictor Type II SS is the explained sum of squares."""
    model = fit(make_table(), "median_income", ["bachelors"])

    ss = sequential_contribution(model)

    assert ss["bachelors"] == pytest.approx(model.results.ess)


def test_contribution_table_matches_t_tests():
    """Test single-df F p-values equal the coefficient t-test p-values."""
    model = fit(make_table(), "median_income", ["bachelors", "graduate", "walk"])

    anova = contribution_table(model)

    for name in model.predictors:
        assert anova.at[name, "F"] == pytest.approx(model.tvalues[name] ** 2, rel=1e-6)
        assert anova.at[name, "p_value"] == pytest.approx(model.pvalues[name], abs=1e-9)
    assert anova.at["walk", "rank"] == 1
    assert anova.at["bachelors", "rank"] == 3


def test_sig_stars():
    """Test p-value to star mapping."""
    assert sig_stars(0.0001) == "***"
    assert sig_stars(0.005) == "**"
    assert sig_stars(0.03) == "*"
    assert sig_stars(0.07) == "."
    assert sig_stars(0.5) == ""


def test_coef_table():
    """Test coefficient table contents and ordering by standardized effect."""
    model = fit(make_table(), "median_income", ["bachelors", "graduate", "walk"])

    table = coef_table(model)

    assert list(table["Feature"])[0] == "bachelors"
    assert set(table["Feature"]) == {"bachelors", "graduate", "walk"}
    assert table.loc[table["Feature"] == "bachelors", "Significance"].iloc[0] == "***"
    assert table.loc[table["Feature"] == "bachelors", "Label"].iloc[0] == "% Bachelor's Degree"


def test_diagnose_keys():
    """Test that residual diagnostics are computed."""
    model = fit(make_table(), "median_income", ["bachelors", "graduate"])

    diag = diagnose(model)

    assert set(diag) == {"breusch_pagan", "jarque_bera", "reset"}
    assert 0 <= diag["breusch_pagan"][1] <= 1
    assert 0 <= diag["jarque_bera"][1] <= 1
    assert 0 <= diag["reset"][1] <= 1


def test_nonlinearity_flags_curved_predictor():
    """Test that residual curvature is detected against a log-shaped predictor."""
    np.random.seed(0)
    x = np.random.uniform(1, 100, 300)
    z = np.random.uniform(0, 1, 300)
    y = 5 * np.log(x) + z + np.random.normal(0, 0.05, 300)
    model = fit(Table(pd.DataFrame({"y": y, "x": x, "z": z})), "y", ["x", "z"])

    pvals = nonlinearity_pvalues(model)

    assert pvals["x"] < 1e-6
    assert list(pvals.index) == ["x", "z"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
