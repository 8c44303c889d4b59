"""
Unit tests for the features module.
"""

import pytest
import pandas as pd
import numpy as np

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tract_income.errors import DomainError
from tract_income.features import (
    DEFAULT_RECIPE,
    EXPLORATORY_RECIPE,
    derive,
    log_feature,
    sum_feature,
)
from tract_income.table import Table


def test_log_area_of_one_is_zero():
    """Test log_area on area=1 yields exactly 0.0."""
    table = Table(pd.DataFrame({"area": [1.0]}))

    result = derive(table, [log_feature("area")])

    assert result.column("log_area").iloc[0] == 0.0


def test_log_area_of_zero_raises():
    """Test that logging a zero area without an offset fails."""
    table = Table(pd.DataFrame({"area": [1.0, 0.0, -2.0]}))

    with pytest.raises(DomainError) as exc:
        derive(table, [log_feature("area")])

    assert exc.value.column == "area"
    assert exc.value.n_rows == 2


def test_log_with_declared_offset():
    """Test that a declared offset makes zero inputs loggable."""
    table = Table(pd.DataFrame({"bike": [0.0, 0.5]}))

    result = derive(table, [log_feature("bike", offset=1.0)])

    assert result.column("log_bike").tolist() == pytest.approx([0.0, np.log(1.5)])


def test_log_missing_passes_through():
    """Test that missing inputs stay missing instead of failing."""
    table = Table(pd.DataFrame({"median_income": [np.nan, np.e]}))

    result = derive(table, [log_feature("median_income")])

    values = result.column("log_median_income")
    assert np.isnan(values.iloc[0])
    assert values.iloc[1] == pytest.approx(1.0)


def test_derive_applies_in_order():
    """Test that later recipe entries can reference earlier derived columns."""
    table = Table(pd.DataFrame({"black": [0.1], "native_american": [0.05]}))

    result = derive(table, [
        sum_feature("poc", "black", "native_american"),
        log_feature("poc", name="log_poc"),
    ])

    assert result.column("poc").iloc[0] == pytest.approx(0.15)
    assert result.column("log_poc").iloc[0] == pytest.approx(np.log(0.15))
    assert "poc" not in table.columns


def test_default_recipe():
    """Test the recipe used by the reports."""
    table = Table(pd.DataFrame({
        "median_income": [50000.0, 80000.0],
        "area": [2.0, 4.0],
        "black": [0.3, 0.1],
        "native_american": [0.2, 0.0],
    }))

    result = derive(table, DEFAULT_RECIPE)

    assert result.column("log_median_income").tolist() == pytest.approx(np.log([50000.0, 80000.0]).tolist())
    assert result.column("log_area").tolist() == pytest.approx(np.log([2.0, 4.0]).tolist())
    assert result.column("poc").tolist() == pytest.approx([0.5, 0.1])


def test_exploratory_recipe_handles_zero_proportions():
    """Test that exploratory logs use the +1 offset policy."""
    table = Table(pd.DataFrame({"bike": [0.0, 0.1], "graduate": [0.0, 0.3]}))

    result = derive(table, EXPLORATORY_RECIPE)

    assert result.column("log_bike").iloc[0] == 0.0
    assert result.column("log_graduate").iloc[1] == pytest.approx(np.log(1.3))


def test_sum_feature_requires_two_sources():
    """Test that a one-column composite is rejected."""
    with pytest.raises(ValueError):
        sum_feature("poc", "black")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
