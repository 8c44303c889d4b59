"""
Deterministic stepwise model selection.

Starting from a candidate predictor set, the selector repeatedly fits OLS and
applies the first applicable transition:

1. drop       - the least significant predictor with Type II p > tau
2. merge      - the strongest pair with |r| > rho and same-signed
                coefficients becomes one composite (a + b); with opposite
                signs, drop_collinear removes the weaker member instead
3. transform  - a predictor whose residuals curve against it is replaced by
                its log

It stops when no transition applies. Every transition is recorded in a
SelectionTrace so a run can be audited and replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .config import Config, get_config
from .correlation import pairwise_correlation, strong_pairs
from .errors import InvariantViolation, SelectionExhausted
from .features import derive, log_feature, sum_feature
from .regression import (
    FittedModel,
    contribution_table,
    fit,
    nonlinearity_pvalues,
)
from .table import TRACT_SCHEMA, Table

logger = logging.getLogger(__name__)

DROP = "drop"
MERGE = "merge"
DROP_COLLINEAR = "drop_collinear"
TRANSFORM = "transform"

DEFAULT_COMPOSITE_NAMES = {frozenset(("black", "native_american")): "poc"}


@dataclass(frozen=True)
class SelectionStep:
    iteration: int
    action: str
    predictors_before: tuple[str, ...]
    predictors_after: tuple[str, ...]
    detail: dict = field(default_factory=dict)


class SelectionTrace:
    """Ordered record of the transitions taken by one selection run."""

    def __init__(self):
        self._steps: list[SelectionStep] = []

    def append(self, step: SelectionStep) -> None:
        self._steps.append(step)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[SelectionStep]:
        return iter(self._steps)

    def __getitem__(self, index: int) -> SelectionStep:
        return self._steps[index]

    @property
    def actions(self) -> list[str]:
        return [s.action for s in self._steps]

    def to_frame(self) -> pd.DataFrame:
        if not self._steps:
            return pd.DataFrame(
                columns=["iteration", "action", "predictors_before", "predictors_after"]
            )
        return pd.DataFrame(
            [
                {
                    "iteration": s.iteration,
                    "action": s.action,
                    "predictors_before": ", ".join(s.predictors_before),
                    "predictors_after": ", ".join(s.predictors_after),
                    **s.detail,
                }
                for s in self._steps
            ]
        )


@dataclass(frozen=True)
class SelectionResult:
    model: FittedModel
    trace: SelectionTrace
    table: Table
    initial_predictors: tuple[str, ...]

    @property
    def predictors(self) -> tuple[str, ...]:
        return self.model.predictors


class ModelSelector:
    """Converges on a final predictor set with configurable tau and rho."""

    def __init__(
        self,
        table: Table,
        response_col: str = TRACT_SCHEMA["target_col"],
        significance_threshold: float = 0.05,
        correlation_threshold: float = 0.5,
        nonlinearity_alpha: float = 0.01,
        log_offset: float = 0.0,
        allow_transforms: bool = True,
        composite_names: Optional[Mapping[frozenset, str]] = None,
    ):
        self.table = table
        self.response_col = response_col
        self.significance_threshold = significance_threshold
        self.correlation_threshold = correlation_threshold
        self.nonlinearity_alpha = nonlinearity_alpha
        self.log_offset = log_offset
        self.allow_transforms = allow_transforms
        self.composite_names = dict(
            DEFAULT_COMPOSITE_NAMES if composite_names is None else composite_names
        )

    @classmethod
    def from_config(
        cls,
        table: Table,
        config: Optional[Config] = None,
        response_col: Optional[str] = None,
    ) -> "ModelSelector":
        config = config or get_config()
        return cls(
            table,
            response_col=response_col or config.response_col,
            significance_threshold=config.significance_threshold,
            correlation_threshold=config.correlation_threshold,
            nonlinearity_alpha=config.nonlinearity_alpha,
            log_offset=config.log_offset,
            allow_transforms=config.allow_transforms,
        )

    def run(self, predictors: Sequence[str]) -> SelectionResult:
        """
        Run selection from ``predictors`` to a terminal set.

        Raises SelectionExhausted (carrying the trace) if the last remaining
        predictor would be dropped. RankDeficiencyError from a fit is not
        handled here.
        """
        current = list(predictors)
        if not current:
            raise ValueError("At least one candidate predictor is required")
        if len(set(current)) != len(current):
            raise ValueError(f"Duplicate candidate predictors: {current}")

        table = self.table
        trace = SelectionTrace()
        # Predictors that are never log-transformed: already logs, composites,
        # and anything transformed once
        settled = {p for p in current if p.startswith("log_")}
        # len(trace) + len(current) is unchanged by drops and merges and grows
        # by one per transform, so a transform is taken only while it is at most
        # the initial count
        max_iterations = len(current)

        logger.info("=" * 80)
        logger.info("MODEL SELECTION: %s ~ %s", self.response_col, " + ".join(current))
        logger.info("=" * 80)

        iteration = 0
        while True:
            model = fit(table, self.response_col, current)
            anova = contribution_table(model)

            step = self._drop_step(model, anova, current, iteration + 1, trace)
            if step is None:
                step, table = self._collinearity_step(table, model, anova, current, iteration + 1, settled)
            if step is None and self.allow_transforms:
                budget = len(trace) + len(current) <= max_iterations
                step, table = self._transform_step(table, model, current, iteration + 1, settled, budget)
            if step is None:
                break

            iteration += 1
            if iteration > max_iterations:
                raise InvariantViolation(
                    f"Model selection exceeded {max_iterations} iterations"
                )
            trace.append(step)
            current = list(step.predictors_after)
            logger.info("   [%d] %s: %s -> %s", step.iteration, step.action, step.detail, ", ".join(current))

        logger.info(
            "✓ Selection converged after %d transition(s): %s (R²=%.4f, n=%d)",
            len(trace), ", ".join(model.predictors), model.rsquared, model.nobs,
        )
        return SelectionResult(
            model=model,
            trace=trace,
            table=table,
            initial_predictors=tuple(predictors),
        )

    def _drop_step(self, model, anova, current, iteration, trace) -> Optional[SelectionStep]:
        """Single worst offender above tau: highest p, then lowest SS, then declaration order."""
        offenders = [
            (-anova.at[p, "p_value"], anova.at[p, "sum_sq"], i, p)
            for i, p in enumerate(current)
            if anova.at[p, "p_value"] > self.significance_threshold
        ]
        if not offenders:
            return None
        _, ss, _, worst = min(offenders)
        if len(current) == 1:
            raise SelectionExhausted(
                f"All predictors rejected: {worst} (p={anova.at[worst, 'p_value']:.4f}) "
                f"was the last candidate for {self.response_col}",
                trace=trace,
            )
        return SelectionStep(
            iteration=iteration,
            action=DROP,
            predictors_before=tuple(current),
            predictors_after=tuple(p for p in current if p != worst),
            detail={
                "predictor": worst,
                "p_value": float(anova.at[worst, "p_value"]),
                "sum_sq": float(ss),
            },
        )

    def _collinearity_step(self, table, model, anova, current, iteration, settled):
        if len(current) < 2:
            return None, table
        matrix = pairwise_correlation(table, current)
        pairs = strong_pairs(matrix, self.correlation_threshold)
        if not pairs:
            return None, table

        a, b, r = pairs[0]
        sign_a, sign_b = np.sign(model.params[a]), np.sign(model.params[b])
        if sign_a != 0 and sign_a == sign_b:
            name = self.composite_names.get(frozenset((a, b)), f"{a}_plus_{b}")
            table = derive(table, [sum_feature(name, a, b)])
            settled.add(name)
            after = [name if p == a else p for p in current if p != b]
            return SelectionStep(
                iteration=iteration,
                action=MERGE,
                predictors_before=tuple(current),
                predictors_after=tuple(after),
                detail={"pair": (a, b), "r": float(r), "composite": name},
            ), table

        # Opposite signs: keep the member explaining more variance
        weaker = b if anova.at[b, "sum_sq"] < anova.at[a, "sum_sq"] else a
        return SelectionStep(
            iteration=iteration,
            action=DROP_COLLINEAR,
            predictors_before=tuple(current),
            predictors_after=tuple(p for p in current if p != weaker),
            detail={
                "pair": (a, b),
                "r": float(r),
                "predictor": weaker,
                "sum_sq": float(anova.at[weaker, "sum_sq"]),
            },
        ), table

    def _transform_step(self, table, model, current, iteration, settled, budget=True):
        pvals = nonlinearity_pvalues(model)
        for p in current:
            if p in settled:
                continue
            pval = pvals.get(p, np.nan)
            if pd.isna(pval) or pval >= self.nonlinearity_alpha:
                continue
            if not budget:
                logger.info("   Curvature flagged for %s but the transform budget is spent; keeping raw", p)
                settled.add(p)
                continue
            name = f"log_{p}"
            values = table.column(p).dropna()
            if name in current or values.empty or values.min() + self.log_offset <= 0:
                logger.info("   Curvature flagged for %s but it cannot be logged; keeping raw", p)
                settled.add(p)
                continue
            table = derive(table, [log_feature(p, offset=self.log_offset, name=name)])
            settled.update((p, name))
            return SelectionStep(
                iteration=iteration,
                action=TRANSFORM,
                predictors_before=tuple(current),
                predictors_after=tuple(name if q == p else q for q in current),
                detail={
                    "predictor": p,
                    "transformed": name,
                    "nonlinearity_pval": float(pval),
                    "offset": self.log_offset,
                },
            ), table
        return None, table
