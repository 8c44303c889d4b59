"""
Error taxonomy for the tract income pipeline. Every stage raises at the point
of detection; nothing downstream receives a partially built table or model.
"""

from __future__ import annotations

from typing import Optional, Sequence


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class LoadError(PipelineError):
    """Input missing, unreadable, or not matching the tract schema."""

    def __init__(
        self,
        message: str,
        missing: Optional[Sequence[str]] = None,
        extra: Optional[Sequence[str]] = None,
    ):
        self.missing = list(missing or [])
        self.extra = list(extra or [])
        details = []
        if self.missing:
            details.append(f"missing columns: {', '.join(self.missing)}")
        if self.extra:
            details.append(f"unexpected columns: {', '.join(self.extra)}")
        if details:
            message = f"{message} ({'; '.join(details)})"
        super().__init__(message)


class InvariantViolation(PipelineError):
    """An internal precondition was broken, usually a stage-ordering defect."""


class DomainError(PipelineError):
    """A transform received values outside its domain (e.g. log of <= 0)."""

    def __init__(self, column: str, n_rows: int, message: Optional[str] = None):
        self.column = column
        self.n_rows = n_rows
        super().__init__(
            message or f"{column}: {n_rows} row(s) outside the transform domain"
        )


class RankDeficiencyError(PipelineError):
    """Predictor set is exactly collinear; the caller must drop a predictor."""

    def __init__(self, predictors: Sequence[str], rank: int):
        self.predictors = list(predictors)
        self.rank = rank
        super().__init__(
            f"Design matrix has rank {rank} but {len(self.predictors) + 1} columns "
            f"(intercept + {', '.join(self.predictors)}); drop a redundant predictor"
        )


class SelectionExhausted(PipelineError):
    """Model selection rejected every predictor."""

    def __init__(self, message: str, trace=None):
        self.trace = trace
        super().__init__(message)
