"""
Census tract table: schema, loading, and the immutable Table container that
every pipeline stage consumes and returns.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Iterable, Union

import numpy as np
import pandas as pd

from .errors import LoadError

logger = logging.getLogger(__name__)

# ── Tract schema (one row per Census tract) ──
TRACT_SCHEMA = {
    "id_cols": ["GEOID", "state", "county", "tract"],
    "population_col": "population",
    "area_col": "area",
    "target_col": "median_income",
    "count_cols": [
        "white", "black", "native_american", "hispanic_latino",
        "bachelors", "graduate", "same_residence",
        "private_transport", "own_car", "public_transport", "bike", "walk",
        "native", "foreign_noncitizen", "foreign_naturalized", "SSI",
    ],
}

FEATURE_LABELS = {
    "median_income": "Median Household Income ($)",
    "log_median_income": "Log Median Household Income",
    "area": "Land Area",
    "log_area": "Log Land Area",
    "white": "% White",
    "black": "% Black",
    "native_american": "% Native American",
    "hispanic_latino": "% Hispanic/Latino",
    "poc": "% Black + Native American",
    "bachelors": "% Bachelor's Degree",
    "graduate": "% Graduate Degree",
    "log_graduate": "Log (1 + % Graduate Degree)",
    "same_residence": "% Same Residence 1 Year Ago",
    "private_transport": "% Commute by Private Transport",
    "own_car": "% Commute by Own Car",
    "public_transport": "% Commute by Public Transit",
    "bike": "% Commute by Bike",
    "log_bike": "Log (1 + % Commute by Bike)",
    "walk": "% Commute by Walking",
    "native": "% Native-Born",
    "foreign_noncitizen": "% Foreign-Born Non-Citizen",
    "foreign_naturalized": "% Foreign-Born Naturalized",
    "SSI": "% Receiving SSI",
}

# Zero-pad widths for FIPS identifiers
_FIPS_WIDTHS = {"state": 2, "county": 3, "tract": 6}

Source = Union[str, "os.PathLike[str]", pd.DataFrame]


def required_columns(schema: dict = TRACT_SCHEMA) -> list[str]:
    """All columns the schema requires, in schema order."""
    return (
        list(schema["id_cols"])
        + [schema["population_col"], schema["area_col"], schema["target_col"]]
        + list(schema["count_cols"])
    )


class Table:
    """
    Immutable view over a tabular dataset. Every operation returns a new
    Table; the wrapped DataFrame is never handed out without copying.
    """

    def __init__(self, frame: pd.DataFrame):
        self._frame = frame.reset_index(drop=True).copy()

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"Table(rows={len(self)}, columns={self.columns})"

    @property
    def columns(self) -> list[str]:
        return list(self._frame.columns)

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def column(self, name: str) -> pd.Series:
        self._require([name])
        return self._frame[name].copy()

    def numeric_columns(self) -> list[str]:
        return [
            c for c in self._frame.columns
            if pd.api.types.is_numeric_dtype(self._frame[c])
            and not pd.api.types.is_bool_dtype(self._frame[c])
        ]

    def select_columns(self, predicate: Callable[[str], bool]) -> "Table":
        """Keep the columns whose name satisfies ``predicate``."""
        return Table(self._frame[[c for c in self._frame.columns if predicate(c)]])

    def project(self, columns: Iterable[str]) -> "Table":
        """Read-only projection onto ``columns``, in the given order."""
        columns = list(columns)
        self._require(columns)
        return Table(self._frame[columns])

    def add_column(
        self,
        name: str,
        fn: Callable,
        rowwise: bool = False,
    ) -> "Table":
        """
        Return a new Table with ``name`` appended (or overwritten).

        By default ``fn`` receives the whole DataFrame and returns a column
        (elementwise pandas arithmetic). With ``rowwise=True`` it receives one
        row at a time and returns a scalar.
        """
        work = self._frame.copy()
        if rowwise:
            values = work.apply(fn, axis=1) if len(work) else pd.Series(dtype=float)
        else:
            values = fn(work)
        work[name] = values
        return Table(work)

    def filter_rows(self, predicate: Callable, rowwise: bool = False) -> "Table":
        """Return a new Table without the rows where ``predicate`` is false."""
        if rowwise:
            mask = self._frame.apply(predicate, axis=1) if len(self._frame) else []
        else:
            mask = predicate(self._frame)
        mask = pd.Series(mask, index=self._frame.index).fillna(False).astype(bool)
        return Table(self._frame[mask])

    def drop_columns(self, names: Iterable[str]) -> "Table":
        names = list(names)
        self._require(names)
        return Table(self._frame.drop(columns=names))

    def _require(self, names: Iterable[str]) -> None:
        missing = [c for c in names if c not in self._frame.columns]
        if missing:
            raise ValueError(f"Unknown column(s): {', '.join(missing)}")


def _read_source(source: Source, id_cols: list[str]) -> pd.DataFrame:
    if isinstance(source, pd.DataFrame):
        return source.copy()

    path = os.fspath(source)
    if not os.path.isfile(path):
        raise LoadError(f"Tract table not found: {path}")

    suffix = os.path.splitext(path)[1].lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype={c: str for c in id_cols}, low_memory=False)
    if suffix in (".pkl", ".pickle"):
        df = pd.read_pickle(path)
        if not isinstance(df, pd.DataFrame):
            raise LoadError(f"{path} does not contain a DataFrame (got {type(df).__name__})")
        return df
    raise LoadError(f"Unsupported table format '{suffix}' for {path}; expected .csv or .pkl")


def _build_identifiers(df: pd.DataFrame) -> pd.DataFrame:
    """Zero-pad FIPS parts and build GEOID from state + county + tract when absent."""
    for col, width in _FIPS_WIDTHS.items():
        if col in df.columns:
            df[col] = df[col].astype(str).str.zfill(width)
    if "GEOID" not in df.columns and all(c in df.columns for c in _FIPS_WIDTHS):
        df["GEOID"] = df["state"] + df["county"] + df["tract"]
        logger.info("Built GEOID from state/county/tract for %d rows", len(df))
    elif "GEOID" in df.columns:
        df["GEOID"] = df["GEOID"].astype(str)
    return df


def load(
    source: Source,
    schema: dict = TRACT_SCHEMA,
    allow_extra: bool = False,
) -> Table:
    """
    Load a tract table from a CSV/pickle path or an in-memory DataFrame and
    validate it against ``schema``. Identifier columns become strings, all
    other columns are coerced to numeric.
    """
    id_cols = list(schema["id_cols"])
    df = _build_identifiers(_read_source(source, id_cols))

    required = required_columns(schema)
    missing = [c for c in required if c not in df.columns]
    extra = [c for c in df.columns if c not in required]
    if missing or (extra and not allow_extra):
        raise LoadError(
            "Tract table does not match the expected schema",
            missing=missing,
            extra=[] if allow_extra else extra,
        )

    if "GEOID" in df.columns:
        dupes = df["GEOID"][df["GEOID"].duplicated()].unique().tolist()
        if dupes:
            raise LoadError(f"Duplicate GEOID values: {', '.join(map(str, dupes[:10]))}")

    for col in df.columns:
        if col not in id_cols:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.replace([np.inf, -np.inf], np.nan)

    logger.info("Loaded tract table: %d rows x %d columns", df.shape[0], df.shape[1])
    return Table(df[required + (extra if allow_extra else [])])
