"""
Dataset loading and validation.

Every record used by a model must carry a value for each referenced
covariate, finite coordinates and a valid binomial outcome
(0 <= positives <= trials, trials > 0).
"""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from . import config
from .errors import DataError

logger = logging.getLogger(__name__)


def load_dataset(source: str | Path = config.MALARIA_CSV) -> pd.DataFrame:
    """Read the survey table from a local CSV path or a URL."""
    if isinstance(source, Path) or "://" not in str(source):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Dataset not found: {path}")
    df = pd.read_csv(source)
    logger.info("Loaded %d records from %s", len(df), source)
    return df


def _required_columns(
    covariates,
    positive_col: str,
    trials_col: str,
    lat_col: str | None,
    lon_col: str | None,
) -> list[str]:
    coords = [c for c in (lat_col, lon_col) if c is not None]
    return [positive_col, trials_col, *coords, *covariates]


def invalid_rows(
    df: pd.DataFrame,
    covariates=(),
    positive_col: str = config.POSITIVE_COL,
    trials_col: str = config.TRIALS_COL,
    lat_col: str | None = config.LAT_COL,
    lon_col: str | None = config.LON_COL,
) -> pd.Series:
    """Boolean mask of records that cannot be used by the model.

    Pass lat_col=None, lon_col=None for a model without a spatial term; the
    coordinate columns are then neither required nor checked.
    """
    columns = _required_columns(covariates, positive_col, trials_col, lat_col, lon_col)
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataError(f"Missing columns: {missing}", columns=missing)

    values = df[columns].apply(pd.to_numeric, errors="coerce")
    bad = ~np.isfinite(values.to_numpy(dtype=float)).all(axis=1)
    bad = pd.Series(bad, index=df.index)

    pos = values[positive_col]
    trials = values[trials_col]
    bad |= (trials <= 0) | (pos < 0) | (pos > trials)
    if lat_col is not None:
        bad |= values[lat_col].abs() > 90
    if lon_col is not None:
        bad |= values[lon_col].abs() > 180
    return bad.fillna(True)


def validate_dataset(
    df: pd.DataFrame,
    covariates=(),
    positive_col: str = config.POSITIVE_COL,
    trials_col: str = config.TRIALS_COL,
    lat_col: str | None = config.LAT_COL,
    lon_col: str | None = config.LON_COL,
) -> pd.DataFrame:
    """Fail loudly if any record is unusable; returns df unchanged otherwise."""
    bad = invalid_rows(df, covariates, positive_col, trials_col, lat_col, lon_col)
    if bad.any():
        rows = df.index[bad].tolist()
        raise DataError(
            f"{len(rows)} record(s) with missing or invalid values "
            f"(first: {rows[:5]})",
            rows=rows,
            columns=_required_columns(covariates, positive_col, trials_col, lat_col, lon_col),
        )
    return df


def clean_dataset(
    df: pd.DataFrame,
    covariates=(),
    positive_col: str = config.POSITIVE_COL,
    trials_col: str = config.TRIALS_COL,
    lat_col: str | None = config.LAT_COL,
    lon_col: str | None = config.LON_COL,
) -> pd.DataFrame:
    """Drop unusable records and renumber the rest 0..n-1."""
    bad = invalid_rows(df, covariates, positive_col, trials_col, lat_col, lon_col)
    if bad.any():
        logger.warning(
            "Dropping %d of %d records with missing or invalid values",
            int(bad.sum()), len(df),
        )
    cleaned = df.loc[~bad].reset_index(drop=True)
    if cleaned.empty:
        raise DataError("No usable records left after cleaning")
    return cleaned


def add_prevalence(
    df: pd.DataFrame,
    positive_col: str = config.POSITIVE_COL,
    trials_col: str = config.TRIALS_COL,
    name: str = "prevalence",
) -> pd.DataFrame:
    """Observed prevalence = positives / trials."""
    out = df.copy()
    out[name] = out[positive_col] / out[trials_col]
    return out
