"""
k-fold partition of record indices.

Folds are disjoint, cover 0..n-1 and differ in size by at most one record
(unstratified) or approximately (stratified). A fixed seed gives the same
partition on every call; seed=None draws a fresh random one.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold

from . import config
from .errors import PartitionError

logger = logging.getLogger(__name__)


def _strata_labels(values, n_folds: int, n_bins: int) -> np.ndarray | None:
    """Quantile bins of a numeric outcome, each holding at least n_folds records."""
    values = np.asarray(values, dtype=float)
    q = min(n_bins, len(values) // n_folds)
    if q < 2 or len(np.unique(values)) < 2:
        return None
    labels = np.asarray(pd.qcut(values, q=q, labels=False, duplicates="drop"), dtype=float)
    if np.isnan(labels).any() or len(np.unique(labels)) < 2:
        return None
    return labels.astype(int)


def make_folds(
    n: int,
    k: int = config.N_FOLDS,
    seed: int | None = config.SEED,
    strata=None,
    n_bins: int = config.STRATIFY_BINS,
) -> list[np.ndarray]:
    """Split range(n) into k folds of held-out indices.

    Args:
        n: number of records
        k: number of folds, 2 <= k <= n
        seed: random seed; None for a non-reproducible shuffle
        strata: optional length-n outcome values; folds are then stratified
            on their quantile bins (e.g. observed prevalence)
        n_bins: maximum number of quantile bins for stratification

    Returns:
        List of k sorted index arrays.
    """
    if k < 2:
        raise PartitionError(f"Need at least 2 folds (got k={k})")
    if k > n:
        raise PartitionError(f"Cannot split {n} records into {k} folds")

    index = np.arange(n)
    labels = None
    if strata is not None:
        if len(strata) != n:
            raise PartitionError(f"strata has {len(strata)} values for {n} records")
        labels = _strata_labels(strata, k, n_bins)
        if labels is None:
            logger.warning("Outcome too homogeneous to stratify; using plain k-fold")

    if labels is None:
        splitter = KFold(n_splits=k, shuffle=True, random_state=seed)
        splits = splitter.split(index)
    else:
        splitter = StratifiedKFold(n_splits=k, shuffle=True, random_state=seed)
        splits = splitter.split(index, labels)

    folds = [np.sort(test_idx) for _, test_idx in splits]
    if any(len(f) == 0 for f in folds):
        raise PartitionError(f"Empty fold when splitting {n} records into {k} folds")
    return folds


def train_indices(folds: list[np.ndarray], i: int) -> np.ndarray:
    """Indices of every record outside fold i."""
    others = [f for j, f in enumerate(folds) if j != i]
    if not others:
        return np.array([], dtype=int)
    return np.sort(np.concatenate(others))


def fold_labels(folds: list[np.ndarray], n: int | None = None) -> np.ndarray:
    """Fold number of each record (inverse of make_folds)."""
    if n is None:
        n = sum(len(f) for f in folds)
    labels = np.full(n, -1, dtype=int)
    for i, f in enumerate(folds):
        if np.any(labels[f] >= 0):
            raise PartitionError("Folds overlap")
        labels[f] = i
    if np.any(labels < 0):
        raise PartitionError("Folds do not cover every record")
    return labels
