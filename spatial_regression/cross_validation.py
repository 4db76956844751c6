"""
Cross-validated scoring of binomial (spatial) models.

For each fold i the model is trained on every other fold and scored on fold i
by the mean squared error between expected positives (p̂ × trials) and
observed positives. The model's score is the mean of the k fold MSEs; lower
is better. A failing fold raises FitError naming the fold and formula.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout

import numpy as np
import pandas as pd

from .data import validate_dataset
from .errors import DataError, FitError
from .fitting import BinomialGLMFitter, SpatialBinomialFitter
from .folds import fold_labels, train_indices
from .model_spec import ModelSpec

logger = logging.getLogger(__name__)


def default_fitter(spec: ModelSpec):
    """Spatial fitter when the spec has a spatial term, plain GLM otherwise."""
    return SpatialBinomialFitter() if spec.spatial is not None else BinomialGLMFitter()


def _check_inputs(data: pd.DataFrame, spec: ModelSpec, folds) -> None:
    term = spec.spatial
    validate_dataset(
        data, spec.covariates, spec.positive_col, spec.trials_col,
        lat_col=term.lat_col if term is not None else None,
        lon_col=term.lon_col if term is not None else None,
    )
    # folds must partition exactly the rows of this dataset
    fold_labels(folds, len(data))


def fold_mse(data: pd.DataFrame, spec: ModelSpec, folds, i: int, fitter) -> float:
    """MSE of expected vs observed positives on held-out fold i."""
    train = data.iloc[train_indices(folds, i)]
    test = data.iloc[folds[i]]
    try:
        model = fitter.fit(spec, train)
        expected = model.predict(test) * test[spec.trials_col].to_numpy(dtype=float)
    except DataError:
        raise
    except FitError as exc:
        raise FitError(exc.reason, spec=spec, fold=i) from exc
    except (np.linalg.LinAlgError, ArithmeticError, ValueError) as exc:
        raise FitError(f"{type(exc).__name__}: {exc}", spec=spec, fold=i) from exc

    observed = test[spec.positive_col].to_numpy(dtype=float)
    mse = float(np.mean((expected - observed) ** 2))
    if not np.isfinite(mse):
        raise FitError("non-finite prediction error", spec=spec, fold=i)
    logger.debug("fold %d (%s): n_test=%d mse=%.4f", i, spec.label(), len(test), mse)
    return mse


def fold_errors(
    data: pd.DataFrame,
    spec: ModelSpec,
    folds,
    fitter=None,
    n_jobs: int = 1,
    timeout: float | None = None,
) -> list[float]:
    """Per-fold MSEs, in fold order.

    With n_jobs > 1 (or a timeout) folds are fitted on a thread pool; the
    result does not depend on completion order. Each fold's clock starts when
    a worker picks it up; a fold still running `timeout` seconds later raises
    FitError, even while an earlier fold is being waited on.
    """
    _check_inputs(data, spec, folds)
    fitter = fitter if fitter is not None else default_fitter(spec)

    if n_jobs <= 1 and timeout is None:
        return [fold_mse(data, spec, folds, i, fitter) for i in range(len(folds))]

    started = {}

    def run(i):
        started[i] = time.monotonic()
        return fold_mse(data, spec, folds, i, fitter)

    executor = ThreadPoolExecutor(max_workers=max(1, n_jobs))
    try:
        futures = [executor.submit(run, i) for i in range(len(folds))]
        errors = []
        for i, future in enumerate(futures):
            while True:
                # queued folds are polled until a worker starts them
                start = started.get(i)
                if timeout is None:
                    wait = None
                elif start is None:
                    wait = min(timeout, 0.05)
                else:
                    wait = max(0.0, start + timeout - time.monotonic())
                try:
                    errors.append(future.result(timeout=wait))
                    break
                except FuturesTimeout as exc:
                    if start is not None:
                        raise FitError(f"fit exceeded {timeout}s", spec=spec, fold=i) from exc
        return errors
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def cv_score(
    data: pd.DataFrame,
    spec: ModelSpec,
    folds,
    fitter=None,
    n_jobs: int = 1,
    timeout: float | None = None,
) -> float:
    """Mean of the per-fold MSEs."""
    errors = fold_errors(data, spec, folds, fitter=fitter, n_jobs=n_jobs, timeout=timeout)
    score = float(np.mean(errors))
    logger.info("CV score %.4f for %s", score, spec.describe())
    return score


def compare_models(
    data: pd.DataFrame,
    candidates,
    folds,
    n_jobs: int = 1,
    timeout: float | None = None,
) -> pd.DataFrame:
    """Score several models on the same folds.

    candidates: iterable of (name, spec, fitter) tuples; fitter may be None.

    Returns DataFrame with columns: model, covariates, formula, score,
    fold_min, fold_max; sorted by score (ties keep input order).
    """
    rows = []
    for name, spec, fitter in candidates:
        errors = fold_errors(data, spec, folds, fitter=fitter, n_jobs=n_jobs, timeout=timeout)
        rows.append({
            "model": name,
            "covariates": spec.label(),
            "formula": spec.describe(),
            "score": float(np.mean(errors)),
            "fold_min": float(np.min(errors)),
            "fold_max": float(np.max(errors)),
        })
    result = pd.DataFrame(rows)
    if not result.empty:
        result = result.sort_values("score", kind="stable").reset_index(drop=True)
    return result
