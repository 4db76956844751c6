"""
Backward covariate selection guided by cross-validated error.

Start from every candidate covariate and record its CV score. Each round
scores every subset obtained by dropping exactly one covariate from the
current set; the best of them replaces the current set only if its score is
strictly lower than the last recorded score. The search stops when no drop
improves the score or the floor (minimum number of covariates) is reached.

Ties: candidate subsets are scored in lexicographic order of their sorted
covariate names and the first minimum wins, so equal scores always resolve
to the same subset.

The returned ScoreBoard has one row per accepted state. Its last row is the
selected model; since rows only get appended on strict improvement it is
also the lowest score on the board.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pandas as pd
from tqdm import tqdm

from . import config
from .cross_validation import cv_score
from .data import validate_dataset
from .errors import FitError, SelectionError
from .folds import make_folds
from .model_spec import ModelSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardEntry:
    round: int
    score: float
    covariates: tuple[str, ...]

    @property
    def label(self) -> str:
        return " + ".join(self.covariates) if self.covariates else "(intercept only)"


@dataclass
class ScoreBoard:
    """Append-only log of (score, covariate subset), one row per accepted round."""
    entries: list[BoardEntry] = field(default_factory=list)

    def record(self, score: float, covariates) -> BoardEntry:
        entry = BoardEntry(round=len(self.entries), score=float(score),
                           covariates=tuple(covariates))
        self.entries.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def last(self) -> BoardEntry:
        if not self.entries:
            raise IndexError("Score board is empty")
        return self.entries[-1]

    @property
    def selected(self) -> tuple[str, ...]:
        """Covariates of the last accepted state."""
        return self.last.covariates

    def best(self) -> BoardEntry:
        """Lowest-scoring row (earliest on ties)."""
        return min(self.entries, key=lambda e: e.score)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "round": e.round,
                    "score": e.score,
                    "n_covariates": len(e.covariates),
                    "covariates": e.label,
                }
                for e in self.entries
            ],
            columns=["round", "score", "n_covariates", "covariates"],
        )


def candidate_subsets(covariates) -> list[tuple[str, ...]]:
    """All drop-one subsets, ordered lexicographically by sorted names.

    Each subset keeps the covariates' original order.
    """
    covariates = tuple(covariates)
    subsets = [tuple(c for c in covariates if c != drop) for drop in covariates]
    return sorted(subsets, key=lambda s: tuple(sorted(s)))


def backward_select(
    data: pd.DataFrame,
    covariates=tuple(config.CANDIDATE_COVARIATES),
    base_spec: ModelSpec | None = None,
    folds=None,
    fitter=None,
    min_covariates: int = config.MIN_COVARIATES,
    k: int = config.N_FOLDS,
    seed: int | None = config.SEED,
    scorer=None,
    n_jobs: int = 1,
    timeout: float | None = None,
    progress: bool = False,
) -> ScoreBoard:
    """Run backward selection and return the score board.

    Args:
        data: survey records, indexed 0..n-1 (read only)
        covariates: candidate covariate names, in formula order
        base_spec: outcome / spatial term template (defaults to ModelSpec())
        folds: fold partition shared by every candidate; built from
            make_folds(len(data), k, seed) stratified on prevalence if None
        fitter: model fitter passed to cv_score
        min_covariates: floor; no round is attempted at or below it
        scorer: callable(spec) -> score, replaces cv_score (testing, caching)
        progress: show a tqdm bar over each round's candidates

    Raises:
        SelectionError: a candidate fit failed; carries round, subset and the
            board recorded so far.
    """
    covariates = tuple(covariates)
    if not covariates:
        raise ValueError("No candidate covariates")
    if len(set(covariates)) != len(covariates):
        raise ValueError(f"Duplicate covariates in {list(covariates)}")
    if min_covariates < 1:
        raise ValueError(f"min_covariates must be >= 1 (got {min_covariates})")

    base_spec = base_spec if base_spec is not None else ModelSpec()

    if scorer is None:
        coords = {"lat_col": None, "lon_col": None}
        if base_spec.spatial is not None:
            coords = {"lat_col": base_spec.spatial.lat_col, "lon_col": base_spec.spatial.lon_col}
        validate_dataset(
            data, covariates, base_spec.positive_col, base_spec.trials_col, **coords
        )
        if folds is None:
            prevalence = data[base_spec.positive_col] / data[base_spec.trials_col]
            folds = make_folds(len(data), k=k, seed=seed, strata=prevalence.to_numpy())

        def scorer(spec):
            return cv_score(data, spec, folds, fitter=fitter, n_jobs=n_jobs, timeout=timeout)

    board = ScoreBoard()

    def _score(round_index, subset):
        try:
            return scorer(base_spec.with_covariates(subset))
        except FitError as exc:
            raise SelectionError(str(exc), round_index, subset, board) from exc

    current = covariates
    board.record(_score(0, current), current)
    logger.info("Round 0: score=%.4f with %s", board.last.score, board.last.label)

    round_index = 0
    while len(current) > min_covariates:
        round_index += 1
        candidates = candidate_subsets(current)
        best_subset, best_score = None, None
        for subset in tqdm(candidates, desc=f"round {round_index}", disable=not progress, leave=False):
            score = _score(round_index, subset)
            logger.debug("Round %d: %.4f for %s", round_index, score, list(subset))
            if best_score is None or score < best_score:
                best_subset, best_score = subset, score

        if not best_score < board.last.score:
            logger.info(
                "Round %d: best drop (%.4f, %s) does not improve on %.4f; stopping",
                round_index, best_score, list(best_subset), board.last.score,
            )
            break

        dropped = [c for c in current if c not in best_subset]
        current = best_subset
        board.record(best_score, current)
        logger.info("Round %d: dropped %s, score=%.4f", round_index, dropped, best_score)

    return board
