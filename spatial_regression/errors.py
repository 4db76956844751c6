"""Errors raised while loading data, partitioning, fitting and selecting."""


class DataError(ValueError):
    """Missing or invalid covariate / coordinate / outcome values."""

    def __init__(self, message, rows=None, columns=None):
        super().__init__(message)
        self.rows = list(rows) if rows is not None else []
        self.columns = list(columns) if columns is not None else []


class PartitionError(ValueError):
    """Fold count invalid relative to dataset size."""


class FitError(RuntimeError):
    """A model fit failed (non-convergence, singular covariance, ...).

    ``fold`` is the held-out fold index when the failure happened inside
    cross-validation, otherwise None.
    """

    def __init__(self, message, spec=None, fold=None):
        self.spec = spec
        self.fold = fold
        self.reason = message
        parts = []
        if fold is not None:
            parts.append(f"fold {fold}")
        if spec is not None:
            parts.append(f"formula '{spec.describe()}'")
        prefix = f"[{', '.join(parts)}] " if parts else ""
        super().__init__(prefix + message)


class SelectionError(RuntimeError):
    """Backward selection aborted; carries the round, subset and partial board."""

    def __init__(self, message, round_index, covariates, board=None):
        self.round_index = round_index
        self.covariates = tuple(covariates)
        self.board = board
        super().__init__(
            f"round {round_index}, covariates {list(self.covariates)}: {message}"
        )
