"""
Binomial model fitters.

BinomialGLMFitter
    Plain logistic regression on (positives, failures) counts.

SpatialBinomialFitter
    Geostatistical model: the same fixed effects plus a spatially correlated
    random effect with Matérn covariance, on the logit scale,

        logit(p_i) = x_i'β + S(s_i),   S ~ GP(0, σ²·Matérn(ν, ρ)) + nugget

    β is estimated by the binomial GLM; S is a Gaussian process fitted to the
    empirical-logit residuals, with each record's binomial sampling variance
    on the diagonal. Predictions at new locations add the kriged S to x'β.

Both fitters return fitted models exposing predict() (response probability)
and residuals(); any numerical failure is raised as FitError.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import PatsyError
from scipy.special import expit
from sklearn.gaussian_process import GaussianProcessRegressor
from sklearn.gaussian_process.kernels import ConstantKernel, Matern, WhiteKernel

from . import config
from .covariance import project_km
from .errors import DataError, FitError
from .model_spec import ModelSpec

logger = logging.getLogger(__name__)

_EPS = 1e-9


def _empirical_logit(positives, trials) -> np.ndarray:
    y = np.asarray(positives, dtype=float)
    n = np.asarray(trials, dtype=float)
    return np.log((y + 0.5) / (n - y + 0.5))


def _empirical_logit_var(positives, trials) -> np.ndarray:
    y = np.asarray(positives, dtype=float)
    n = np.asarray(trials, dtype=float)
    return 1.0 / (y + 0.5) + 1.0 / (n - y + 0.5)


class FittedBinomialModel:
    """Fitted fixed-effects binomial GLM."""

    def __init__(self, spec: ModelSpec, result, train: pd.DataFrame):
        self.spec = spec
        self.result = result
        self._train = train

    @property
    def params(self) -> pd.Series:
        return self.result.params

    def linear_predictor(self, df: pd.DataFrame) -> np.ndarray:
        if not self.spec.covariates:
            return np.full(len(df), float(self.result.params.iloc[0]))
        eta = np.asarray(self.result.predict(df, which="linear"), dtype=float)
        if len(eta) != len(df) or not np.all(np.isfinite(eta)):
            raise DataError(
                f"Prediction failed for some of {len(df)} records; "
                f"covariates {list(self.spec.covariates)} have missing values"
            )
        return eta

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        """Predicted probability of a positive test for each record."""
        return expit(self.linear_predictor(df))

    def predict_counts(self, df: pd.DataFrame) -> np.ndarray:
        """Expected positives = probability × trials."""
        return self.predict(df) * df[self.spec.trials_col].to_numpy(dtype=float)

    def residuals(self, kind: str = "pearson") -> pd.Series:
        """Residuals of the training fit.

        kind="pearson": (y - n·p) / sqrt(n·p·(1-p))
        kind="logit":   empirical logit − fitted linear predictor
        """
        train = self._train
        y = train[self.spec.positive_col].to_numpy(dtype=float)
        n = train[self.spec.trials_col].to_numpy(dtype=float)
        if kind == "pearson":
            p = self.predict(train)
            resid = (y - n * p) / np.sqrt(np.maximum(n * p * (1.0 - p), _EPS))
        elif kind == "logit":
            resid = _empirical_logit(y, n) - self.linear_predictor(train)
        else:
            raise ValueError(f"Unknown residual kind '{kind}'")
        return pd.Series(resid, index=train.index, name=f"resid_{kind}")

    def summary(self) -> str:
        return str(self.result.summary())


class FittedSpatialModel(FittedBinomialModel):
    """Fixed effects plus a kriged Matérn random effect."""

    def __init__(self, spec, result, train, gp: GaussianProcessRegressor, ref_lat: float):
        super().__init__(spec, result, train)
        self.gp = gp
        self.ref_lat = ref_lat

    def _coords_km(self, df: pd.DataFrame) -> np.ndarray:
        term = self.spec.spatial
        return project_km(df[term.lat_col], df[term.lon_col], ref_lat=self.ref_lat)

    def random_effect(self, df: pd.DataFrame) -> np.ndarray:
        return self.gp.predict(self._coords_km(df))

    def linear_predictor(self, df: pd.DataFrame) -> np.ndarray:
        return super().linear_predictor(df) + self.random_effect(df)

    @property
    def kernel(self):
        """Kernel with optimised hyper-parameters."""
        return self.gp.kernel_

    def covariance_params(self) -> dict[str, float]:
        """σ² (partial sill), ρ (length scale, km), ν and nugget."""
        k = self.gp.kernel_
        return {
            "sigma2": float(k.k1.k1.constant_value),
            "rho_km": float(k.k1.k2.length_scale),
            "nu": float(k.k1.k2.nu),
            "nugget": float(k.k2.noise_level),
        }

    def summary(self) -> str:
        params = ", ".join(f"{k}={v:.4g}" for k, v in self.covariance_params().items())
        return f"{super().summary()}\nSpatial random effect: {params}"


def _fit_glm(spec: ModelSpec, train: pd.DataFrame):
    try:
        result = smf.glm(spec.formula(), data=train, family=sm.families.Binomial()).fit()
    except (np.linalg.LinAlgError, ValueError, PatsyError) as exc:
        raise FitError(f"GLM fit failed: {exc}", spec=spec) from exc

    if not getattr(result, "converged", True):
        raise FitError("GLM did not converge", spec=spec)
    if not np.all(np.isfinite(result.params)):
        raise FitError("GLM produced non-finite coefficients", spec=spec)
    if int(result.nobs) != len(train):
        raise DataError(
            f"GLM used {int(result.nobs)} of {len(train)} records; "
            f"covariates {list(spec.covariates)} have missing values"
        )
    return result


class BinomialGLMFitter:
    """Non-spatial binomial GLM; ignores spec.spatial."""

    name = "glm"

    def fit(self, spec: ModelSpec, train: pd.DataFrame) -> FittedBinomialModel:
        result = _fit_glm(spec, train)
        logger.debug("GLM %s: deviance=%.3f", spec.label(), result.deviance)
        return FittedBinomialModel(spec, result, train)


class SpatialBinomialFitter:
    """Binomial GLM + Matérn Gaussian-process random effect."""

    name = "spatial"

    def __init__(
        self,
        nu: float | None = None,
        length_scale_km: float = config.MATERN_LENGTH_SCALE_KM,
        length_scale_bounds=config.MATERN_LENGTH_SCALE_BOUNDS_KM,
        n_restarts: int = config.GP_RESTARTS,
        seed: int = config.SEED,
    ):
        self.nu = nu
        self.length_scale_km = length_scale_km
        self.length_scale_bounds = length_scale_bounds
        self.n_restarts = n_restarts
        self.seed = seed

    def _kernel(self, nu: float, resid_var: float):
        return (
            ConstantKernel(float(np.clip(resid_var, 1e-3, 1e2)), (1e-4, 1e2))
            * Matern(
                length_scale=self.length_scale_km,
                length_scale_bounds=self.length_scale_bounds,
                nu=nu,
            )
            + WhiteKernel(noise_level=1e-2, noise_level_bounds=(1e-6, 1e1))
        )

    def fit(self, spec: ModelSpec, train: pd.DataFrame) -> FittedSpatialModel:
        if spec.spatial is None:
            raise ValueError("SpatialBinomialFitter needs a spec with a spatial term")
        result = _fit_glm(spec, train)
        glm = FittedBinomialModel(spec, result, train)

        term = spec.spatial
        nu = self.nu if self.nu is not None else term.nu
        y = train[spec.positive_col].to_numpy(dtype=float)
        n = train[spec.trials_col].to_numpy(dtype=float)
        resid = _empirical_logit(y, n) - glm.linear_predictor(train)

        ref_lat = float(train[term.lat_col].mean())
        X = project_km(train[term.lat_col], train[term.lon_col], ref_lat=ref_lat)

        gp = GaussianProcessRegressor(
            kernel=self._kernel(nu, float(np.var(resid))),
            alpha=_empirical_logit_var(y, n),
            normalize_y=False,
            n_restarts_optimizer=self.n_restarts,
            random_state=self.seed,
        )
        try:
            gp.fit(X, resid)
        except (np.linalg.LinAlgError, ValueError) as exc:
            raise FitError(f"spatial random effect fit failed: {exc}", spec=spec) from exc

        model = FittedSpatialModel(spec, result, train, gp, ref_lat)
        logger.debug("Spatial %s: %s", spec.label(), model.covariance_params())
        return model
