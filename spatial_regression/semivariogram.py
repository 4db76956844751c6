"""
Empirical semivariogram of model residuals
==========================================
Fit a Matérn (or other) variogram model to residuals to read off the range
over which sites remain correlated, the sill and the nugget. Distances are
in km (coordinates projected around the mean latitude).

Output (optional): {name}_semivariogram.csv and .png in output_dir
"""
from __future__ import annotations

import logging
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from skgstat import Variogram

from . import config
from .covariance import project_km

logger = logging.getLogger(__name__)

MIN_SAMPLES = 10


def fit_residual_variogram(
    lat: np.ndarray,
    lon: np.ndarray,
    values: np.ndarray,
    name: str = "residuals",
    model: str = "matern",
    n_lags: int = config.VARIOGRAM_LAGS,
    output_dir: Path | None = None,
) -> dict[str, float]:
    """
    Calculate an empirical semivariogram and fit a variogram model.

    Args:
        lat, lon: coordinates in degrees
        values: residual (or any) values per location
        name: label used in output file names and plot title
        model: skgstat model name ('matern', 'exponential', 'spherical', ...)
        n_lags: number of lag classes
        output_dir: if given, save CSV parameters and a PNG plot there

    Returns:
        Dictionary with range_km, sill, nugget, smoothness (Matérn only),
        model and n_samples; empty if there is too little data or the fit fails.
    """
    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)
    values = np.asarray(values, dtype=float)

    mask = np.isfinite(values) & np.isfinite(lat) & np.isfinite(lon)
    if mask.sum() < MIN_SAMPLES:
        logger.warning("Not enough data for %s variogram (%d samples)", name, int(mask.sum()))
        return {}

    coords = project_km(lat[mask], lon[mask])
    try:
        V = Variogram(
            coordinates=coords,
            values=values[mask],
            model=model,
            maxlag="median",
            n_lags=n_lags,
            normalize=False,
        )
        fitted = list(V.parameters)
    except (ValueError, RuntimeError, np.linalg.LinAlgError) as e:
        logger.warning("Variogram fit failed for %s: %s", name, e)
        return {}

    # skgstat parameter order: range, sill, [shape], nugget
    params = {
        "model": model,
        "range_km": round(float(fitted[0]), 3),
        "sill": float(fitted[1]),
        "nugget": float(fitted[-1]) if len(fitted) > 2 else 0.0,
        "n_samples": int(mask.sum()),
    }
    if len(fitted) > 3:
        params["smoothness"] = float(fitted[2])

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        fig = V.plot(show=False)
        fig.suptitle(f"Semivariogram: {name}")
        fig.savefig(output_dir / f"{name}_semivariogram.png", dpi=150, bbox_inches="tight")
        plt.close(fig)
        pd.DataFrame([params]).to_csv(output_dir / f"{name}_semivariogram.csv", index=False)

    logger.info(
        "%s variogram: range=%.1f km sill=%.3g nugget=%.3g",
        name, params["range_km"], params["sill"], params["nugget"],
    )
    return params
