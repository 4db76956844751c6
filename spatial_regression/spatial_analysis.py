"""
Spatial autocorrelation of model residuals (Moran's I).

Residuals of a non-spatial GLM fitted to malaria prevalence are usually
positively autocorrelated: nearby survey sites share unexplained risk. The
correlogram (Moran's I per distance band) shows over which distances that
dependence persists, and whether adding the Matérn random effect removes it.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
from scipy import stats

from . import config
from .covariance import pairwise_distances


def inverse_distance_weights(
    coords: np.ndarray,
    bandwidth_km: float = 50.0,
    standardize: bool = True,
) -> np.ndarray:
    """1/d weights between (lat, lon) sites closer than bandwidth_km.

    Rows are scaled to sum to one when standardize is set; sites without a
    neighbour inside the band keep an all-zero row.
    """
    dist = pairwise_distances(coords, metric="km")
    near = (dist > 0) & (dist < bandwidth_km)
    W = np.zeros_like(dist)
    W[near] = 1.0 / dist[near]
    if standardize:
        totals = W.sum(axis=1)
        has_neighbours = totals > 0
        W[has_neighbours] /= totals[has_neighbours, None]
    return W


def band_weights(dist: np.ndarray, lower: float, upper: float) -> np.ndarray:
    """Binary weights for pairs with lower < d <= upper (diagonal excluded)."""
    W = ((dist > lower) & (dist <= upper)).astype(float)
    np.fill_diagonal(W, 0.0)
    return W


def _randomization_variance(z: np.ndarray, W: np.ndarray) -> float:
    """Var(I) under the randomization null (Cliff & Ord)."""
    n = len(z)
    if n < 4:
        return np.nan
    s0 = W.sum()
    s1 = ((W + W.T) ** 2).sum() / 2.0
    s2 = ((W.sum(axis=0) + W.sum(axis=1)) ** 2).sum()
    m2 = np.mean(z**2)
    b2 = np.mean(z**4) / m2**2
    first = n * ((n * n - 3 * n + 3) * s1 - n * s2 + 3 * s0 * s0)
    second = b2 * ((n * n - n) * s1 - 2 * n * s2 + 6 * s0 * s0)
    expected = -1.0 / (n - 1)
    return (first - second) / ((n - 1) * (n - 2) * (n - 3) * s0 * s0) - expected**2


def morans_i(values: np.ndarray, W: np.ndarray) -> dict:
    """Global Moran's I of values under weights W, with a two-sided z-test.

    Returns I, its null expectation E_I, the randomization variance Var_I,
    z_score and p_value; all NaN when there are fewer than four values, no
    weighted pairs, or no variation.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    z = values - values.mean()
    s0 = W.sum()
    keys = ("I", "E_I", "Var_I", "z_score", "p_value")
    if n < 4 or s0 == 0 or not np.any(z):
        return dict.fromkeys(keys, np.nan)

    I = (n / s0) * float(z @ W @ z) / float(z @ z)
    expected = -1.0 / (n - 1)
    variance = _randomization_variance(z, W)
    if np.isfinite(variance) and variance > 0:
        z_score = (I - expected) / np.sqrt(variance)
        p_value = 2.0 * stats.norm.sf(abs(z_score))
    else:
        z_score = p_value = np.nan
    return dict(zip(keys, (I, expected, variance, z_score, p_value)))


def correlogram(
    coords: np.ndarray,
    values: np.ndarray,
    n_bins: int = config.CORRELOGRAM_BINS,
    max_distance: float | None = None,
) -> pd.DataFrame:
    """Moran's I of values in equal-width distance bands (km).

    max_distance defaults to half the largest pairwise distance.
    """
    coords = np.asarray(coords, dtype=float)
    values = np.asarray(values, dtype=float)
    mask = np.isfinite(values) & np.isfinite(coords).all(axis=1)
    coords, values = coords[mask], values[mask]

    dist = pairwise_distances(coords, metric="km")
    if max_distance is None:
        max_distance = dist.max() / 2.0
    edges = np.linspace(0.0, max_distance, n_bins + 1)

    rows = []
    for lower, upper in zip(edges[:-1], edges[1:]):
        W = band_weights(dist, lower, upper)
        result = morans_i(values, W)
        rows.append({
            "bin_start": lower,
            "bin_end": upper,
            "n_pairs": int(W.sum() // 2),
            "I": result["I"],
            "z_score": result["z_score"],
            "p_value": result["p_value"],
        })
    return pd.DataFrame(rows)


def residual_autocorrelation(
    df: pd.DataFrame,
    residuals,
    bandwidth_km: float = 50.0,
    lat_col: str = config.LAT_COL,
    lon_col: str = config.LON_COL,
) -> dict:
    """Global Moran's I of residuals with inverse-distance weights."""
    coords = df[[lat_col, lon_col]].to_numpy(dtype=float)
    W = inverse_distance_weights(coords, bandwidth_km=bandwidth_km)
    result = morans_i(np.asarray(residuals, dtype=float), W)
    result["autocorrelation"] = (
        "Positive" if result["I"] > 0 and result["p_value"] < config.ALPHA
        else "Negative" if result["I"] < 0 and result["p_value"] < config.ALPHA
        else "None"
    )
    return result
