"""
Spatial covariance functions.

C(d) describes how similar two locations are expected to be as a function of
the distance d between them. The Matérn family

    C(d) = σ² · 2^(1-ν) / Γ(ν) · (√(2ν)·d/ρ)^ν · K_ν(√(2ν)·d/ρ)

covers the exponential kernel (ν = 0.5) and tends to the Gaussian kernel as
ν → ∞. ρ is the range (decay) parameter, in the same units as d.
"""
from __future__ import annotations

import numpy as np
from scipy.spatial.distance import cdist, pdist, squareform
from scipy.special import gamma, kv

from . import config


def _check_params(d, sigma2: float, rho: float, nu: float | None = None) -> np.ndarray:
    d = np.asarray(d, dtype=float)
    if np.any(d < 0):
        raise ValueError("Distances must be non-negative")
    if sigma2 <= 0 or rho <= 0:
        raise ValueError(f"sigma2 and rho must be positive (got {sigma2}, {rho})")
    if nu is not None and nu <= 0:
        raise ValueError(f"nu must be positive (got {nu})")
    return d


def matern(d, sigma2: float = 1.0, rho: float = 1.0, nu: float = 0.5) -> np.ndarray:
    """Matérn covariance at distance(s) d."""
    d = _check_params(d, sigma2, rho, nu)
    scaled = np.sqrt(2.0 * nu) * d / rho
    out = np.full(d.shape, sigma2, dtype=float)
    pos = scaled > 0
    s = scaled[pos]
    with np.errstate(over="ignore", invalid="ignore"):
        vals = sigma2 * (2.0 ** (1.0 - nu)) / gamma(nu) * s**nu * kv(nu, s)
    # K_ν underflows to 0 (and s**ν overflows) far beyond the range
    out[pos] = np.nan_to_num(vals, nan=0.0, posinf=0.0)
    return out


def exponential(d, sigma2: float = 1.0, rho: float = 1.0) -> np.ndarray:
    d = _check_params(d, sigma2, rho)
    return sigma2 * np.exp(-d / rho)


def gaussian(d, sigma2: float = 1.0, rho: float = 1.0) -> np.ndarray:
    d = _check_params(d, sigma2, rho)
    return sigma2 * np.exp(-(d**2) / (2.0 * rho**2))


KERNELS = {
    "matern": matern,
    "exponential": exponential,
    "gaussian": gaussian,
}


def _haversine_km(u, v) -> float:
    lat1, lon1, lat2, lon2 = map(np.radians, (u[0], u[1], v[0], v[1]))
    a = (np.sin((lat2 - lat1) / 2.0) ** 2
         + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2.0) ** 2)
    return 2.0 * config.EARTH_RADIUS_KM * np.arcsin(np.sqrt(min(a, 1.0)))


def pairwise_distances(coords, other=None, metric: str = "km") -> np.ndarray:
    """Distance matrix between points.

    metric="km": coords are (lat, lon) degrees, great-circle kilometres.
    metric="euclidean": coords already projected.
    """
    coords = np.asarray(coords, dtype=float)
    if metric == "km":
        fn = _haversine_km
    elif metric == "euclidean":
        fn = "euclidean"
    else:
        raise ValueError(f"Unknown metric '{metric}'")

    if other is None:
        return squareform(pdist(coords, fn))
    return cdist(coords, np.asarray(other, dtype=float), fn)


def project_km(lat, lon, ref_lat: float | None = None) -> np.ndarray:
    """Equirectangular projection of (lat, lon) degrees to km.

    Longitude is scaled at ref_lat (defaults to the mean latitude), which is
    accurate enough at country scale.
    """
    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)
    if ref_lat is None:
        ref_lat = float(np.mean(lat))
    x = lon * config.KM_PER_DEG_LON * np.cos(np.radians(ref_lat))
    y = lat * config.KM_PER_DEG_LAT
    return np.column_stack([x, y])


def covariance_matrix(coords, kernel: str = "matern", metric: str = "km", **params) -> np.ndarray:
    """Covariance matrix C[i, j] = kernel(d(i, j))."""
    if kernel not in KERNELS:
        raise ValueError(f"Unknown kernel '{kernel}'. Available: {sorted(KERNELS)}")
    return KERNELS[kernel](pairwise_distances(coords, metric=metric), **params)


def simulate_field(
    coords,
    kernel: str = "matern",
    metric: str = "km",
    seed: int = config.SEED,
    jitter: float = 1e-8,
    **params,
) -> np.ndarray:
    """One draw of a zero-mean Gaussian random field at coords."""
    cov = covariance_matrix(coords, kernel=kernel, metric=metric, **params)
    cov[np.diag_indices_from(cov)] += jitter * max(float(np.max(np.diag(cov))), 1.0)
    L = np.linalg.cholesky(cov)
    rng = np.random.default_rng(seed)
    return L @ rng.standard_normal(len(cov))
