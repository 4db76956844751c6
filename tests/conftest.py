"""Pytest configuration and shared fixtures."""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from scipy.special import expit

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


def _survey(n, seed):
    rng = np.random.default_rng(seed)
    lat = rng.uniform(5.0, 12.0, n)
    lon = rng.uniform(35.0, 42.0, n)
    alt = rng.normal(0.0, 1.0, n)
    bio1 = rng.normal(0.0, 1.0, n)
    bio12 = rng.normal(0.0, 1.0, n)
    # smooth spatial risk surface + elevation effect
    field = 0.8 * np.sin(lat / 1.5) + 0.6 * np.cos(lon / 1.2)
    p = expit(-1.5 - 0.7 * alt + 0.3 * bio1 + field)
    examined = rng.integers(20, 120, n)
    positives = rng.binomial(examined, p)
    return pd.DataFrame({
        "site_id": np.arange(n),
        "latitude": lat,
        "longitude": lon,
        "alt": alt,
        "bio1": bio1,
        "bio12": bio12,
        "examined": examined,
        "pf_pos": positives,
    })


@pytest.fixture
def survey_df():
    """Synthetic prevalence survey: 120 sites, 3 covariates, spatial trend."""
    return _survey(120, seed=42)


@pytest.fixture
def small_survey_df():
    """40-site survey for quick fits."""
    return _survey(40, seed=7)
