"""Tests for spatial_analysis.py"""
import numpy as np
import pandas as pd
import pytest

from spatial_regression import spatial_analysis
from spatial_regression.fitting import BinomialGLMFitter, SpatialBinomialFitter
from spatial_regression.model_spec import ModelSpec


@pytest.fixture
def grid():
    lats = np.repeat(np.linspace(5, 9, 10), 10)
    lons = np.tile(np.linspace(36, 40, 10), 10)
    return np.column_stack([lats, lons])


class TestMoransI:
    def test_clustered_pattern_positive(self, grid):
        """Moran's I on a north-south gradient should be positive."""
        W = spatial_analysis.inverse_distance_weights(grid, bandwidth_km=200)
        result = spatial_analysis.morans_i(grid[:, 0], W)
        assert result["I"] > 0
        assert result["p_value"] < 0.05

    def test_checkerboard_negative(self, grid):
        values = np.array([(i + j) % 2 for i in range(10) for j in range(10)], dtype=float)
        dist = spatial_analysis.pairwise_distances(grid)
        W = spatial_analysis.band_weights(dist, 0, 60)
        result = spatial_analysis.morans_i(values, W)
        assert result["I"] < 0

    def test_expected_value(self, grid):
        W = spatial_analysis.inverse_distance_weights(grid, bandwidth_km=200)
        rng = np.random.default_rng(0)
        result = spatial_analysis.morans_i(rng.normal(size=100), W)
        assert result["E_I"] == pytest.approx(-1 / 99)

    def test_constant_values_nan(self, grid):
        W = spatial_analysis.inverse_distance_weights(grid)
        result = spatial_analysis.morans_i(np.ones(100), W)
        assert np.isnan(result["I"])

    def test_rows_standardized(self, grid):
        W = spatial_analysis.inverse_distance_weights(grid, bandwidth_km=100)
        np.testing.assert_allclose(W.sum(axis=1), 1.0)
        raw = spatial_analysis.inverse_distance_weights(grid, bandwidth_km=100, standardize=False)
        assert raw.max() > 1.0 / 100
        assert np.all(np.diag(raw) == 0)

    def test_no_neighbours_nan(self, grid):
        W = spatial_analysis.inverse_distance_weights(grid, bandwidth_km=1)
        result = spatial_analysis.morans_i(grid[:, 0], W)
        assert np.isnan(result["I"])


class TestCorrelogram:
    def test_shape_and_columns(self, grid):
        result = spatial_analysis.correlogram(grid, grid[:, 0], n_bins=6)
        assert len(result) == 6
        assert list(result.columns) == ["bin_start", "bin_end", "n_pairs", "I", "z_score", "p_value"]
        assert (result["bin_end"] > result["bin_start"]).all()

    def test_short_range_autocorrelation_decays(self, grid):
        result = spatial_analysis.correlogram(grid, grid[:, 0], n_bins=5)
        assert result.iloc[0]["I"] > 0.5
        assert result.iloc[0]["I"] > result.iloc[-1]["I"]

    def test_max_distance(self, grid):
        result = spatial_analysis.correlogram(grid, grid[:, 0], n_bins=4, max_distance=100.0)
        assert result["bin_end"].iloc[-1] == pytest.approx(100.0)

    def test_nan_values_dropped(self, grid):
        values = grid[:, 0].copy()
        values[:5] = np.nan
        result = spatial_analysis.correlogram(grid, values, n_bins=3)
        assert result["I"].notna().any()


def test_spatial_model_reduces_residual_autocorrelation(survey_df):
    spec = ModelSpec(covariates=("alt", "bio1"))
    glm = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
    spatial = SpatialBinomialFitter().fit(spec, survey_df)

    glm_moran = spatial_analysis.residual_autocorrelation(survey_df, glm.residuals(), bandwidth_km=150)
    spatial_moran = spatial_analysis.residual_autocorrelation(survey_df, spatial.residuals(), bandwidth_km=150)

    assert glm_moran["I"] > 0
    assert glm_moran["autocorrelation"] == "Positive"
    assert spatial_moran["I"] < glm_moran["I"]
