"""Tests for fitting.py"""
import numpy as np
import pytest

from spatial_regression.errors import DataError, FitError
from spatial_regression.fitting import BinomialGLMFitter, SpatialBinomialFitter
from spatial_regression.model_spec import ModelSpec


@pytest.fixture
def spec():
    return ModelSpec(covariates=("alt", "bio1"))


class TestBinomialGLM:
    def test_predicts_probabilities(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        p = model.predict(survey_df)
        assert p.shape == (len(survey_df),)
        assert np.all((p > 0) & (p < 1))

    def test_recovers_elevation_effect(self, survey_df, spec):
        """Simulated data has a negative elevation coefficient."""
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        assert model.params["alt"] < 0

    def test_predict_counts(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        counts = model.predict_counts(survey_df)
        np.testing.assert_allclose(counts, model.predict(survey_df) * survey_df["examined"])

    def test_residuals_aligned_with_training_rows(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        for kind in ("pearson", "logit"):
            resid = model.residuals(kind)
            assert len(resid) == len(survey_df)
            assert resid.index.equals(survey_df.index)
            assert np.all(np.isfinite(resid))

    def test_unknown_residual_kind(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        with pytest.raises(ValueError):
            model.residuals("deviance")

    def test_missing_column_is_fit_error(self, survey_df):
        with pytest.raises(FitError) as exc:
            BinomialGLMFitter().fit(ModelSpec(covariates=("bio99",)), survey_df)
        assert "bio99" in str(exc.value)

    def test_predict_with_missing_covariate_value(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        new = survey_df.head(5).copy()
        new.loc[new.index[0], "alt"] = np.nan
        with pytest.raises(DataError):
            model.predict(new)

    def test_linear_predictor_exact_far_from_data(self, survey_df, spec):
        """x'β is returned unclipped even where p rounds to 0 or 1."""
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        new = survey_df.head(3).copy()
        new["alt"] = [-80.0, 0.0, 80.0]
        b = model.params
        expected = b["Intercept"] + b["alt"] * new["alt"] + b["bio1"] * new["bio1"]
        eta = model.linear_predictor(new)
        np.testing.assert_allclose(eta, expected.to_numpy(), rtol=1e-10)
        assert np.abs(eta).max() > 25

    def test_summary_mentions_covariates(self, survey_df, spec):
        model = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        assert "alt" in model.summary()


class TestSpatialBinomial:
    def test_predicts_probabilities(self, survey_df, spec):
        model = SpatialBinomialFitter().fit(spec, survey_df)
        p = model.predict(survey_df.head(10))
        assert p.shape == (10,)
        assert np.all((p > 0) & (p < 1))

    def test_random_effect_improves_training_fit(self, survey_df, spec):
        glm = BinomialGLMFitter().fit(spec.without_spatial(), survey_df)
        spatial = SpatialBinomialFitter().fit(spec, survey_df)
        y = survey_df["pf_pos"].to_numpy()
        mse_glm = np.mean((glm.predict_counts(survey_df) - y) ** 2)
        mse_spatial = np.mean((spatial.predict_counts(survey_df) - y) ** 2)
        assert mse_spatial < mse_glm

    def test_covariance_params(self, survey_df, spec):
        model = SpatialBinomialFitter(nu=2.5).fit(spec, survey_df)
        params = model.covariance_params()
        assert set(params) == {"sigma2", "rho_km", "nu", "nugget"}
        assert params["nu"] == 2.5
        assert params["rho_km"] > 0
        assert "Spatial random effect" in model.summary()

    def test_nu_taken_from_spec_by_default(self, survey_df):
        from spatial_regression.model_spec import SpatialTerm
        spec = ModelSpec(covariates=("alt",), spatial=SpatialTerm(nu=0.5))
        model = SpatialBinomialFitter().fit(spec, survey_df)
        assert model.covariance_params()["nu"] == 0.5

    def test_deterministic(self, small_survey_df, spec):
        a = SpatialBinomialFitter().fit(spec, small_survey_df).predict(small_survey_df)
        b = SpatialBinomialFitter().fit(spec, small_survey_df).predict(small_survey_df)
        np.testing.assert_array_equal(a, b)

    def test_requires_spatial_term(self, survey_df, spec):
        with pytest.raises(ValueError):
            SpatialBinomialFitter().fit(spec.without_spatial(), survey_df)

    def test_glm_failure_propagates(self, survey_df):
        with pytest.raises(FitError):
            SpatialBinomialFitter().fit(ModelSpec(covariates=("bio99",)), survey_df)
