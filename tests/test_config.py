"""Tests for config.py"""
from pathlib import Path

from spatial_regression import config


def test_paths_are_path_objects():
    for attr in dir(config):
        if attr.endswith("_DIR") or attr.endswith("_CSV"):
            assert isinstance(getattr(config, attr), Path), attr


def test_selection_defaults():
    assert config.N_FOLDS == 5
    assert config.MIN_COVARIATES == 2
    assert config.SEED == 42


def test_candidate_covariates_unique():
    assert len(set(config.CANDIDATE_COVARIATES)) == len(config.CANDIDATE_COVARIATES)


def test_matern_defaults_within_bounds():
    lo, hi = config.MATERN_LENGTH_SCALE_BOUNDS_KM
    assert lo <= config.MATERN_LENGTH_SCALE_KM <= hi
    assert config.MATERN_NU > 0
