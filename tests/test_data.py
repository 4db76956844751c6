"""Tests for data.py"""
from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from spatial_regression import data
from spatial_regression.errors import DataError


def test_validate_accepts_clean_data(survey_df):
    out = data.validate_dataset(survey_df, ["alt", "bio1"])
    assert out is survey_df


def test_validate_rejects_missing_covariate_value(survey_df):
    survey_df.loc[3, "alt"] = np.nan
    with pytest.raises(DataError) as exc:
        data.validate_dataset(survey_df, ["alt"])
    assert exc.value.rows == [3]


def test_missing_value_in_unused_covariate_is_ignored(survey_df):
    survey_df.loc[3, "bio12"] = np.nan
    data.validate_dataset(survey_df, ["alt"])


def test_validate_rejects_missing_column(survey_df):
    with pytest.raises(DataError) as exc:
        data.validate_dataset(survey_df, ["bio99"])
    assert "bio99" in exc.value.columns


@pytest.mark.parametrize("col,value", [
    ("latitude", np.nan),
    ("latitude", 95.0),
    ("longitude", -200.0),
    ("examined", 0),
    ("pf_pos", -1),
])
def test_validate_rejects_invalid_records(survey_df, col, value):
    survey_df[col] = survey_df[col].astype(float)
    survey_df.loc[0, col] = value
    with pytest.raises(DataError):
        data.validate_dataset(survey_df)


def test_positives_above_trials_rejected(survey_df):
    survey_df.loc[1, "pf_pos"] = survey_df.loc[1, "examined"] + 1
    bad = data.invalid_rows(survey_df)
    assert bad.tolist().count(True) == 1
    assert bad.iloc[1]


def test_clean_drops_and_renumbers(survey_df):
    survey_df.loc[[2, 5], "bio1"] = np.nan
    cleaned = data.clean_dataset(survey_df, ["bio1"])
    assert len(cleaned) == len(survey_df) - 2
    assert cleaned.index.tolist() == list(range(len(cleaned)))
    assert 2 not in cleaned["site_id"].tolist()


def test_clean_everything_invalid(survey_df):
    survey_df["alt"] = np.nan
    with pytest.raises(DataError):
        data.clean_dataset(survey_df, ["alt"])


def test_add_prevalence(survey_df):
    out = data.add_prevalence(survey_df)
    np.testing.assert_allclose(out["prevalence"], survey_df["pf_pos"] / survey_df["examined"])
    assert "prevalence" not in survey_df.columns


def test_load_dataset_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        data.load_dataset(tmp_path / "nope.csv")


def test_load_dataset_from_csv(tmp_path, survey_df):
    path = tmp_path / "survey.csv"
    survey_df.to_csv(path, index=False)
    df = data.load_dataset(path)
    assert len(df) == len(survey_df)
    assert "pf_pos" in df.columns


def test_load_dataset_from_url():
    url = "https://example.org/eth_malaria.csv"
    with patch("pandas.read_csv") as mock_read:
        mock_read.return_value = pd.DataFrame({"pf_pos": [1]})
        df = data.load_dataset(url)
    mock_read.assert_called_once_with(url)
    assert len(df) == 1


def test_coordinates_optional_without_spatial_term(survey_df):
    no_coords = survey_df.drop(columns=["latitude", "longitude"])
    out = data.validate_dataset(no_coords, ["alt"], lat_col=None, lon_col=None)
    assert out is no_coords
    with pytest.raises(DataError):
        data.validate_dataset(no_coords, ["alt"])
