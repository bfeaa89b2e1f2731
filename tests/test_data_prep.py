"""Tests for measurement loading, ID normalization and trait aggregation."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from aperture_h2.data_prep import (
    aggregate_trait,
    filter_asymptotic,
    load_measurements,
    normalize_dam_ids,
    normalize_id,
    normalize_ids,
    subset_treatment,
    summarise_individuals,
)
from aperture_h2.data_prep.loader import normalize_columns, read_measurements


# ---------------------------------------------------------------------------
# ID normalizer


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("LAF-12", 12000),
        ("MAR_7", 7000),
        ("laf 3", 3000),
        ("MAR.045", 45000),
        ("LAF100", 100000),
    ],
)
def test_normalize_id_scales_numeric_suffix(raw: str, expected: int) -> None:
    assert normalize_id(raw) == expected


@pytest.mark.parametrize("raw", ["LAF-12a", "MAR-", "XYZ-12", "12", "LAF-1.5", "LAF-0", "MAR-000"])
def test_normalize_id_rejects_bad_identifiers(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_id(raw)


def test_normalize_id_custom_prefixes_and_scale() -> None:
    assert normalize_id("BR/9", prefixes=("BR", "CU"), scale=10) == 90
    with pytest.raises(ValueError):
        normalize_id("LAF-9", prefixes=("BR", "CU"))


def test_normalize_ids_returns_integer_copy() -> None:
    df = pd.DataFrame({"animal": ["LAF-1", "MAR-2"]})
    out = normalize_ids(df)
    assert out["animal"].tolist() == [1000, 2000]
    assert out["animal"].dtype == np.int64
    assert df["animal"].tolist() == ["LAF-1", "MAR-2"]


def test_normalize_dam_ids_is_not_scaled() -> None:
    df = pd.DataFrame({"dam": [3, "LAF-4", 5.0]})
    out = normalize_dam_ids(df)
    assert out["dam"].tolist() == [3, 4, 5]


# ---------------------------------------------------------------------------
# Loader


def test_normalize_columns_maps_aliases(growth_frame: pd.DataFrame) -> None:
    out = normalize_columns(growth_frame)
    assert {"animal", "dam", "week", "genotype", "treatment", "aperture_index"}.issubset(out.columns)


def test_normalize_columns_missing_required_column(growth_frame: pd.DataFrame) -> None:
    with pytest.raises(ValueError, match="treatment"):
        normalize_columns(growth_frame.drop(columns=["Treatment"]))


def test_normalize_columns_non_numeric_week_is_fatal(growth_frame: pd.DataFrame) -> None:
    bad = growth_frame.copy()
    bad["Week"] = bad["Week"].astype(object)
    bad.loc[0, "Week"] = "twelve"
    with pytest.raises(ValueError):
        normalize_columns(bad)


def test_read_measurements_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        read_measurements(tmp_path / "absent.csv")


def test_read_measurements_unsupported_suffix(tmp_path) -> None:
    path = tmp_path / "growth.parquet"
    path.write_text("x")
    with pytest.raises(ValueError):
        read_measurements(path)


def test_load_measurements_end_to_end(growth_csv, growth_frame: pd.DataFrame) -> None:
    df = load_measurements(growth_csv)
    assert len(df) == len(growth_frame)
    assert sorted(df["animal"].unique()) == [tag * 1000 for tag in range(1, 21)]
    assert sorted(df["dam"].unique()) == [1, 2, 3, 4, 5]


def test_load_measurements_tab_separated(tmp_path, growth_frame: pd.DataFrame) -> None:
    path = tmp_path / "growth.tsv"
    growth_frame.to_csv(path, sep="\t", index=False)
    assert len(load_measurements(path)) == len(growth_frame)


# ---------------------------------------------------------------------------
# Aggregation


def test_filter_asymptotic_is_strict(growth_csv) -> None:
    df = load_measurements(growth_csv)
    late = filter_asymptotic(df, 10)
    assert late["week"].min() == 12


def test_aggregate_trait_means_and_counts() -> None:
    df = pd.DataFrame({
        "animal": [1000, 1000, 2000],
        "dam": [1, 1, 1],
        "treatment": ["a", "a", "a"],
        "aperture_index": [1.0, 3.0, 5.0],
    })
    agg = aggregate_trait(df)
    assert agg["aperture_index"].tolist() == [2.0, 5.0]
    assert agg["n_obs"].tolist() == [2, 1]


def test_aggregate_trait_is_idempotent(growth_csv) -> None:
    df = filter_asymptotic(load_measurements(growth_csv))
    once = aggregate_trait(df)
    twice = aggregate_trait(once)
    pd.testing.assert_series_equal(once["aperture_index"], twice["aperture_index"])
    assert (twice["n_obs"] == 1).all()


def test_subset_treatment_requires_choice_when_ambiguous(growth_csv) -> None:
    df = load_measurements(growth_csv)
    with pytest.raises(ValueError, match="ambient"):
        subset_treatment(df, None)
    with pytest.raises(ValueError):
        subset_treatment(df, "cold")
    single = subset_treatment(df, "warm")
    assert subset_treatment(single, None)["treatment"].unique().tolist() == ["warm"]


def test_summarise_individuals_keeps_late_ambient_snails(growth_csv) -> None:
    df = load_measurements(growth_csv)
    ind = summarise_individuals(df, min_week=10, treatment="ambient")

    expected = [tag * 1000 for tag in range(5, 21, 2)]
    assert ind["animal"].tolist() == expected
    assert ind["animal"].is_unique
    assert ind["sire"].isna().all()
    assert (ind["treatment"] == "ambient").all()
    assert list(ind.columns) == ["animal", "dam", "sire", "treatment", "aperture_index", "n_obs"]
    # week 12..24 -> 7 measurements each
    assert (ind["n_obs"] == 7).all()


def test_summarise_individuals_no_late_data() -> None:
    df = pd.DataFrame({
        "animal": [1000], "dam": [1], "week": [8], "treatment": ["a"], "aperture_index": [1.0],
    })
    with pytest.raises(ValueError):
        summarise_individuals(df, min_week=10)
