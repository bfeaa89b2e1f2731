"""Tests for run configuration, the simulator and the end-to-end CLI."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pytest

from aperture_h2 import run_heritability
from aperture_h2.data_prep import load_measurements, summarise_individuals
from aperture_h2.pedigree import build_pedigree
from aperture_h2.pipeline_utils import (
    load_run_config,
    parse_prefixes,
    resolve_results_dir,
    split_run_config,
    write_run_manifest,
)
from aperture_h2.simulate import simulate_growth, write_growth_csv


# ---------------------------------------------------------------------------
# Run utilities


def test_parse_prefixes() -> None:
    assert parse_prefixes("laf, mar") == ("LAF", "MAR")
    assert parse_prefixes(["br"]) == ("BR",)
    assert parse_prefixes(None) is None
    assert parse_prefixes("") is None
    with pytest.raises(ValueError):
        parse_prefixes("LAF,M4R")


def test_resolve_results_dir_env_override(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("APERTURE_RESULTS_DIR", str(tmp_path / "env"))
    assert resolve_results_dir(None) == tmp_path / "env"
    assert resolve_results_dir(str(tmp_path / "cli")) == tmp_path / "cli"


def test_load_run_config_and_split(tmp_path: Path) -> None:
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"treatment": "warm", "nitt": 500, "prior_additive": {"V": 1, "nu": 1}}))
    values = load_run_config(path)
    model, pipeline = split_run_config(values)
    assert model == {"nitt": 500, "prior_additive": {"V": 1, "nu": 1}}
    assert pipeline == {"treatment": "warm"}


def test_load_run_config_rejects_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"iterations": 10}))
    with pytest.raises(ValueError, match="iterations"):
        load_run_config(path)
    assert load_run_config(None) == {}
    with pytest.raises(FileNotFoundError):
        load_run_config(tmp_path / "absent.json")


def test_write_run_manifest(tmp_path: Path) -> None:
    out = write_run_manifest(tmp_path / "res", {"rows": 3, "path": tmp_path})
    assert json.loads(out.read_text())["rows"] == 3


def test_close_logging_releases_run_log(tmp_path: Path) -> None:
    log_path = run_heritability.setup_logging(tmp_path)
    logging.getLogger("aperture_h2.test").info("hello")
    run_heritability.close_logging()
    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
    assert "hello" in log_path.read_text()


def test_resolve_config_cli_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"data": "x.csv", "nitt": 500, "burnin": 100, "thin": 5,
                                "prior_residual": {"V": 2.0, "nu": 0.5}}))
    args = run_heritability.build_parser().parse_args(
        ["--config", str(path), "--thin", "2", "--prior-va-nu", "1.5", "--prefixes", "br,cu"]
    )
    config, opts = run_heritability.resolve_config(args)
    assert (config.nitt, config.burnin, config.thin) == (500, 100, 2)
    assert config.prior_additive.nu == 1.5
    assert config.prior_residual.V == 2.0
    assert opts["data"] == "x.csv"
    assert opts["prefixes"] == ("BR", "CU")
    assert opts["min_week"] == 10


def test_resolve_config_requires_data() -> None:
    args = run_heritability.build_parser().parse_args([])
    with pytest.raises(ValueError, match="--data"):
        run_heritability.resolve_config(args)


def test_resolve_config_rejects_bad_schedule() -> None:
    args = run_heritability.build_parser().parse_args(["--data", "x.csv", "--nitt", "100", "--burnin", "200"])
    with pytest.raises(ValueError, match="burnin"):
        run_heritability.resolve_config(args)


# ---------------------------------------------------------------------------
# Simulator


def test_simulate_growth_shape_and_pedigree() -> None:
    raw, truth = simulate_growth(n_dams=5, offspring_per_dam=4, early_loss=0.0, seed=1)
    assert set(raw.columns) == {"SnailID", "Damid", "Week", "Genotype", "Treatment", "AI"}
    assert raw["SnailID"].nunique() == 20
    assert raw["Week"].min() == 8 and raw["Week"].max() == 24
    assert set(raw["Treatment"]) == {"ambient", "warm"}
    assert len(truth) == 25
    assert truth["dam"].isna().sum() == 5


def test_simulated_data_runs_through_preparation(tmp_path: Path) -> None:
    raw, truth = simulate_growth(n_dams=6, offspring_per_dam=4, seed=3)
    path = write_growth_csv(raw, tmp_path / "sim.csv")
    ind = summarise_individuals(load_measurements(path), treatment="warm")
    ped = build_pedigree(ind)
    expected = truth[truth["animal"].isin(ind["animal"])]
    assert ind["animal"].is_unique
    assert set(ped["animal"]) >= set(expected["animal"])
    assert set(ped.loc[ped["dam"].isna(), "animal"]) == set(ind["dam"])


# ---------------------------------------------------------------------------
# End to end


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_main_end_to_end(tmp_path: Path) -> None:
    raw, _ = simulate_growth(n_dams=6, offspring_per_dam=4, early_loss=0.0, seed=5)
    data = write_growth_csv(raw, tmp_path / "growth.csv")
    results = tmp_path / "results"

    code = run_heritability.main([
        "--data", str(data),
        "--treatment", "ambient",
        "--results-dir", str(results),
        "--nitt", "300", "--burnin", "100", "--thin", "2",
        "--prior-va-v", "0.01", "--prior-va-nu", "1",
        "--prior-vr-v", "0.01", "--prior-vr-nu", "1",
        "--save-trace", "--no-progress",
    ])
    assert code == 0

    manifest = json.loads((results / "manifest.json").read_text())
    assert manifest["individuals"] == 12
    assert manifest["pedigree_rows"] == 18
    assert 0.0 <= manifest["heritability"]["mean"] <= 1.0
    for name in ("run.log", "trace.nc", "summary.csv", "heritability.csv",
                 "trace_fixed.png", "trace_variance.png", "autocorr.png", "trace_h2.png"):
        assert (results / name).exists(), name
    h2 = np.loadtxt(results / "heritability.csv", delimiter=",", skiprows=1)
    assert len(h2) == 100
