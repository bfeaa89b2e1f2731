#!/usr/bin/env python3
"""
Reproducibility Suite - Aperture Index Heritability
===================================================

Simulates a growth data set with a known pedigree and known variance
components, runs the full animal-model pipeline on it, and checks that
every stage behaves: ID normalization, the asymptotic-window aggregation,
pedigree completion, sampling, and the recovered heritability.

Usage:
    python reproduce_all.py [--nitt 13000 --burnin 3000 --thin 10]
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parent
OUT_DIR = ROOT / "results" / "reproduce"
DATA_PATH = OUT_DIR / "simulated_growth.csv"

OUT_DIR.mkdir(parents=True, exist_ok=True)

LOG_PATH = OUT_DIR / "reproducibility_log.txt"
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_PATH, mode='w'),
        logging.StreamHandler(sys.stdout),
    ]
)
log = logging.getLogger(__name__)

TRUE_VA = 0.04
TRUE_VR = 0.04


class Validator:
    def __init__(self):
        self.checks = []

    def check(self, name, condition, detail=""):
        status = "PASS" if condition else "FAIL"
        self.checks.append((name, status, detail))
        sym = "✓" if condition else "✗"
        log.info(f"  {sym} {name}: {status}  {detail}")
        return condition

    def summary(self):
        passed = sum(1 for _, s, _ in self.checks if s == "PASS")
        return passed, len(self.checks)


def step1_simulate(v, state):
    log.info("=" * 70)
    log.info("STEP 1: Simulate growth data")
    log.info("=" * 70)
    from aperture_h2.simulate import simulate_growth, write_growth_csv

    raw, truth = simulate_growth(n_dams=40, offspring_per_dam=10, va=TRUE_VA, vr=TRUE_VR, seed=42)
    write_growth_csv(raw, DATA_PATH)
    state["truth"] = truth
    log.info(f"  {raw['SnailID'].nunique()} snails, {len(raw)} rows -> {DATA_PATH}")
    v.check("Two treatments simulated", raw["Treatment"].nunique() == 2)


def step2_prepare(v, state):
    log.info("")
    log.info("=" * 70)
    log.info("STEP 2: Load, aggregate, build pedigree")
    log.info("=" * 70)
    from aperture_h2.data_prep import load_measurements, summarise_individuals
    from aperture_h2.pedigree import build_pedigree

    df = load_measurements(DATA_PATH)
    v.check("IDs scaled by 1000", bool((df["animal"] % 1000 == 0).all()))

    ind = summarise_individuals(df, min_week=10, treatment="ambient")
    v.check("One row per individual", ind["animal"].is_unique, f"n={len(ind)}")

    ped = build_pedigree(ind)
    present = set(ped["animal"])
    dangling = [p for p in ped["dam"].dropna() if p not in present]
    v.check("No dangling dams", not dangling)
    v.check("Founders are the dams", set(ped.loc[ped["dam"].isna(), "animal"]) == set(ind["dam"]))
    state["individuals"] = ind
    state["pedigree"] = ped


def step3_fit(v, state, args):
    log.info("")
    log.info("=" * 70)
    log.info("STEP 3: Fit animal model")
    log.info("=" * 70)
    from aperture_h2 import diagnostics as diag
    from aperture_h2.models import ModelConfig, prepare_model_data, fit_animal_model

    config = ModelConfig(nitt=args.nitt, burnin=args.burnin, thin=args.thin, chains=2, progressbar=False)
    data = prepare_model_data(state["individuals"], state["pedigree"])
    idata = fit_animal_model(data, config)
    v.check("Retained draws per chain", idata.posterior.sizes["draw"] == config.n_kept,
            f"{idata.posterior.sizes['draw']}")

    h2 = diag.heritability_from_trace(idata)
    s = diag.summarise_heritability(h2)
    true_h2 = TRUE_VA / (TRUE_VA + TRUE_VR)
    log.info(f"  h2 mean = {s.mean:.3f}, 95% HPD [{s.lower:.3f}, {s.upper:.3f}], true = {true_h2:.3f}")
    v.check("h2 bounded in [0, 1]", bool(np.all((h2 >= 0) & (h2 <= 1))))
    v.check("True h2 inside HPD", s.lower <= true_h2 <= s.upper)

    stat = diag.stationarity_test(idata)
    v.check("Variance chains stationary", bool(stat["passed"].all()),
            ", ".join(f"{k}: p={p:.3f}" for k, p in stat["p_value"].items()))


def main():
    ap = argparse.ArgumentParser(description="Reproducibility suite for the heritability pipeline")
    ap.add_argument("--nitt", type=int, default=13000)
    ap.add_argument("--burnin", type=int, default=3000)
    ap.add_argument("--thin", type=int, default=10)
    args = ap.parse_args()

    start = time.time()
    log.info("=" * 70)
    log.info("REPRODUCIBILITY SUITE: APERTURE INDEX HERITABILITY")
    log.info(f"Timestamp: {datetime.now().isoformat()}")
    log.info(f"Root:    {ROOT}")
    log.info(f"Outputs: {OUT_DIR}")
    log.info(f"Log:     {LOG_PATH}")
    log.info("=" * 70)

    v = Validator()
    state = {}
    failures = []

    steps = [
        ("Simulate", lambda: step1_simulate(v, state)),
        ("Prepare", lambda: step2_prepare(v, state)),
        ("Fit", lambda: step3_fit(v, state, args)),
    ]

    for name, fn in steps:
        try:
            fn()
        except Exception as e:
            log.error(f"STEP FAILED: {name}: {e}")
            failures.append((name, str(e)))
            break

    elapsed = time.time() - start
    passed, total = v.summary()

    log.info("")
    log.info("=" * 70)
    log.info("REPRODUCIBILITY SUMMARY")
    log.info("=" * 70)
    log.info(f"Validation: {passed}/{total} checks passed")
    log.info(f"Failures:   {len(failures)} step(s) failed")
    log.info(f"Elapsed:    {elapsed:.1f}s")

    for name, err in failures:
        log.info(f"  ✗ {name}: {err}")

    if passed == total and not failures:
        log.info("\n★ ALL CHECKS PASSED")
        sys.exit(0)
    else:
        log.info("\n⚠ SOME CHECKS FAILED, review above")
        sys.exit(1)


if __name__ == "__main__":
    main()
