#!/usr/bin/env python3
"""
Heritability of aperture index - animal model pipeline

Loads growth measurements, averages aperture index over the asymptotic
growth window for one treatment cohort, builds the dam pedigree, fits a
Bayesian animal model with PyMC and reports convergence diagnostics plus
the posterior of h2 = VA / (VA + VR).

Outputs (in --results-dir):
- run.log, manifest.json: always
- trace_fixed.png, trace_variance.png, autocorr.png, trace_h2.png: unless --no-plots
- trace.nc, summary.csv, heritability.csv: with --save-trace

Usage:
  python -m aperture_h2.run_heritability --data growth.csv --treatment ambient
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from . import diagnostics as diag
from .data_prep import load_measurements, summarise_individuals
from .data_prep.loader import ID_SCALE
from .models import ModelConfig, PriorSpec, prepare_model_data, fit_animal_model
from .pedigree import build_pedigree, inbreeding
from .pipeline_utils import (
    load_run_config,
    parse_prefixes,
    resolve_results_dir,
    split_run_config,
    write_run_manifest,
)

log = logging.getLogger("aperture_h2")


def _banner(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def setup_logging(results_dir: Path, level: int = logging.INFO) -> Path:
    results_dir.mkdir(parents=True, exist_ok=True)
    log_path = results_dir / "run.log"
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_path, mode='w'),
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )
    return log_path


def close_logging() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Animal-model heritability of aperture index")
    ap.add_argument("--data", type=str, default=None, help="Growth measurement file (CSV/TSV/XLSX)")
    ap.add_argument("--treatment", type=str, default=None, help="Treatment cohort to model")
    ap.add_argument("--min-week", type=float, default=None, help="Keep measurements after this week (default 10)")
    ap.add_argument("--prefixes", type=str, default=None, help="Population codes, e.g. 'LAF,MAR'")
    ap.add_argument("--config", type=str, default=None, help="JSON file with run overrides")
    ap.add_argument("--results-dir", type=str, default=None)
    ap.add_argument("--nitt", type=int, default=None)
    ap.add_argument("--burnin", type=int, default=None)
    ap.add_argument("--thin", type=int, default=None)
    ap.add_argument("--chains", type=int, default=None)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--prior-va-v", type=float, default=None)
    ap.add_argument("--prior-va-nu", type=float, default=None)
    ap.add_argument("--prior-vr-v", type=float, default=None)
    ap.add_argument("--prior-vr-nu", type=float, default=None)
    ap.add_argument("--hdi-prob", type=float, default=0.95)
    ap.add_argument("--save-trace", action="store_true", help="Write trace.nc, summary.csv and heritability.csv")
    ap.add_argument("--no-plots", action="store_true")
    ap.add_argument("--no-progress", action="store_true")
    return ap


def resolve_config(args: argparse.Namespace) -> tuple[ModelConfig, Dict[str, Any]]:
    """Merge defaults, JSON overrides and CLI flags (CLI wins)."""
    file_values = load_run_config(Path(args.config) if args.config else None)
    model_values, opts = split_run_config(file_values)

    cli_model = {
        "nitt": args.nitt,
        "burnin": args.burnin,
        "thin": args.thin,
        "chains": args.chains,
        "random_seed": args.seed,
    }
    model_values.update({k: v for k, v in cli_model.items() if v is not None})
    if args.no_progress:
        model_values["progressbar"] = False

    config = ModelConfig.from_dict(model_values)
    va = config.prior_additive
    vr = config.prior_residual
    config.prior_additive = PriorSpec(
        V=args.prior_va_v if args.prior_va_v is not None else va.V,
        nu=args.prior_va_nu if args.prior_va_nu is not None else va.nu,
    )
    config.prior_residual = PriorSpec(
        V=args.prior_vr_v if args.prior_vr_v is not None else vr.V,
        nu=args.prior_vr_nu if args.prior_vr_nu is not None else vr.nu,
    )
    config.validate()

    for key in ("data", "treatment", "min_week", "results_dir"):
        value = getattr(args, key)
        if value is not None:
            opts[key] = value
    if args.prefixes is not None:
        opts["prefixes"] = args.prefixes
    opts["prefixes"] = parse_prefixes(opts.get("prefixes"))
    opts.setdefault("min_week", 10)
    opts.setdefault("id_scale", ID_SCALE)
    if not opts.get("data"):
        raise ValueError("No input data given; pass --data or set 'data' in --config")
    return config, opts


def report(idata, hdi_prob: float = 0.95) -> Dict[str, Any]:
    """Print the diagnostics and posterior summaries; return them for saving."""
    fixed = ["intercept"]
    variances = ["VA", "VR"]
    monitored = fixed + variances

    _banner("AUTOCORRELATION")
    acf = diag.autocorrelation(idata, monitored)
    print(acf.round(3))

    _banner("EFFECTIVE SAMPLE SIZE")
    ess = diag.effective_sample_sizes(idata, monitored)
    print(ess.round(0))

    _banner("STATIONARITY (Geweke, first 10% vs last 50%)")
    stat = diag.stationarity_test(idata, variances)
    print(stat.round(4))

    _banner("POSTERIOR MODES")
    modes = diag.posterior_modes(idata, monitored)
    print(modes.round(4))

    _banner("MODEL SUMMARY")
    summary = diag.model_summary(idata, monitored, hdi_prob=hdi_prob)
    print(summary)
    ic = diag.information_criteria(idata)
    print(f"\n   DIC  = {ic['DIC']:.2f}  (pD = {ic['pD']:.2f})")
    print(f"   WAIC = {ic['WAIC']:.2f}  (p_WAIC = {ic['p_WAIC']:.2f})")

    _banner("HERITABILITY h2 = VA / (VA + VR)")
    h2 = diag.heritability_from_trace(idata)
    h2_summary = diag.summarise_heritability(h2, hdi_prob=hdi_prob)
    print(f"   Mean  = {h2_summary.mean:.3f}")
    print(f"   Mode  = {h2_summary.mode:.3f}")
    print(f"   {hdi_prob:.0%} HPD: [{h2_summary.lower:.3f}, {h2_summary.upper:.3f}]")
    print(f"   ESS   = {h2_summary.ess:.0f}  (draws: {h2_summary.n_draws})")

    _banner("HEURISTICS")
    for line in diag.heuristics_report(ess, stat):
        print("   " + line)

    return {
        "h2": h2,
        "h2_summary": h2_summary,
        "summary": summary,
        "ic": ic,
        "ess": ess,
        "stationarity": stat,
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config, opts = resolve_config(args)

    results_dir = resolve_results_dir(opts.get("results_dir"))
    log_path = setup_logging(results_dir)
    try:
        return _run(args, config, opts, results_dir, log_path)
    finally:
        close_logging()


def _run(args: argparse.Namespace, config: ModelConfig, opts: Dict[str, Any],
         results_dir: Path, log_path: Path) -> int:
    print("\n" + "╔" + "=" * 78 + "╗")
    print("║" + "APERTURE INDEX HERITABILITY - ANIMAL MODEL".center(78) + "║")
    print("╚" + "=" * 78 + "╝\n")

    _banner("LOADING DATA")
    measurements = load_measurements(opts["data"], prefixes=opts["prefixes"], scale=int(opts["id_scale"]))

    _banner("AGGREGATING (asymptotic growth window)")
    individuals = summarise_individuals(measurements, min_week=float(opts["min_week"]),
                                        treatment=opts.get("treatment"))
    trait = config.response
    print(f"   Individuals: {len(individuals)}")
    print(f"   Dams:        {individuals['dam'].nunique()}")
    print(f"   {trait}: mean {individuals[trait].mean():.4f}, sd {individuals[trait].std():.4f}")

    _banner("BUILDING PEDIGREE")
    pedigree = build_pedigree(individuals)
    f = inbreeding(pedigree)
    print(f"   Pedigree rows: {len(pedigree)}")
    print(f"   Mean inbreeding: {f.mean():.4f}")

    _banner("RUNNING MCMC")
    data = prepare_model_data(individuals, pedigree, response=trait)
    idata = fit_animal_model(data, config)
    print("\n✅ Sampling complete!")

    results = report(idata, hdi_prob=args.hdi_prob)

    _banner("SAVING")
    outputs: Dict[str, str] = {"log": str(log_path)}
    if not args.no_plots:
        from . import figures
        outputs["trace_fixed"] = str(figures.plot_traces(idata, ["intercept"], results_dir / "trace_fixed.png"))
        outputs["trace_variance"] = str(figures.plot_traces(idata, ["VA", "VR"], results_dir / "trace_variance.png"))
        outputs["autocorr"] = str(figures.plot_autocorrelation(idata, ["intercept", "VA", "VR"], results_dir / "autocorr.png"))
        outputs["trace_h2"] = str(figures.plot_heritability(results["h2"], results_dir / "trace_h2.png", hdi_prob=args.hdi_prob))
    if args.save_trace:
        idata.to_netcdf(str(results_dir / "trace.nc"))
        outputs["trace"] = str(results_dir / "trace.nc")
        results["summary"].to_csv(results_dir / "summary.csv")
        outputs["summary"] = str(results_dir / "summary.csv")
        pd.DataFrame({"h2": results["h2"].ravel()}).to_csv(results_dir / "heritability.csv", index=False)
        outputs["heritability"] = str(results_dir / "heritability.csv")
    for name, path in outputs.items():
        print(f"✅ {name}: {path}")

    manifest_info: Dict[str, Any] = {
        "pipeline": "animal_model",
        "data": str(opts["data"]),
        "treatment": individuals["treatment"].iloc[0],
        "min_week": opts["min_week"],
        "prefixes": list(opts["prefixes"]) if opts["prefixes"] else None,
        "model": config.to_dict(),
        "measurement_rows": int(len(measurements)),
        "individuals": int(len(individuals)),
        "pedigree_rows": int(len(pedigree)),
        "heritability": results["h2_summary"].to_dict(),
        "information_criteria": results["ic"],
        "outputs": outputs,
    }
    write_run_manifest(results_dir, manifest_info)
    log.info("Run complete; results in %s", results_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
