#!/usr/bin/env python3
"""
Synthetic snail growth data with a known pedigree.

Each dam lineage founds a family of full- or half-sib offspring (sires are
unknown, as in the real design). Offspring are reared in one treatment
and measured every two weeks; aperture index rises towards an individual
asymptote ``mu + a + e`` where ``a`` is the breeding value and ``e`` the
residual. The true heritability is ``va / (va + vr)``.

CLI usage:
  python -m aperture_h2.simulate --out data/simulated_growth.csv --dams 30 --offspring 8
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from .data_prep.loader import DEFAULT_PREFIXES, ID_SCALE

DEFAULT_WEEKS = tuple(range(8, 25, 2))
DEFAULT_TREATMENTS = ("ambient", "warm")


def simulate_growth(
    n_dams: int = 30,
    offspring_per_dam: int = 8,
    weeks: Sequence[int] = DEFAULT_WEEKS,
    treatments: Sequence[str] = DEFAULT_TREATMENTS,
    va: float = 0.04,
    vr: float = 0.04,
    mu: float = 1.2,
    treatment_shift: float = 0.1,
    growth_scale: float = 3.0,
    measurement_sd: float = 0.01,
    early_loss: float = 0.1,
    prefixes: Sequence[str] = DEFAULT_PREFIXES,
    seed: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Return (raw measurements, true pedigree with breeding values).

    Raw measurements use the on-disk column names (SnailID, Damid, Week,
    Genotype, Treatment, AI). ``early_loss`` is the share of offspring
    lost before their first measurement after week 10.
    """
    if n_dams < 1 or offspring_per_dam < 1:
        raise ValueError("Need at least one dam and one offspring per dam")
    if va < 0 or vr < 0:
        raise ValueError("Variance components must be non-negative")
    rng = np.random.default_rng(seed)
    weeks = sorted(weeks)
    shift = {t: i * treatment_shift for i, t in enumerate(treatments)}

    dam_bv = rng.normal(0.0, np.sqrt(va), size=n_dams)
    dam_pop = [prefixes[i % len(prefixes)] for i in range(n_dams)]

    rows = []
    ped_rows = [
        {"animal": d + 1, "dam": np.nan, "sire": np.nan, "breeding_value": dam_bv[d]}
        for d in range(n_dams)
    ]
    tag = 0
    for d in range(n_dams):
        for k in range(offspring_per_dam):
            tag += 1
            sire_bv = rng.normal(0.0, np.sqrt(va))
            bv = 0.5 * dam_bv[d] + 0.5 * sire_bv + rng.normal(0.0, np.sqrt(va / 2.0))
            treatment = treatments[k % len(treatments)]
            asymptote = mu + shift[treatment] + bv + rng.normal(0.0, np.sqrt(vr))
            last_week = weeks[-1]
            if rng.random() < early_loss:
                last_week = max([w for w in weeks if w <= 10] or [weeks[0]])
            snail_id = f"{dam_pop[d]}-{tag}"
            for w in weeks:
                if w > last_week:
                    break
                ai = asymptote * (1.0 - np.exp(-w / growth_scale)) + rng.normal(0.0, measurement_sd)
                rows.append({
                    "SnailID": snail_id,
                    "Damid": d + 1,
                    "Week": w,
                    "Genotype": dam_pop[d],
                    "Treatment": treatment,
                    "AI": round(float(ai), 5),
                })
            ped_rows.append({"animal": tag * ID_SCALE, "dam": d + 1, "sire": np.nan, "breeding_value": bv})

    return pd.DataFrame(rows), pd.DataFrame(ped_rows)


def write_growth_csv(df: pd.DataFrame, path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(p, index=False)
    return p


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Simulate snail growth data with a known pedigree")
    ap.add_argument("--out", default="data/simulated_growth.csv")
    ap.add_argument("--pedigree-out", default=None, help="Optional CSV for the true pedigree")
    ap.add_argument("--dams", type=int, default=30)
    ap.add_argument("--offspring", type=int, default=8)
    ap.add_argument("--va", type=float, default=0.04)
    ap.add_argument("--vr", type=float, default=0.04)
    ap.add_argument("--seed", type=int, default=42)
    args = ap.parse_args(argv)

    df, ped = simulate_growth(n_dams=args.dams, offspring_per_dam=args.offspring,
                              va=args.va, vr=args.vr, seed=args.seed)
    out = write_growth_csv(df, args.out)
    print(f"✅ Simulated {df['SnailID'].nunique()} snails, {len(df)} measurements")
    print(f"   True h2 = {args.va / (args.va + args.vr):.3f}")
    print(f"   Data: {out}")
    if args.pedigree_out:
        print(f"   Pedigree: {write_growth_csv(ped, args.pedigree_out)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
