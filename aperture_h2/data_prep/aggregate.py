"""
Per-individual trait summaries.

Shells stop growing in aperture shape after roughly week 10, so only the
asymptotic window is averaged. Grouping keys include the dam lineage as
well as the animal; since every animal has a single dam this does not
split groups, it only carries the dam through to the pedigree.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

MIN_WEEK = 10
GROUP_KEYS = ("animal", "dam", "treatment")
TRAIT = "aperture_index"


def filter_asymptotic(df: pd.DataFrame, min_week: float = MIN_WEEK) -> pd.DataFrame:
    """Keep measurements strictly older than `min_week`."""
    return df[df["week"] > min_week].copy()


def aggregate_trait(df: pd.DataFrame, keys: Sequence[str] = GROUP_KEYS,
                    trait: str = TRAIT) -> pd.DataFrame:
    """Mean trait value per group, one row per group.

    Re-aggregating the output by the same keys returns it unchanged
    (apart from `n_obs`, which becomes 1).
    """
    keys: List[str] = list(keys)
    missing = [c for c in keys + [trait] if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot aggregate, missing columns: {missing}")
    agg = (
        df.groupby(keys, sort=True)[trait]
        .agg(["mean", "count"])
        .reset_index()
        .rename(columns={"mean": trait, "count": "n_obs"})
    )
    return agg


def subset_treatment(df: pd.DataFrame, treatment: Optional[str] = None) -> pd.DataFrame:
    """Keep a single treatment cohort; only one cohort is modelled per run."""
    available = sorted(df["treatment"].astype(str).unique())
    if treatment is None:
        if len(available) != 1:
            raise ValueError(f"Several treatments present, choose one of {available}")
        treatment = available[0]
    if treatment not in available:
        raise ValueError(f"Treatment {treatment!r} not found; available: {available}")
    return df[df["treatment"].astype(str) == treatment].copy()


def summarise_individuals(df: pd.DataFrame, min_week: float = MIN_WEEK,
                          treatment: Optional[str] = None,
                          trait: str = TRAIT) -> pd.DataFrame:
    """Filter to the asymptotic window, average per individual, keep one cohort.

    Returns columns animal, dam, sire, treatment, <trait>, n_obs; sire is
    always unknown at this stage.
    """
    late = filter_asymptotic(df, min_week)
    log.info("Asymptotic window (week > %s): kept %d of %d rows", min_week, len(late), len(df))
    if late.empty:
        raise ValueError(f"No measurements after week {min_week}")

    agg = aggregate_trait(late, GROUP_KEYS, trait)
    cohort = subset_treatment(agg, treatment)
    log.info("Treatment %s: %d individuals (%d groups dropped from other cohorts)",
             cohort["treatment"].iloc[0], len(cohort), len(agg) - len(cohort))

    cohort["sire"] = np.nan
    cols = ["animal", "dam", "sire", "treatment", trait, "n_obs"]
    return cohort[cols].reset_index(drop=True)
