"""
Convergence diagnostics and the heritability derivation.

Each check is independent of the others. The acceptance heuristics are
reported, never enforced:
- trace should look like white noise and the density should be unimodal
  (inspect the figures),
- effective sample size above 1000 for every monitored parameter,
- stationarity test p-value above 0.05 for each variance component.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import arviz as az
from scipy import stats

log = logging.getLogger(__name__)

ESS_TARGET = 1000
STATIONARITY_ALPHA = 0.05
DEFAULT_LAGS = (0, 1, 5, 10, 50)
MONITORED = ["intercept", "VA", "VR"]


def chain(idata: az.InferenceData, name: str) -> np.ndarray:
    """All retained draws of one scalar parameter, chains concatenated."""
    return idata.posterior[name].values.flatten()


def _per_chain(idata: az.InferenceData, name: str) -> np.ndarray:
    vals = idata.posterior[name].values
    if vals.ndim != 2:
        raise ValueError(f"{name} is not a scalar parameter (shape {vals.shape})")
    return vals


# -----------------------------------------------------------------------------
# Autocorrelation and effective sample size
# -----------------------------------------------------------------------------

def autocorrelation(idata: az.InferenceData, var_names: Sequence[str] = MONITORED,
                    lags: Iterable[int] = DEFAULT_LAGS) -> pd.DataFrame:
    """Autocorrelation at the given lags (in retained draws), averaged over chains."""
    lags = list(lags)
    out = {}
    for v in var_names:
        acf = np.mean(az.autocorr(_per_chain(idata, v), axis=-1), axis=0)
        out[v] = [acf[k] if k < len(acf) else np.nan for k in lags]
    return pd.DataFrame(out, index=[f"Lag {k}" for k in lags])


def effective_sample_sizes(idata: az.InferenceData,
                           var_names: Sequence[str] = MONITORED) -> pd.Series:
    ess = az.ess(idata, var_names=list(var_names))
    sizes = pd.Series({v: float(ess[v].values) for v in var_names}, name="ess")
    for v, n in sizes.items():
        if n < ESS_TARGET:
            log.warning("Effective sample size of %s is %.0f (< %d)", v, n, ESS_TARGET)
    return sizes


# -----------------------------------------------------------------------------
# Stationarity (Geweke)
# -----------------------------------------------------------------------------

def geweke(x: np.ndarray, first: float = 0.1, last: float = 0.5) -> Dict[str, float]:
    """Two-sided Geweke test comparing the start and the end of one chain.

    Standard errors of the two window means are var/ESS, with ESS from arviz.
    """
    x = np.asarray(x, dtype=float).ravel()
    if not (0 < first < 1 and 0 < last < 1 and first + last <= 1):
        raise ValueError(f"Invalid Geweke windows first={first}, last={last}")
    n = len(x)
    a = x[: int(np.floor(first * n))]
    b = x[n - int(np.floor(last * n)):]
    if len(a) < 4 or len(b) < 4:
        raise ValueError(f"Chain of length {n} is too short for a Geweke test")

    se2 = a.var(ddof=1) / float(az.ess(a)) + b.var(ddof=1) / float(az.ess(b))
    if se2 == 0:
        z = 0.0 if a.mean() == b.mean() else np.inf
    else:
        z = (a.mean() - b.mean()) / np.sqrt(se2)
    p = float(2.0 * stats.norm.sf(abs(z)))
    return {"z": float(z), "p_value": p}


def stationarity_test(idata: az.InferenceData, var_names: Sequence[str] = ("VA", "VR"),
                      first: float = 0.1, last: float = 0.5) -> pd.DataFrame:
    """Geweke test per parameter; with several chains the worst chain is reported."""
    rows = []
    for v in var_names:
        results = [geweke(c, first, last) for c in _per_chain(idata, v)]
        worst = min(results, key=lambda r: r["p_value"])
        passed = worst["p_value"] > STATIONARITY_ALPHA
        if not passed:
            log.warning("Stationarity test failed for %s (p=%.4f)", v, worst["p_value"])
        rows.append({"parameter": v, "z": worst["z"], "p_value": worst["p_value"], "passed": passed})
    return pd.DataFrame(rows).set_index("parameter")


# -----------------------------------------------------------------------------
# Point summaries
# -----------------------------------------------------------------------------

def posterior_mode(x: np.ndarray, grid_size: int = 512) -> float:
    x = np.asarray(x, dtype=float).ravel()
    if np.ptp(x) == 0:
        return float(x[0])
    kde = stats.gaussian_kde(x)
    grid = np.linspace(x.min(), x.max(), grid_size)
    return float(grid[np.argmax(kde(grid))])


def posterior_modes(idata: az.InferenceData, var_names: Sequence[str] = MONITORED) -> pd.Series:
    return pd.Series({v: posterior_mode(chain(idata, v)) for v in var_names}, name="mode")


def model_summary(idata: az.InferenceData, var_names: Sequence[str] = MONITORED,
                  hdi_prob: float = 0.95) -> pd.DataFrame:
    return az.summary(idata, var_names=list(var_names), hdi_prob=hdi_prob)


def information_criteria(idata: az.InferenceData, var_name: Optional[str] = None) -> Dict[str, float]:
    """DIC from the pointwise log-likelihood, plus WAIC from arviz.

    pD is taken as half the posterior variance of the deviance.
    """
    if not hasattr(idata, "log_likelihood"):
        raise RuntimeError('No log_likelihood present; sample with idata_kwargs={"log_likelihood": True}.')
    llk = idata.log_likelihood
    var_name = var_name or list(llk.data_vars)[0]
    arr = llk[var_name]
    dims_to_sum = [d for d in arr.dims if d not in ("chain", "draw")]
    deviance = -2.0 * arr.sum(dim=dims_to_sum).values.ravel()

    d_bar = float(deviance.mean())
    p_d = float(deviance.var() / 2.0)
    waic = az.waic(idata, var_name=var_name)
    return {
        "DIC": d_bar + p_d,
        "Dbar": d_bar,
        "pD": p_d,
        "WAIC": float(-2.0 * waic["elpd_waic"]),
        "p_WAIC": float(waic["p_waic"]),
    }


# -----------------------------------------------------------------------------
# Heritability
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class HeritabilitySummary:
    mean: float
    mode: float
    ess: float
    lower: float
    upper: float
    hdi_prob: float
    n_draws: int

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def heritability_chain(additive, residual) -> np.ndarray:
    """Draw-by-draw VA / (VA + VR)."""
    va = np.asarray(additive, dtype=float)
    vr = np.asarray(residual, dtype=float)
    if va.shape != vr.shape:
        raise ValueError(f"Variance chains differ in shape: {va.shape} vs {vr.shape}")
    if np.any(va < 0) or np.any(vr < 0):
        raise ValueError("Variance draws must be non-negative")
    total = va + vr
    if np.any(total == 0):
        raise ValueError("Total variance is zero for some draws")
    return va / total


def heritability_from_trace(idata: az.InferenceData, additive: str = "VA",
                            residual: str = "VR") -> np.ndarray:
    """Heritability chain shaped (chain, draw)."""
    return heritability_chain(_per_chain(idata, additive), _per_chain(idata, residual))


def summarise_heritability(h2, hdi_prob: float = 0.95) -> HeritabilitySummary:
    h2 = np.asarray(h2, dtype=float)
    flat = h2.ravel()
    ess = float(az.ess(h2))
    lower, upper = az.hdi(flat, hdi_prob=hdi_prob)
    if ess < ESS_TARGET:
        log.warning("Effective sample size of h2 is %.0f (< %d)", ess, ESS_TARGET)
    return HeritabilitySummary(
        mean=float(flat.mean()),
        mode=posterior_mode(flat),
        ess=ess,
        lower=float(lower),
        upper=float(upper),
        hdi_prob=hdi_prob,
        n_draws=int(flat.size),
    )


def heuristics_report(ess: pd.Series, stationarity: pd.DataFrame) -> List[str]:
    """Human-readable lines for the acceptance heuristics."""
    lines = [
        "Trace plots should look like white noise; densities should be unimodal.",
    ]
    for v, n in ess.items():
        flag = "ok" if n > ESS_TARGET else "LOW"
        lines.append(f"ESS {v:<10s} {n:>10.0f}  (> {ESS_TARGET}: {flag})")
    for v, row in stationarity.iterrows():
        flag = "ok" if row["passed"] else "FAILED"
        lines.append(f"Stationarity {v:<4s} p = {row['p_value']:.3f}  (> {STATIONARITY_ALPHA}: {flag})")
    return lines
