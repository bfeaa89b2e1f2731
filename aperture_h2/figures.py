"""Trace, density and autocorrelation figures for visual inspection."""

from pathlib import Path
from typing import Sequence, Union

import numpy as np
import arviz as az
import matplotlib.pyplot as plt


def _save(fig, out_path: Union[str, Path]) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return out_path


def plot_traces(idata, var_names: Sequence[str], out_path: Union[str, Path]) -> Path:
    """Trace (right) and density (left) panel per parameter."""
    axes = az.plot_trace(idata, var_names=list(var_names), compact=False)
    return _save(np.ravel(axes)[0].figure, out_path)


def plot_autocorrelation(idata, var_names: Sequence[str], out_path: Union[str, Path],
                         max_lag: int = 50) -> Path:
    axes = az.plot_autocorr(idata, var_names=list(var_names), max_lag=max_lag, combined=True)
    return _save(np.ravel(axes)[0].figure, out_path)


def plot_heritability(h2, out_path: Union[str, Path], hdi_prob: float = 0.95) -> Path:
    """Trace and density of the derived heritability chain."""
    h2 = np.atleast_2d(np.asarray(h2, dtype=float))
    axes = az.plot_trace({"h2": h2}, compact=False)
    ax_density = np.ravel(axes)[0]
    lower, upper = az.hdi(h2.ravel(), hdi_prob=hdi_prob)
    ax_density.axvspan(lower, upper, color='grey', alpha=0.2, label=f'{hdi_prob:.0%} HPD')
    ax_density.set_xlim(0, 1)
    ax_density.legend(loc='upper right')
    return _save(ax_density.figure, out_path)
