"""
BAYESIAN ANIMAL MODEL
=====================

Intercept-only Gaussian animal model for a single trait:

    y_i = mu + a_i + e_i,   a ~ N(0, VA * A),   e ~ N(0, VR)

A is the numerator relationship matrix of the completed pedigree. VA and
VR get independent weak inverse-gamma priors parameterised by a variance
anchor V and a belief parameter nu, the (V, nu) convention of MCMCglmm
(IG(shape = nu/2, scale = nu*V/2)).

The MCMC schedule follows the same convention: ``nitt`` total
iterations of which ``burnin`` are warm-up, then every ``thin``-th draw
is kept. Sampling itself is left to PyMC.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Sequence

import numpy as np
import pandas as pd
import pymc as pm
import arviz as az

from ..pedigree import relationship_matrix

log = logging.getLogger(__name__)

SUPPORTED_FAMILIES = ("gaussian",)
SUPPORTED_RANDOM = ("animal",)


@dataclass(frozen=True)
class PriorSpec:
    """Inverse-gamma prior on a variance component."""

    V: float = 1.0
    nu: float = 0.002

    def validate(self) -> None:
        if self.V <= 0 or self.nu <= 0:
            raise ValueError(f"Prior needs V > 0 and nu > 0, got V={self.V}, nu={self.nu}")

    @property
    def alpha(self) -> float:
        return self.nu / 2.0

    @property
    def beta(self) -> float:
        return self.nu * self.V / 2.0


@dataclass
class ModelConfig:
    fixed: str = "aperture_index ~ 1"
    random: str = "animal"
    family: str = "gaussian"
    prior_additive: PriorSpec = field(default_factory=PriorSpec)
    prior_residual: PriorSpec = field(default_factory=PriorSpec)
    fixed_prior_var: float = 1e10
    nitt: int = 65000
    burnin: int = 15000
    thin: int = 50
    chains: int = 1
    random_seed: int = 42
    target_accept: float = 0.9
    progressbar: bool = True

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ModelConfig":
        kwargs = dict(values)
        for key in ("prior_additive", "prior_residual"):
            if isinstance(kwargs.get(key), dict):
                kwargs[key] = PriorSpec(**kwargs[key])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def response(self) -> str:
        return self.fixed.split("~")[0].strip()

    @property
    def n_kept(self) -> int:
        return len(range(0, self.nitt - self.burnin, self.thin))

    def validate(self) -> None:
        lhs, _, rhs = self.fixed.partition("~")
        if not lhs.strip() or rhs.strip() != "1":
            raise ValueError(f"Only intercept-only formulas 'y ~ 1' are supported, got {self.fixed!r}")
        if self.random not in SUPPORTED_RANDOM:
            raise ValueError(f"Unsupported random term {self.random!r}; expected one of {SUPPORTED_RANDOM}")
        if self.family not in SUPPORTED_FAMILIES:
            raise ValueError(f"Unsupported family {self.family!r}; expected one of {SUPPORTED_FAMILIES}")
        if self.nitt <= 0 or self.burnin < 0 or self.burnin >= self.nitt:
            raise ValueError(f"Need 0 <= burnin < nitt, got burnin={self.burnin}, nitt={self.nitt}")
        if self.thin < 1:
            raise ValueError(f"thin must be >= 1, got {self.thin}")
        if self.chains < 1:
            raise ValueError(f"chains must be >= 1, got {self.chains}")
        if self.fixed_prior_var <= 0:
            raise ValueError("fixed_prior_var must be positive")
        self.prior_additive.validate()
        self.prior_residual.validate()


@dataclass(frozen=True)
class AnimalModelData:
    y: np.ndarray
    animal_idx: np.ndarray
    animals: Sequence
    pedigree_ids: Sequence
    chol: np.ndarray
    response: str = "aperture_index"


def prepare_model_data(individuals: pd.DataFrame, pedigree: pd.DataFrame,
                       response: str = "aperture_index") -> AnimalModelData:
    """Line up phenotyped individuals with rows of the relationship matrix."""
    ids, A = relationship_matrix(pedigree)
    pos = {a: i for i, a in enumerate(ids)}
    unknown = [a for a in individuals["animal"] if a not in pos]
    if unknown:
        raise ValueError(f"Phenotyped animals missing from pedigree: {unknown[:5]}")

    y = individuals[response].to_numpy(dtype=float)
    if not np.all(np.isfinite(y)):
        raise ValueError(f"{response} contains non-finite values")
    animal_idx = np.asarray([pos[a] for a in individuals["animal"]], dtype=int)
    chol = np.linalg.cholesky(A)
    log.info("Model data: %d phenotypes, %d pedigree members", len(y), len(ids))
    return AnimalModelData(
        y=y,
        animal_idx=animal_idx,
        animals=list(individuals["animal"]),
        pedigree_ids=list(ids),
        chol=chol,
        response=response,
    )


def build_animal_model(data: AnimalModelData, config: ModelConfig) -> pm.Model:
    """Create the PyMC animal model (non-centred breeding values)."""
    config.validate()
    coords = {
        "pedigree_id": [str(int(i)) for i in data.pedigree_ids],
        "obs": [str(int(a)) for a in data.animals],
    }
    with pm.Model(coords=coords) as model:
        intercept = pm.Normal("intercept", mu=0.0, sigma=np.sqrt(config.fixed_prior_var))
        VA = pm.InverseGamma("VA", alpha=config.prior_additive.alpha, beta=config.prior_additive.beta)
        VR = pm.InverseGamma("VR", alpha=config.prior_residual.alpha, beta=config.prior_residual.beta)

        z = pm.Normal("z", mu=0.0, sigma=1.0, dims="pedigree_id")
        a = pm.Deterministic(
            "breeding_value",
            pm.math.sqrt(VA) * pm.math.dot(data.chol, z),
            dims="pedigree_id",
        )

        pm.Normal(
            data.response,
            mu=intercept + a[data.animal_idx],
            sigma=pm.math.sqrt(VR),
            observed=data.y,
            dims="obs",
        )
    return model


def thin_trace(idata: az.InferenceData, thin: int) -> az.InferenceData:
    if thin <= 1:
        return idata
    return idata.sel(draw=slice(None, None, thin))


def fit_animal_model(data: AnimalModelData, config: ModelConfig) -> az.InferenceData:
    """Sample the animal model and return the thinned InferenceData.

    Blocks until the whole schedule has run. Poor mixing is not an error
    here; it shows up in the diagnostics.
    """
    model = build_animal_model(data, config)
    draws = config.nitt - config.burnin
    log.info("Sampling: nitt=%d burnin=%d thin=%d chains=%d (%d kept per chain)",
             config.nitt, config.burnin, config.thin, config.chains, config.n_kept)
    with model:
        idata = pm.sample(
            draws=draws,
            tune=config.burnin,
            chains=config.chains,
            target_accept=config.target_accept,
            random_seed=config.random_seed,
            return_inferencedata=True,
            progressbar=config.progressbar,
            idata_kwargs={"log_likelihood": True},
        )
    return thin_trace(idata, config.thin)
