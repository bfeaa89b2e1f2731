"""
Shared utilities for the heritability pipeline.

Functions provided:
- parse_prefixes: interpret user-provided population-code prefixes.
- resolve_results_dir: pick the output directory (CLI, env override, default).
- load_run_config: read JSON overrides for a run.
- write_run_manifest: write a manifest.json alongside outputs capturing
  CLI args, resolved inputs, config and row counts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Dict, Any, Optional, Tuple
import json
import os


RESULTS_ENV_VAR = "APERTURE_RESULTS_DIR"

# Keys a JSON run config may set. Model keys map onto ModelConfig fields,
# the rest onto pipeline options.
MODEL_KEYS = {
    "nitt", "burnin", "thin", "chains", "random_seed", "target_accept",
    "prior_additive", "prior_residual",
}
PIPELINE_KEYS = {"data", "treatment", "min_week", "prefixes", "id_scale", "results_dir"}


def parse_prefixes(values: str | Iterable[str] | None) -> Optional[Tuple[str, ...]]:
    """Normalize a prefix selection to an upper-case tuple, or None for defaults.

    Accepts "LAF,MAR", ["laf", "mar"] or None.
    """
    if values is None:
        return None
    if isinstance(values, str):
        parts = [p.strip().upper() for p in values.split(",") if p.strip()]
    else:
        parts = [str(p).strip().upper() for p in values if str(p).strip()]
    for p in parts:
        if not p.isalpha():
            raise ValueError(f"Population prefix must be alphabetic: {p!r}")
    return tuple(parts) or None


def resolve_results_dir(cli_value: Optional[str] = None) -> Path:
    if cli_value:
        return Path(cli_value)
    return Path(os.environ.get(RESULTS_ENV_VAR, "results"))


def load_run_config(path: Optional[Path]) -> Dict[str, Any]:
    """Load JSON overrides for a run.

    Expected schema example:
      {"treatment": "ambient", "nitt": 13000, "burnin": 3000, "thin": 10,
       "prior_additive": {"V": 1, "nu": 0.002}}
    """
    if path is None:
        return {}
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    values = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(values, dict):
        raise ValueError(f"Run config must be a JSON object: {path}")
    unknown = set(values) - MODEL_KEYS - PIPELINE_KEYS
    if unknown:
        raise ValueError(f"Unknown run config keys: {sorted(unknown)}")
    return values


def split_run_config(values: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    model = {k: v for k, v in values.items() if k in MODEL_KEYS}
    pipeline = {k: v for k, v in values.items() if k in PIPELINE_KEYS}
    return model, pipeline


def write_run_manifest(results_dir: Path, info: Dict[str, Any]) -> Path:
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    out_path = results_dir / "manifest.json"
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(info, f, indent=2, sort_keys=True, default=str)
    return out_path
