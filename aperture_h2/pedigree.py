"""
Pedigree construction for the animal model.

The pedigree is a DataFrame with columns ``animal``, ``dam``, ``sire``.
Unknown parents are NaN. Dams in this design are only known as lineage
labels, so they enter the pedigree as founders with both parents unknown.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

PED_COLUMNS = ["animal", "dam", "sire"]


def _known(value) -> bool:
    return value is not None and not pd.isna(value)


def _parent_ids(pedigree: pd.DataFrame) -> List:
    ids = []
    for col in ("dam", "sire"):
        ids.extend(v for v in pedigree[col].tolist() if _known(v))
    return ids


def insert_founders(pedigree: pd.DataFrame, founders: Optional[Iterable] = None) -> pd.DataFrame:
    """Add a founder row for every parent that has no row of its own.

    Founder rows carry ``None`` for both parents and are placed ahead of
    the original rows, which are returned unmodified. ``founders`` lists
    IDs that must appear as founders even if nothing references them;
    ``None`` means detect them from the dam/sire columns.
    """
    missing_cols = [c for c in PED_COLUMNS if c not in pedigree.columns]
    if missing_cols:
        raise ValueError(f"Pedigree is missing columns: {missing_cols}")

    present = set(pedigree["animal"].tolist())
    wanted = list(founders) if founders is not None else []
    wanted.extend(_parent_ids(pedigree))

    new_ids = []
    seen = set()
    for pid in wanted:
        if pid in present or pid in seen:
            continue
        seen.add(pid)
        new_ids.append(pid)

    if not new_ids:
        return pedigree.copy()

    founder_rows = pd.DataFrame({
        "animal": sorted(new_ids),
        "dam": [None] * len(new_ids),
        "sire": [None] * len(new_ids),
    })
    extra = [c for c in pedigree.columns if c not in PED_COLUMNS]
    for c in extra:
        founder_rows[c] = None
    out = pd.concat([founder_rows[list(pedigree.columns)], pedigree], ignore_index=True)
    log.info("Inserted %d founder rows", len(new_ids))
    return out


def validate_pedigree(pedigree: pd.DataFrame) -> None:
    """Raise ValueError on duplicates, self-parenthood or dangling parents."""
    dup = pedigree["animal"][pedigree["animal"].duplicated()]
    if not dup.empty:
        raise ValueError(f"Duplicate animal IDs in pedigree: {sorted(dup.unique().tolist())[:5]}")

    for row in pedigree.itertuples(index=False):
        if row.animal == row.dam or row.animal == row.sire:
            raise ValueError(f"Animal {row.animal} cannot be its own parent.")

    present = set(pedigree["animal"].tolist())
    dangling = sorted({p for p in _parent_ids(pedigree) if p not in present})
    if dangling:
        raise ValueError(f"Parents without a pedigree row: {dangling[:5]}")


def order_pedigree(pedigree: pd.DataFrame) -> pd.DataFrame:
    """Reorder rows so that parents come before their offspring."""
    parents: Dict = {
        row.animal: [p for p in (row.dam, row.sire) if _known(p)]
        for row in pedigree.itertuples(index=False)
    }
    placed = set()
    order = []
    remaining = list(pedigree["animal"])
    while remaining:
        ready = [a for a in remaining if all(p in placed for p in parents[a])]
        if not ready:
            raise ValueError(
                f"Could not resolve parentage order for {len(remaining)} animals; "
                f"possible cycle, e.g. {remaining[:5]}"
            )
        order.extend(ready)
        placed.update(ready)
        remaining = [a for a in remaining if a not in placed]

    pos = {a: i for i, a in enumerate(order)}
    out = pedigree.copy()
    out["_order"] = out["animal"].map(pos)
    return out.sort_values("_order").drop(columns="_order").reset_index(drop=True)


def build_pedigree(individuals: pd.DataFrame, founders: Optional[Iterable] = None) -> pd.DataFrame:
    """Sort (animal, dam, sire), insert founders and restore numeric parents.

    Dam lineage labels live outside the phenotyped namespace, so a label
    equal to a phenotyped animal's ID is rejected rather than merged.
    """
    animals = set(individuals["animal"].tolist())
    clashes = sorted({d for d in individuals["dam"].dropna().tolist() if d in animals})
    if clashes:
        raise ValueError(f"Dam lineage labels collide with phenotyped animal IDs: {clashes[:5]}")
    ped = individuals[PED_COLUMNS].sort_values("animal").reset_index(drop=True)
    ped = insert_founders(ped, founders=founders)
    # Founder parents come back as None; keep missing parents as NaN.
    for col in ("dam", "sire"):
        ped[col] = pd.to_numeric(ped[col], errors="coerce")
    ped["animal"] = pd.to_numeric(ped["animal"], errors="raise")
    validate_pedigree(ped)
    n_founders = int((ped["dam"].isna() & ped["sire"].isna()).sum())
    log.info("Pedigree: %d individuals, %d founders", len(ped), n_founders)
    return ped


def relationship_matrix(pedigree: pd.DataFrame) -> Tuple[List, np.ndarray]:
    """Numerator relationship matrix A by the tabular method.

    Returns the animal IDs in matrix order (parents first) and A.
    """
    ped = order_pedigree(pedigree)
    ids = ped["animal"].tolist()
    idx = {a: i for i, a in enumerate(ids)}
    n = len(ids)
    A = np.zeros((n, n))

    for i, row in enumerate(ped.itertuples(index=False)):
        s = idx[row.sire] if _known(row.sire) else None
        d = idx[row.dam] if _known(row.dam) else None

        A[i, i] = 1.0 + (0.5 * A[s, d] if s is not None and d is not None else 0.0)
        for j in range(i):
            val = 0.5 * ((A[j, s] if s is not None else 0.0) + (A[j, d] if d is not None else 0.0))
            A[i, j] = val
            A[j, i] = val
    return ids, A


def inbreeding(pedigree: pd.DataFrame) -> pd.Series:
    ids, A = relationship_matrix(pedigree)
    return pd.Series(np.diag(A) - 1.0, index=ids, name="F")
