import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

import pandas as pd

log = logging.getLogger(__name__)

# Two population codes are used on the snail tags, e.g. "LAF-12", "MAR_7".
DEFAULT_PREFIXES: Tuple[str, ...] = ("LAF", "MAR")
ID_SCALE = 1000

REQUIRED_COLUMNS = ["animal", "dam", "week", "genotype", "treatment", "aperture_index"]


# -----------------------------------------------------------------------------
# Helpers: IO
# -----------------------------------------------------------------------------

def _read_any(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in [".csv", ".tsv", ".txt"]:
        sep = "," if suffix == ".csv" else "\t"
        return pd.read_csv(path, sep=sep)
    if suffix in [".xlsx", ".xls"]:
        return pd.read_excel(path)
    raise ValueError(f"Unsupported file type: {path}")


def read_measurements(path: Union[str, Path]) -> pd.DataFrame:
    """Read a growth-measurement table (header row, one row per measurement)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Measurement file does not exist: {path}")
    df = _read_any(path)
    log.info("Read %d rows from %s", len(df), path)
    return df


# -----------------------------------------------------------------------------
# Normalization: columns and values
# -----------------------------------------------------------------------------

_CANONICAL_MAP = {
    # individual
    "animal": "animal",
    "id": "animal",
    "snail": "animal",
    "snail_id": "animal",
    "snailid": "animal",
    "individual": "animal",
    # dam lineage
    "dam": "dam",
    "damid": "dam",
    "dam_id": "dam",
    "mother": "dam",
    "lineage": "dam",
    # age
    "week": "week",
    "weeks": "week",
    "age": "week",
    "age_weeks": "week",
    # labels
    "genotype": "genotype",
    "treatment": "treatment",
    "trt": "treatment",
    # trait
    "ai": "aperture_index",
    "aperture": "aperture_index",
    "aperture_index": "aperture_index",
    "apertureindex": "aperture_index",
}


def _slugify(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", s.strip().lower()).strip("_")


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    mapping = {}
    for c in df.columns:
        c_slug = _slugify(str(c))
        mapping[c] = _CANONICAL_MAP.get(c_slug, c_slug)
    ndf = df.rename(columns=mapping).copy()

    missing = [c for c in REQUIRED_COLUMNS if c not in ndf.columns]
    if missing:
        raise ValueError(f"Measurement table is missing required columns: {missing}")

    # Implicit type coercion is the only schema check; bad values are fatal.
    ndf["week"] = pd.to_numeric(ndf["week"], errors="raise")
    ndf["aperture_index"] = pd.to_numeric(ndf["aperture_index"], errors="raise")
    ndf["animal"] = ndf["animal"].astype(str).str.strip()
    ndf["genotype"] = ndf["genotype"].astype(str).str.strip()
    ndf["treatment"] = ndf["treatment"].astype(str).str.strip()
    return ndf


# -----------------------------------------------------------------------------
# ID normalizer
# -----------------------------------------------------------------------------

def _prefix_pattern(prefixes: Iterable[str]) -> re.Pattern:
    # Longest first so that e.g. "LAFA" is not eaten by "LAF".
    alts = "|".join(re.escape(p) for p in sorted(prefixes, key=len, reverse=True))
    return re.compile(rf"^\s*(?:{alts})[\s\-_./]*(?P<rest>.*?)\s*$", re.IGNORECASE)


def strip_prefix(raw, prefixes: Iterable[str] = DEFAULT_PREFIXES) -> int:
    """Strip a population prefix and return the integer remainder."""
    prefixes = tuple(prefixes)
    m = _prefix_pattern(prefixes).match(str(raw))
    if m is None:
        raise ValueError(f"Identifier {raw!r} does not start with a known prefix {prefixes}")
    rest = m.group("rest")
    if not rest.isdigit():
        raise ValueError(f"Identifier {raw!r} has a non-numeric suffix {rest!r}")
    return int(rest)


def normalize_id(raw, prefixes: Iterable[str] = DEFAULT_PREFIXES, scale: int = ID_SCALE) -> int:
    """Map a tag such as "LAF-12" onto the numeric pedigree namespace (12000).

    Scaling keeps offspring IDs apart from the small dam lineage numbers
    that become synthesized founder rows.
    """
    number = strip_prefix(raw, prefixes)
    if number <= 0:
        raise ValueError(f"Identifier {raw!r} must carry a positive number")
    return number * scale


def normalize_ids(df: pd.DataFrame, column: str = "animal",
                  prefixes: Iterable[str] = DEFAULT_PREFIXES,
                  scale: int = ID_SCALE) -> pd.DataFrame:
    prefixes = tuple(prefixes)
    out = df.copy()
    out[column] = out[column].map(lambda v: normalize_id(v, prefixes, scale)).astype("int64")
    return out


def _dam_to_int(raw, prefixes: Tuple[str, ...]) -> int:
    s = str(raw).strip()
    if s.isdigit():
        return int(s)
    # Numeric labels read by pandas come through as floats ("3.0")
    try:
        f = float(s)
    except ValueError:
        return strip_prefix(s, prefixes)
    if not f.is_integer():
        raise ValueError(f"Dam label {raw!r} is not an integer")
    return int(f)


def normalize_dam_ids(df: pd.DataFrame, column: str = "dam",
                      prefixes: Iterable[str] = DEFAULT_PREFIXES) -> pd.DataFrame:
    """Coerce dam lineage labels to integers without scaling."""
    prefixes = tuple(prefixes)
    out = df.copy()
    out[column] = out[column].map(lambda v: _dam_to_int(v, prefixes)).astype("int64")
    return out


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def load_measurements(path: Union[str, Path],
                      prefixes: Optional[Iterable[str]] = None,
                      scale: int = ID_SCALE) -> pd.DataFrame:
    """Read, normalize columns and normalize IDs of a measurement file."""
    prefixes = tuple(prefixes) if prefixes else DEFAULT_PREFIXES
    raw = read_measurements(path)
    df = normalize_columns(raw)
    df = normalize_ids(df, "animal", prefixes, scale)
    df = normalize_dam_ids(df, "dam", prefixes)
    log.info("Loaded %d measurements on %d individuals", len(df), df["animal"].nunique())
    for trt, n in df["treatment"].value_counts().sort_index().items():
        log.info("  treatment %s: %d rows", trt, n)
    return df
