from .loader import load_measurements, normalize_id, normalize_ids, normalize_dam_ids
from .aggregate import filter_asymptotic, aggregate_trait, subset_treatment, summarise_individuals

__all__ = [
    "load_measurements",
    "normalize_id",
    "normalize_ids",
    "normalize_dam_ids",
    "filter_asymptotic",
    "aggregate_trait",
    "subset_treatment",
    "summarise_individuals",
]
