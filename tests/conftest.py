from __future__ import annotations

from pathlib import Path
import sys

import numpy as np
import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def growth_frame() -> pd.DataFrame:
    """20 snails measured every two weeks from week 8 to 24, two treatments.

    Snails 1-4 are lost after week 10; odd tags are 'ambient', even 'warm'.
    """
    rows = []
    for tag in range(1, 21):
        prefix = "LAF" if tag <= 10 else "MAR"
        last = 10 if tag <= 4 else 24
        for week in range(8, 25, 2):
            if week > last:
                break
            rows.append({
                "SnailID": f"{prefix}-{tag}",
                "Damid": (tag - 1) // 4 + 1,
                "Week": week,
                "Genotype": prefix,
                "Treatment": "ambient" if tag % 2 else "warm",
                "AI": 1.0 + 0.01 * tag + 0.001 * week,
            })
    return pd.DataFrame(rows)


@pytest.fixture
def growth_csv(tmp_path: Path, growth_frame: pd.DataFrame) -> Path:
    path = tmp_path / "growth.csv"
    growth_frame.to_csv(path, index=False)
    return path
