from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd


@dataclass(frozen=True)
class RegionStats:
    """Scalar summary of a raster over a geometry."""

    reducer: str
    values: Dict[str, float]
    pixel_count: int
    region_pixels: int
    scale: float
    approximate: bool = False

    def __getitem__(self, key: str) -> float:
        return self.values[key]

    def get(self, key: str, default=None):
        return self.values.get(key, default)

    def to_dict(self) -> Dict[str, float | int | str | bool]:
        row: Dict[str, float | int | str | bool] = dict(self.values)
        row.update(
            reducer=self.reducer,
            pixel_count=self.pixel_count,
            region_pixels=self.region_pixels,
            scale=self.scale,
            approximate=self.approximate,
        )
        return row


@dataclass
class StatsResult:
    """Per-period summary rows."""

    rows: List[Dict] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """Return the summary rows as a DataFrame."""
        return pd.DataFrame(self.rows)
