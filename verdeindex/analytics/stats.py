# verdeindex/analytics/stats.py

"""Spatial reduction of a raster to scalar statistics over a polygon."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np
from shapely.geometry.base import BaseGeometry

from verdeindex.core.errors import PixelBudgetExceeded, UnsupportedStatistic
from verdeindex.core.logger import Logger
from .raster import Raster, geometry_mask, resample_to_scale
from .results import RegionStats

REDUCERS = ("mean", "max", "percentile")
DEFAULT_SCALE = 30
DEFAULT_MAX_PIXELS = int(1e9)


def percentile_key(p: float) -> str:
    """Label used for a percentile value, e.g. ``p5`` or ``p97.5``."""
    return f"p{p:g}"


class RegionStatsReducer:
    """
    Summarise a raster within a polygon at a fixed ground sampling distance.

    Pixels are counted when their centre falls inside the polygon. When the
    region holds more than ``max_pixels`` pixels and ``best_effort`` is on,
    the reducer samples a regular sub-grid that fits the budget (or evenly
    spaced region pixels when the sub-grid misses a thin region) and marks
    the result ``approximate``; with ``best_effort`` off it raises
    :class:`PixelBudgetExceeded`.
    """

    def __init__(
        self,
        scale: float = DEFAULT_SCALE,
        max_pixels: int = DEFAULT_MAX_PIXELS,
        best_effort: bool = True,
        logger=None,
    ):
        if max_pixels < 1:
            raise ValueError("max_pixels must be positive")
        self.scale = scale
        self.max_pixels = int(max_pixels)
        self.best_effort = best_effort
        self.logger = logger or Logger.get_logger(__name__)

    def _sample(self, raster: Raster, geometry: BaseGeometry):
        inside = geometry_mask(raster.shape, raster.transform, geometry)
        total = int(inside.sum())
        data = raster.data
        if total <= self.max_pixels:
            values = data[inside]
            return values[~np.isnan(values)], total, False

        if not self.best_effort:
            raise PixelBudgetExceeded(
                f"Region holds {total} pixels at scale {self.scale}; "
                f"budget is {self.max_pixels}"
            )
        stride = max(2, math.ceil(math.sqrt(total / self.max_pixels)))
        while int(inside[::stride, ::stride].sum()) > self.max_pixels:
            stride += 1
        self.logger.warning(
            "Region has %d pixels (> %d); using approximate statistics "
            "with a 1/%d sampling stride",
            total,
            self.max_pixels,
            stride,
        )
        sub = inside[::stride, ::stride]
        if sub.any():
            values = data[::stride, ::stride][sub]
        else:
            # thin regions can fall between the sampled rows and columns
            idx = np.flatnonzero(inside)
            take = np.linspace(0, idx.size - 1, self.max_pixels).round().astype(int)
            values = data.ravel()[idx[take]]
        return values[~np.isnan(values)], total, True

    def reduce(
        self,
        raster: Raster,
        geometry: BaseGeometry,
        reducer: str = "mean",
        percentiles: Sequence[float] = (5, 95),
    ) -> RegionStats:
        """
        Reduce ``raster`` over ``geometry``.

        Args:
            raster: any composite or index raster.
            geometry: polygon in the raster CRS.
            reducer: "mean", "max" or "percentile".
            percentiles: percentiles to report when ``reducer == "percentile"``.

        Returns:
            RegionStats; a statistic is ``NaN`` when the region holds no valid
            pixel.
        """
        kind = str(reducer).lower()
        if kind not in REDUCERS:
            raise UnsupportedStatistic(reducer, list(REDUCERS))

        resampled = resample_to_scale(raster, self.scale)
        values, total, approximate = self._sample(resampled, geometry)

        if kind == "percentile":
            stats = self._percentiles(values, percentiles)
        elif values.size == 0:
            stats = {kind: float("nan")}
        elif kind == "mean":
            stats = {"mean": float(values.mean())}
        else:
            stats = {"max": float(values.max())}

        return RegionStats(
            reducer=kind,
            values=stats,
            pixel_count=int(values.size),
            region_pixels=total,
            scale=self.scale,
            approximate=approximate,
        )

    @staticmethod
    def _percentiles(values: np.ndarray, percentiles: Iterable[float]):
        percentiles = list(percentiles)
        if values.size == 0:
            return {percentile_key(p): float("nan") for p in percentiles}
        computed = np.percentile(values, percentiles)
        return {percentile_key(p): float(v) for p, v in zip(percentiles, computed)}
