from __future__ import annotations

"""Fractional vegetation cover from NDVI with the dimidiate pixel model.

``FVC = (NDVI - NDVI_soil) / (NDVI_veg - NDVI_soil)``, clamped to [0, 1].
The soil and vegetation endpoints are either fixed or estimated as the 5th and
95th NDVI percentiles over the AOI bounding box.
"""

import math
from dataclasses import dataclass

import numpy as np
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from verdeindex.core.errors import DegenerateThreshold, ThresholdEstimationFailed
from verdeindex.core.logger import Logger
from .raster import Raster
from .stats import DEFAULT_MAX_PIXELS, DEFAULT_SCALE, RegionStatsReducer, percentile_key

DEFAULT_NDVI_SOIL = 0.2
DEFAULT_NDVI_VEG = 0.86
THRESHOLD_MODES = ("fixed", "auto")


@dataclass(frozen=True)
class ThresholdPair:
    """Soil and vegetation NDVI endpoints; ``source`` is fixed, auto or fallback."""

    ndvi_soil: float = DEFAULT_NDVI_SOIL
    ndvi_veg: float = DEFAULT_NDVI_VEG
    source: str = "fixed"


@dataclass(frozen=True)
class FractionalCover:
    """FVC raster and the endpoints it was derived with."""

    raster: Raster
    thresholds: ThresholdPair


class ThresholdEstimator:
    """Resolve the endpoints for one composite, in fixed or automatic mode."""

    def __init__(
        self,
        mode: str = "fixed",
        ndvi_soil: float | None = None,
        ndvi_veg: float | None = None,
        *,
        low: float = 5,
        high: float = 95,
        scale: float = DEFAULT_SCALE,
        max_pixels: int = DEFAULT_MAX_PIXELS,
        min_valid_pixels: int = 10,
        logger=None,
    ):
        mode = str(mode).lower()
        if mode not in THRESHOLD_MODES:
            raise ValueError(
                f"Unknown threshold mode '{mode}'. Choose from: {list(THRESHOLD_MODES)}"
            )
        self.mode = mode
        self.ndvi_soil = DEFAULT_NDVI_SOIL if ndvi_soil is None else float(ndvi_soil)
        self.ndvi_veg = DEFAULT_NDVI_VEG if ndvi_veg is None else float(ndvi_veg)
        self.low = low
        self.high = high
        self.min_valid_pixels = int(min_valid_pixels)
        self.logger = logger or Logger.get_logger(__name__)
        self.reducer = RegionStatsReducer(
            scale=scale, max_pixels=max_pixels, best_effort=True, logger=self.logger
        )

    def fixed(self) -> ThresholdPair:
        return ThresholdPair(self.ndvi_soil, self.ndvi_veg, "fixed")

    def estimate(self, ndvi: Raster, aoi: BaseGeometry) -> ThresholdPair:
        """
        Estimate endpoints from the percentiles of ``ndvi`` over the bounding
        box of ``aoi``.

        Raises:
            ThresholdEstimationFailed: fewer than ``min_valid_pixels`` valid
                pixels, or a percentile is not finite.
        """
        stats = self.reducer.reduce(
            ndvi,
            box(*aoi.bounds),
            reducer="percentile",
            percentiles=(self.low, self.high),
        )
        if stats.pixel_count < self.min_valid_pixels:
            raise ThresholdEstimationFailed(
                f"{stats.pixel_count} valid pixel(s) in AOI bounds; "
                f"need at least {self.min_valid_pixels}"
            )
        soil = stats[percentile_key(self.low)]
        veg = stats[percentile_key(self.high)]
        if not (math.isfinite(soil) and math.isfinite(veg)):
            raise ThresholdEstimationFailed(
                f"Percentiles unavailable (soil={soil}, veg={veg})"
            )
        return ThresholdPair(soil, veg, "auto")

    def resolve(self, ndvi: Raster, aoi: BaseGeometry) -> ThresholdPair:
        """Return the endpoints to use, falling back to the fixed pair on failure."""
        if self.mode == "fixed":
            return self.fixed()
        try:
            pair = self.estimate(ndvi, aoi)
        except ThresholdEstimationFailed as err:
            self.logger.warning(
                "Automatic threshold estimation failed (%s); using defaults "
                "ndvi_soil=%s ndvi_veg=%s",
                err,
                self.ndvi_soil,
                self.ndvi_veg,
            )
            return ThresholdPair(self.ndvi_soil, self.ndvi_veg, "fallback")
        self.logger.info(
            "Estimated thresholds ndvi_soil=%.4f ndvi_veg=%.4f",
            pair.ndvi_soil,
            pair.ndvi_veg,
        )
        return pair


def fractional_cover(ndvi: np.ndarray, ndvi_soil: float, ndvi_veg: float) -> np.ndarray:
    """Dimidiate pixel model on a plain array; ``NaN`` stays ``NaN``."""
    if ndvi_veg == ndvi_soil:
        raise DegenerateThreshold(ndvi_soil, ndvi_veg)
    fvc = (np.asarray(ndvi, dtype=np.float64) - ndvi_soil) / (ndvi_veg - ndvi_soil)
    return np.clip(fvc, 0.0, 1.0)


class FractionalCoverModel:
    """Apply the dimidiate pixel model with a fixed pair of endpoints."""

    def __init__(self, thresholds: ThresholdPair):
        if thresholds.ndvi_veg == thresholds.ndvi_soil:
            raise DegenerateThreshold(thresholds.ndvi_soil, thresholds.ndvi_veg)
        self.thresholds = thresholds

    def apply(self, ndvi: Raster) -> FractionalCover:
        data = fractional_cover(
            ndvi.data, self.thresholds.ndvi_soil, self.thresholds.ndvi_veg
        )
        raster = ndvi.with_data(
            data,
            name="FVC",
            index="fvc",
            ndvi_soil=repr(self.thresholds.ndvi_soil),
            ndvi_veg=repr(self.thresholds.ndvi_veg),
            threshold_source=self.thresholds.source,
        )
        return FractionalCover(raster=raster, thresholds=self.thresholds)
