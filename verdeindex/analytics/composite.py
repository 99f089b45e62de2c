# verdeindex/analytics/composite.py

"""
TemporalAggregator
------------------
Per-pixel mean/max compositing of index rasters across a scene collection.

The reduction is expressed through :class:`PartialComposite`, an immutable
(sum, count, max) triple per pixel. Partials can be built per scene or per
tile and combined in any order, which is what lets scene processing run in
parallel.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Optional

import numpy as np

from verdeindex.core.errors import UnsupportedStatistic
from verdeindex.core.logger import Logger
from .raster import Raster

STATISTICS = ("mean", "max")


def check_statistic(statistic: str) -> str:
    """Normalise ``statistic`` or raise :class:`UnsupportedStatistic`."""
    key = str(statistic).lower()
    if key not in STATISTICS:
        raise UnsupportedStatistic(statistic, list(STATISTICS))
    return key


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class PartialComposite:
    """Running per-pixel reduction state."""

    total: np.ndarray
    count: np.ndarray
    maximum: np.ndarray
    scenes: int

    @classmethod
    def from_raster(cls, raster: Raster) -> "PartialComposite":
        valid = raster.valid
        return cls(
            total=_frozen(np.where(valid, raster.data, 0.0)),
            count=_frozen(valid.astype(np.int64)),
            maximum=_frozen(np.where(valid, raster.data, -np.inf)),
            scenes=1,
        )

    def combine(self, other: "PartialComposite") -> "PartialComposite":
        if self.total.shape != other.total.shape:
            raise ValueError(
                f"Cannot combine grids {self.total.shape} and {other.total.shape}"
            )
        return PartialComposite(
            total=_frozen(self.total + other.total),
            count=_frozen(self.count + other.count),
            maximum=_frozen(np.maximum(self.maximum, other.maximum)),
            scenes=self.scenes + other.scenes,
        )

    def finalize(self, statistic: str) -> np.ndarray:
        """Return the composite array; pixels with no contribution are ``NaN``."""
        has_value = self.count > 0
        if statistic == "mean":
            with np.errstate(invalid="ignore", divide="ignore"):
                out = self.total / np.maximum(self.count, 1)
        else:
            out = self.maximum.astype(np.float64)
        return np.where(has_value, out, np.nan)


@dataclass(frozen=True)
class TemporalComposite:
    """Composite raster and its provenance."""

    raster: Raster
    index: str
    statistic: str
    scene_count: int
    valid_count: np.ndarray

    @property
    def name(self) -> str:
        return self.raster.name


class TemporalAggregator:
    """Reduce a stack of index rasters to one composite."""

    def __init__(self, statistic: str = "mean", logger=None):
        self.statistic = check_statistic(statistic)
        self.logger = logger or Logger.get_logger(__name__)

    def aggregate(
        self, rasters: Iterable[Raster], index: Optional[str] = None
    ) -> TemporalComposite:
        """
        Composite ``rasters`` per pixel, using only valid contributions.

        Args:
            rasters: index rasters on one common grid (post-mask, post-formula).
            index: index name; defaults to the ``index`` tag of the first raster.

        Returns:
            TemporalComposite whose raster is named ``<INDEX>_<statistic>``.
        """
        rasters = list(rasters)
        if not rasters:
            raise ValueError("Cannot composite an empty raster stack")
        template = rasters[0]
        for other in rasters[1:]:
            if not template.same_grid(other):
                raise ValueError(
                    f"Raster {other.tags.get('scene_id', other.name)} is not on "
                    f"the grid of {template.tags.get('scene_id', template.name)}"
                )
        partial = reduce(
            PartialComposite.combine, map(PartialComposite.from_raster, rasters)
        )
        return self.from_partial(partial, template, index)

    def from_partial(
        self, partial: PartialComposite, template: Raster, index: Optional[str] = None
    ) -> TemporalComposite:
        """Finish a reduction built elsewhere (e.g. merged from worker partials)."""
        index = (index or template.tags.get("index") or template.name).lower()
        data = partial.finalize(self.statistic)
        self.logger.debug(
            "%s %s composite from %d scene(s)", index, self.statistic, partial.scenes
        )
        raster = Raster(
            data=data,
            transform=template.transform,
            crs=template.crs,
            name=f"{index.upper()}_{self.statistic}",
            tags={
                "index": index,
                "statistic": self.statistic,
                "scene_count": str(partial.scenes),
            },
        )
        return TemporalComposite(
            raster=raster,
            index=index,
            statistic=self.statistic,
            scene_count=partial.scenes,
            valid_count=_frozen(partial.count.copy()),
        )
