from __future__ import annotations

"""Immutable single-band raster value type and grid helpers.

Every raster in the engine is a float64 array where ``NaN`` means "no value"
(masked input, zero denominator, no contributing scene). Arrays are read-only
once wrapped so that intermediate products can be shared between threads.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import numpy as np
from rasterio import features
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

METRES_PER_DEGREE = 111_320.0


@dataclass(frozen=True)
class Raster:
    """A georeferenced 2-D float array with ``NaN`` as no-data."""

    data: np.ndarray
    transform: Affine
    crs: Optional[str] = None
    name: str = ""
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        arr = np.array(self.data, dtype=np.float64, copy=True)
        if arr.ndim != 2:
            raise ValueError(f"Raster data must be 2-D, got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "data", arr)
        object.__setattr__(
            self, "tags", MappingProxyType({k: str(v) for k, v in self.tags.items()})
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape  # type: ignore[return-value]

    @property
    def pixel_size(self) -> float:
        """Ground sampling distance along x, in CRS units."""
        return abs(self.transform.a)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(minx, miny, maxx, maxy) of the raster grid."""
        height, width = self.shape
        west, south, east, north = array_bounds(height, width, self.transform)
        return (west, south, east, north)

    @property
    def valid(self) -> np.ndarray:
        """Boolean array, True where the pixel holds a value."""
        return ~np.isnan(self.data)

    @property
    def valid_count(self) -> int:
        return int(self.valid.sum())

    def with_data(
        self, data: np.ndarray, name: Optional[str] = None, **tags: str
    ) -> "Raster":
        """Return a new raster on the same grid with ``data`` and merged tags."""
        merged = dict(self.tags)
        merged.update(tags)
        return Raster(
            data=data,
            transform=self.transform,
            crs=self.crs,
            name=self.name if name is None else name,
            tags=merged,
        )

    def same_grid(self, other: "Raster") -> bool:
        return self.shape == other.shape and self.transform.almost_equals(
            other.transform
        )


def geometry_mask(
    shape: Tuple[int, int], transform: Affine, geometry: BaseGeometry
) -> np.ndarray:
    """
    Return a boolean array that is True for pixels whose centre falls inside
    ``geometry``.
    """
    if geometry.is_empty:
        return np.zeros(shape, dtype=bool)
    return features.geometry_mask(
        [mapping(geometry)], out_shape=shape, transform=transform, invert=True
    )


def clip_to_geometry(raster: Raster, geometry: BaseGeometry) -> Raster:
    """Set every pixel outside ``geometry`` to no-data."""
    inside = geometry_mask(raster.shape, raster.transform, geometry)
    return raster.with_data(np.where(inside, raster.data, np.nan))


def resample_to_scale(raster: Raster, scale: float) -> Raster:
    """
    Aggregate ``raster`` to a coarser ground sampling distance.

    The factor is ``round(scale / pixel_size)``; each output pixel is the mean
    of the valid input pixels of its block (edge blocks may be partial). When
    the factor is 1 or less the raster is returned unchanged: the engine never
    upsamples. ``scale`` is in metres; on a geographic grid it is converted
    to degrees at the equator.
    """
    step = scale
    if raster.crs and CRS.from_user_input(raster.crs).is_geographic:
        step = scale / METRES_PER_DEGREE
    factor = int(round(step / raster.pixel_size)) if raster.pixel_size else 1
    if factor <= 1:
        return raster

    height, width = raster.shape
    out_h = -(-height // factor)
    out_w = -(-width // factor)
    padded = np.full((out_h * factor, out_w * factor), np.nan)
    padded[:height, :width] = raster.data
    blocks = padded.reshape(out_h, factor, out_w, factor)
    valid = ~np.isnan(blocks)
    counts = valid.sum(axis=(1, 3))
    sums = np.where(valid, blocks, 0.0).sum(axis=(1, 3))
    with np.errstate(invalid="ignore", divide="ignore"):
        data = np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)

    return Raster(
        data=data,
        transform=raster.transform * Affine.scale(factor),
        crs=raster.crs,
        name=raster.name,
        tags={**raster.tags, "scale": str(scale)},
    )
