"""
Module `ingestion.scenes` holds the Scene record, pixel providers and the
collection builder that filters and merges scenes across satellites.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Mapping, Optional, Tuple

import numpy as np
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from rasterio.transform import Affine, array_bounds

from verdeindex.analytics.raster import Raster
from verdeindex.core.errors import EmptyCollection
from verdeindex.core.logger import Logger
from .indices import compute_index, index_roles, rescale_reflectance
from .mask import apply_mask, qa_valid_mask
from .sensorspec import SatelliteDescriptor, get_satellite

if TYPE_CHECKING:  # pragma: no cover
    from .base import BaseSceneSource


def parse_date(value) -> date:
    """Coerce a ``date``, ``datetime`` or ISO string (``YYYY-MM-DD``) to ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()


def _readonly(arr: np.ndarray) -> np.ndarray:
    view = np.asarray(arr).view()
    view.setflags(write=False)
    return view


class ScenePixels(ABC):
    """Access to the raw digital numbers of one scene."""

    @property
    @abstractmethod
    def transform(self) -> Affine:
        """Geotransform shared by every band of the scene."""

    @property
    @abstractmethod
    def crs(self) -> Optional[str]:
        """CRS of the pixel grid, if known."""

    @abstractmethod
    def band(self, name: str) -> np.ndarray:
        """Return the read-only array for a reflectance band."""

    @abstractmethod
    def qa(self) -> np.ndarray:
        """Return the read-only QA_PIXEL array."""

    def footprint(self) -> BaseGeometry:
        """Bounding polygon of the pixel grid."""
        height, width = self.qa().shape
        return box(*array_bounds(height, width, self.transform))

    def release(self) -> None:
        """Drop cached pixel arrays; they are read again on next access."""


class ArrayPixels(ScenePixels):
    """Pixels held in memory."""

    def __init__(
        self,
        bands: Mapping[str, np.ndarray],
        qa: np.ndarray,
        transform: Affine,
        crs: Optional[str] = None,
    ):
        self._bands = {name: _readonly(arr) for name, arr in bands.items()}
        self._qa = _readonly(qa)
        self._transform = transform
        self._crs = crs

    @property
    def transform(self) -> Affine:
        return self._transform

    @property
    def crs(self) -> Optional[str]:
        return self._crs

    def band(self, name: str) -> np.ndarray:
        try:
            return self._bands[name]
        except KeyError:
            raise KeyError(f"Band '{name}' not available") from None

    def qa(self) -> np.ndarray:
        return self._qa


class MaskedPixels(ScenePixels):
    """View of another provider with cloud and shadow pixels set to ``NaN``."""

    def __init__(self, inner: ScenePixels):
        self._inner = inner
        self._valid: Optional[np.ndarray] = None

    @property
    def transform(self) -> Affine:
        return self._inner.transform

    @property
    def crs(self) -> Optional[str]:
        return self._inner.crs

    @property
    def valid(self) -> np.ndarray:
        if self._valid is None:
            self._valid = _readonly(qa_valid_mask(self._inner.qa()))
        return self._valid

    def band(self, name: str) -> np.ndarray:
        return _readonly(apply_mask(self._inner.band(name), self.valid))

    def qa(self) -> np.ndarray:
        return self._inner.qa()

    def footprint(self) -> BaseGeometry:
        return self._inner.footprint()

    def release(self) -> None:
        self._valid = None
        self._inner.release()


@dataclass(frozen=True)
class Scene:
    """One satellite observation. Never mutated after ingestion."""

    scene_id: str
    satellite: str
    acquired: date
    time_utc: str
    path: int
    row: int
    cloud_cover: float
    pixels: ScenePixels = field(compare=False, repr=False)
    footprint: Optional[BaseGeometry] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "satellite", self.satellite.upper())
        object.__setattr__(self, "acquired", parse_date(self.acquired))
        object.__setattr__(self, "path", int(self.path))
        object.__setattr__(self, "row", int(self.row))
        object.__setattr__(self, "cloud_cover", float(self.cloud_cover))

    @property
    def descriptor(self) -> SatelliteDescriptor:
        return get_satellite(self.satellite)

    @property
    def path_row(self) -> Tuple[int, int]:
        return (self.path, self.row)

    def bounds_geometry(self) -> BaseGeometry:
        """Footprint polygon, derived from the pixel grid when not supplied."""
        if self.footprint is not None:
            return self.footprint
        return self.pixels.footprint()

    def cloud_mask(self) -> "Scene":
        """Return a copy whose bands are ``NaN`` under cloud and cloud shadow."""
        if isinstance(self.pixels, MaskedPixels):
            return self
        return replace(self, pixels=MaskedPixels(self.pixels))

    def reflectance(self, role: str) -> np.ndarray:
        """Rescaled surface reflectance for a logical band role."""
        return rescale_reflectance(self.pixels.band(self.descriptor.bands[role]))

    def compute_index(self, index: str) -> Raster:
        """
        Compute a spectral index using this scene's band profile.

        Masking is not implied; call :meth:`cloud_mask` first.
        """
        roles = index_roles(index)
        bands = {role: self.reflectance(role) for role in roles}
        return Raster(
            data=compute_index(bands, index),
            transform=self.pixels.transform,
            crs=self.pixels.crs,
            name=index.upper(),
            tags={
                "index": index.lower(),
                "scene_id": self.scene_id,
                "satellite": self.satellite,
                "date": self.acquired.isoformat(),
            },
        )


@dataclass(frozen=True)
class SceneCollection:
    """Unordered set of scenes plus the filters that produced it."""

    scenes: Tuple[Scene, ...] = ()
    start: Optional[date] = None
    end: Optional[date] = None

    def __len__(self) -> int:
        return len(self.scenes)

    def __iter__(self) -> Iterator[Scene]:
        return iter(self.scenes)

    @property
    def size(self) -> int:
        return len(self.scenes)

    @property
    def is_empty(self) -> bool:
        return not self.scenes

    @property
    def path_rows(self) -> frozenset:
        """Distinct WRS-2 (path, row) pairs, for coverage diagnostics."""
        return frozenset(scene.path_row for scene in self.scenes)

    @property
    def path_row_labels(self) -> list[str]:
        return [f"{p}_{r}" for p, r in sorted(self.path_rows)]

    @property
    def satellites(self) -> frozenset:
        return frozenset(scene.satellite for scene in self.scenes)

    def filter(self, predicate: Callable[[Scene], bool]) -> "SceneCollection":
        return replace(self, scenes=tuple(s for s in self.scenes if predicate(s)))

    def merge(self, other: "SceneCollection") -> "SceneCollection":
        """Union of two collections; a scene id present in both is kept once."""
        seen = {s.scene_id for s in self.scenes}
        extra = tuple(s for s in other.scenes if s.scene_id not in seen)
        return replace(self, scenes=self.scenes + extra)


class SceneCollectionBuilder:
    """
    Select scenes for a time window, AOI and cloud-cover range across the
    enabled satellites.
    """

    def __init__(self, source: "BaseSceneSource", logger=None):
        self.source = source
        self.logger = logger or Logger.get_logger(__name__)

    def build(
        self,
        start,
        end,
        aoi: BaseGeometry,
        satellites: Iterable[str],
        cloud_cover: Tuple[float, float] = (0.0, 100.0),
    ) -> SceneCollection:
        """
        Return the merged collection; raise :class:`EmptyCollection` if no
        scene passes the filters.

        ``start`` is inclusive and ``end`` exclusive. Cloud-cover bounds are
        inclusive on both ends.
        """
        start_d, end_d = parse_date(start), parse_date(end)
        cloud_min, cloud_max = cloud_cover
        enabled = [get_satellite(s) for s in satellites]

        def _keep(scene: Scene) -> bool:
            return (
                start_d <= scene.acquired < end_d
                and cloud_min <= scene.cloud_cover <= cloud_max
                and scene.bounds_geometry().intersects(aoi)
            )

        merged = SceneCollection(start=start_d, end=end_d)
        for descriptor in enabled:
            if not descriptor.operates_during(start_d, end_d):
                self.logger.debug(
                    "%s not operational between %s and %s; skipping",
                    descriptor.satellite_id,
                    start_d,
                    end_d,
                )
                continue
            candidates = self.source.list_scenes(
                descriptor, start_d, end_d, aoi, cloud_cover=(cloud_min, cloud_max)
            )
            found = SceneCollection(
                scenes=tuple(
                    s
                    for s in candidates
                    if s.satellite == descriptor.satellite_id and _keep(s)
                ),
                start=start_d,
                end=end_d,
            )
            self.logger.info(
                "%s: %d scene(s) between %s and %s",
                descriptor.satellite_id,
                found.size,
                start_d,
                end_d,
            )
            merged = merged.merge(found)

        if merged.is_empty:
            raise EmptyCollection(
                start_d, end_d, [d.satellite_id for d in enabled]
            )
        return merged


__all__ = [
    "ArrayPixels",
    "MaskedPixels",
    "Scene",
    "SceneCollection",
    "SceneCollectionBuilder",
    "ScenePixels",
    "parse_date",
]
