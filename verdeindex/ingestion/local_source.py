from __future__ import annotations

"""Scene sources backed by in-memory arrays or local GeoTIFF files."""

import json
import os
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import yaml
from rasterio.enums import MaskFlags
from rasterio.transform import Affine
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from verdeindex.core.storage import LocalFS, StorageAdapter
from .base import BaseSceneSource
from .mask import flag_fill
from .scenes import Scene, ScenePixels
from .sensorspec import QA_BAND, SatelliteDescriptor


class InMemorySceneSource(BaseSceneSource):
    """Serve a fixed list of scenes."""

    def __init__(self, scenes: Iterable[Scene], logger=None):
        super().__init__(logger)
        self.scenes = tuple(scenes)

    def list_scenes(
        self,
        satellite: SatelliteDescriptor,
        start: date,
        end: date,
        aoi: BaseGeometry,
        cloud_cover: Tuple[float, float] = (0.0, 100.0),
    ) -> List[Scene]:
        return [s for s in self.scenes if s.satellite == satellite.satellite_id]


class GeoTiffPixels(ScenePixels):
    """
    Lazily read single-band GeoTIFFs, one file per band, with rasterio.

    Pixels that any band marks as no-data (its nodata value or internal
    mask) get the QA cloud bit, so masking drops them like clouds.
    """

    def __init__(self, files: Dict[str, str], storage: StorageAdapter | None = None):
        if QA_BAND not in files:
            raise ValueError(f"Scene files must include {QA_BAND}")
        self.files = dict(files)
        self.storage = storage or LocalFS()
        self._cache: Dict[str, np.ndarray] = {}
        self._transform: Optional[Affine] = None
        self._crs: Optional[str] = None
        self._bounds = None

    def _profile(self) -> None:
        if self._transform is not None:
            return
        with self.storage.open_raster(self.files[QA_BAND]) as src:
            self._transform = src.transform
            self._crs = src.crs.to_string() if src.crs else None
            self._bounds = tuple(src.bounds)

    def _uri(self, name: str) -> str:
        try:
            return self.files[name]
        except KeyError:
            raise KeyError(f"Band '{name}' not available") from None

    def _read(self, name: str) -> np.ndarray:
        if name not in self._cache:
            with self.storage.open_raster(self._uri(name)) as src:
                arr = src.read(1)
            arr.setflags(write=False)
            self._cache[name] = arr
        return self._cache[name]

    def _fill(self, name: str) -> Optional[np.ndarray]:
        """No-data mask of one band file, or ``None`` when every pixel is valid."""
        with self.storage.open_raster(self._uri(name)) as src:
            if MaskFlags.all_valid in src.mask_flag_enums[0]:
                return None
            return src.read_masks(1) == 0

    @property
    def transform(self) -> Affine:
        self._profile()
        return self._transform  # type: ignore[return-value]

    @property
    def crs(self) -> Optional[str]:
        self._profile()
        return self._crs

    def band(self, name: str) -> np.ndarray:
        return self._read(name)

    def qa(self) -> np.ndarray:
        if QA_BAND not in self._cache:
            with self.storage.open_raster(self.files[QA_BAND]) as src:
                qa = src.read(1)
            fills = [m for m in map(self._fill, self.files) if m is not None]
            if fills:
                qa = flag_fill(qa, np.logical_or.reduce(fills))
            qa.setflags(write=False)
            self._cache[QA_BAND] = qa
        return self._cache[QA_BAND]

    def footprint(self) -> BaseGeometry:
        self._profile()
        return box(*self._bounds)

    def release(self) -> None:
        self._cache.clear()


class GeoTiffSceneSource(InMemorySceneSource):
    """
    Scenes described by a YAML/JSON manifest::

        scenes:
          - id: LC08_123032_20200105
            satellite: L8
            date: 2020-01-05
            time_utc: "02:55:31.12Z"
            path: 123
            row: 32
            cloud_cover: 12.5
            bands:
              SR_B4: red.tif
              SR_B5: nir.tif
              QA_PIXEL: qa.tif

    Relative band paths resolve against the manifest directory. Only the QA
    file header is opened while listing; pixel data is read on first use.
    """

    @classmethod
    def from_manifest(
        cls, path: str, storage: StorageAdapter | None = None, logger=None
    ) -> "GeoTiffSceneSource":
        storage = storage or LocalFS()
        ext = os.path.splitext(path)[1].lower()
        text = storage.read_bytes(path).decode("utf-8")
        data = yaml.safe_load(text) if ext in (".yaml", ".yml") else json.loads(text)
        entries = data.get("scenes", []) if isinstance(data, dict) else data
        base_dir = os.path.dirname(os.path.abspath(path))

        scenes = []
        for entry in entries:
            files = {
                band: (
                    uri
                    if os.path.isabs(uri) or "://" in uri
                    else os.path.join(base_dir, uri)
                )
                for band, uri in entry["bands"].items()
            }
            scenes.append(
                Scene(
                    scene_id=str(entry["id"]),
                    satellite=str(entry["satellite"]),
                    acquired=entry["date"],
                    time_utc=str(entry.get("time_utc", "00:00:00")),
                    path=entry["path"],
                    row=entry["row"],
                    cloud_cover=entry.get("cloud_cover", 0.0),
                    pixels=GeoTiffPixels(files, storage=storage),
                )
            )
        return cls(scenes, logger=logger)
