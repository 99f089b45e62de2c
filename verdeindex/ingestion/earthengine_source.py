"""
Module `ingestion.earthengine_source` lists Landsat Collection 2 Level-2
scenes from Google Earth Engine and downloads their pixels on demand.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import ee
import numpy as np
import requests
from rasterio.io import MemoryFile
from rasterio.transform import Affine
from shapely.geometry import LinearRing, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry

from verdeindex.core.logger import Logger
from .base import BaseSceneSource
from .eemanager import EarthEngineManager, ee_manager
from .mask import FILL_AS_CLOUD
from .scenes import Scene, ScenePixels
from .sensorspec import QA_BAND, SatelliteDescriptor


class EarthEnginePixels(ScenePixels):
    """
    Pixels of one EE image, fetched as a GeoTIFF clipped to ``region`` the
    first time any band is requested.
    """

    def __init__(
        self,
        image_id: str,
        bands: Sequence[str],
        region: BaseGeometry,
        *,
        scale: float = 30,
        crs: str = "EPSG:4326",
        manager: Optional[EarthEngineManager] = None,
        logger=None,
    ):
        self.image_id = image_id
        self.bands = list(dict.fromkeys(b for b in bands if b != QA_BAND))
        self.region = region
        self.scale = scale
        self._crs = crs
        self.manager = manager or ee_manager
        self.logger = logger or Logger.get_logger(__name__)
        self._arrays: Optional[Dict[str, np.ndarray]] = None
        self._transform: Optional[Affine] = None

    def _image(self) -> ee.Image:
        image = ee.Image(self.image_id)
        return (
            image.select(self.bands)
            .unmask(0)
            .addBands(image.select(QA_BAND).unmask(FILL_AS_CLOUD))
        )

    def download(self) -> bytes:
        """Request the multi-band GeoTIFF from EE and return its bytes."""
        self.manager.initialize()
        url = self._image().getDownloadURL(
            {
                "scale": self.scale,
                "crs": self._crs,
                "region": mapping(self.region),
                "format": "GEO_TIFF",
            }
        )
        self.logger.info("Downloading %s", self.image_id)
        resp = requests.get(url, timeout=60)
        resp.raise_for_status()
        return resp.content

    def _load(self) -> Dict[str, np.ndarray]:
        if self._arrays is None:
            names = self.bands + [QA_BAND]
            with MemoryFile(self.download()) as memfile:
                with memfile.open() as src:
                    data = src.read()
                    self._transform = src.transform
                    if src.crs:
                        self._crs = src.crs.to_string()
            arrays = {}
            for name, arr in zip(names, data):
                arr.setflags(write=False)
                arrays[name] = arr
            self._arrays = arrays
        return self._arrays

    @property
    def transform(self) -> Affine:
        if self._transform is None:
            self._load()
        return self._transform  # type: ignore[return-value]

    @property
    def crs(self) -> Optional[str]:
        if self._transform is None:
            self._load()
        return self._crs

    def band(self, name: str) -> np.ndarray:
        try:
            return self._load()[name]
        except KeyError:
            raise KeyError(f"Band '{name}' not available") from None

    def qa(self) -> np.ndarray:
        return self._load()[QA_BAND]

    def release(self) -> None:
        self._arrays = None


def _footprint(props: dict) -> Optional[BaseGeometry]:
    raw = props.get("system:footprint")
    if not raw:
        return None
    geom = shape(raw)
    if isinstance(geom, LinearRing):
        return Polygon(geom)
    return geom


class EarthEngineSceneSource(BaseSceneSource):
    """
    List scenes of a satellite's Collection 2 Level-2 collection.

    Scene metadata comes from a single ``getInfo`` call per satellite and
    window. Every scene downloads the same AOI bounding box at ``scale`` and
    ``crs``, so the resulting rasters share one grid.
    """

    def __init__(
        self,
        manager: Optional[EarthEngineManager] = None,
        *,
        scale: float = 30,
        crs: str = "EPSG:4326",
        logger=None,
    ):
        super().__init__(logger)
        self.manager = manager or ee_manager
        self.scale = scale
        self.crs = crs

    def list_scenes(
        self,
        satellite: SatelliteDescriptor,
        start: date,
        end: date,
        aoi: BaseGeometry,
        cloud_cover: Tuple[float, float] = (0.0, 100.0),
    ) -> List[Scene]:
        self.manager.initialize()
        region = ee.Geometry(mapping(aoi))
        coll = self.manager.get_image_collection(
            satellite.collection_id,
            start.isoformat(),
            end.isoformat(),
            region,
            cloud_cover=cloud_cover,
        )
        info = self.manager.safe_get_info(coll) or {}
        bands = list(satellite.bands.values())
        bbox = Polygon.from_bounds(*aoi.bounds)

        scenes = []
        for feat in info.get("features", []):
            props = feat.get("properties", {})
            image_id = feat["id"]
            acquired = props.get("DATE_ACQUIRED")
            if acquired is None:
                millis = props["system:time_start"]
                acquired = (date(1970, 1, 1) + timedelta(milliseconds=millis)).isoformat()
            scenes.append(
                Scene(
                    scene_id=image_id.split("/")[-1],
                    satellite=satellite.satellite_id,
                    acquired=acquired,
                    time_utc=str(props.get("SCENE_CENTER_TIME", "00:00:00")),
                    path=props["WRS_PATH"],
                    row=props["WRS_ROW"],
                    cloud_cover=props.get("CLOUD_COVER", 0.0),
                    pixels=EarthEnginePixels(
                        image_id,
                        bands,
                        bbox,
                        scale=self.scale,
                        crs=self.crs,
                        manager=self.manager,
                        logger=self.logger,
                    ),
                    footprint=_footprint(props) or bbox,
                )
            )
        self.logger.info(
            "%s: %d scene(s) listed from %s",
            satellite.satellite_id,
            len(scenes),
            satellite.collection_id,
        )
        return scenes
