# pylint: disable=missing-module-docstring,missing-function-docstring,invalid-name,unused-argument,redefined-outer-name
import json

import numpy as np
import pytest
import rasterio
import yaml
from rasterio.transform import from_origin
from shapely.geometry import box

from verdeindex.analytics.raster import Raster
from verdeindex.core.logger import Logger
from verdeindex.geo.aoi import AOI
from verdeindex.ingestion.indices import REFLECTANCE_OFFSET, REFLECTANCE_SCALE
from verdeindex.ingestion.local_source import GeoTiffPixels
from verdeindex.ingestion.scenes import ArrayPixels, Scene
from verdeindex.ingestion.sensorspec import QA_BAND, get_satellite

# 10 x 10 grid of 30 m pixels covering (0, 0) - (300, 300)
SIZE = 10
PIXEL = 30
TRANSFORM = from_origin(0, SIZE * PIXEL, PIXEL, PIXEL)
CRS = "EPSG:32650"


def to_dn(reflectance):
    """Digital number that rescales to ``reflectance``."""
    return np.round(
        (np.asarray(reflectance, dtype=np.float64) - REFLECTANCE_OFFSET)
        / REFLECTANCE_SCALE
    ).astype(np.uint16)


def scene_bands(satellite, nir=0.5, red=0.1, green=0.2, swir=0.3, shape=(SIZE, SIZE)):
    """Band arrays (digital numbers) keyed by the satellite's band names."""
    names = get_satellite(satellite).bands
    values = {"nir": nir, "red": red, "green": green, "swir": swir}
    return {
        names[role]: to_dn(np.broadcast_to(value, shape))
        for role, value in values.items()
    }


@pytest.fixture
def grid_transform():
    return TRANSFORM


@pytest.fixture
def make_raster():
    def _make(data, transform=TRANSFORM, crs=None, name="NDVI", **tags):
        return Raster(
            data=np.asarray(data, dtype=float),
            transform=transform,
            crs=crs,
            name=name,
            tags=tags,
        )

    return _make


@pytest.fixture
def make_scene():
    """Factory for in-memory scenes on the shared test grid."""

    def _make(
        scene_id,
        satellite="L8",
        acquired="2020-03-01",
        cloud_cover=10.0,
        path=123,
        row=32,
        qa=0,
        time_utc="02:55:31.1234Z",
        footprint=None,
        **values,
    ):
        bands = scene_bands(satellite, **values)
        qa_arr = np.broadcast_to(np.asarray(qa, dtype=np.uint16), (SIZE, SIZE)).copy()
        return Scene(
            scene_id=scene_id,
            satellite=satellite,
            acquired=acquired,
            time_utc=time_utc,
            path=path,
            row=row,
            cloud_cover=cloud_cover,
            pixels=ArrayPixels(bands, qa_arr, TRANSFORM, CRS),
            footprint=footprint,
        )

    return _make


@pytest.fixture
def aoi():
    return AOI(box(0, 0, SIZE * PIXEL, SIZE * PIXEL), {"id": "users/test/areas/testarea"})


@pytest.fixture
def aoi_file(tmp_path):
    """GeoJSON file holding the test AOI."""
    path = tmp_path / "aoi.geojson"
    feature = {
        "type": "Feature",
        "properties": {"id": "users/test/areas/testarea"},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[0, 0], [0, 300], [300, 300], [300, 0], [0, 0]]],
        },
    }
    path.write_text(
        json.dumps({"type": "FeatureCollection", "features": [feature]}),
        encoding="utf-8",
    )
    return path


def write_band(path, arr, transform=TRANSFORM, crs=CRS, nodata=None):
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=arr.shape[0],
        width=arr.shape[1],
        count=1,
        dtype=str(arr.dtype),
        transform=transform,
        crs=crs,
        nodata=nodata,
    ) as dst:
        dst.write(arr, 1)
    return path


@pytest.fixture
def make_geotiff_scene(tmp_path):
    """
    Factory for L8 scenes read from GeoTIFFs. Pixels listed in ``fill`` are
    DN 0 in every reflectance band, tagged as no-data when ``nodata`` is set.
    """

    def _make(scene_id, acquired, fill=(), nodata=None, **values):
        folder = tmp_path / scene_id
        folder.mkdir()
        files = {}
        for band, arr in scene_bands("L8", **values).items():
            arr = arr.copy()
            for pixel in fill:
                arr[pixel] = 0
            path = write_band(folder / f"{band}.tif", arr, nodata=nodata)
            files[band] = str(path)
        qa = np.zeros((SIZE, SIZE), dtype=np.uint16)
        files[QA_BAND] = str(write_band(folder / f"{QA_BAND}.tif", qa))
        return Scene(
            scene_id=scene_id,
            satellite="L8",
            acquired=acquired,
            time_utc="02:55:31.1234Z",
            path=123,
            row=32,
            cloud_cover=5.0,
            pixels=GeoTiffPixels(files),
        )

    return _make


@pytest.fixture
def manifest_file(tmp_path):
    """
    YAML manifest with two L8 scenes in March 2020 (one cloudy pixel in the
    second) and one L5 scene in 2005, all as GeoTIFFs on the test grid.
    """
    scenes_dir = tmp_path / "scenes"
    scenes_dir.mkdir()
    specs = [
        ("LC08_123032_20200305", "L8", "2020-03-05", 12.5, {"nir": 0.5, "red": 0.1}),
        ("LC08_123033_20200321", "L8", "2020-03-21", 3.0, {"nir": 0.7, "red": 0.1}),
        ("LT05_123032_20050610", "L5", "2005-06-10", 20.0, {"nir": 0.4, "red": 0.2}),
    ]
    entries = []
    for scene_id, sat, day, cloud, values in specs:
        files = {}
        for band, arr in scene_bands(sat, **values).items():
            files[band] = write_band(scenes_dir / f"{scene_id}_{band}.tif", arr).name
        qa = np.zeros((SIZE, SIZE), dtype=np.uint16)
        if scene_id.endswith("0321"):
            qa[0, 0] = 1 << 4
        files[QA_BAND] = write_band(scenes_dir / f"{scene_id}_{QA_BAND}.tif", qa).name
        entries.append(
            {
                "id": scene_id,
                "satellite": sat,
                "date": day,
                "time_utc": "02:55:31.1234Z",
                "path": int(scene_id[5:8]),
                "row": int(scene_id[8:11]),
                "cloud_cover": cloud,
                "bands": {band: f"scenes/{name}" for band, name in files.items()},
            }
        )
    path = tmp_path / "manifest.yaml"
    path.write_text(yaml.safe_dump({"scenes": entries}), encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "satellites": {"L5": False, "L8": True, "L9": True},
                "periods": [["2019-01-01", "2020-01-01"], ["2020-01-01", "2021-01-01"]],
                "statistic": "mean",
                "products": ["ndvi", "fvc"],
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure the root logger before any test so caplog keeps its handler."""
    Logger.setup()
