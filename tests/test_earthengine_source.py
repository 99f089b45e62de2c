"""Tests for the Earth Engine scene source, with Earth Engine faked out."""

# pylint: disable=W0621,W0613

from datetime import date

import ee
import numpy as np
import pytest
from rasterio.io import MemoryFile
from rasterio.transform import from_origin
from shapely.geometry import box

import verdeindex.ingestion.earthengine_source as es_mod
from verdeindex.ingestion import create_source
from verdeindex.ingestion.earthengine_source import EarthEngineSceneSource
from verdeindex.ingestion.indices import REFLECTANCE_OFFSET, REFLECTANCE_SCALE
from verdeindex.ingestion.scenes import SceneCollectionBuilder
from verdeindex.ingestion.sensorspec import QA_BAND, get_satellite

SIZE = 10
TRANSFORM = from_origin(0, 300, 30, 30)
CRS = "EPSG:32650"


def to_dn(reflectance):
    return np.round((reflectance - REFLECTANCE_OFFSET) / REFLECTANCE_SCALE).astype(
        np.uint16
    )


RING = {
    "type": "LinearRing",
    "coordinates": [[0, 0], [300, 0], [300, 300], [0, 300], [0, 0]],
}

FEATURES = [
    {
        "type": "Image",
        "id": "LANDSAT/LC08/C02/T1_L2/LC08_123032_20200305",
        "properties": {
            "DATE_ACQUIRED": "2020-03-05",
            "SCENE_CENTER_TIME": "02:55:31.1234560Z",
            "WRS_PATH": 123,
            "WRS_ROW": 32,
            "CLOUD_COVER": 12.5,
            "system:footprint": RING,
        },
    },
    {
        "type": "Image",
        "id": "LANDSAT/LC08/C02/T1_L2/LC08_123033_20200321",
        "properties": {
            "system:time_start": 1584748800000,
            "WRS_PATH": 123,
            "WRS_ROW": 33,
            "CLOUD_COVER": 3.0,
        },
    },
]


class FakeManager:
    def __init__(self):
        self.initialized = 0
        self.requests = []

    def initialize(self, force=False):
        self.initialized += 1

    def get_image_collection(self, collection_id, start, end, region, cloud_cover):
        self.requests.append((collection_id, start, end, cloud_cover))
        return "collection"

    def safe_get_info(self, obj):
        assert obj == "collection"
        return {"type": "ImageCollection", "features": FEATURES}


class FakeImage:
    last_params = None

    def __init__(self, image_id):
        self.image_id = image_id

    def select(self, _bands):
        return self

    def unmask(self, _value):
        return self

    def addBands(self, _other):  # pylint: disable=invalid-name
        return self

    def getDownloadURL(self, params):  # pylint: disable=invalid-name
        FakeImage.last_params = params
        return "https://example.com/download.tif"


class FakeResponse:
    def __init__(self, content):
        self.content = content

    def raise_for_status(self):
        return None


def _geotiff_bytes(bands):
    stack = np.stack(bands)
    with MemoryFile() as mem:
        with mem.open(
            driver="GTiff",
            height=SIZE,
            width=SIZE,
            count=stack.shape[0],
            dtype="uint16",
            transform=TRANSFORM,
            crs=CRS,
        ) as dst:
            dst.write(stack)
        return bytes(mem.getbuffer())


@pytest.fixture
def fake_ee(monkeypatch):
    monkeypatch.setattr(ee, "Geometry", lambda geojson: geojson)
    monkeypatch.setattr(ee, "Image", FakeImage)
    # green, red, nir, swir, then QA_PIXEL with one cloudy pixel
    qa = np.zeros((SIZE, SIZE), dtype=np.uint16)
    qa[0, 0] = 1 << 4
    payload = _geotiff_bytes(
        [to_dn(np.full((SIZE, SIZE), v)) for v in (0.2, 0.1, 0.5, 0.3)] + [qa]
    )
    urls = []

    def fake_get(url, timeout=None):
        urls.append(url)
        return FakeResponse(payload)

    monkeypatch.setattr(es_mod.requests, "get", fake_get)
    return urls


def test_list_scenes_reads_metadata(fake_ee):
    manager = FakeManager()
    source = EarthEngineSceneSource(manager)
    scenes = source.list_scenes(
        get_satellite("L8"),
        date(2020, 1, 1),
        date(2021, 1, 1),
        box(0, 0, 300, 300),
        cloud_cover=(0, 50),
    )
    assert manager.requests == [
        ("LANDSAT/LC08/C02/T1_L2", "2020-01-01", "2021-01-01", (0, 50))
    ]
    first, second = scenes
    assert first.scene_id == "LC08_123032_20200305"
    assert first.time_utc == "02:55:31.1234560Z"
    assert first.path_row == (123, 32)
    assert first.cloud_cover == 12.5
    assert first.footprint.geom_type == "Polygon"
    assert first.footprint.bounds == (0.0, 0.0, 300.0, 300.0)
    assert second.acquired == date(2020, 3, 21)
    assert second.time_utc == "00:00:00"
    # no pixels are fetched while listing
    assert fake_ee == []


def test_pixels_download_lazily(fake_ee):
    source = EarthEngineSceneSource(FakeManager(), scale=30, crs=CRS)
    collection = SceneCollectionBuilder(source).build(
        "2020-03-01", "2020-03-10", box(0, 0, 300, 300), ["L8"]
    )
    (scene,) = collection
    ndvi = scene.cloud_mask().compute_index("ndvi")
    assert fake_ee == ["https://example.com/download.tif"]
    assert FakeImage.last_params["format"] == "GEO_TIFF"
    assert FakeImage.last_params["scale"] == 30
    assert FakeImage.last_params["crs"] == CRS
    assert np.isnan(ndvi.data[0, 0])
    assert ndvi.data[5, 5] == pytest.approx(2 / 3, abs=1e-3)
    assert ndvi.crs == CRS
    assert scene.pixels.qa().shape == (SIZE, SIZE)
    assert set(scene.pixels.bands) | {QA_BAND} == {
        "SR_B3",
        "SR_B4",
        "SR_B5",
        "SR_B7",
        QA_BAND,
    }
    # arrays are cached after the first download
    scene.compute_index("ndwi")
    assert len(fake_ee) == 1
    # released arrays are downloaded again; the grid is kept
    scene.pixels.release()
    assert scene.pixels.transform == TRANSFORM
    assert len(fake_ee) == 1
    scene.compute_index("ndvi")
    assert len(fake_ee) == 2


def test_builder_cloud_bounds_reach_earth_engine(fake_ee):
    manager = FakeManager()
    SceneCollectionBuilder(EarthEngineSceneSource(manager)).build(
        "2020-01-01", "2021-01-01", box(0, 0, 300, 300), ["L8"], cloud_cover=(0, 20)
    )
    assert manager.requests == [
        ("LANDSAT/LC08/C02/T1_L2", "2020-01-01", "2021-01-01", (0, 20))
    ]


def test_factory_builds_earthengine_source():
    source = create_source("ee", manager=FakeManager(), scale=60)
    assert isinstance(source, EarthEngineSceneSource)
    assert source.scale == 60
