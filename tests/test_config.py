"""Test suite for ConfigManager: verifying loading formats, defaults, and merging behavior."""

import json
from datetime import date

import pytest

import yaml
import toml

from verdeindex.core.config import ConfigManager, ConfigValidationError, ThresholdConfig
from verdeindex.core.errors import UnknownSatellite, UnsupportedIndex, UnsupportedStatistic


def test_load_json(tmp_path):
    """Ensure JSON files load correctly and default values are returned for missing keys."""
    cfg_file = tmp_path / "cfg.json"
    data = {"a": 1, "b": "two"}
    cfg_file.write_text(json.dumps(data), encoding="utf-8")

    cfg = ConfigManager()
    cfg.load(str(cfg_file))

    assert cfg.get("a") == 1
    assert cfg.get("b") == "two"
    # missing key uses default
    assert cfg.get("missing", "def") == "def"


def test_load_yaml(tmp_path):
    """Verify YAML files are parsed and values retrieved accurately."""
    cfg_file = tmp_path / "cfg.yaml"
    data = {"x": 3.14, "y": [1, 2, 3]}
    cfg_file.write_text(yaml.safe_dump(data), encoding="utf-8")

    cfg = ConfigManager()
    cfg.load(str(cfg_file))

    assert cfg.get("x") == pytest.approx(3.14)
    assert cfg.get("y") == [1, 2, 3]


def test_load_toml(tmp_path):
    """Check TOML file loading and value retrieval functionality."""
    cfg_file = tmp_path / "cfg.toml"
    data = {"foo": "bar", "num": 42}
    cfg_file.write_text(toml.dumps(data), encoding="utf-8")

    cfg = ConfigManager()
    cfg.load(str(cfg_file))

    assert cfg.get("foo") == "bar"
    assert cfg.get("num") == 42


def test_load_unsupported_extension(tmp_path):
    """Confirm that loading unsupported file extensions raises ConfigValidationError."""
    cfg_file = tmp_path / "cfg.txt"
    cfg_file.write_text("whatever", encoding="utf-8")

    cfg = ConfigManager()
    with pytest.raises(ConfigValidationError):
        cfg.load(str(cfg_file))



def test_load_invalid_content(tmp_path):
    """Ensure invalid JSON content triggers a ConfigValidationError."""
    # valid .json but invalid JSON content
    cfg_file = tmp_path / "bad.json"
    cfg_file.write_text("not a json!", encoding="utf-8")

    cfg = ConfigManager()
    with pytest.raises(ConfigValidationError):
        cfg.load(str(cfg_file))


def test_get_defaults():
    """Validate engine defaults are present."""
    cfg = ConfigManager()
    assert cfg.get("statistic") == "mean"
    assert cfg.get("fvc")["ndvi_veg"] == pytest.approx(0.86)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("areas.geojson", True),
        ("AREAS.SHP", True),
        ("data/areas.gpkg", True),
        ("areas.json", True),
        ("areas.csv", False),
        ("areas", False),
    ],
)
def test_supports_aoi_file(path, expected):
    """Only vector formats are accepted for AOIs."""
    assert ConfigManager.supports_aoi_file(path) is expected


def test_fvc_table_is_merged(tmp_path):
    """Partial fvc settings keep the remaining defaults."""
    cfg_file = tmp_path / "cfg.yaml"
    cfg_file.write_text(
        yaml.safe_dump(
            {"fvc": {"mode": "auto"}, "periods": [["2020-01-01", "2021-01-01"]]}
        ),
        encoding="utf-8",
    )
    engine = ConfigManager(str(cfg_file)).engine_config()
    assert engine.thresholds == ThresholdConfig(mode="auto")


def test_engine_config_from_yaml(tmp_path):
    """A full YAML file yields a validated EngineConfig."""
    cfg_file = tmp_path / "engine.yaml"
    cfg_file.write_text(
        """
satellites: {L5: true, L7: false, L8: true}
periods:
  - [2005-01-01, 2006-01-01]
  - {start: 2020-01-01, end: 2021-01-01}
statistic: MAX
products: [NDVI, ndwi, fvc, ndvi]
cloud_cover: [0, 20]
scale: 60
max_pixels: 1.0e6
fvc: {mode: fixed, ndvi_soil: 0.1, ndvi_veg: 0.9}
""",
        encoding="utf-8",
    )
    engine = ConfigManager(str(cfg_file)).engine_config()
    assert engine.satellites == ("L5", "L8")
    assert engine.periods == (
        (date(2005, 1, 1), date(2006, 1, 1)),
        (date(2020, 1, 1), date(2021, 1, 1)),
    )
    assert engine.statistic == "max"
    assert engine.products == ("ndvi", "ndwi", "fvc")
    assert engine.cloud_cover == (0.0, 20.0)
    assert engine.scale == 60
    assert engine.max_pixels == 1_000_000
    assert engine.thresholds.ndvi_soil == pytest.approx(0.1)


@pytest.mark.parametrize(
    "overrides,error",
    [
        ({"satellites": {"L8": True, "S2": True}}, UnknownSatellite),
        ({"satellites": {"L8": False}}, ConfigValidationError),
        ({"statistic": "median"}, UnsupportedStatistic),
        ({"products": ["evi"]}, UnsupportedIndex),
        ({"periods": []}, ConfigValidationError),
        ({"periods": [["2021-01-01", "2020-01-01"]]}, ConfigValidationError),
        ({"periods": [["not-a-date", "2020-01-01"]]}, ConfigValidationError),
        ({"cloud_cover": [50, 10]}, ConfigValidationError),
        ({"cloud_cover": [0, 120]}, ConfigValidationError),
        ({"scale": 0}, ConfigValidationError),
        ({"fvc": {"mode": "median"}}, ConfigValidationError),
    ],
)
def test_engine_config_rejects(overrides, error):
    """Invalid settings fail at validation time."""
    cfg = ConfigManager()
    cfg.update({"periods": [["2020-01-01", "2021-01-01"]]})
    cfg.update(overrides)
    with pytest.raises(error):
        cfg.engine_config()
