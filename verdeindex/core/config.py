"""core.config
---------------

Configuration loader/manager for VerdeIndex. Loads settings from
YAML/TOML/JSON over built-in defaults and turns them into a validated
:class:`EngineConfig` via :py:meth:`ConfigManager.engine_config`.
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Tuple

import toml
import yaml

from verdeindex.analytics.composite import check_statistic
from verdeindex.analytics.fvc import DEFAULT_NDVI_SOIL, DEFAULT_NDVI_VEG, THRESHOLD_MODES
from verdeindex.core.errors import UnknownSatellite
from verdeindex.ingestion.indices import INDEX_REGISTRY, index_roles
from verdeindex.ingestion.scenes import parse_date
from verdeindex.ingestion.sensorspec import SATELLITES


class ConfigValidationError(Exception):
    """Raised when configuration loading or validation fails."""


PRODUCTS: Tuple[str, ...] = tuple(INDEX_REGISTRY) + ("fvc",)


@dataclass(frozen=True)
class ThresholdConfig:
    """FVC endpoint settings."""

    mode: str = "fixed"
    ndvi_soil: float = DEFAULT_NDVI_SOIL
    ndvi_veg: float = DEFAULT_NDVI_VEG
    min_valid_pixels: int = 10


@dataclass(frozen=True)
class EngineConfig:
    """Validated engine settings consumed by :func:`verdeindex.core.pipeline.build_plan`."""

    satellites: Tuple[str, ...]
    periods: Tuple[Tuple[date, date], ...]
    statistic: str = "mean"
    products: Tuple[str, ...] = ("ndvi",)
    cloud_cover: Tuple[float, float] = (0.0, 100.0)
    scale: float = 30
    max_pixels: int = int(1e9)
    thresholds: ThresholdConfig = ThresholdConfig()


class ConfigManager:
    """
    Loads and manages configuration from file or defaults.
    Provides a central entry point for engine parameterization.
    """

    # Vector file extensions accepted for AOIs
    SUPPORTED_INPUT_FORMATS: tuple[str, ...] = (
        ".shp",
        ".geojson",
        ".gpkg",
        ".json",
    )

    DEFAULT_INDEX: str = "ndvi"
    DEFAULTS: Dict[str, Any] = {
        "satellites": {"L4": False, "L5": False, "L7": False, "L8": True, "L9": True},
        "periods": [],
        "statistic": "mean",
        "products": [DEFAULT_INDEX],
        "cloud_cover": [0, 100],
        "scale": 30,
        "max_pixels": int(1e9),
        "fvc": {
            "mode": "fixed",
            "ndvi_soil": DEFAULT_NDVI_SOIL,
            "ndvi_veg": DEFAULT_NDVI_VEG,
            "min_valid_pixels": 10,
        },
    }

    def __init__(self, config_path=None):
        self.config: Dict[str, Any] = copy.deepcopy(self.DEFAULTS)
        if config_path:
            self.load(config_path)

    def load(self, path: str) -> None:
        """
        Load configuration from a file (YAML, TOML, or JSON).
        Overwrites existing keys in self.config; the ``fvc`` table is merged.
        """
        ext = os.path.splitext(path)[1].lower()
        try:
            with open(path, "r", encoding="utf-8") as f:
                if ext in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                elif ext == ".toml":
                    data = toml.load(f)
                elif ext == ".json":
                    data = json.load(f)
                else:
                    raise ConfigValidationError(f"Unsupported config format: {ext}")
        except ConfigValidationError:
            raise
        except Exception as e:
            raise ConfigValidationError(
                f"Failed to load config from {path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Config file {path} did not produce a dict")
        self.update(data)

    def update(self, data: Dict[str, Any]) -> None:
        """Merge ``data`` into the current settings."""
        data = dict(data)
        fvc = data.pop("fvc", None)
        self.config.update(data)
        if fvc is not None:
            if not isinstance(fvc, dict):
                raise ConfigValidationError("'fvc' must be a mapping")
            self.config["fvc"] = {**self.config.get("fvc", {}), **fvc}

    def get(self, key, default=None):
        """Retrieve a configuration value by key, or return `default` if not present."""
        return self.config.get(key, default)

    @classmethod
    def supports_aoi_file(cls, path: str) -> bool:
        """True when ``path`` has one of the vector extensions accepted for AOIs."""
        return os.path.splitext(path)[1].lower() in cls.SUPPORTED_INPUT_FORMATS

    def engine_config(self) -> EngineConfig:
        """
        Validate the settings and return an :class:`EngineConfig`.

        Raises:
            UnknownSatellite: a satellite key is not supported.
            UnsupportedStatistic: the statistic is neither mean nor max.
            UnsupportedIndex: a product names an unknown index.
            ConfigValidationError: any other malformed value.
        """
        cfg = self.config
        return EngineConfig(
            satellites=_satellites(cfg.get("satellites")),
            periods=_periods(cfg.get("periods")),
            statistic=check_statistic(cfg.get("statistic", "mean")),
            products=_products(cfg.get("products")),
            cloud_cover=_cloud_cover(cfg.get("cloud_cover")),
            scale=_positive("scale", cfg.get("scale", 30)),
            max_pixels=int(_positive("max_pixels", cfg.get("max_pixels", 1e9))),
            thresholds=_thresholds(cfg.get("fvc") or {}),
        )


def _satellites(value) -> Tuple[str, ...]:
    if isinstance(value, dict):
        names = [str(k).upper() for k, enabled in value.items() if enabled]
        unknown = [str(k) for k in value if str(k).upper() not in SATELLITES]
    elif isinstance(value, (list, tuple)):
        names = [str(k).upper() for k in value]
        unknown = [str(k) for k in value if str(k).upper() not in SATELLITES]
    else:
        raise ConfigValidationError("'satellites' must be a mapping or a list")
    if unknown:
        raise UnknownSatellite(unknown[0], list(SATELLITES))
    if not names:
        raise ConfigValidationError("At least one satellite must be enabled")
    return tuple(dict.fromkeys(names))


def _periods(value) -> Tuple[Tuple[date, date], ...]:
    if not value:
        raise ConfigValidationError("At least one (start, end) period is required")
    periods: List[Tuple[date, date]] = []
    for item in value:
        if isinstance(item, dict):
            start, end = item.get("start"), item.get("end")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            start, end = item
        else:
            raise ConfigValidationError(f"Invalid period {item!r}")
        try:
            start_d, end_d = parse_date(start), parse_date(end)
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"Invalid period {item!r}: {e}") from e
        if end_d <= start_d:
            raise ConfigValidationError(f"Period end {end_d} must be after {start_d}")
        periods.append((start_d, end_d))
    return tuple(periods)


def _products(value) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    products = [str(p).lower() for p in (value or [ConfigManager.DEFAULT_INDEX])]
    for product in products:
        if product != "fvc":
            index_roles(product)
    return tuple(dict.fromkeys(products))


def _cloud_cover(value) -> Tuple[float, float]:
    try:
        low, high = (float(v) for v in value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"Invalid cloud_cover {value!r}") from e
    if not 0 <= low <= high <= 100:
        raise ConfigValidationError(
            f"cloud_cover must satisfy 0 <= min <= max <= 100, got {value!r}"
        )
    return (low, high)


def _positive(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"'{name}' must be a number") from e
    if number <= 0:
        raise ConfigValidationError(f"'{name}' must be positive")
    return number


def _thresholds(value: Dict[str, Any]) -> ThresholdConfig:
    mode = str(value.get("mode", "fixed")).lower()
    if mode not in THRESHOLD_MODES:
        raise ConfigValidationError(
            f"fvc.mode must be one of {list(THRESHOLD_MODES)}, got {mode!r}"
        )
    soil = value.get("ndvi_soil")
    veg = value.get("ndvi_veg")
    return ThresholdConfig(
        mode=mode,
        ndvi_soil=DEFAULT_NDVI_SOIL if soil is None else float(soil),
        ndvi_veg=DEFAULT_NDVI_VEG if veg is None else float(veg),
        min_valid_pixels=int(value.get("min_valid_pixels", 10)),
    )
