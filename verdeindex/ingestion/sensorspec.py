"""
Module `ingestion.sensorspec` defines the supported Landsat satellites and the
band profiles used to harmonize band names across sensor generations.

TM/ETM+ (Landsat 4, 5, 7) share the legacy profile, OLI (Landsat 8, 9) the
modern one. Index code only ever asks for a logical role ("nir", "red", ...),
never for a sensor band name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from types import MappingProxyType
from typing import Mapping, Optional

from verdeindex.core.errors import UnknownSatellite

LEGACY = "legacy"
MODERN = "modern"

QA_BAND = "QA_PIXEL"

# Logical band role -> Collection 2 Level 2 surface reflectance band
BAND_PROFILES: Mapping[str, Mapping[str, str]] = MappingProxyType(
    {
        LEGACY: MappingProxyType(
            {"green": "SR_B2", "red": "SR_B3", "nir": "SR_B4", "swir": "SR_B7"}
        ),
        MODERN: MappingProxyType(
            {"green": "SR_B3", "red": "SR_B4", "nir": "SR_B5", "swir": "SR_B7"}
        ),
    }
)


@dataclass(frozen=True)
class SatelliteDescriptor:
    """Static metadata for one supported satellite."""

    satellite_id: str
    collection_id: str
    start_year: int
    end_year: Optional[int]
    generation: str
    native_resolution: int = 30

    @property
    def bands(self) -> Mapping[str, str]:
        """Band role mapping for this satellite's generation."""
        return BAND_PROFILES[self.generation]

    @property
    def qa_band(self) -> str:
        return QA_BAND

    def operates_during(self, start: date, end: date) -> bool:
        """Return True when the operational years overlap ``[start, end)``."""
        last = end - timedelta(days=1) if end > start else start
        if last.year < self.start_year:
            return False
        if self.end_year is not None and start.year > self.end_year:
            return False
        return True


SATELLITES: Mapping[str, SatelliteDescriptor] = MappingProxyType(
    {
        "L4": SatelliteDescriptor("L4", "LANDSAT/LT04/C02/T1_L2", 1982, 1993, LEGACY),
        "L5": SatelliteDescriptor("L5", "LANDSAT/LT05/C02/T1_L2", 1984, 2012, LEGACY),
        "L7": SatelliteDescriptor("L7", "LANDSAT/LE07/C02/T1_L2", 1999, 2022, LEGACY),
        "L8": SatelliteDescriptor("L8", "LANDSAT/LC08/C02/T1_L2", 2013, None, MODERN),
        "L9": SatelliteDescriptor("L9", "LANDSAT/LC09/C02/T1_L2", 2021, None, MODERN),
    }
)


def get_satellite(satellite_id: str) -> SatelliteDescriptor:
    """Return the descriptor for ``satellite_id`` or raise :class:`UnknownSatellite`."""
    descriptor = SATELLITES.get(str(satellite_id).upper())
    if descriptor is None:
        raise UnknownSatellite(satellite_id, list(SATELLITES))
    return descriptor


def band_profile(satellite_id: str) -> Mapping[str, str]:
    """
    Resolve the band role mapping for a satellite.

    Args:
        satellite_id: one of the keys of :data:`SATELLITES` (case-insensitive).

    Returns:
        Read-only mapping of role ("green", "red", "nir", "swir") to band name.
    """
    return get_satellite(satellite_id).bands
