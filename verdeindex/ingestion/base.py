from __future__ import annotations

"""Abstract base class for scene sources."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Tuple

from shapely.geometry.base import BaseGeometry

from verdeindex.core.logger import Logger
from .scenes import Scene
from .sensorspec import SatelliteDescriptor


class BaseSceneSource(ABC):
    """Base interface for imagery backends feeding the collection builder."""

    def __init__(self, logger=None):
        self.logger = logger or Logger.get_logger(__name__)

    @abstractmethod
    def list_scenes(
        self,
        satellite: SatelliteDescriptor,
        start: date,
        end: date,
        aoi: BaseGeometry,
        cloud_cover: Tuple[float, float] = (0.0, 100.0),
    ) -> Iterable[Scene]:
        """
        Yield candidate scenes of ``satellite`` for the window, AOI and
        inclusive cloud-cover range.

        Sources may pre-filter as much as they like; the builder re-applies
        every filter locally, so returning extra candidates is harmless.
        """
