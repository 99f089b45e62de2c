"""Error kinds raised by the index and compositing engine.

Configuration errors (:class:`UnknownSatellite`, :class:`UnsupportedStatistic`,
:class:`UnsupportedIndex`) are fatal and raised before any imagery is read.
:class:`EmptyCollection` and :class:`ThresholdEstimationFailed` are soft: the
pipeline logs a warning and carries on. :class:`DegenerateThreshold` is fatal
for the FVC product of one period only.

Export failures are reported with :class:`ExportError`, which is an
``OSError`` and intentionally not a :class:`VerdeIndexError`.
"""

from __future__ import annotations


class VerdeIndexError(Exception):
    """Base class for computation errors."""


class UnknownSatellite(VerdeIndexError, ValueError):
    """Satellite identifier is not in the supported registry."""

    def __init__(self, satellite: str, supported: list[str] | None = None):
        self.satellite = satellite
        msg = f"Unsupported satellite '{satellite}'"
        if supported:
            msg += f". Choose from: {', '.join(supported)}"
        super().__init__(msg)


class UnsupportedStatistic(VerdeIndexError, ValueError):
    """Temporal or regional statistic is not one of the supported kinds."""

    def __init__(self, statistic: str, supported: list[str] | None = None):
        self.statistic = statistic
        msg = f"Unsupported statistic '{statistic}'"
        if supported:
            msg += f". Choose from: {', '.join(supported)}"
        super().__init__(msg)


class UnsupportedIndex(VerdeIndexError, ValueError):
    """Spectral index name is not in the index registry."""


class EmptyCollection(VerdeIndexError):
    """No scene satisfied the collection filters for a time window."""

    def __init__(self, start, end, satellites=None):
        self.start = start
        self.end = end
        self.satellites = tuple(satellites or ())
        sats = ", ".join(self.satellites) or "none"
        super().__init__(
            f"No scenes found between {start} and {end} (satellites: {sats})"
        )


class ThresholdEstimationFailed(VerdeIndexError):
    """Percentile endpoints could not be estimated from the composite."""


class DegenerateThreshold(VerdeIndexError):
    """Soil and vegetation endpoints are equal, so the mixture model is undefined."""

    def __init__(self, ndvi_soil: float, ndvi_veg: float):
        self.ndvi_soil = ndvi_soil
        self.ndvi_veg = ndvi_veg
        super().__init__(
            f"ndvi_veg ({ndvi_veg}) equals ndvi_soil ({ndvi_soil}); "
            "fractional cover is undefined"
        )


class PixelBudgetExceeded(VerdeIndexError):
    """Exact region reduction would touch more pixels than allowed."""


class ExportError(OSError):
    """Writing a product to the storage backend failed."""
