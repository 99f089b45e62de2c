"""Ingestion package with scene source factory."""

from .base import BaseSceneSource
from .earthengine_source import EarthEngineSceneSource
from .local_source import GeoTiffSceneSource, InMemorySceneSource


def create_source(backend: str, **kwargs) -> BaseSceneSource:
    """Factory returning a scene source instance based on backend name."""
    name = backend.lower()
    if name in {"ee", "earthengine"}:
        return EarthEngineSceneSource(**kwargs)
    if name in {"geotiff", "manifest", "local"}:
        manifest = kwargs.pop("manifest")
        return GeoTiffSceneSource.from_manifest(manifest, **kwargs)
    if name in {"memory", "inmemory"}:
        return InMemorySceneSource(**kwargs)
    raise ValueError(f"Unknown scene source backend '{backend}'")


__all__ = [
    "BaseSceneSource",
    "EarthEngineSceneSource",
    "GeoTiffSceneSource",
    "InMemorySceneSource",
    "create_source",
]
