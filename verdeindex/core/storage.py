"""Storage adapter abstractions."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod


class StorageAdapter(ABC):
    """Abstract interface for persisting products and reading rasters."""

    @abstractmethod
    def join(self, *parts: str) -> str:
        """Join path components into a destination URI."""

    @abstractmethod
    def write_bytes(self, uri: str, data: bytes) -> str:
        """Write bytes to the destination and return the URI."""

    @abstractmethod
    def read_bytes(self, uri: str) -> bytes:
        """Return bytes stored at *uri*."""

    @abstractmethod
    def open_raster(self, uri: str, mode: str = "r", **kwargs):
        """Open *uri* with rasterio."""


class LocalFS(StorageAdapter):
    """Store files on the local filesystem."""

    def join(self, *parts: str) -> str:  # pragma: no cover - trivial
        return os.path.join(*parts)

    def write_bytes(self, uri: str, data: bytes) -> str:
        dirpath = os.path.dirname(uri) or "."
        os.makedirs(dirpath, exist_ok=True)
        with open(uri, "wb") as fh:
            fh.write(data)
        return uri

    def read_bytes(self, uri: str) -> bytes:
        with open(uri, "rb") as fh:
            return fh.read()

    def open_raster(self, uri: str, mode: str = "r", **kwargs):
        """Open a local raster file using rasterio, creating parent dirs on write."""
        import rasterio

        if mode == "w":
            os.makedirs(os.path.dirname(uri) or ".", exist_ok=True)
        return rasterio.open(uri, mode, **kwargs)
