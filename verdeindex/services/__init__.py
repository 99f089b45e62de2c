"""Service layer: exports and catalog metadata built on top of the engine."""

from .export import RasterExporter
from .metadata import format_metadata_table, metadata_filename, scene_metadata_table

__all__ = [
    "RasterExporter",
    "format_metadata_table",
    "metadata_filename",
    "scene_metadata_table",
]
