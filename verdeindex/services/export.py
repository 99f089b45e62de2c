from __future__ import annotations

"""Write computed products as single-band GeoTIFFs."""

from typing import Dict, List, Optional

import numpy as np
from rasterio.errors import RasterioError

from verdeindex.analytics.raster import Raster, clip_to_geometry
from verdeindex.core.errors import ExportError
from verdeindex.core.pipeline import BatchResult, PeriodResult
from verdeindex.core.storage import LocalFS, StorageAdapter
from verdeindex.geo.aoi import AOI
from .base import BaseService


class RasterExporter(BaseService):
    """Export product rasters clipped to the AOI through a storage adapter."""

    def __init__(
        self,
        out_dir: str,
        *,
        storage: StorageAdapter | None = None,
        logger=None,
    ) -> None:
        super().__init__(logger)
        self.out_dir = out_dir
        self.storage = storage or LocalFS()

    def write(self, raster: Raster, name: str, aoi: Optional[AOI] = None) -> str:
        """
        Write ``raster`` as ``<out_dir>/<name>.tif`` (float32, NaN nodata).

        Pixels outside ``aoi`` are set to nodata. Any I/O failure is raised as
        :class:`ExportError`.
        """
        if aoi is not None:
            raster = clip_to_geometry(raster, aoi.geometry)
        uri = self.storage.join(self.out_dir, f"{name}.tif")
        height, width = raster.shape
        profile = {
            "driver": "GTiff",
            "height": height,
            "width": width,
            "count": 1,
            "dtype": "float32",
            "nodata": np.nan,
            "transform": raster.transform,
            "compress": "deflate",
        }
        if raster.crs:
            profile["crs"] = raster.crs
        try:
            with self.storage.open_raster(uri, "w", **profile) as dst:
                dst.write(raster.data.astype(np.float32), 1)
                dst.set_band_description(1, raster.name or name)
                dst.update_tags(**dict(raster.tags))
        except (OSError, RasterioError) as err:
            raise ExportError(f"Failed to write {uri}: {err}") from err
        self.logger.info("Wrote %s", uri)
        return uri

    def export_period(self, result: PeriodResult, aoi: AOI) -> Dict[str, str]:
        """Write every product of a period; returns output name -> URI."""
        return {
            name: self.write(raster, name, aoi)
            for name, raster in result.rasters().items()
        }

    def export_batch(self, batch: BatchResult) -> List[str]:
        """Write all products of all succeeded periods."""
        written: List[str] = []
        for result in batch.succeeded:
            written.extend(self.export_period(result, batch.plan.aoi).values())
        return written

    def write_summary(self, batch: BatchResult, filename: str = "summary.csv") -> str:
        """Write the per-period summary table as CSV."""
        path = self.storage.join(self.out_dir, filename)
        csv = batch.to_dataframe().to_csv(index=False)
        try:
            self.storage.write_bytes(path, csv.encode("utf-8"))
        except OSError as err:
            raise ExportError(f"Failed to write {path}: {err}") from err
        return path
