"""
VerdeIndex CLI entrypoint: commands to plan and run spectral index
composites, list scene metadata and inspect the supported satellites.
"""

import sys
from typing import List

import click  # type: ignore
from click import echo

from verdeindex.core.config import ConfigManager, ConfigValidationError
from verdeindex.core.errors import EmptyCollection, ExportError, VerdeIndexError
from verdeindex.core.logger import Logger
from verdeindex.core.pipeline import PipelineRunner, build_plan
from verdeindex.core.storage import LocalFS
from verdeindex.geo.aoi import AOI
from verdeindex.ingestion import create_source
from verdeindex.ingestion.scenes import SceneCollectionBuilder
from verdeindex.ingestion.sensorspec import SATELLITES
from verdeindex.services.export import RasterExporter
from verdeindex.services.metadata import (
    format_metadata_table,
    metadata_filename,
    scene_metadata_table,
)

logger = Logger.get_logger(__name__)


def _load_aois(path: str) -> List[AOI]:
    if not ConfigManager.supports_aoi_file(path):
        raise click.BadParameter(
            f"Unsupported AOI format: {path} "
            f"(expected one of {', '.join(ConfigManager.SUPPORTED_INPUT_FORMATS)})"
        )
    aois = AOI.from_file(path)
    if not aois:
        raise click.BadParameter(f"No features found in {path}")
    return aois


def _load_config(path: str) -> ConfigManager:
    try:
        return ConfigManager(path)
    except ConfigValidationError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
def cli():
    """VerdeIndex: Landsat spectral index and FVC compositing."""
    Logger.setup()


@cli.command()
@click.argument("config", type=click.Path(exists=True))
@click.argument("aoi", type=click.Path(exists=True))
def plan(config, aoi):
    """Print the products CONFIG would derive for AOI without touching imagery."""
    cfg = _load_config(config)
    try:
        for area in _load_aois(aoi):
            echo(build_plan(cfg, area).describe().to_string(index=False))
    except (VerdeIndexError, ConfigValidationError, ValueError) as e:
        echo(f"❌  Invalid configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("config", type=click.Path(exists=True))
@click.argument("aoi", type=click.Path(exists=True))
@click.argument("manifest", type=click.Path(exists=True))
@click.option("--out-dir", "-o", default="output", help="Output directory.")
@click.option(
    "--workers", "-w", type=int, default=None, help="Scenes processed in parallel."
)
def run(config, aoi, manifest, out_dir, workers):
    """Composite the scenes listed in MANIFEST over AOI as configured by CONFIG."""
    cfg = _load_config(config)
    try:
        plans = [build_plan(cfg, area) for area in _load_aois(aoi)]
    except (VerdeIndexError, ConfigValidationError, ValueError) as e:
        echo(f"❌  Invalid configuration: {e}", err=True)
        sys.exit(1)

    source = create_source("geotiff", manifest=manifest, logger=logger)
    runner = PipelineRunner(source, max_workers=workers, logger=logger)
    exporter = RasterExporter(out_dir, logger=logger)
    try:
        for p in plans:
            batch = runner.evaluate(p)
            written = exporter.export_batch(batch)
            summary = exporter.write_summary(
                batch, filename=f"{p.aoi.area_name}_summary.csv"
            )
            for result in batch.skipped:
                echo(f"⚠️  No scenes for {result.task.label}; period skipped")
            for result in batch.failed:
                echo(f"❌  Period {result.task.label} failed", err=True)
            echo(f"✅  {len(written)} raster(s) and {summary} written")
    except ExportError as e:
        logger.error("Export failed", exc_info=True)
        echo(f"❌  Export failed: {e}", err=True)
        sys.exit(2)


@cli.command()
@click.argument("aoi", type=click.Path(exists=True))
@click.argument("manifest", type=click.Path(exists=True))
@click.option("--start", "-s", required=True, help="Start date (YYYY-MM-DD).")
@click.option("--end", "-e", required=True, help="End date, exclusive (YYYY-MM-DD).")
@click.option("--cloud-min", type=float, default=0, help="Minimum cloud cover (%).")
@click.option("--cloud-max", type=float, default=100, help="Maximum cloud cover (%).")
@click.option(
    "--satellite",
    "satellites",
    multiple=True,
    type=click.Choice(list(SATELLITES), case_sensitive=False),
    default=("L8", "L9"),
    show_default=True,
    help="Satellites to include; repeat for several.",
)
@click.option("--out-dir", "-o", default="output", help="Output directory.")
def metadata(aoi, manifest, start, end, cloud_min, cloud_max, satellites, out_dir):
    """Write the catalog of MANIFEST scenes over AOI as CSV and print it."""
    source = create_source("geotiff", manifest=manifest, logger=logger)
    builder = SceneCollectionBuilder(source, logger=logger)
    storage = LocalFS()
    for area in _load_aois(aoi):
        try:
            collection = builder.build(
                start,
                end,
                area.geometry,
                satellites,
                cloud_cover=(cloud_min, cloud_max),
            )
        except EmptyCollection as e:
            echo(f"⚠️  {e}")
            continue
        df = scene_metadata_table(collection)
        name = metadata_filename(area.area_name, start, end, cloud_min, cloud_max)
        path = storage.join(out_dir, name)
        try:
            storage.write_bytes(path, df.to_csv(index=False).encode("utf-8"))
        except OSError as e:
            echo(f"❌  Failed to write {path}: {e}", err=True)
            sys.exit(2)
        echo(format_metadata_table(df))
        labels = collection.path_row_labels
        echo(f"{len(labels)} path/row(s): {', '.join(labels)}")
        echo(f"✅  Metadata saved to {path}")


@cli.command()
def satellites():
    """List supported satellites, their collections and band names."""
    for sat in SATELLITES.values():
        end = sat.end_year if sat.end_year is not None else "present"
        bands = ", ".join(f"{role}={band}" for role, band in sat.bands.items())
        echo(
            f"{sat.satellite_id}  {sat.collection_id}  "
            f"{sat.start_year}-{end}  {sat.generation}  {bands}"
        )


if __name__ == "__main__":
    cli()
