from __future__ import annotations

"""Two-phase processing pipeline.

:func:`build_plan` turns a validated configuration and an AOI into an
immutable :class:`PipelinePlan` without touching imagery.
:meth:`PipelineRunner.evaluate` then executes every period of the plan
independently: an empty or failing period never affects the others.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd

from verdeindex.analytics.composite import TemporalAggregator, TemporalComposite
from verdeindex.analytics.fvc import (
    FractionalCover,
    FractionalCoverModel,
    ThresholdEstimator,
    ThresholdPair,
)
from verdeindex.analytics.raster import Raster
from verdeindex.analytics.results import RegionStats, StatsResult
from verdeindex.analytics.stats import RegionStatsReducer
from verdeindex.core.config import ConfigManager, EngineConfig, ThresholdConfig
from verdeindex.core.errors import DegenerateThreshold, EmptyCollection
from verdeindex.core.logger import Logger
from verdeindex.geo.aoi import AOI
from verdeindex.ingestion.base import BaseSceneSource
from verdeindex.ingestion.scenes import Scene, SceneCollection, SceneCollectionBuilder

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


def output_name(area: str, product: str, statistic: str, start: date, end: date) -> str:
    """``<area>_<PRODUCT>_<statistic>_<YYYY-MM-DD>_<YYYY-MM-DD>``."""
    return (
        f"{area}_{product.upper()}_{statistic.lower()}_"
        f"{start.isoformat()}_{end.isoformat()}"
    )


@dataclass(frozen=True)
class ProductRequest:
    """One raster product requested for a period."""

    product: str
    statistic: str
    output_name: str

    @property
    def index(self) -> str:
        """Spectral index the product is computed from."""
        return "ndvi" if self.product == "fvc" else self.product


@dataclass(frozen=True)
class PeriodTask:
    """A ``[start, end)`` window and the products to derive for it."""

    start: date
    end: date
    products: Tuple[ProductRequest, ...]

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()}_{self.end.isoformat()}"

    @property
    def indices(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(p.index for p in self.products))

    @property
    def wants_fvc(self) -> bool:
        return any(p.product == "fvc" for p in self.products)


@dataclass(frozen=True)
class PipelinePlan:
    """Everything needed to evaluate a batch; inspectable without imagery."""

    aoi: AOI
    satellites: Tuple[str, ...]
    statistic: str
    cloud_cover: Tuple[float, float]
    scale: float
    max_pixels: int
    thresholds: ThresholdConfig
    periods: Tuple[PeriodTask, ...]

    def describe(self) -> pd.DataFrame:
        """One row per (period, product) with its output name."""
        return pd.DataFrame(
            [
                {
                    "start": task.start.isoformat(),
                    "end": task.end.isoformat(),
                    "product": req.product,
                    "statistic": req.statistic,
                    "output_name": req.output_name,
                }
                for task in self.periods
                for req in task.products
            ]
        )


def build_plan(config: EngineConfig | ConfigManager, aoi: AOI) -> PipelinePlan:
    """
    Build the evaluation plan. Configuration errors surface here, before any
    scene is listed.
    """
    if isinstance(config, ConfigManager):
        config = config.engine_config()
    area = aoi.area_name
    tasks = []
    for start, end in config.periods:
        requests = tuple(
            ProductRequest(
                product=product,
                statistic=config.statistic,
                output_name=output_name(area, product, config.statistic, start, end),
            )
            for product in config.products
        )
        tasks.append(PeriodTask(start=start, end=end, products=requests))
    return PipelinePlan(
        aoi=aoi,
        satellites=config.satellites,
        statistic=config.statistic,
        cloud_cover=config.cloud_cover,
        scale=config.scale,
        max_pixels=config.max_pixels,
        thresholds=config.thresholds,
        periods=tuple(tasks),
    )


@dataclass
class PeriodResult:
    """Outcome of one period."""

    task: PeriodTask
    status: str = STATUS_OK
    scene_count: int = 0
    path_rows: Tuple[str, ...] = ()
    composites: Dict[str, TemporalComposite] = field(default_factory=dict)
    fvc: Optional[FractionalCover] = None
    stats: Dict[str, RegionStats] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def thresholds(self) -> Optional[ThresholdPair]:
        return self.fvc.thresholds if self.fvc else None

    def rasters(self) -> Dict[str, Raster]:
        """Output name -> raster for every product that was computed."""
        out: Dict[str, Raster] = {}
        for req in self.task.products:
            if req.product == "fvc":
                if self.fvc is not None:
                    out[req.output_name] = self.fvc.raster
            elif req.product in self.composites:
                out[req.output_name] = self.composites[req.product].raster
        return out

    def summary_rows(self) -> List[Dict]:
        base = {
            "start": self.task.start.isoformat(),
            "end": self.task.end.isoformat(),
            "status": self.status,
            "scene_count": self.scene_count,
            "path_row_count": len(self.path_rows),
            "path_rows": " ".join(self.path_rows),
        }
        rows = []
        for req in self.task.products:
            row = {**base, "product": req.product, "output_name": req.output_name}
            stats = self.stats.get(req.product)
            if stats is not None:
                row["mean"] = stats.get("mean")
                row["pixel_count"] = stats.pixel_count
                row["approximate"] = stats.approximate
            if req.product == "fvc" and self.thresholds is not None:
                row["ndvi_soil"] = self.thresholds.ndvi_soil
                row["ndvi_veg"] = self.thresholds.ndvi_veg
                row["threshold_source"] = self.thresholds.source
            if req.product in self.errors:
                row["error"] = self.errors[req.product]
            rows.append(row)
        return rows


@dataclass
class BatchResult:
    """Results of all periods of a plan, in plan order."""

    plan: PipelinePlan
    periods: List[PeriodResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[PeriodResult]:
        return [p for p in self.periods if p.status in (STATUS_OK, STATUS_PARTIAL)]

    @property
    def skipped(self) -> List[PeriodResult]:
        return [p for p in self.periods if p.status == STATUS_EMPTY]

    @property
    def failed(self) -> List[PeriodResult]:
        return [p for p in self.periods if p.status == STATUS_FAILED]

    def to_stats_result(self) -> StatsResult:
        return StatsResult([row for p in self.periods for row in p.summary_rows()])

    def to_dataframe(self) -> pd.DataFrame:
        return self.to_stats_result().to_dataframe()


class PipelineRunner:
    """Evaluate a :class:`PipelinePlan` against a scene source."""

    def __init__(
        self,
        source: BaseSceneSource,
        max_workers: Optional[int] = None,
        logger=None,
    ):
        self.source = source
        self.max_workers = max_workers
        self.logger = logger or Logger.get_logger(__name__)
        self.builder = SceneCollectionBuilder(source, logger=self.logger)

    def evaluate(self, plan: PipelinePlan) -> BatchResult:
        """Run every period; failures are recorded per period, never raised."""
        batch = BatchResult(plan=plan)
        for task in plan.periods:
            self.logger.info("Processing period %s to %s", task.start, task.end)
            # pylint: disable=broad-exception-caught
            try:
                result = self._evaluate_period(plan, task)
            except Exception as err:
                self.logger.exception("Period %s failed: %s", task.label, err)
                result = PeriodResult(
                    task=task,
                    status=STATUS_FAILED,
                    errors={p.product: str(err) for p in task.products},
                )
            batch.periods.append(result)
        self.logger.info(
            "Batch done: %d succeeded, %d empty, %d failed",
            len(batch.succeeded),
            len(batch.skipped),
            len(batch.failed),
        )
        return batch

    def collect(self, plan: PipelinePlan, task: PeriodTask) -> SceneCollection:
        return self.builder.build(
            task.start,
            task.end,
            plan.aoi.geometry,
            plan.satellites,
            cloud_cover=plan.cloud_cover,
        )

    def _index_rasters(self, scenes: List[Scene], index: str) -> List[Raster]:
        def _one(scene: Scene) -> Raster:
            return scene.cloud_mask().compute_index(index)

        if self.max_workers == 1 or len(scenes) < 2:
            return [_one(s) for s in scenes]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(_one, scenes))

    def _evaluate_period(self, plan: PipelinePlan, task: PeriodTask) -> PeriodResult:
        try:
            collection = self.collect(plan, task)
        except EmptyCollection as err:
            self.logger.warning("%s; skipping period", err)
            return PeriodResult(task=task, status=STATUS_EMPTY)

        result = PeriodResult(
            task=task,
            scene_count=collection.size,
            path_rows=tuple(collection.path_row_labels),
        )
        self.logger.info(
            "%d scene(s) over %d path/row(s): %s",
            collection.size,
            len(collection.path_rows),
            ", ".join(result.path_rows),
        )

        aggregator = TemporalAggregator(plan.statistic, logger=self.logger)
        reducer = RegionStatsReducer(
            scale=plan.scale, max_pixels=plan.max_pixels, logger=self.logger
        )
        scenes = list(collection)
        try:
            for index in task.indices:
                rasters = self._index_rasters(scenes, index)
                composite = aggregator.aggregate(rasters, index)
                result.composites[index] = composite
                result.stats[index] = reducer.reduce(
                    composite.raster, plan.aoi.geometry
                )
        finally:
            # drop the band arrays read for this period
            for scene in scenes:
                scene.pixels.release()

        if task.wants_fvc:
            self._fractional_cover(plan, result, reducer)
        return result

    def _fractional_cover(
        self, plan: PipelinePlan, result: PeriodResult, reducer: RegionStatsReducer
    ) -> None:
        cfg = plan.thresholds
        ndvi = result.composites["ndvi"].raster
        estimator = ThresholdEstimator(
            cfg.mode,
            cfg.ndvi_soil,
            cfg.ndvi_veg,
            scale=plan.scale,
            max_pixels=plan.max_pixels,
            min_valid_pixels=cfg.min_valid_pixels,
            logger=self.logger,
        )
        pair = estimator.resolve(ndvi, plan.aoi.geometry)
        try:
            model = FractionalCoverModel(pair)
        except DegenerateThreshold as err:
            self.logger.error("FVC for %s not computed: %s", result.task.label, err)
            result.errors["fvc"] = str(err)
            result.status = STATUS_PARTIAL
            return
        result.fvc = model.apply(ndvi)
        result.stats["fvc"] = reducer.reduce(result.fvc.raster, plan.aoi.geometry)
