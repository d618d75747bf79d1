from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from charts.catalog import ChartCatalog
from charts.readers import ChartReader
from compose.compositor import composite
from compose.policy import LayerPolicy, default_policy
from compose.select import select_charts
from compose.types import ExportRequest, ExportResult
from geo.ops import GeometryEngine
from geo.tiles import TileScheme, oversample, scale_min_for_tile, tile_bbox_4326
from telemetry.store import TelemetryStore


logger = logging.getLogger(__name__)


@dataclass
class ChartExporter:
    """
    Export the best available chart data for a bbox as one composite dataset.

    Each export gets its own GeometryEngine (from `engine_factory`) and works on a
    catalog snapshot, so exports may run concurrently on separate threads.
    """

    catalog: ChartCatalog
    reader: ChartReader
    policy: LayerPolicy | None = None
    engine_factory: Callable[[], GeometryEngine] = field(default=GeometryEngine)
    telemetry: TelemetryStore | None = None

    def export(self, request: ExportRequest) -> ExportResult | None:
        """
        None means no chart matched (no data available); a result with empty
        layers means charts matched but held nothing for those layers.
        """
        t0 = time.perf_counter()
        b = request.bbox
        logger.info(
            f"Filter: Scale={request.scale_min}, "
            f"BBOX=({b.min_lon:g} to {b.max_lon:g}),({b.min_lat:g} to {b.max_lat:g})"
        )

        charts = self.catalog.snapshot()
        selected = select_charts(charts, request.bbox, request.scale_min)
        t_select = time.perf_counter()
        if not selected:
            logger.info(f"Selected 0/{len(charts)} charts: no data available")
            elapsed = _ms(t0, t_select)
            self._record(
                request,
                n_selected=0,
                n_processed=0,
                complete=False,
                uncovered_km2=0.0,
                stats={"timingsMs": {"select": elapsed, "total": elapsed}},
            )
            return None

        logger.info(f"Selected {len(selected)}/{len(charts)} charts:")
        for chart in selected:
            logger.info(f" - ({chart.scale}) {chart.path}")

        engine = self.engine_factory()
        state = composite(
            selected,
            request,
            reader=self.reader,
            engine=engine,
            policy=self.policy or default_policy(),
        )
        t_composite = time.perf_counter()
        uncovered_km2 = engine.area_km2(state.clip_region)
        t_done = time.perf_counter()

        result = ExportResult(
            request=request,
            layers=tuple(state.layers[name] for name in request.layers),
            selected=tuple(c.identity for c in selected),
            processed=state.processed,
            uncovered=state.clip_region,
            uncovered_km2=uncovered_km2,
            timings_ms={
                "select": _ms(t0, t_select),
                "composite": _ms(t_select, t_composite),
                "total": _ms(t0, t_done),
            },
        )
        stats = result.stats()
        stats["geometryOps"] = engine.ops
        self._record(
            request,
            n_selected=len(result.selected),
            n_processed=len(result.processed),
            complete=result.complete,
            uncovered_km2=uncovered_km2,
            stats=stats,
        )
        return result

    def _record(self, request: ExportRequest, **kw) -> None:
        if self.telemetry is None:
            return
        self.telemetry.record(
            bbox=request.bbox.bounds(),
            scale_min=request.scale_min,
            n_layers=len(request.layers),
            **kw,
        )


def request_for_tile(
    zoom: int,
    x: int,
    y: int,
    layers: Iterable[str],
    *,
    scale_base: float,
    scheme: TileScheme = "xyz",
    oversample_fraction: float = 0.1,
) -> ExportRequest:
    """
    Export request for one map tile: tile bounds grown a little so symbols near
    the edge are not cut, and a minimum scale derived from zoom and latitude.
    """
    bbox = oversample(tile_bbox_4326(zoom, x, y, scheme=scheme), oversample_fraction)
    return ExportRequest(
        bbox=bbox,
        scale_min=scale_min_for_tile(scale_base, bbox, zoom),
        layers=tuple(layers),
    )


def _ms(t_start: float, t_end: float) -> float:
    return round((t_end - t_start) * 1000.0, 3)
