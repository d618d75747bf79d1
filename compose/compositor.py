from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from charts.readers import ChartReader, coverage_rows
from charts.types import ChartFeature, ChartMetadata
from compose.policy import LayerPolicy, default_policy
from compose.types import CompositeState, ExportRequest, OutputLayer
from geo.ops import GeometryEngine


logger = logging.getLogger(__name__)


def initial_state(
    request: ExportRequest, *, engine: GeometryEngine, policy: LayerPolicy
) -> CompositeState:
    """
    Nothing served yet: the clip region is the whole query box, every layer empty.
    """
    return CompositeState(
        clip_region=engine.bbox_polygon(request.bbox),
        layers={name: OutputLayer(name=name, mode=policy.mode(name)) for name in request.layers},
    )


def process_chart(
    state: CompositeState,
    chart: ChartMetadata,
    *,
    reader: ChartReader,
    engine: GeometryEngine,
) -> CompositeState:
    """
    Fold one chart into the composite.

    Merge layers copy whole features and union them with any feature of the same
    id contributed by an earlier (more detailed) chart. Clip layers only keep the
    parts inside the current clip region and off the area earlier charts
    already served (their coverage edges included). Afterwards the chart's
    exact coverage polygon is erased from the clip region so less detailed
    charts cannot contribute there again.
    """
    logger.info(f" - Process: {chart.identity}")
    layers = dict(state.layers)
    with reader.open(chart.path) as src:
        for name, out in state.layers.items():
            rows = src.read_layer(name)
            if rows is None:
                # Inland cells lack e.g. depth contours; nothing to add here.
                continue
            if out.mode == "merge":
                layers[name] = merge_features(out, rows, engine=engine)
            else:
                layers[name] = clip_features(
                    out, rows, state.clip_region, engine=engine, served=state.served
                )

        coverage = engine.union_all(f.geometry for f in coverage_rows(src))
        region = engine.erase(state.clip_region, coverage)
        served = engine.union(state.served, coverage)

    return CompositeState(
        clip_region=region,
        layers=layers,
        processed=(*state.processed, chart.identity),
        served=served,
    )


def composite(
    charts: Iterable[ChartMetadata],
    request: ExportRequest,
    *,
    reader: ChartReader,
    engine: GeometryEngine | None = None,
    policy: LayerPolicy | None = None,
) -> CompositeState:
    """
    Fold charts (most detailed first) until the query area is fully served.

    Charts after the one that exhausts the clip region are never opened.
    """
    engine = engine or GeometryEngine()
    policy = policy or default_policy()
    state = initial_state(request, engine=engine, policy=policy)
    for chart in charts:
        state = process_chart(state, chart, reader=reader, engine=engine)
        if state.exhausted:
            logger.info(" - Complete coverage (STOP)")
            break
    return state


def merge_features(
    out: OutputLayer, rows: list[ChartFeature], *, engine: GeometryEngine
) -> OutputLayer:
    # Assumes a real-world feature keeps its id in every overlapping cell; the
    # data can't prove it, so colliding ids from unrelated features get unioned too.
    feats = list(out.features)
    index = {f.fid: i for i, f in enumerate(feats)}
    for f in rows:
        i = index.get(f.fid)
        if i is None:
            index[f.fid] = len(feats)
            feats.append(f)
            continue
        prev = feats[i]
        feats[i] = replace(prev, geometry=engine.union(prev.geometry, f.geometry))
    return replace(out, features=tuple(feats))


def clip_features(
    out: OutputLayer,
    rows: list[ChartFeature],
    region,
    *,
    engine: GeometryEngine,
    served=None,
) -> OutputLayer:
    clipped = engine.clip_many([f.geometry for f in rows], region)
    if served is not None:
        # The closed clip region still holds the coverage edges of earlier charts.
        clipped = engine.subtract_many(clipped, served)
    kept = [replace(f, geometry=g) for f, g in zip(rows, clipped) if g is not None]
    if not kept:
        return out
    return replace(out, features=(*out.features, *kept))
