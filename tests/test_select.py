from __future__ import annotations

from pathlib import Path

from charts.catalog import ChartCatalog
from charts.types import ChartMetadata
from chart_fixtures import bbox_of
from compose.select import select_charts
from geo.aoi import WORLD


def _chart(identity: str, scale: int, bbox) -> ChartMetadata:
    return ChartMetadata(path=Path(f"/enc/{identity}/{identity}.000"), scale=scale, bbox=bbox)


CHARTS = [
    _chart("US3EC08M", 80000, bbox_of(-72.0, -70.0, 40.5, 42.0)),
    _chart("US5RI10M", 8000, bbox_of(-71.6, -71.4, 41.3, 41.5)),
    _chart("US4RI01M", 20000, bbox_of(-71.7, -71.3, 41.2, 41.6)),
    _chart("US5RI11M", 8000, bbox_of(-71.4, -71.2, 41.3, 41.5)),
    _chart("INLAND01", 12000, None),
]


def test_world_query_returns_every_chart_with_coverage():
    out = select_charts(CHARTS, WORLD, 0)
    assert [c.identity for c in out] == ["US5RI10M", "US5RI11M", "US4RI01M", "US3EC08M"]


def test_scale_min_drops_more_detailed_charts():
    out = select_charts(CHARTS, WORLD, 20000)
    assert [c.identity for c in out] == ["US4RI01M", "US3EC08M"]
    assert all(c.scale >= 20000 for c in out)


def test_bbox_filter_and_touching_edge():
    # Shares only the lon=-71.4 edge with US5RI10M and US5RI11M.
    out = select_charts(CHARTS, bbox_of(-71.45, -71.4, 41.35, 41.45), 0)
    assert [c.identity for c in out] == ["US5RI10M", "US5RI11M", "US4RI01M", "US3EC08M"]

    out = select_charts(CHARTS, bbox_of(10.0, 11.0, 50.0, 51.0), 0)
    assert out == []


def test_catalog_select_on_scenario(scenario_charts, reader):
    catalog = ChartCatalog(reader=reader)
    for path in scenario_charts:
        catalog.load_chart(path)

    query = bbox_of(-71.55, -71.45, 41.35, 41.45)
    assert [c.identity for c in catalog.select(query, 5000)] == ["US5RI10M", "US4RI01M"]
    assert [c.identity for c in catalog.select(query, 10000)] == ["US4RI01M"]
    assert catalog.select(query, 50000) == []
