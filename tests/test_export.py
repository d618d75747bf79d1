from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from shapely.geometry import box

from charts.catalog import ChartCatalog
from chart_fixtures import bbox_of
from compose.export import ChartExporter
from compose.policy import LayerPolicy
from compose.types import ExportRequest


POLICY = LayerPolicy(merge_layers=frozenset({"LNDARE"}))


@pytest.fixture
def exporter(scenario_charts, reader):
    catalog = ChartCatalog(reader=reader)
    for p in scenario_charts:
        catalog.load_chart(p)
    reader.opened.clear()
    return ChartExporter(catalog=catalog, reader=reader, policy=POLICY)


def test_export_inside_detailed_chart_is_complete(exporter):
    request = ExportRequest(
        bbox=bbox_of(-71.55, -71.45, 41.35, 41.45),
        scale_min=5000,
        layers=("LNDARE", " LNDARE", "BOYLAT"),
    )
    result = exporter.export(request)

    assert result is not None
    assert result.request.layers == ("LNDARE", "BOYLAT")
    assert result.selected == ("US5RI10M", "US4RI01M")
    assert result.processed == ("US5RI10M",)
    assert result.complete
    assert result.uncovered_km2 == 0.0

    # A layer no chart carries comes back empty, not missing.
    assert len(result.get("BOYLAT")) == 0
    fc = result.layer_geojson("LNDARE")
    assert fc["type"] == "FeatureCollection"
    assert fc["features"][0]["properties"] == {"OBJNAM": "Prudence", "CHART_ID": "US5RI10M"}
    with pytest.raises(KeyError):
        result.layer_geojson("DEPCNT")

    stats = result.stats()
    assert stats["featureCounts"] == {"LNDARE": 1, "BOYLAT": 0}
    assert set(stats["timingsMs"]) == {"select", "composite", "total"}


def test_export_reports_uncovered_area(exporter, reader):
    # West strip (-71.8 .. -71.7) is outside every chart.
    request = ExportRequest(bbox=bbox_of(-71.8, -71.5, 41.3, 41.5), scale_min=0, layers=("DEPCNT",))
    result = exporter.export(request)

    assert result is not None
    assert result.processed == ("US5RI10M", "US4RI01M")
    assert reader.opened == ["US5RI10M", "US4RI01M"]
    assert not result.complete
    assert result.uncovered.equals(box(-71.8, 41.3, -71.7, 41.5))
    # ~8.3 km x 22.2 km at 41.4N
    assert 150.0 < result.uncovered_km2 < 220.0


def test_no_chart_selected_means_no_data(exporter, reader):
    far = ExportRequest(bbox=bbox_of(10.0, 11.0, 50.0, 51.0), scale_min=0, layers=("LNDARE",))
    assert exporter.export(far) is None

    too_detailed = ExportRequest(bbox=bbox_of(-71.55, -71.45, 41.35, 41.45), scale_min=50000, layers=("LNDARE",))
    assert exporter.export(too_detailed) is None
    assert reader.opened == []


def test_request_validation():
    with pytest.raises(ValueError):
        ExportRequest(bbox=bbox_of(0, 1, 0, 1), scale_min=5000.0, layers=("LNDARE",))
    req = ExportRequest(bbox=bbox_of(1, 0, 1, 0), scale_min=0, layers=())
    assert req.bbox == bbox_of(0, 1, 0, 1)


def _fingerprint(result):
    return (
        result.processed,
        result.complete,
        round(result.uncovered_km2, 6),
        result.uncovered.wkt,
        result.to_geojson(),
    )


def test_concurrent_exports_match_sequential(exporter):
    requests = [
        ExportRequest(bbox=bbox_of(-71.55, -71.45, 41.35, 41.45), scale_min=5000, layers=("LNDARE", "DEPCNT")),
        ExportRequest(bbox=bbox_of(-71.8, -71.5, 41.3, 41.5), scale_min=0, layers=("DEPCNT", "LNDARE")),
        ExportRequest(bbox=bbox_of(-71.7, -71.3, 41.2, 41.6), scale_min=10000, layers=("DEPCNT",)),
    ]
    expected = [_fingerprint(exporter.export(r)) for r in requests]

    jobs = requests * 8
    with ThreadPoolExecutor(max_workers=6) as pool:
        got = list(pool.map(lambda r: _fingerprint(exporter.export(r)), jobs))

    assert got == expected * 8
