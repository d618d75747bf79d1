from __future__ import annotations

import json

import pytest
from shapely.geometry import box

from chart_fixtures import write_chart
from charts.readers import GeoJSONChartReader, OgrChartReader, coverage_rows, reader_for
from charts.types import ChartError


def test_reader_for_kinds():
    assert isinstance(reader_for("ogr"), OgrChartReader)
    assert isinstance(reader_for(" S57 "), OgrChartReader)
    assert isinstance(reader_for("geojson"), GeoJSONChartReader)
    assert reader_for("ogr").extension == ".000"
    with pytest.raises(ValueError):
        reader_for("shapefile")


def test_geojson_reader_layers_and_ids(tmp_path):
    path = tmp_path / "US5RI10M.json"
    layers = {
        "SOUNDG": {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [-71.5, 41.4]}, "properties": {"DEPTH": 3.5}},
                {"type": "Feature", "id": 42, "geometry": None, "properties": None},
            ],
        }
    }
    path.write_text(json.dumps({"layers": layers}), encoding="utf-8")

    with GeoJSONChartReader().open(path) as src:
        assert src.identity == "US5RI10M"
        assert src.has_layer("SOUNDG")
        assert not src.has_layer("DEPCNT")
        assert src.read_layer("DEPCNT") is None

        rows = src.read_layer("SOUNDG")
        assert [r.fid for r in rows] == [0, 42]
        assert rows[0].geometry.x == -71.5
        assert rows[0].props == {"DEPTH": 3.5}
        assert rows[1].geometry is None
        assert rows[1].chart == "US5RI10M"

    with pytest.raises(ChartError):
        src.read_layer("SOUNDG")


def test_geojson_reader_rejects_bad_files(tmp_path):
    missing = tmp_path / "missing.json"
    with pytest.raises(ChartError):
        GeoJSONChartReader().open(missing)

    garbled = tmp_path / "garbled.json"
    garbled.write_text("{not json", encoding="utf-8")
    with pytest.raises(ChartError):
        GeoJSONChartReader().open(garbled)

    no_layers = tmp_path / "nolayers.json"
    no_layers.write_text(json.dumps({"type": "FeatureCollection"}), encoding="utf-8")
    with pytest.raises(ChartError):
        GeoJSONChartReader().open(no_layers)


def test_ogr_reader_rejects_non_chart(tmp_path):
    pytest.importorskip("osgeo")
    path = tmp_path / "US5RI10M.000"
    path.write_bytes(b"not an ISO 8211 file")
    with pytest.raises(ChartError):
        OgrChartReader().open(path)


def test_geojson_reader_rejects_malformed_layers(tmp_path):
    path = tmp_path / "BADSHAPE.json"
    layers = {
        "DSID": [],
        "M_COVR": {"type": "FeatureCollection", "features": {"0": {}}},
        "SOUNDG": {"type": "FeatureCollection", "features": [42]},
        "DEPCNT": {"type": "FeatureCollection", "features": [{"geometry": None, "properties": ["VALDCO"]}]},
        "LNDARE": {"type": "FeatureCollection"},
    }
    path.write_text(json.dumps({"layers": layers}), encoding="utf-8")

    with GeoJSONChartReader().open(path) as src:
        for name in ("DSID", "M_COVR", "SOUNDG", "DEPCNT"):
            with pytest.raises(ChartError):
                src.read_layer(name)
        assert src.read_layer("LNDARE") == []


def test_coverage_rows_keep_available_coverage_only(tmp_path):
    path = write_chart(
        tmp_path,
        "US5RI10M",
        scale=8000,
        coverage=[(box(0, 0, 1, 1), 1), (box(1, 0, 2, 1), 2)],
    )
    with GeoJSONChartReader().open(path) as src:
        rows = coverage_rows(src)
    assert [r.props["CATCOV"] for r in rows] == [1]
    assert rows[0].geometry.equals(box(0, 0, 1, 1))


def test_ogr_reader_passes_s57_options_per_dataset(tmp_path):
    reader = OgrChartReader()
    assert reader.open_options == ["SPLIT_MULTIPOINT=ON", "ADD_SOUNDG_DEPTH=ON"]
    assert OgrChartReader(open_options=[]).open_options == []

    gdal = pytest.importorskip("osgeo.gdal")
    before = gdal.GetConfigOption("OGR_S57_OPTIONS")
    path = tmp_path / "US5RI10M.000"
    path.write_bytes(b"not an ISO 8211 file")
    with pytest.raises(ChartError):
        reader.open(path)
    assert gdal.GetConfigOption("OGR_S57_OPTIONS") == before
