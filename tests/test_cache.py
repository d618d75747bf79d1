from __future__ import annotations

from pathlib import Path

from shapely.geometry import box

from charts.cache import MetadataCache, format_record, parse_record
from charts.catalog import ChartCatalog
from charts.types import ChartMetadata
from geo.aoi import BBox


def test_cache_round_trip_after_disk_load(tmp_path, make_chart, reader):
    path = make_chart(
        "US5RI10M",
        scale=8000,
        coverage=[(box(-71.6, 41.3, -71.4, 41.5), 1)],
    )
    cache = MetadataCache(root=tmp_path / "cache")

    first = ChartCatalog(reader=reader, cache=cache).load_chart(path)
    assert reader.opened == ["US5RI10M"]
    assert (tmp_path / "cache" / "US5RI10M").is_file()

    # A fresh catalog is served from the cache alone.
    second_reader_calls = len(reader.opened)
    again = ChartCatalog(reader=reader, cache=cache).load_chart(path)
    assert len(reader.opened) == second_reader_calls
    assert again.scale == first.scale == 8000
    assert again.bbox == first.bbox == BBox.from_envelope((-71.6, -71.4, 41.3, 41.5))


def test_cache_record_for_another_path_is_a_miss(tmp_path, make_chart, reader):
    path = make_chart("US5RI10M", scale=8000, coverage=[(box(0, 0, 1, 1), 1)])
    cache = MetadataCache(root=tmp_path / "cache")
    ChartCatalog(reader=reader, cache=cache).load_chart(path)

    moved = tmp_path / "elsewhere" / "US5RI10M.json"
    moved.parent.mkdir()
    moved.write_bytes(path.read_bytes())

    assert cache.load(path) is not None
    assert cache.load(moved) is None

    ChartCatalog(reader=reader, cache=cache).load_chart(moved)
    assert reader.opened == ["US5RI10M", "US5RI10M"]
    # Write-through replaced the record with the new source path.
    assert cache.load(moved) is not None
    assert cache.load(path) is None


def test_garbled_or_short_records_are_misses(tmp_path):
    cache = MetadataCache(root=tmp_path)
    chart = Path("/charts/US5RI10M.000")

    (tmp_path / "US5RI10M").write_text(f"{chart}\n8000\n-71.6\n", encoding="utf-8")
    assert cache.load(chart) is None

    (tmp_path / "US5RI10M").write_text(f"{chart}\neight\n-71.6\n-71.4\n41.3\n41.5\n", encoding="utf-8")
    assert cache.load(chart) is None

    (tmp_path / "US5RI10M").write_text(f"{chart}\n0\n-71.6\n-71.4\n41.3\n41.5\n", encoding="utf-8")
    assert cache.load(chart) is None

    (tmp_path / "US5RI10M").write_text(f"{chart}\n8000\n-71.6\n-71.4\n41.3\n41.5\n", encoding="utf-8")
    meta = cache.load(chart)
    assert meta is not None
    assert meta.scale == 8000
    assert meta.path == chart


def test_missing_record_is_a_miss(tmp_path):
    assert MetadataCache(root=tmp_path / "nope").load(Path("/charts/X.000")) is None


def test_chart_without_coverage_round_trips_as_none():
    meta = ChartMetadata(path=Path("/charts/INLAND.000"), scale=12000, bbox=None)
    raw = format_record(meta)
    assert raw.splitlines()[2:] == ["inf", "-inf", "inf", "-inf"]
    assert parse_record(raw) == meta


def test_save_failure_is_not_fatal(tmp_path):
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory", encoding="utf-8")
    cache = MetadataCache(root=blocker)
    meta = ChartMetadata(path=Path("/charts/A.000"), scale=8000, bbox=None)
    assert cache.save(meta) is False


def test_clear_removes_records(tmp_path):
    cache = MetadataCache(root=tmp_path / "cache")
    for name in ("A", "B"):
        cache.save(ChartMetadata(path=Path(f"/charts/{name}.000"), scale=8000, bbox=None))
    assert cache.clear() == 2
    assert cache.load(Path("/charts/A.000")) is None
