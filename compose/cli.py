#!/usr/bin/env python3
"""
Command line front end for the chart compositor.

Usage:
    enc-composite load ENC_ROOT
    enc-composite export ENC_ROOT --bbox -71.55 -71.45 41.35 41.45 --scale-min 5000 \
        --layer LNDARE --layer DEPCNT -o out.geojson
    enc-composite export ENC_ROOT --tile 14 4926 10126 --scheme wmts \
        --scale-base 200000000 --layer LNDARE
    enc-composite stats

Environment Variables:
    ENC_CACHE_PATH: chart metadata cache directory (default ~/.encviz)
    ENC_CHART_EXT: chart file extension override
    ENC_LOAD_STRICT: abort a batch load on the first bad chart
    ENC_LAYER_POLICY: alternative layer policy YAML
    ENC_TELEMETRY / ENC_TELEMETRY_PATH: record export stats to DuckDB
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from functools import partial
from pathlib import Path

from charts.cache import MetadataCache
from charts.catalog import ChartCatalog
from charts.config import cache_enabled, cache_path
from charts.readers import reader_for
from charts.types import ChartError
from compose.export import ChartExporter, request_for_tile
from compose.types import ExportRequest
from geo.aoi import BBox
from geo.ops import GeometryEngine, GeometryError
from telemetry.singleton import get_store


logger = logging.getLogger(__name__)

EXIT_NO_DATA = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="enc-composite",
        description="Composite ENC chart cells into one best-scale dataset",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_catalog_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("root", type=Path, help="ENC_ROOT directory to scan recursively")
        p.add_argument("--reader", default="ogr", choices=["ogr", "geojson"],
                       help="Chart format (default: ogr, native S-57)")
        p.add_argument("--cache", type=Path, default=None,
                       help="Metadata cache directory (default: $ENC_CACHE_PATH or ~/.encviz)")
        p.add_argument("--no-cache", action="store_true", help="Always parse charts")
        p.add_argument("--strict", action="store_true",
                       help="Abort on the first chart that fails to load")

    p_load = sub.add_parser("load", help="Index charts and fill the metadata cache")
    add_catalog_args(p_load)

    p_export = sub.add_parser("export", help="Export composited layers as GeoJSON")
    add_catalog_args(p_export)
    area = p_export.add_mutually_exclusive_group(required=True)
    area.add_argument("--bbox", type=float, nargs=4,
                      metavar=("MINX", "MAXX", "MINY", "MAXY"), help="Query bbox (deg)")
    area.add_argument("--tile", type=int, nargs=3, metavar=("Z", "X", "Y"),
                      help="Query one map tile")
    p_export.add_argument("--scale-min", type=int, default=None,
                          help="Minimum compilation scale (required with --bbox)")
    p_export.add_argument("--scale-base", type=float, default=None,
                          help="Display scale at zoom 0 (required with --tile)")
    p_export.add_argument("--scheme", default="xyz", choices=["xyz", "wmts"],
                          help="Tile row origin: xyz=bottom-left, wmts=top-left")
    p_export.add_argument("--layer", action="append", required=True, dest="layers",
                          help="S-57 layer to export (repeatable)")
    p_export.add_argument("--sliver-area", type=float, default=0.0,
                          help="Ignore uncovered leftovers smaller than this (square degrees)")
    p_export.add_argument("-o", "--output", type=Path, default=None,
                          help="Output file (default: stdout)")

    sub.add_parser("stats", help="Summarize recorded export telemetry")
    return parser


def _catalog(args: argparse.Namespace) -> ChartCatalog:
    reader = reader_for(args.reader)
    cache = None
    if not args.no_cache and cache_enabled():
        cache = MetadataCache(root=(args.cache or cache_path()).expanduser())
    catalog = ChartCatalog(reader=reader, cache=cache)
    catalog.load_charts(args.root, strict=True if args.strict else None)
    return catalog


def _request(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ExportRequest:
    if args.tile is not None:
        if args.scale_base is None:
            parser.error("--scale-base is required with --tile")
        z, x, y = args.tile
        return request_for_tile(z, x, y, args.layers, scale_base=args.scale_base, scheme=args.scheme)

    if args.scale_min is None:
        parser.error("--scale-min is required with --bbox")
    min_x, max_x, min_y, max_y = args.bbox
    return ExportRequest(
        bbox=BBox.from_envelope((min_x, max_x, min_y, max_y)),
        scale_min=args.scale_min,
        layers=tuple(args.layers),
    )


def cmd_load(args: argparse.Namespace) -> int:
    catalog = _catalog(args)
    print(f"{len(catalog)} charts loaded")
    return 0


def cmd_export(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    request = _request(args, parser)
    catalog = _catalog(args)
    store = get_store()
    exporter = ChartExporter(
        catalog=catalog,
        reader=catalog.reader,
        engine_factory=partial(GeometryEngine, sliver_area=args.sliver_area),
        telemetry=store,
    )
    result = exporter.export(request)
    if store is not None:
        store.flush()
    if result is None:
        logger.error("No data available for the requested area and scale")
        return EXIT_NO_DATA

    payload = json.dumps(
        {"stats": result.stats(), "layers": result.to_geojson()},
        ensure_ascii=False,
    )
    if args.output is None:
        sys.stdout.write(payload + "\n")
    else:
        args.output.write_text(payload, encoding="utf-8")
        logger.info(f"Wrote {args.output} ({len(payload) / 1024:.1f} KB)")
    return 0


def cmd_stats() -> int:
    store = get_store()
    if store is None:
        logger.error("Telemetry is disabled (set ENC_TELEMETRY=1)")
        return 1
    print(json.dumps({"summary": store.summary(), "slowest": store.slowest(limit=10)}, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "load":
            return cmd_load(args)
        if args.command == "export":
            return cmd_export(args, parser)
        return cmd_stats()
    except (ChartError, GeometryError, FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
