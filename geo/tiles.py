from __future__ import annotations

import math
from typing import Literal

from geo.aoi import BBox


TileScheme = Literal["xyz", "wmts"]


def tile_bbox_4326(zoom: int, x: int, y: int, *, scheme: TileScheme = "xyz") -> BBox:
    """
    Tile (z/x/y) bounds as a WGS84 lon/lat bbox.

    - "xyz": rows counted from the bottom-left of the map (TMS style)
    - "wmts": rows counted from the top-left (slippy/WMTS style)
    """
    z = int(zoom)
    n = 2**z
    x = int(x)
    y = int(y)
    if not (0 <= x < n and 0 <= y < n):
        raise ValueError(f"Tile {z}/{x}/{y} is outside the {n}x{n} grid")

    if scheme == "xyz":
        # Everything below is top-left based.
        y = n - y - 1
    elif scheme != "wmts":
        raise ValueError(f"Unknown tile scheme: {scheme}")

    lon_left = x / n * 360.0 - 180.0
    lon_right = (x + 1) / n * 360.0 - 180.0

    def lat_from_tile_y(tile_y: int) -> float:
        # https://wiki.openstreetmap.org/wiki/Slippy_map_tilenames
        t = math.pi * (1.0 - 2.0 * tile_y / n)
        return math.degrees(math.atan(math.sinh(t)))

    lat_top = lat_from_tile_y(y)
    lat_bottom = lat_from_tile_y(y + 1)

    return BBox(
        min_lon=lon_left, min_lat=lat_bottom, max_lon=lon_right, max_lat=lat_top
    ).normalized()


def oversample(bbox: BBox, fraction: float = 0.1) -> BBox:
    """
    Grow a bbox by `fraction` of its size (half on each side) so labels and
    symbols near a tile edge are not cut between neighbouring tiles.
    """
    b = bbox.normalized()
    dx = fraction * (b.max_lon - b.min_lon) / 2.0
    dy = fraction * (b.max_lat - b.min_lat) / 2.0
    return BBox(
        min_lon=b.min_lon - dx,
        min_lat=b.min_lat - dy,
        max_lon=b.max_lon + dx,
        max_lat=b.max_lat + dy,
    )


def scale_min_for_tile(scale_base: float, bbox: BBox, zoom: int) -> int:
    """
    Minimum compilation scale worth drawing at this zoom.

    scale_base is the display scale at zoom 0 on the equator; it shrinks with
    cos(latitude) and halves per zoom level.
    """
    b = bbox.normalized()
    avg_lat = (b.min_lat + b.max_lat) / 2.0
    return int(round(float(scale_base) * math.cos(math.radians(avg_lat)) / (2 ** int(zoom))))
