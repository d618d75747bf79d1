from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat
    - edges are inclusive, so boxes sharing an edge intersect
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_envelope(cls, env: tuple[float, float, float, float]) -> "BBox":
        """
        Build from an OGR-style envelope: (minX, maxX, minY, maxY).
        """
        min_x, max_x, min_y, max_y = env
        return cls(min_lon=min_x, min_lat=min_y, max_lon=max_x, max_lat=max_y)

    @classmethod
    def from_bounds(cls, bounds: tuple[float, float, float, float]) -> "BBox":
        """
        Build from shapely-style bounds: (minx, miny, maxx, maxy).
        """
        min_x, min_y, max_x, max_y = bounds
        return cls(min_lon=min_x, min_lat=min_y, max_lon=max_x, max_lat=max_y)

    def normalized(self) -> "BBox":
        min_lon = min(self.min_lon, self.max_lon)
        max_lon = max(self.min_lon, self.max_lon)
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def envelope(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.max_lon, self.min_lat, self.max_lat)

    def bounds(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)

    def is_valid(self) -> bool:
        return self.min_lon <= self.max_lon and self.min_lat <= self.max_lat

    def intersects(self, other: "BBox") -> bool:
        """
        Envelope overlap test (not exact polygon intersection).
        """
        a = self.normalized()
        b = other.normalized()
        return (
            a.min_lon <= b.max_lon
            and b.min_lon <= a.max_lon
            and a.min_lat <= b.max_lat
            and b.min_lat <= a.max_lat
        )

    def merge(self, other: "BBox") -> "BBox":
        return BBox(
            min_lon=min(self.min_lon, other.min_lon),
            min_lat=min(self.min_lat, other.min_lat),
            max_lon=max(self.max_lon, other.max_lon),
            max_lat=max(self.max_lat, other.max_lat),
        )

    def contains(self, other: "BBox") -> bool:
        a = self.normalized()
        b = other.normalized()
        return (
            a.min_lon <= b.min_lon
            and b.max_lon <= a.max_lon
            and a.min_lat <= b.min_lat
            and b.max_lat <= a.max_lat
        )


WORLD = BBox(min_lon=-180.0, min_lat=-90.0, max_lon=180.0, max_lat=90.0)


def merge_all(boxes: Iterable[BBox]) -> BBox | None:
    """
    Union of rectangles; None when nothing was merged.
    """
    out: BBox | None = None
    for b in boxes:
        out = b if out is None else out.merge(b)
    return out
