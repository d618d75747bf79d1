from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable

from pyproj import Geod
from shapely.geometry import GeometryCollection, MultiLineString, MultiPoint, MultiPolygon, Polygon
from shapely.geometry import box as shapely_box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.prepared import prep

from geo.aoi import BBox


class GeometryError(RuntimeError):
    """A geometry operation (clip, erase, union) failed."""


@lru_cache(maxsize=1)
def wgs84_geod() -> Geod:
    return Geod(ellps="WGS84")


@dataclass
class GeometryEngine:
    """
    Vector geometry primitives used by the compositor.

    One engine per export: it is passed in explicitly instead of living at module
    level, so concurrent exports never share it.

    Geospatial note:
    - All geometry is EPSG:4326 (lon/lat degrees); clip/erase/union work on degrees.
    - Areas for reporting are geodesic (WGS84 ellipsoid), not planar degrees².
    """

    # Drop erase leftovers below this planar area (deg²). 0 keeps everything non-empty.
    sliver_area: float = 0.0
    ops: int = field(default=0, repr=False)

    def bbox_polygon(self, bbox: BBox) -> Polygon:
        b = bbox.normalized()
        return shapely_box(b.min_lon, b.min_lat, b.max_lon, b.max_lat)

    def envelope(self, geom: BaseGeometry) -> BBox | None:
        if geom is None or geom.is_empty:
            return None
        return BBox.from_bounds(geom.bounds)

    def intersects(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        return bool(a.intersects(b))

    def clip(self, geom: BaseGeometry, region: BaseGeometry) -> BaseGeometry | None:
        """
        Portion of geom inside region; None if nothing is left.
        """
        self.ops += 1
        if geom is None or geom.is_empty or region.is_empty:
            return None
        try:
            if region.covers(geom):
                return geom
            out = geom.intersection(region)
        except Exception as e:
            raise GeometryError(f"Cannot clip {geom.geom_type}: {e}") from e
        out = _keep_dimension(out, _dimension(geom))
        if out.is_empty:
            return None
        return out

    def clip_many(
        self, geoms: Iterable[BaseGeometry], region: BaseGeometry
    ) -> list[BaseGeometry | None]:
        """
        Clip a batch against one region; a prepared region rejects disjoint inputs fast.
        """
        if region.is_empty:
            return [None for _ in geoms]
        prepared = prep(region)
        out: list[BaseGeometry | None] = []
        for g in geoms:
            if g is None or g.is_empty or not prepared.intersects(g):
                out.append(None)
                continue
            out.append(self.clip(g, region))
        return out

    def erase(self, region: BaseGeometry, coverage: BaseGeometry) -> BaseGeometry:
        """
        region minus coverage, kept polygonal.
        """
        self.ops += 1
        if region.is_empty or coverage is None or coverage.is_empty:
            return region
        try:
            out = region.difference(coverage)
        except Exception as e:
            raise GeometryError(f"Cannot erase coverage from clip region: {e}") from e
        out = _keep_dimension(out, 2)
        if self.sliver_area > 0.0 and not out.is_empty:
            parts = [p for p in _parts(out) if p.area > self.sliver_area]
            out = unary_union(parts) if parts else Polygon()
        return out

    def subtract(self, geom: BaseGeometry, served: BaseGeometry) -> BaseGeometry | None:
        """
        Portion of geom outside served, in geom's dimension; None if nothing is left.
        """
        self.ops += 1
        if geom is None or geom.is_empty:
            return None
        if served is None or served.is_empty:
            return geom
        try:
            out = geom.difference(served)
        except Exception as e:
            raise GeometryError(f"Cannot subtract served area from {geom.geom_type}: {e}") from e
        out = _keep_dimension(out, _dimension(geom))
        if out.is_empty:
            return None
        return out

    def subtract_many(
        self, geoms: Iterable[BaseGeometry | None], served: BaseGeometry
    ) -> list[BaseGeometry | None]:
        if served is None or served.is_empty:
            return list(geoms)
        prepared = prep(served)
        return [
            self.subtract(g, served) if g is not None and prepared.intersects(g) else g
            for g in geoms
        ]

    def union(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        self.ops += 1
        if a is None or a.is_empty:
            return b
        if b is None or b.is_empty:
            return a
        try:
            return a.union(b)
        except Exception as e:
            raise GeometryError(f"Cannot union {a.geom_type} with {b.geom_type}: {e}") from e

    def union_all(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        polys = [fix_polygon(g) for g in geoms if g is not None and not g.is_empty]
        if not polys:
            return Polygon()
        self.ops += 1
        try:
            u = unary_union(polys)
        except Exception as e:
            raise GeometryError(f"Cannot union {len(polys)} geometries: {e}") from e
        return _keep_dimension(u, 2)

    def area_km2(self, geom: BaseGeometry) -> float:
        if geom is None or geom.is_empty:
            return 0.0
        area_m2, _perimeter = wgs84_geod().geometry_area_perimeter(geom)
        return abs(float(area_m2)) / 1_000_000.0


def fix_polygon(geom: BaseGeometry) -> BaseGeometry:
    # Self-intersecting coverage rings show up in older cells; buffer(0) repairs them.
    if geom.geom_type in ("Polygon", "MultiPolygon") and not geom.is_valid:
        return geom.buffer(0)
    return geom


def _dimension(geom: BaseGeometry) -> int:
    t = geom.geom_type
    if t in ("Point", "MultiPoint"):
        return 0
    if t in ("LineString", "LinearRing", "MultiLineString"):
        return 1
    if t in ("Polygon", "MultiPolygon"):
        return 2
    # Collections: highest dimension wins.
    dims = [_dimension(g) for g in getattr(geom, "geoms", [])]
    return max(dims) if dims else 2


def _parts(geom: BaseGeometry) -> list[BaseGeometry]:
    if hasattr(geom, "geoms"):
        out: list[BaseGeometry] = []
        for g in geom.geoms:
            out.extend(_parts(g))
        return out
    return [geom]


def _keep_dimension(geom: BaseGeometry, dim: int) -> BaseGeometry:
    """
    Intersections/differences may return collections with lower-dimension debris
    (a polygon touching the region edge yields an extra line); keep only `dim`.
    """
    if geom.is_empty:
        return geom
    if geom.geom_type != "GeometryCollection":
        return geom if _dimension(geom) == dim else GeometryCollection()
    parts = [p for p in _parts(geom) if not p.is_empty and _dimension(p) == dim]
    if not parts:
        return GeometryCollection()
    if len(parts) == 1:
        return parts[0]
    if dim == 2:
        return MultiPolygon([p for p in parts if p.geom_type == "Polygon"])
    if dim == 1:
        return MultiLineString([p for p in parts if p.geom_type == "LineString"])
    return MultiPoint([p for p in parts if p.geom_type == "Point"])
