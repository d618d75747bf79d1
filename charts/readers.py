from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from shapely.geometry import shape
from shapely.wkb import loads as wkb_loads

from charts.types import (
    COVERAGE_AVAILABLE,
    COVERAGE_FIELD,
    COVERAGE_LAYER,
    ChartError,
    ChartFeature,
    chart_identity,
    feature_int,
)


logger = logging.getLogger(__name__)


class ChartSource(Protocol):
    """
    An open chart dataset. Callers must close() it (or use it as a context manager).
    """

    identity: str

    def has_layer(self, name: str) -> bool: ...

    def read_layer(self, name: str) -> list[ChartFeature] | None: ...

    def close(self) -> None: ...

    def __enter__(self) -> "ChartSource": ...

    def __exit__(self, *exc: Any) -> None: ...


class ChartReader(Protocol):
    """
    Chart format interface.

    - OgrChartReader: native S-57 cells through GDAL's S57 driver
    - GeoJSONChartReader: per-chart GeoJSON bundles (converted cells, fixtures)
    """

    extension: str

    def open(self, path: Path) -> ChartSource: ...


class _SourceBase:
    identity: str = ""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class _OgrSource(_SourceBase):
    def __init__(self, path: Path, ds: Any):
        self.identity = chart_identity(path)
        self.path = path
        self._ds = ds

    def has_layer(self, name: str) -> bool:
        return self._ds is not None and self._ds.GetLayerByName(name) is not None

    def read_layer(self, name: str) -> list[ChartFeature] | None:
        if self._ds is None:
            raise ChartError(f"Chart {self.identity} is closed")
        layer = self._ds.GetLayerByName(name)
        if layer is None:
            return None

        out: list[ChartFeature] = []
        layer.ResetReading()
        feat = layer.GetNextFeature()
        while feat is not None:
            out.append(
                ChartFeature(
                    fid=int(feat.GetFID()),
                    geometry=_ogr_geometry(feat),
                    props=_ogr_props(feat),
                    chart=self.identity,
                )
            )
            feat = layer.GetNextFeature()
        return out

    def close(self) -> None:
        # OGR datasets close when the last reference goes away.
        self._ds = None


class OgrChartReader:
    """
    Reads S-57 cells in-process with the GDAL Python bindings (osgeo.ogr).
    """

    extension = ".000"

    def __init__(
        self,
        *,
        drivers: list[str] | None = None,
        open_options: list[str] | None = None,
    ):
        self.drivers = drivers if drivers is not None else ["S57"]
        # Soundings as one point per depth, with the depth in Z.
        self.open_options = (
            open_options
            if open_options is not None
            else ["SPLIT_MULTIPOINT=ON", "ADD_SOUNDG_DEPTH=ON"]
        )

    def open(self, path: Path) -> ChartSource:
        logger.debug(f"Open chart: {path}")
        from osgeo import gdal

        gdal.UseExceptions()
        try:
            ds = gdal.OpenEx(
                str(path),
                gdal.OF_VECTOR | gdal.OF_READONLY,
                allowed_drivers=self.drivers or None,
                open_options=self.open_options or None,
            )
        except Exception as e:
            raise ChartError(f"Cannot open chart dataset {path}: {e}") from e
        if ds is None:
            raise ChartError(f"Cannot open chart dataset {path}")
        return _OgrSource(path, ds)


def _ogr_geometry(feat: Any):
    geom = feat.GetGeometryRef()
    if geom is None:
        return None
    try:
        return wkb_loads(bytes(geom.ExportToIsoWkb()))
    except Exception as e:
        raise ChartError(f"Cannot decode geometry of feature {feat.GetFID()}: {e}") from e


def _ogr_props(feat: Any) -> dict[str, Any]:
    from osgeo import ogr

    props: dict[str, Any] = {}
    defn = feat.GetDefnRef()
    for i in range(defn.GetFieldCount()):
        field_defn = defn.GetFieldDefn(i)
        name = field_defn.GetName()
        if not feat.IsFieldSetAndNotNull(i):
            continue
        field_type = field_defn.GetType()
        if field_type in (ogr.OFTInteger, ogr.OFTInteger64):
            props[name] = int(feat.GetFieldAsInteger64(i))
        elif field_type == ogr.OFTReal:
            props[name] = feat.GetFieldAsDouble(i)
        elif field_type == ogr.OFTIntegerList:
            props[name] = list(feat.GetFieldAsIntegerList(i))
        elif field_type == ogr.OFTRealList:
            props[name] = list(feat.GetFieldAsDoubleList(i))
        elif field_type == ogr.OFTStringList:
            props[name] = list(feat.GetFieldAsStringList(i))
        else:
            props[name] = feat.GetFieldAsString(i)
    return props


class _GeoJSONSource(_SourceBase):
    def __init__(self, path: Path, layers: dict[str, Any]):
        self.identity = chart_identity(path)
        self.path = path
        self._layers: dict[str, Any] | None = layers

    def has_layer(self, name: str) -> bool:
        return self._layers is not None and name in self._layers

    def read_layer(self, name: str) -> list[ChartFeature] | None:
        if self._layers is None:
            raise ChartError(f"Chart {self.identity} is closed")
        data = self._layers.get(name)
        if data is None:
            return None
        features = (data.get("features") or []) if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise ChartError(f"Layer {name} in {self.identity} is not a FeatureCollection")

        out: list[ChartFeature] = []
        for i, feature in enumerate(features):
            if not isinstance(feature, dict):
                raise ChartError(f"Feature {i} of {self.identity}/{name} is not an object")
            geom = feature.get("geometry")
            props = feature.get("properties") or {}
            if not isinstance(props, dict):
                raise ChartError(f"Feature {i} of {self.identity}/{name} has non-object properties")
            fid = feature.get("id")
            try:
                g = shape(geom) if geom else None
            except Exception as e:
                raise ChartError(
                    f"Bad geometry in {self.identity}/{name} feature {i}: {e}"
                ) from e
            out.append(
                ChartFeature(
                    fid=fid if fid is not None else i,
                    geometry=g,
                    props=dict(props),
                    chart=self.identity,
                )
            )
        return out

    def close(self) -> None:
        self._layers = None


class GeoJSONChartReader:
    """
    Input: one JSON file per chart cell:

        {"layers": {"DSID": FeatureCollection, "M_COVR": FeatureCollection, ...}}

    Feature `id` is the feature identity; without one, the row index is used.
    """

    extension = ".json"

    def open(self, path: Path) -> ChartSource:
        logger.debug(f"Open chart: {path}")
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ChartError(f"Cannot open chart dataset {path}: {e}") from e
        layers = data.get("layers") if isinstance(data, dict) else None
        if not isinstance(layers, dict):
            raise ChartError(f"Chart dataset {path} has no `layers` object")
        return _GeoJSONSource(Path(path), layers)


def coverage_rows(src: ChartSource) -> list[ChartFeature]:
    """
    "Coverage available" rows of an open chart (M_COVR with CATCOV=1).
    """
    rows = src.read_layer(COVERAGE_LAYER)
    if rows is None:
        raise ChartError(f"Cannot open {COVERAGE_LAYER} layer in {src.identity}")
    return [
        f
        for f in rows
        if feature_int(f, COVERAGE_FIELD) == COVERAGE_AVAILABLE and f.geometry is not None
    ]


def reader_for(kind: str) -> ChartReader:
    k = (kind or "").strip().lower()
    if k in {"ogr", "s57", "gdal"}:
        return OgrChartReader()
    if k in {"geojson", "json"}:
        return GeoJSONChartReader()
    raise ValueError(f"Unknown chart reader: {kind}")
