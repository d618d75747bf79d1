from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shapely.geometry import Polygon, mapping
from shapely.geometry.base import BaseGeometry

from charts.types import ChartFeature
from compose.policy import LayerMode
from geo.aoi import BBox


@dataclass(frozen=True)
class ExportRequest:
    """
    bbox: query area (WGS84 degrees)
    scale_min: minimum compilation scale; more detailed charts are not used
    layers: requested S-57 layer names, in output order (duplicates dropped)
    """

    bbox: BBox
    scale_min: int
    layers: tuple[str, ...]

    def __post_init__(self) -> None:
        if isinstance(self.scale_min, bool) or not isinstance(self.scale_min, int):
            raise ValueError(f"scale_min must be an integer, got {self.scale_min!r}")
        names: list[str] = []
        for name in self.layers:
            n = (name or "").strip()
            if n and n not in names:
                names.append(n)
        object.__setattr__(self, "bbox", self.bbox.normalized())
        object.__setattr__(self, "layers", tuple(names))


@dataclass(frozen=True)
class OutputLayer:
    name: str
    mode: LayerMode
    features: tuple[ChartFeature, ...] = ()

    def __len__(self) -> int:
        return len(self.features)

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "name": self.name,
            "features": [_feature_geojson(f) for f in self.features],
        }


@dataclass(frozen=True)
class CompositeState:
    """
    What one compositing step consumes and produces.

    clip_region: part of the query area not yet served by a processed chart
    served: union of the coverage of every processed chart
    layers: output layers by requested name, in request order
    processed: identities of charts folded in so far
    """

    clip_region: BaseGeometry
    layers: dict[str, OutputLayer]
    processed: tuple[str, ...] = ()
    served: BaseGeometry = field(default_factory=Polygon)

    @property
    def exhausted(self) -> bool:
        return self.clip_region.is_empty


@dataclass(frozen=True)
class ExportResult:
    request: ExportRequest
    layers: tuple[OutputLayer, ...]
    selected: tuple[str, ...]
    processed: tuple[str, ...]
    uncovered: BaseGeometry
    uncovered_km2: float = 0.0
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        """True when every point of the query area came from some chart."""
        return self.uncovered.is_empty

    def get(self, name: str) -> OutputLayer | None:
        n = (name or "").strip()
        for layer in self.layers:
            if layer.name == n:
                return layer
        return None

    def layer_geojson(self, name: str) -> dict[str, Any]:
        layer = self.get(name)
        if layer is None:
            raise KeyError(f"Layer was not requested: {name}")
        return layer.to_geojson()

    def to_geojson(self) -> dict[str, dict[str, Any]]:
        return {layer.name: layer.to_geojson() for layer in self.layers}

    def stats(self) -> dict[str, Any]:
        return {
            "selected": list(self.selected),
            "processed": list(self.processed),
            "complete": self.complete,
            "uncoveredKm2": self.uncovered_km2,
            "featureCounts": {layer.name: len(layer) for layer in self.layers},
            "timingsMs": dict(self.timings_ms),
        }


def _feature_geojson(f: ChartFeature) -> dict[str, Any]:
    props = dict(f.props)
    props.setdefault("CHART_ID", f.chart)
    return {
        "type": "Feature",
        "id": f.fid,
        "geometry": mapping(f.geometry) if f.geometry is not None else None,
        "properties": props,
    }
