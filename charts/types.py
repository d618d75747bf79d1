from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shapely.geometry.base import BaseGeometry

from geo.aoi import BBox


# S-57 object/attribute names this package relies on.
DSID_LAYER = "DSID"
SCALE_FIELD = "DSPM_CSCL"
COVERAGE_LAYER = "M_COVR"
COVERAGE_FIELD = "CATCOV"
# CATCOV: 1 = coverage available, 2 = no coverage available
COVERAGE_AVAILABLE = 1


class ChartError(RuntimeError):
    """A chart cannot be opened, or its metadata is missing/malformed."""


@dataclass(frozen=True)
class ChartMetadata:
    """
    Per-chart metadata kept in the catalog.

    - scale: compilation scale denominator (DSPM_CSCL); smaller = more detailed
    - bbox: union of the envelopes of "coverage available" rows, or None when
      the chart declares no coverage (such a chart never matches a query)
    """

    path: Path
    scale: int
    bbox: BBox | None

    def __post_init__(self) -> None:
        if isinstance(self.scale, bool) or not isinstance(self.scale, int):
            raise ValueError(f"Chart scale must be an integer, got {self.scale!r}")
        if self.scale <= 0:
            raise ValueError(f"Chart scale must be positive, got {self.scale}")
        if self.bbox is not None and not self.bbox.is_valid():
            raise ValueError(f"Chart bbox is inverted: {self.bbox}")

    @property
    def identity(self) -> str:
        return chart_identity(self.path)


@dataclass(frozen=True)
class ChartFeature:
    """
    A vector feature read from (or composited out of) a chart layer.

    `fid` is only meaningful within `chart`, except for merge layers where the
    same real-world feature is assumed to carry the same fid in every cell.
    """

    fid: int | str
    geometry: BaseGeometry | None
    props: dict[str, Any] = field(default_factory=dict)
    chart: str = ""


def chart_identity(path: Path | str) -> str:
    return Path(path).stem


def feature_int(feature: ChartFeature, name: str) -> int:
    """
    Integer attribute of a feature; missing or non-integer values are fatal.
    """
    if name not in feature.props:
        raise ChartError(f"Feature does not have field \"{name}\"")
    v = feature.props[name]
    if isinstance(v, bool) or not isinstance(v, int):
        raise ChartError(f"Feature field \"{name}\" is not an integer")
    return v
