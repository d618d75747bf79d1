from __future__ import annotations

from typing import Iterable

from charts.types import ChartMetadata
from geo.aoi import BBox


def select_charts(
    charts: Iterable[ChartMetadata], bbox: BBox, scale_min: int
) -> list[ChartMetadata]:
    """
    Charts worth compositing for a query, most detailed (smallest scale) first.

    - keep scale >= scale_min (charts more detailed than the display needs are skipped)
    - keep charts whose coverage envelope touches the query envelope; a chart
      without coverage never matches
    - ties on scale are ordered by identity so output is deterministic

    An empty list means "no data available" and is not an error.
    """
    query = bbox.normalized()
    selected = [
        c
        for c in charts
        if c.scale >= scale_min and c.bbox is not None and c.bbox.intersects(query)
    ]
    selected.sort(key=lambda c: (c.scale, c.identity))
    return selected
