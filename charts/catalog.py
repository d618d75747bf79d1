from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from charts.cache import MetadataCache
from charts.config import chart_extension, load_strict
from charts.readers import ChartReader, coverage_rows
from charts.types import (
    DSID_LAYER,
    SCALE_FIELD,
    ChartError,
    ChartMetadata,
    feature_int,
)
from geo.aoi import BBox, merge_all


logger = logging.getLogger(__name__)


@dataclass
class ChartCatalog:
    """
    In-memory index of chart metadata, keyed by chart identity (file stem).

    Loading goes cache first, then a full parse of the chart on a miss (which
    writes back to the cache). Entries are immutable; a reload replaces them.

    Entry updates take a short lock, so `snapshot()` never waits for a batch
    load; batch loads themselves run one at a time. Exports should work from
    `snapshot()` so a concurrent reload can never change the chart list
    mid-export. A snapshot taken during a reload holds the charts loaded so far.
    """

    reader: ChartReader
    cache: MetadataCache | None = None
    _charts: dict[str, ChartMetadata] = field(default_factory=dict, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _load_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._charts)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._charts

    def get(self, identity: str) -> ChartMetadata | None:
        with self._lock:
            return self._charts.get(identity)

    def snapshot(self) -> tuple[ChartMetadata, ...]:
        with self._lock:
            return tuple(self._charts.values())

    def clear(self) -> None:
        with self._lock:
            self._charts.clear()

    def load_charts(
        self,
        root: Path | str,
        *,
        extension: str | None = None,
        strict: bool | None = None,
    ) -> int:
        """
        Recursively load every chart file under root.

        A chart that fails to load is logged and skipped; with strict=True (or
        ENC_LOAD_STRICT=1) the first failure aborts the batch instead.
        Returns the number of charts in the catalog afterwards.
        """
        ext = extension or chart_extension(self.reader.extension)
        strict = load_strict() if strict is None else strict
        base = Path(root).expanduser().resolve()
        if not base.is_dir():
            raise FileNotFoundError(f"Chart root is not a directory: {root}")

        failed = 0
        with self._load_lock:
            for path in sorted(base.rglob(f"*{ext}")):
                if not path.is_file():
                    continue
                try:
                    self.load_chart(path)
                except ChartError as e:
                    if strict:
                        raise
                    failed += 1
                    logger.warning(f"Skipping chart {path}: {e}")
        n = len(self)

        if failed:
            logger.info(f"{n} charts loaded ({failed} skipped)")
        else:
            logger.info(f"{n} charts loaded")
        return n

    def load_chart(self, path: Path | str) -> ChartMetadata:
        p = Path(path)
        if self.cache is not None:
            meta = self.cache.load(p)
            if meta is not None:
                logger.info(f"Load chart bounds from cache: {p}")
                self._insert(meta)
                return meta
        return self.load_chart_disk(p)

    def load_chart_disk(self, path: Path | str) -> ChartMetadata:
        """
        Full parse: DSID compilation scale + envelope of "coverage available" rows.
        """
        p = Path(path)
        logger.info(f"Open chart: {p}")
        with self.reader.open(p) as src:
            scale = _read_scale(src)
            bbox = _read_coverage_bbox(src)

        meta = ChartMetadata(path=p, scale=scale, bbox=bbox)
        if bbox is None:
            logger.info(f"  scale: {scale}, no coverage available")
        else:
            logger.info(
                f"  scale: {scale}, coverage X: {bbox.min_lon},{bbox.max_lon} "
                f"Y: {bbox.min_lat},{bbox.max_lat}"
            )

        self._insert(meta)
        if self.cache is not None:
            self.cache.save(meta)
        return meta

    def select(self, bbox: BBox, scale_min: int) -> list[ChartMetadata]:
        from compose.select import select_charts

        return select_charts(self.snapshot(), bbox, scale_min)

    def _insert(self, meta: ChartMetadata) -> None:
        with self._lock:
            self._charts[meta.identity] = meta


def _read_scale(src) -> int:
    rows = src.read_layer(DSID_LAYER)
    if rows is None:
        raise ChartError(f"Cannot open {DSID_LAYER} layer in {src.identity}")
    if not rows:
        raise ChartError(f"Cannot read {DSID_LAYER} feature in {src.identity}")
    # The dataset identification layer holds a single record.
    scale = feature_int(rows[0], SCALE_FIELD)
    if scale <= 0:
        raise ChartError(f"Chart {src.identity} has non-positive {SCALE_FIELD}: {scale}")
    return scale


def _read_coverage_bbox(src) -> BBox | None:
    # Conservative: the union of envelopes may be larger than the true coverage.
    boxes = [
        BBox.from_bounds(f.geometry.bounds) for f in coverage_rows(src) if not f.geometry.is_empty
    ]
    return merge_all(boxes)

