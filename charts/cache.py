from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

from charts.types import ChartMetadata, chart_identity
from geo.aoi import BBox


logger = logging.getLogger(__name__)

# A chart without coverage is stored as an empty (inverted) envelope.
_EMPTY_ENVELOPE = (math.inf, -math.inf, math.inf, -math.inf)


@dataclass
class MetadataCache:
    """
    One small text record per chart, named by chart identity (file stem):

        <source path>
        <scale>
        <minX>
        <maxX>
        <minY>
        <maxY>

    A record is only honored when its source path matches the chart being
    loaded, so two cells sharing a stem in different trees never alias.
    """

    root: Path

    def record_path(self, identity: str) -> Path:
        return self.root / identity

    def load(self, path: Path) -> ChartMetadata | None:
        cached = self.record_path(chart_identity(path))
        try:
            raw = cached.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Unreadable cache record {cached}: {e}")
            return None

        meta = parse_record(raw)
        if meta is None:
            logger.debug(f"Malformed cache record {cached}")
            return None
        if str(meta.path) != str(path):
            logger.debug(f"Cache record {cached} is for {meta.path}, not {path}")
            return None
        return meta

    def save(self, meta: ChartMetadata) -> bool:
        """
        Best-effort write; a failure only means the next load parses the chart again.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.record_path(meta.identity).write_text(format_record(meta), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot write chart cache for {meta.identity}: {e}")
            return False
        return True

    def clear(self) -> int:
        """
        Delete every record under root (best-effort). Returns how many were removed.
        """
        if not self.root.is_dir():
            return 0
        n = 0
        for p in self.root.iterdir():
            if not p.is_file():
                continue
            try:
                p.unlink()
                n += 1
            except OSError as e:
                logger.warning(f"Cannot remove cache record {p}: {e}")
        return n


def format_record(meta: ChartMetadata) -> str:
    env = meta.bbox.envelope() if meta.bbox is not None else _EMPTY_ENVELOPE
    fields = [str(meta.path), str(meta.scale), *(repr(float(v)) for v in env)]
    return "\n".join(fields) + "\n"


def parse_record(raw: str) -> ChartMetadata | None:
    lines = raw.splitlines()
    if len(lines) < 6:
        return None
    path_s = lines[0]
    if not path_s:
        return None
    try:
        scale = int(lines[1].strip())
        env = tuple(float(v.strip()) for v in lines[2:6])
    except ValueError:
        return None
    if any(math.isnan(v) for v in env):
        return None

    min_x, max_x, min_y, max_y = env
    bbox: BBox | None
    if min_x > max_x or min_y > max_y:
        bbox = None
    elif not all(math.isfinite(v) for v in env):
        return None
    else:
        bbox = BBox.from_envelope((min_x, max_x, min_y, max_y))

    try:
        return ChartMetadata(path=Path(path_s), scale=scale, bbox=bbox)
    except ValueError:
        return None
