from __future__ import annotations

import os
from pathlib import Path


def telemetry_path() -> Path:
    # Local DuckDB file so export stats can be queried ad hoc; lives beside
    # the chart metadata cache by default.
    raw = (os.getenv("ENC_TELEMETRY_PATH") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".encviz" / "telemetry" / "exports.duckdb"


def telemetry_enabled() -> bool:
    # Off by default.
    v = (os.getenv("ENC_TELEMETRY") or "0").strip().lower()
    return v not in {"0", "false", "no", "off"}
