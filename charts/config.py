from __future__ import annotations

import os
from pathlib import Path


def cache_path() -> Path:
    raw = (os.getenv("ENC_CACHE_PATH") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".encviz"


def cache_enabled() -> bool:
    v = (os.getenv("ENC_CACHE") or "1").strip().lower()
    return v not in {"0", "false", "no", "off"}


def chart_extension(default: str = ".000") -> str:
    raw = (os.getenv("ENC_CHART_EXT") or "").strip()
    if not raw:
        return default
    return raw if raw.startswith(".") else f".{raw}"


def load_strict() -> bool:
    """
    Abort a batch load on the first bad chart instead of skipping it.
    """
    v = (os.getenv("ENC_LOAD_STRICT") or "0").strip().lower()
    return v in {"1", "true", "yes", "on"}
