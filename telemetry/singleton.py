from __future__ import annotations

import atexit
import logging
import threading
from pathlib import Path

import duckdb

from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore


logger = logging.getLogger(__name__)

# One open store per database file; DuckDB allows a single writer connection.
_STORES: dict[Path, TelemetryStore] = {}
_STORES_LOCK = threading.RLock()


def open_store(path: Path) -> TelemetryStore:
    key = Path(path).expanduser().resolve()
    with _STORES_LOCK:
        store = _STORES.get(key)
        if store is None:
            key.parent.mkdir(parents=True, exist_ok=True)
            store = TelemetryStore(path=key, conn=duckdb.connect(str(key)))
            store.ensure_schema()
            store.start()
            _STORES[key] = store
        return store


def get_store() -> TelemetryStore | None:
    """
    Store at the configured ENC_TELEMETRY_PATH, or None while telemetry is off.
    """
    if not telemetry_enabled():
        return None
    return open_store(telemetry_path())


def reset_store() -> None:
    """
    Delete the configured telemetry database, closing its store if open.
    """
    key = telemetry_path().expanduser().resolve()
    with _STORES_LOCK:
        store = _STORES.pop(key, None)
    if store is not None:
        store.reset()
    else:
        key.unlink(missing_ok=True)


def close_stores() -> None:
    """
    Write out queued rows and close every open store.
    """
    with _STORES_LOCK:
        stores = list(_STORES.values())
        _STORES.clear()
    for store in stores:
        store.flush()
        store.stop()
        try:
            store.conn.close()
        except duckdb.Error as e:
            logger.debug(f"Cannot close telemetry store {store.path}: {e}")


atexit.register(close_stores)
