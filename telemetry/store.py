from __future__ import annotations

import json
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from telemetry.sql import (
    CREATE_EXPORTS_TABLE_SQL,
    INSERT_EXPORTS_SQL,
    SLOWEST_EXPORTS_SQL_TEMPLATE,
    SUMMARY_SQL_TEMPLATE,
)


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    Append-only export stats. record() never blocks an export: rows go through a
    queue and a single writer thread batches them into DuckDB.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[tuple]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EXPORTS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="export-telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        bbox: tuple[float, float, float, float],
        scale_min: int,
        n_layers: int,
        n_selected: int,
        n_processed: int,
        complete: bool,
        uncovered_km2: float,
        stats: dict[str, Any],
    ) -> None:
        """
        bbox is (min_lon, min_lat, max_lon, max_lat).
        """
        self.start()
        total_ms = _safe_float((stats.get("timingsMs") or {}).get("total"))
        try:
            self._q.put_nowait(
                (
                    int(time.time() * 1000),
                    float(bbox[0]),
                    float(bbox[1]),
                    float(bbox[2]),
                    float(bbox[3]),
                    int(scale_min),
                    int(n_layers),
                    int(n_selected),
                    int(n_processed),
                    bool(complete),
                    float(uncovered_km2),
                    total_ms,
                    json.dumps(stats, ensure_ascii=False, default=str),
                )
            )
        except queue.Full:
            # drop telemetry on overload
            pass

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Wait until queued rows are written (used by tests and the CLI on exit).
        """
        if self._worker is None:
            return
        deadline = time.time() + timeout_s
        while time.time() < deadline:
            if self._q.unfinished_tasks == 0:
                return
            time.sleep(0.01)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(self, *, since_ms: int | None = None) -> dict[str, Any]:
        where_sql = ""
        params: list[Any] = []
        if since_ms is not None:
            where_sql = "WHERE ts_ms >= ?"
            params.append(int(since_ms))

        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)
        n, n_no_data, avg_processed, avg_skipped, complete_rate, avg_ms, p95_ms = rows[0]
        return {
            "n": int(n or 0),
            "noData": int(n_no_data or 0),
            "avgChartsProcessed": _safe_float(avg_processed),
            "avgChartsSkipped": _safe_float(avg_skipped),
            "completeRate": _safe_float(complete_rate),
            "avgTotalMs": _safe_float(avg_ms),
            "p95TotalMs": _safe_float(p95_ms),
        }

    def slowest(self, *, complete: bool | None = None, limit: int = 25) -> list[dict[str, Any]]:
        """
        Slowest exports first. complete=False narrows to exports that left part
        of the query uncovered.
        """
        where = ["total_ms IS NOT NULL"]
        params: list[Any] = []
        if complete is not None:
            where.append("complete = ?")
            params.append(bool(complete))
        params.append(int(max(1, min(200, limit))))

        rows = self.query(
            SLOWEST_EXPORTS_SQL_TEMPLATE.format(where_sql=" AND ".join(where)),
            params,
        )
        out: list[dict[str, Any]] = []
        for (
            ts_ms,
            scale_min,
            n_selected,
            n_processed,
            complete_v,
            uncovered_km2,
            total_ms,
            composite_ms,
            geometry_ops,
        ) in rows:
            out.append(
                {
                    "tsMs": int(ts_ms),
                    "scaleMin": int(scale_min),
                    "selected": int(n_selected),
                    "processed": int(n_processed),
                    "complete": bool(complete_v),
                    "uncoveredKm2": _safe_float(uncovered_km2),
                    "totalMs": _safe_float(total_ms),
                    "compositeMs": _safe_float(composite_ms),
                    "geometryOps": int(geometry_ops) if geometry_ops is not None else None,
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            try:
                self.conn.close()
            except duckdb.Error:
                pass
            self.path.unlink(missing_ok=True)

    def _run(self) -> None:
        batch: list[tuple] = []
        last_flush = time.time()

        def flush_batch() -> None:
            nonlocal batch
            if not batch:
                return
            with self._lock:
                try:
                    self.conn.executemany(INSERT_EXPORTS_SQL, batch)
                except duckdb.Error:
                    # Best-effort: a failed batch is dropped, exports carry on.
                    pass
            for _ in batch:
                self._q.task_done()
            batch = []

        while not self._stop.is_set():
            try:
                batch.append(self._q.get(timeout=0.1))
            except queue.Empty:
                pass

            # Flush on size or time.
            now = time.time()
            if len(batch) >= 250 or (batch and (now - last_flush) >= 0.25):
                flush_batch()
                last_flush = now

        # Drain remaining
        while True:
            try:
                batch.append(self._q.get_nowait())
            except queue.Empty:
                break
        flush_batch()
