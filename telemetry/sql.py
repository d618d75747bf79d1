from __future__ import annotations

CREATE_EXPORTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS exports (
  ts_ms BIGINT,
  bbox_min_lon DOUBLE,
  bbox_min_lat DOUBLE,
  bbox_max_lon DOUBLE,
  bbox_max_lat DOUBLE,
  scale_min INTEGER,
  n_layers INTEGER,
  n_selected INTEGER,
  n_processed INTEGER,
  complete BOOLEAN,
  uncovered_km2 DOUBLE,
  total_ms DOUBLE,
  stats_json TEXT
);
"""

INSERT_EXPORTS_SQL = """
INSERT INTO exports
  (ts_ms, bbox_min_lon, bbox_min_lat, bbox_max_lon, bbox_max_lat, scale_min,
   n_layers, n_selected, n_processed, complete, uncovered_km2, total_ms, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# Exports with no selected chart ("no data") are counted separately.
SUMMARY_SQL_TEMPLATE = """
SELECT
  COUNT(*) AS n,
  SUM(CASE WHEN n_selected = 0 THEN 1 ELSE 0 END) AS n_no_data,
  AVG(CASE WHEN n_selected > 0 THEN n_processed END) AS avg_processed,
  AVG(CASE WHEN n_selected > 0 THEN n_selected - n_processed END) AS avg_skipped,
  AVG(CASE WHEN n_selected > 0 THEN CASE WHEN complete THEN 1 ELSE 0 END END) AS complete_rate,
  AVG(total_ms) AS avg_total_ms,
  quantile_cont(total_ms, 0.95) AS p95_total_ms
FROM exports
{where_sql}
"""

SLOWEST_EXPORTS_SQL_TEMPLATE = """
SELECT
  ts_ms,
  scale_min,
  n_selected,
  n_processed,
  complete,
  uncovered_km2,
  total_ms,
  try_cast(json_extract(stats_json, '$.timingsMs.composite') AS DOUBLE) AS composite_ms,
  try_cast(json_extract(stats_json, '$.geometryOps') AS BIGINT) AS geometry_ops
FROM exports
WHERE {where_sql}
ORDER BY total_ms DESC
LIMIT ?
"""
