from __future__ import annotations

from prometheus_client import Counter, Histogram

INDEX_MAINTENANCE_TOTAL = Counter(
    "idxmaint_index_maintenance_total",
    "ALTER INDEX statements issued, by action and outcome",
    ["action", "status"],
)

INDEX_MAINTENANCE_LATENCY_SECONDS = Histogram(
    "idxmaint_index_maintenance_latency_seconds",
    "Wall-clock duration of one ALTER INDEX statement",
    ["action"],
    buckets=(0.5, 1, 5, 15, 30, 60, 300, 900, 1800, 3600),
)

FRAGMENTATION_SCAN_LATENCY_SECONDS = Histogram(
    "idxmaint_fragmentation_scan_latency_seconds",
    "Duration of one sys.dm_db_index_physical_stats sample",
    ["status"],
)

APP_LOCK_ACQUIRE_LATENCY_SECONDS = Histogram(
    "idxmaint_app_lock_acquire_latency_seconds",
    "Time spent waiting for the per-table maintenance lock",
    ["acquired"],
)
