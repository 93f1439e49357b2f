from __future__ import annotations

import logging

from ..metrics.registry import (
    APP_LOCK_ACQUIRE_LATENCY_SECONDS,
    FRAGMENTATION_SCAN_LATENCY_SECONDS,
    INDEX_MAINTENANCE_LATENCY_SECONDS,
    INDEX_MAINTENANCE_TOTAL,
)

logger = logging.getLogger(__name__)


def observe_index_maintenance(action: str, status: str, latency_s: float) -> None:
    """Record one ALTER INDEX statement. Metric failures are logged, never raised."""
    try:
        INDEX_MAINTENANCE_TOTAL.labels(action=action, status=status).inc()
        INDEX_MAINTENANCE_LATENCY_SECONDS.labels(action=action).observe(latency_s)
    except Exception:
        logger.debug("Failed to record index maintenance metric", exc_info=True)


def observe_fragmentation_scan(status: str, latency_s: float) -> None:
    try:
        FRAGMENTATION_SCAN_LATENCY_SECONDS.labels(status=status).observe(latency_s)
    except Exception:
        logger.debug("Failed to record fragmentation scan metric", exc_info=True)


def observe_app_lock(acquired: bool, latency_s: float) -> None:
    try:
        APP_LOCK_ACQUIRE_LATENCY_SECONDS.labels(
            acquired="true" if acquired else "false"
        ).observe(latency_s)
    except Exception:
        logger.debug("Failed to record app lock metric", exc_info=True)
