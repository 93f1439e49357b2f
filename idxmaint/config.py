from __future__ import annotations

from dataclasses import dataclass, replace

MIN_FRAGMENTATION_PERCENT = 5.0
MIN_PAGE_COUNT = 1000
DEFAULT_THRESHOLD = 30.0

SCAN_MODES = ("LIMITED", "SAMPLED", "DETAILED")


@dataclass(frozen=True)
class MaintenanceConfig:
    threshold: float = DEFAULT_THRESHOLD
    min_fragmentation: float = MIN_FRAGMENTATION_PERCENT
    min_page_count: int = MIN_PAGE_COUNT
    online_rebuild: bool = False
    maxdop: int | None = None
    scan_mode: str = "LIMITED"
    lock_timeout_ms: int | None = None
    batch_timeout_s: float | None = None
    stats_retry_attempts: int = 3
    stats_retry_backoff_s: float = 1.0
    use_app_lock: bool = True
    app_lock_timeout_ms: int = 10_000

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not 0 <= self.min_fragmentation <= 100:
            raise ValueError(
                f"min_fragmentation must be between 0 and 100, got {self.min_fragmentation!r}"
            )
        if not self.min_fragmentation <= self.threshold <= 100:
            raise ValueError(
                f"threshold must be between {self.min_fragmentation:g} and 100, "
                f"got {self.threshold!r}"
            )
        if self.min_page_count < 0:
            raise ValueError("min_page_count must be >= 0")
        if self.maxdop is not None and self.maxdop <= 0:
            raise ValueError("maxdop must be a positive integer")
        if self.scan_mode not in SCAN_MODES:
            raise ValueError(f"scan_mode must be one of {', '.join(SCAN_MODES)}")
        if self.lock_timeout_ms is not None and self.lock_timeout_ms < 0:
            raise ValueError("lock_timeout_ms must be >= 0")
        if self.batch_timeout_s is not None and self.batch_timeout_s <= 0:
            raise ValueError("batch_timeout_s must be > 0")
        if self.stats_retry_attempts < 1:
            raise ValueError("stats_retry_attempts must be >= 1")
        if self.stats_retry_backoff_s < 0:
            raise ValueError("stats_retry_backoff_s must be >= 0")
        if self.app_lock_timeout_ms < 0:
            raise ValueError("app_lock_timeout_ms must be >= 0")

    def with_threshold(self, threshold: float | None) -> "MaintenanceConfig":
        """Return a copy using ``threshold`` for this run (``None`` keeps the current one)."""
        if threshold is None:
            return self
        return replace(self, threshold=float(threshold))
