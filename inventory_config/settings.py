"""
Settings schema (``inventory_config.settings``).

Frozen, validated settings for the ledger runtime.  Every value has a
default so an empty YAML file yields a usable SQLite configuration.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerSettings:
    """
    Runtime configuration for one InventoryLedger.

    Attributes:
        database_url: SQLAlchemy URL (PostgreSQL in production).
        echo: Log every SQL statement.
        pool_size: PostgreSQL connection pool size.
        lock_timeout_ms: Bound on row-lock waits; also the SQLite busy timeout.
        max_retries: Retries of a unit of work after a concurrency conflict.
        retry_backoff_ms: Base delay, doubled per attempt.
        cost_decimal_places: Rounding of derived unit costs.
        publish_events: Emit stock-changed events after commit.
        publisher_max_workers: Threads used for fire-and-forget publication.
        log_level: Level for the inventory_kernel logger hierarchy.
    """

    database_url: str = "sqlite:///inventory_ledger.db"
    echo: bool = False
    pool_size: int = 20
    lock_timeout_ms: int = 5000
    max_retries: int = 3
    retry_backoff_ms: int = 20
    cost_decimal_places: int = 6
    publish_events: bool = True
    publisher_max_workers: int = 2
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.lock_timeout_ms <= 0:
            raise ValueError(f"lock_timeout_ms must be positive, got {self.lock_timeout_ms}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_backoff_ms < 0:
            raise ValueError(f"retry_backoff_ms must be >= 0, got {self.retry_backoff_ms}")
        if not 0 <= self.cost_decimal_places <= 9:
            raise ValueError(
                f"cost_decimal_places must be between 0 and 9, got {self.cost_decimal_places}"
            )
        if self.publisher_max_workers < 1:
            raise ValueError("publisher_max_workers must be >= 1")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log_level: {self.log_level}")

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")
