"""
Clock -- where transaction timestamps come from.

Services never call ``datetime.now()``; the unit of work hands them a Clock.
Every transaction posted in one unit of work is stamped with the same
``now()`` reading, and tests pin that reading with DeterministicClock so
``occurred_at`` ordering and replay output are reproducible.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware UTC time."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock:
    """
    A clock that only moves when told to.

    ``now()`` is stable between calls; ``advance()`` moves it forward and
    ``set_time()`` jumps to an absolute instant. Safe to share across the
    worker threads of a concurrency test.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or EPOCH
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set_time(self, when: datetime) -> None:
        with self._lock:
            self._current = when

    def advance(self, seconds: float = 1) -> datetime:
        with self._lock:
            self._current += timedelta(seconds=seconds)
            return self._current

    def tick(self) -> datetime:
        return self.advance(1)
