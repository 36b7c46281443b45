"""
LedgerTransactionRunner -- the transaction boundary for ledger operations.

Responsibility:
    Runs one orchestrator call in a fresh session: bounds lock waits,
    commits on success, rolls back on any failure, retries only on
    concurrency conflicts, and hands the committed movements to the event
    dispatcher after commit.

Architecture position:
    Services -- the only component that calls ``session.commit()``.

Invariants enforced:
    - All-or-nothing: an operation either commits every movement it posted
      or none.  A retry starts from a new session and a new LedgerEngine.
    - Events are dispatched strictly after a successful commit; a publisher
      failure can never undo the commit.

Failure modes:
    - ConcurrencyError subclasses are retried ``max_retries`` times with
      exponential backoff, then surface as RetriesExhaustedError.
    - Every other exception is re-raised unchanged after rollback.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.db.engine import set_lock_timeout
from inventory_kernel.db.types import COST_DECIMAL_PLACES
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import (
    ConcurrencyError,
    DeadlockDetectedError,
    InventoryKernelError,
    LockTimeoutError,
    OptimisticLockError,
    RetriesExhaustedError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_services.orchestrator import LedgerOrchestrator
from inventory_services.stock_events import StockEventDispatcher

logger = get_logger("services.unit_of_work")

T = TypeVar("T")

_PG_LOCK_NOT_AVAILABLE = "55P03"
_PG_DEADLOCK_DETECTED = "40P01"
_PG_SERIALIZATION_FAILURE = "40001"


def translate_concurrency_error(
    exc: Exception, lock_timeout_ms: int
) -> ConcurrencyError | None:
    """
    Map a driver/ORM contention failure onto the kernel's retryable errors.

    Returns None for anything that is not contention.
    """
    if isinstance(exc, ConcurrencyError):
        return exc
    if isinstance(exc, StaleDataError):
        return OptimisticLockError("StockBalance", str(exc))
    if isinstance(exc, DBAPIError):
        pgcode = getattr(exc.orig, "pgcode", None)
        message = str(exc.orig).lower()
        if pgcode == _PG_LOCK_NOT_AVAILABLE or "lock timeout" in message:
            return LockTimeoutError(lock_timeout_ms, str(exc.orig))
        if pgcode == _PG_DEADLOCK_DETECTED:
            return DeadlockDetectedError(str(exc.orig))
        if pgcode == _PG_SERIALIZATION_FAILURE:
            return OptimisticLockError("transaction", str(exc.orig))
        if "database is locked" in message:
            return LockTimeoutError(lock_timeout_ms, str(exc.orig))
    return None


class LedgerTransactionRunner:
    """
    Contract:
        ``run(operation, work, tenant_id=..., actor_id=...)`` calls
        ``work(container)`` with a LedgerOrchestrator bound to a fresh
        session and returns its result once committed.

    Guarantees:
        - At most ``max_retries + 1`` attempts.
        - LogContext carries the operation, tenant, actor and a correlation
          id for every log line emitted inside the unit of work.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        lock_timeout_ms: int = 5000,
        max_retries: int = 3,
        retry_backoff_ms: int = 20,
        cost_decimal_places: int = COST_DECIMAL_PLACES,
        dispatcher: StockEventDispatcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._lock_timeout_ms = lock_timeout_ms
        self._max_retries = max_retries
        self._retry_backoff_ms = retry_backoff_ms
        self._cost_decimal_places = cost_decimal_places
        self._dispatcher = dispatcher
        self._sleep = sleep

    def run(
        self,
        operation: str,
        work: Callable[[LedgerOrchestrator], T],
        *,
        tenant_id: UUID,
        actor_id: UUID,
        reference: str | None = None,
    ) -> T:
        max_attempts = self._max_retries + 1
        last_error: ConcurrencyError | None = None

        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor_id),
            operation=operation,
            reference=reference,
        ):
            for attempt in range(1, max_attempts + 1):
                try:
                    result, posted = self._attempt(work, attempt)
                except ConcurrencyError as exc:
                    last_error = exc
                    if attempt == max_attempts:
                        break
                    delay_ms = self._retry_backoff_ms * (2 ** (attempt - 1))
                    logger.warning(
                        "unit_of_work_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "error_code": exc.code,
                            "delay_ms": delay_ms,
                        },
                    )
                    self._sleep(delay_ms / 1000)
                    continue

                if self._dispatcher is not None and posted:
                    self._dispatcher.dispatch(posted)
                return result

            logger.error(
                "unit_of_work_retries_exhausted",
                extra={
                    "attempts": max_attempts,
                    "error_code": last_error.code,
                },
            )
            raise RetriesExhaustedError(operation, max_attempts, last_error.code) from last_error

    def _attempt(self, work, attempt: int):
        session = self._session_factory()
        t0 = time.monotonic()
        logger.info("unit_of_work_started", extra={"attempt": attempt})
        try:
            set_lock_timeout(session, self._lock_timeout_ms)
            container = LedgerOrchestrator(
                session, self._clock, cost_decimal_places=self._cost_decimal_places
            )
            result = work(container)
            session.commit()
            posted = container.engine.posted
        except Exception as exc:
            session.rollback()
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            translated = translate_concurrency_error(exc, self._lock_timeout_ms)
            if translated is not None:
                logger.warning(
                    "unit_of_work_conflict",
                    extra={
                        "attempt": attempt,
                        "error_code": translated.code,
                        "duration_ms": duration_ms,
                    },
                )
                if translated is exc:
                    raise
                raise translated from exc
            if isinstance(exc, InventoryKernelError):
                logger.warning(
                    "unit_of_work_rejected",
                    extra={
                        "attempt": attempt,
                        "error_code": exc.code,
                        "duration_ms": duration_ms,
                    },
                )
                raise
            logger.error(
                "unit_of_work_failed",
                extra={"attempt": attempt, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise
        finally:
            session.close()

        logger.info(
            "unit_of_work_completed",
            extra={
                "attempt": attempt,
                "movement_count": len(posted),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return result, posted
