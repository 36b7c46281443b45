"""
Retry and rollback behaviour of the unit-of-work runner.

The work functions here are fakes that raise on demand, so retries are
exercised deterministically without real lock contention.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.exceptions import (
    DeadlockDetectedError,
    InsufficientStockError,
    LockTimeoutError,
    OptimisticLockError,
    RetriesExhaustedError,
)
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_services.unit_of_work import (
    LedgerTransactionRunner,
    translate_concurrency_error,
)

D = Decimal


class _DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _db_error(message, pgcode=None):
    return OperationalError("UPDATE stock_balances", {}, _DriverError(message, pgcode))


class TestTranslateConcurrencyError:
    def test_stale_data(self):
        err = translate_concurrency_error(StaleDataError("0 rows matched"), 5000)
        assert isinstance(err, OptimisticLockError)

    def test_lock_not_available(self):
        err = translate_concurrency_error(_db_error("could not obtain lock", "55P03"), 750)
        assert isinstance(err, LockTimeoutError)
        assert err.timeout_ms == 750

    def test_deadlock(self):
        err = translate_concurrency_error(_db_error("deadlock detected", "40P01"), 5000)
        assert isinstance(err, DeadlockDetectedError)

    def test_serialization_failure(self):
        err = translate_concurrency_error(_db_error("could not serialize", "40001"), 5000)
        assert isinstance(err, OptimisticLockError)

    def test_sqlite_busy(self):
        err = translate_concurrency_error(_db_error("database is locked"), 5000)
        assert isinstance(err, LockTimeoutError)

    def test_kernel_concurrency_errors_pass_through(self):
        original = OptimisticLockError("StockBalance", "b-1")
        assert translate_concurrency_error(original, 5000) is original

    def test_other_errors_are_not_contention(self):
        assert translate_concurrency_error(_db_error("syntax error", "42601"), 5000) is None
        assert translate_concurrency_error(ValueError("boom"), 5000) is None


class Flaky:
    """Raises the given errors in turn, then returns ``result``."""

    def __init__(self, errors, result="done"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self, container):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def runner(session_factory, deterministic_clock, sleeps):
    return LedgerTransactionRunner(
        session_factory,
        clock=deterministic_clock,
        max_retries=2,
        retry_backoff_ms=20,
        sleep=sleeps.append,
    )


class TestRetries:
    def test_conflict_then_success(self, runner, sleeps, tenant_id, test_actor_id, captured_logs):
        work = Flaky([OptimisticLockError("StockBalance", "b-1")])

        assert runner.run("op", work, tenant_id=tenant_id, actor_id=test_actor_id) == "done"

        assert work.calls == 2
        assert sleeps == [0.02]
        retries = [r for r in captured_logs() if r["message"] == "unit_of_work_retry"]
        assert retries[0]["error_code"] == "OPTIMISTIC_LOCK_CONFLICT"
        assert retries[0]["operation"] == "op"
        assert retries[0]["tenant_id"] == str(tenant_id)

    def test_backoff_doubles(self, runner, sleeps, tenant_id, test_actor_id):
        work = Flaky([LockTimeoutError(10, "x"), DeadlockDetectedError("y")])
        runner.run("op", work, tenant_id=tenant_id, actor_id=test_actor_id)
        assert sleeps == [0.02, 0.04]

    def test_exhaustion(self, runner, sleeps, tenant_id, test_actor_id):
        work = Flaky([OptimisticLockError("StockBalance", "b-1")] * 3)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            runner.run("transfer", work, tenant_id=tenant_id, actor_id=test_actor_id)

        err = exc_info.value
        assert err.attempts == 3
        assert err.operation == "transfer"
        assert err.last_error_code == "OPTIMISTIC_LOCK_CONFLICT"
        assert isinstance(err.__cause__, OptimisticLockError)
        assert work.calls == 3
        assert len(sleeps) == 2

    def test_stale_data_from_the_orm_is_retried(self, runner, tenant_id, test_actor_id):
        work = Flaky([StaleDataError("0 rows matched")])
        assert runner.run("op", work, tenant_id=tenant_id, actor_id=test_actor_id) == "done"
        assert work.calls == 2

    def test_domain_rejection_is_not_retried(self, runner, sleeps, tenant_id, test_actor_id):
        work = Flaky([InsufficientStockError("i", "w", D("5"), D("1"))])
        with pytest.raises(InsufficientStockError):
            runner.run("op", work, tenant_id=tenant_id, actor_id=test_actor_id)
        assert work.calls == 1
        assert sleeps == []

    def test_unexpected_error_is_logged_and_raised(
        self, runner, tenant_id, test_actor_id, captured_logs
    ):
        work = Flaky([RuntimeError("bug")])
        with pytest.raises(RuntimeError):
            runner.run("op", work, tenant_id=tenant_id, actor_id=test_actor_id)
        failed = [r for r in captured_logs() if r["message"] == "unit_of_work_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"
        assert work.calls == 1


class TestRollback:
    def test_failed_work_leaves_no_trace(
        self, runner, catalog, tenant_id, test_actor_id, session_factory
    ):
        item, wh = catalog.item(), catalog.warehouse()

        def work(c):
            c.adjustments.adjust(tenant_id, wh, item, D("5"), "FOUND", test_actor_id)
            raise RuntimeError("after the write")

        with pytest.raises(RuntimeError):
            runner.run("adjust", work, tenant_id=tenant_id, actor_id=test_actor_id)

        with session_factory() as s:
            assert StockSelector(s).get_balance(wh, item) is None

    def test_successful_work_is_committed(
        self, runner, catalog, tenant_id, test_actor_id, session_factory
    ):
        item, wh = catalog.item(), catalog.warehouse()
        runner.run(
            "adjust",
            lambda c: c.adjustments.adjust(tenant_id, wh, item, D("5"), "FOUND", test_actor_id),
            tenant_id=tenant_id,
            actor_id=test_actor_id,
        )
        with session_factory() as s:
            assert StockSelector(s).get_balance(wh, item).quantity == D("5")
