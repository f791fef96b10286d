"""Conflict retry: only concurrency conflicts restart a unit of work."""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from carbon_kernel.exceptions import (
    ConflictRetriesExhaustedError,
    InsufficientCreditsError,
    OptimisticLockError,
)
from carbon_services.conflict_retry import is_retryable_conflict, run_with_conflict_retry


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class FakeSession:
    def __init__(self):
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeFactory:
    def __init__(self):
        self.sessions: list[FakeSession] = []

    def __call__(self):
        session = FakeSession()
        self.sessions.append(session)
        return session


class TestIsRetryableConflict:

    def test_optimistic_lock(self):
        assert is_retryable_conflict(OptimisticLockError("Wallet", str(uuid4())))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01"])
    def test_postgres_serialization_and_deadlock(self, pgcode):
        exc = OperationalError("UPDATE wallets", {}, _PgError("conflict", pgcode))
        assert is_retryable_conflict(exc)

    def test_sqlite_database_locked(self):
        exc = OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
        assert is_retryable_conflict(exc)

    def test_integrity_error_is_not_a_conflict(self):
        exc = IntegrityError("INSERT", {}, _PgError("duplicate key", "23505"))
        assert not is_retryable_conflict(exc)

    def test_domain_errors_are_not_conflicts(self):
        assert not is_retryable_conflict(InsufficientCreditsError("5", "1"))
        assert not is_retryable_conflict(ValueError("x"))


class TestRunWithConflictRetry:

    def test_retries_then_succeeds_with_fresh_sessions(self, captured_logs):
        factory = FakeFactory()
        calls = []

        def work(session):
            calls.append(session)
            if len(calls) < 3:
                raise OptimisticLockError("Project", "p-1")
            return "done"

        assert run_with_conflict_retry(factory, work, operation="purchase") == "done"
        assert len(set(map(id, calls))) == 3
        assert [s.rolled_back for s in factory.sessions] == [True, True, False]
        assert factory.sessions[-1].committed
        assert all(s.closed for s in factory.sessions)

        retries = [r for r in captured_logs() if r["message"] == "conflict_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]
        assert retries[0]["operation"] == "purchase"

    def test_exhausted(self):
        factory = FakeFactory()

        def work(session):
            raise OptimisticLockError("Wallet", "w-1")

        with pytest.raises(ConflictRetriesExhaustedError) as exc_info:
            run_with_conflict_retry(factory, work, operation="retire", max_attempts=2)
        assert exc_info.value.attempts == 2
        assert exc_info.value.operation == "retire"
        assert len(factory.sessions) == 2

    def test_domain_error_propagates_immediately(self):
        factory = FakeFactory()

        def work(session):
            raise InsufficientCreditsError("6", "4")

        with pytest.raises(InsufficientCreditsError):
            run_with_conflict_retry(factory, work, operation="purchase")
        assert len(factory.sessions) == 1
        assert factory.sessions[0].rolled_back

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            run_with_conflict_retry(FakeFactory(), lambda s: None, operation="x", max_attempts=0)
