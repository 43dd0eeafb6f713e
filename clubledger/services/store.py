"""Optimistic transaction runner shared by every ledger write.

``LedgerStore.run_atomic(fn)`` opens a fresh session, runs ``fn(session)``
inside a transaction and commits. Conflicts surface as one of:

- ``StaleDataError``: an UPDATE/DELETE guarded by a ``version_id`` column
  matched no row because a concurrent transaction committed first;
- ``IntegrityError``: two transactions created the same unique row (first
  receipt counter of a year, duplicate receipt number);
- ``OperationalError``: the database refused the write (SQLite "database is
  locked", PostgreSQL serialization failure).

The whole unit is rolled back and ``fn`` re-run from its reads, with bounded
exponential backoff. ``fn`` must therefore do all of its reads before any
writes and must not keep state between attempts.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from clubledger.services.errors import ConflictError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, IntegrityError, OperationalError)


class LedgerStore:
    """Session provider and atomic-unit runner for ledger services."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 5,
        wait_initial: float = 0.05,
        wait_max: float = 1.0,
        default_timeout: float | None = None,
    ):
        """Initialize the store.

        Args:
            session_factory: Factory producing AsyncSession objects (expire_on_commit=False)
            max_attempts: Attempts per atomic unit before ConflictError is raised
            wait_initial: First backoff delay in seconds
            wait_max: Maximum backoff delay in seconds
            default_timeout: Timeout applied when the caller passes none (None = no limit)
        """
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.default_timeout = default_timeout

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Read-only session for queries outside an atomic unit."""
        async with self.session_factory() as session:
            yield session

    async def run_atomic(
        self,
        fn: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: float | None = None,
        description: str = "atomic unit",
    ) -> T:
        """Run ``fn`` in one transaction, retrying on conflicting commits.

        Args:
            fn: Coroutine function receiving the transaction's session
            timeout: Seconds before giving up (falls back to default_timeout)
            description: Label used in log lines

        Returns:
            Whatever ``fn`` returned on the committed attempt

        Raises:
            ConflictError: Every attempt conflicted; nothing was persisted
            OperationTimeoutError: Deadline hit; the commit may or may not have landed
            Any exception raised by ``fn`` itself (ValidationError, NotFoundError, ...)
        """
        effective_timeout = timeout if timeout is not None else self.default_timeout
        if effective_timeout is None:
            return await self._run_with_retry(fn, description)
        try:
            return await asyncio.wait_for(self._run_with_retry(fn, description), effective_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{description} timed out after {effective_timeout}s; outcome unknown")
            raise OperationTimeoutError(
                f"{description} timed out after {effective_timeout}s; re-check state before retrying"
            ) from e

    async def _run_with_retry(
        self, fn: Callable[[AsyncSession], Awaitable[T]], description: str
    ) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.wait_initial, max=self.wait_max)
            + wait_random(0, self.wait_initial),
            retry=retry_if_exception_type(CONFLICT_ERRORS),
            before_sleep=lambda state: self._log_retry(state, description),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(fn)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error(f"{description} gave up after {self.max_attempts} attempts: {cause}")
            raise ConflictError(
                f"{description} conflicted with concurrent changes {self.max_attempts} times"
            ) from cause

    async def _attempt(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await fn(session)

    @staticmethod
    def _log_retry(state: RetryCallState, description: str) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "%s conflicted (attempt %d): %s",
            description,
            state.attempt_number,
            type(exc).__name__ if exc else "unknown",
        )


__all__ = ["LedgerStore", "CONFLICT_ERRORS"]
