"""Receipt sequencer: per-year, strictly increasing receipt numbers.

Receipt numbers look like ``R2025-001``. The sequence for a year lives in a
single ``receipt_counters`` row. The sequencer never commits: advancing the
counter is one of the writes of the payment's atomic unit, so a rolled-back
payment never consumes a number and a committed one always does.

Reads and writes are split (``read_counter`` / ``advance``) so the payment
ledger can finish every read before its first write.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models.receipt_counter import ReceiptCounter
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)


def format_receipt_number(year: int, sequence: int) -> str:
    """Format ``R{year}-{seq}`` with the sequence zero-padded to at least 3 digits."""
    return f"R{year}-{sequence:03d}"


class ReceiptSequencer:
    """Issues receipt numbers inside the caller's transaction."""

    async def read_counter(self, session: AsyncSession, year: int) -> ReceiptCounter | None:
        """Fetch the counter row for ``year`` (None before the year's first receipt)."""
        result = await session.execute(select(ReceiptCounter).where(ReceiptCounter.year == year))
        return result.scalar_one_or_none()

    def advance(self, session: AsyncSession, year: int, counter: ReceiptCounter | None) -> str:
        """Increment a counter previously read with ``read_counter``.

        A missing row is created at 1. Two transactions creating it at once
        collide on the unique year; two advancing it at once collide on the
        version column. Either way the loser is retried by the store.

        Returns:
            The formatted receipt number
        """
        if counter is None:
            counter = ReceiptCounter(year=year, last_number=1)
            session.add(counter)
        else:
            counter.last_number += 1
        logger.debug(f"Receipt counter {year} advanced to {counter.last_number}")
        return format_receipt_number(year, counter.last_number)

    async def next_receipt_number(self, session: AsyncSession, year: int) -> str:
        """Read and advance in one call, for units with no other reads."""
        counter = await self.read_counter(session, year)
        return self.advance(session, year, counter)

    async def current_value(self, store: LedgerStore, year: int) -> int:
        """Last issued sequence for ``year`` without advancing (0 if none)."""
        async with store.session() as session:
            counter = await self.read_counter(session, year)
            return counter.last_number if counter else 0

    async def initialize_counter(self, store: LedgerStore, year: int) -> bool:
        """Create the year's counter at 0 if it does not exist.

        Safe to call repeatedly; an existing counter is never reset.

        Returns:
            True if a counter was created
        """

        async def _initialize(session: AsyncSession) -> bool:
            if await self.read_counter(session, year) is not None:
                return False
            session.add(ReceiptCounter(year=year, last_number=0))
            return True

        created = await store.run_atomic(_initialize, description=f"initialize receipt counter {year}")
        if created:
            logger.info(f"Receipt counter initialized for year {year}")
        return created


__all__ = ["ReceiptSequencer", "format_receipt_number"]
