"""Balance reconciliation service.

Ledger formula: Balance = sum(Payments) - sum(Fees)

The stored ``Member.account_balance`` is maintained incrementally by the
payment ledger and fee services. This service recomputes it from the ledger
rows so operators (and tests) can confirm the two agree.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models.fee import Fee
from clubledger.models.member import Member
from clubledger.models.payment import Payment
from clubledger.services.repositories import MemberRepository
from clubledger.services.schemas import ReconciliationResult
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)


class BalanceReconciliationService:
    """Compare stored member balances with their payment and fee history."""

    def __init__(self, store: LedgerStore):
        """Initialize with the ledger store.

        Args:
            store: LedgerStore providing read sessions
        """
        self.store = store

    @staticmethod
    async def compute_balance(session: AsyncSession, member_id: int) -> Decimal:
        """Payments minus fees for one member.

        Args:
            session: Open session
            member_id: Member to compute

        Returns:
            Balance as Decimal (positive = credit, negative = owing)
        """
        paid = await session.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.member_id == member_id)
        )
        charged = await session.scalar(
            select(func.coalesce(func.sum(Fee.amount), 0)).where(Fee.member_id == member_id)
        )
        return (Decimal(str(paid)) - Decimal(str(charged))).quantize(Decimal("0.01"))

    @staticmethod
    def _compare(member: Member, computed: Decimal) -> ReconciliationResult:
        stored = (member.account_balance or Decimal("0")).quantize(Decimal("0.01"))
        return ReconciliationResult(
            member_id=member.id,
            stored_balance=stored,
            computed_balance=computed,
            is_consistent=stored == computed,
        )

    async def reconcile_member(self, member_id: int) -> ReconciliationResult:
        """Reconcile one member.

        Raises:
            NotFoundError: Member does not exist
        """
        async with self.store.session() as session:
            member = await MemberRepository(session).get(member_id)
            computed = await self.compute_balance(session, member_id)
        result = self._compare(member, computed)
        if not result.is_consistent:
            logger.warning(
                f"Balance mismatch for member {member_id}: stored={result.stored_balance}, "
                f"computed={result.computed_balance}"
            )
        return result

    async def find_inconsistent_members(self) -> list[ReconciliationResult]:
        """Reconcile every member and return only the mismatches."""
        mismatches = []
        async with self.store.session() as session:
            members = await MemberRepository(session).list_all()
            for member in members:
                result = self._compare(member, await self.compute_balance(session, member.id))
                if not result.is_consistent:
                    mismatches.append(result)
        if mismatches:
            logger.warning(f"{len(mismatches)} member balances do not reconcile")
        return mismatches


__all__ = ["BalanceReconciliationService"]
