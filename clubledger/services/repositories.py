"""Repositories for the records the ledger reads and mutates.

Each repository wraps the session of the current unit of work; none of them
commit. Balance changes go through ``MemberRepository.adjust_balance`` on a
member loaded in the same transaction, so the version check on the member
row catches concurrent writers.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from clubledger.models.category import MembershipCategory
from clubledger.models.fee import Fee
from clubledger.models.member import Member, MemberStatus
from clubledger.models.payment import Payment
from clubledger.services.errors import NotFoundError


class MemberRepository:
    """Member lookups and balance mutation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, member_id: int) -> Member | None:
        return await self.session.get(Member, member_id)

    async def get(self, member_id: int) -> Member:
        """Load a member or raise NotFoundError."""
        member = await self.find(member_id)
        if member is None:
            raise NotFoundError("Member", member_id)
        return member

    async def list_active(self) -> list[Member]:
        result = await self.session.execute(
            select(Member).where(Member.status == MemberStatus.ACTIVE.value).order_by(Member.id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[Member]:
        result = await self.session.execute(select(Member).order_by(Member.id))
        return list(result.scalars().all())

    @staticmethod
    def adjust_balance(member: Member, delta: Decimal) -> Decimal:
        """Apply ``delta`` to a member loaded in the current transaction.

        The balance is always flagged as written, so the member row is
        updated and its version bumped even for a zero delta.

        Returns:
            The new balance
        """
        member.account_balance = (member.account_balance or Decimal("0")) + delta
        flag_modified(member, "account_balance")
        return member.account_balance


class CategoryRepository:
    """Read-only access to membership categories."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, category_id: int | None) -> MembershipCategory | None:
        if category_id is None:
            return None
        return await self.session.get(MembershipCategory, category_id)

    async def get(self, category_id: int) -> MembershipCategory:
        category = await self.find(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    async def list_all(self) -> dict[int, MembershipCategory]:
        """All categories keyed by id."""
        result = await self.session.execute(select(MembershipCategory))
        return {category.id: category for category in result.scalars().all()}


class PaymentRepository:
    """Payment lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, payment_id: int) -> Payment:
        payment = await self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment


class FeeRepository:
    """Fee lookups and creation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists_for_year(self, member_id: int, year: int) -> bool:
        result = await self.session.execute(
            select(Fee.id).where(Fee.member_id == member_id, Fee.fee_year == year).limit(1)
        )
        return result.first() is not None

    async def member_ids_for_year(self, year: int) -> set[int]:
        """Ids of every member already charged a fee for ``year``."""
        result = await self.session.execute(select(Fee.member_id).where(Fee.fee_year == year).distinct())
        return set(result.scalars().all())

    def create(self, fee: Fee) -> Fee:
        self.session.add(fee)
        return fee


__all__ = ["MemberRepository", "CategoryRepository", "PaymentRepository", "FeeRepository"]
