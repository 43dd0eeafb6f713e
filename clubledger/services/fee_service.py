"""Annual fee batch applicator and single-member fee charges.

The annual run charges every active member once per fee year. Each member is
charged in its own atomic unit (create the Fee, debit the balance), so one
member's failure never rolls back or stops the others. A member who already
has a Fee for the year is skipped, which makes re-running the batch safe for
members that were charged successfully. Members reported as ``failed`` need
an operator to look at the reason before the run is repeated.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models.category import MembershipCategory
from clubledger.models.fee import Fee
from clubledger.models.member import Member
from clubledger.services.audit_service import AuditService
from clubledger.services.errors import LedgerError
from clubledger.services.rate_table import annual_charge_amount
from clubledger.services.repositories import CategoryRepository, FeeRepository, MemberRepository
from clubledger.services.schemas import (
    CategoryBreakdown,
    CategoryFeeStats,
    FeeApplicationRequest,
    FeeApplicationResult,
    FeeCreate,
    FeePreview,
    FeeStats,
    MemberFeeOutcome,
    parse_input,
)
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)

SKIP_ALREADY_APPLIED = "Fee already applied for this year"
SKIP_CATEGORY_NOT_FOUND = "Category not found"


class FeeService:
    """Annual fee previews, batch application and manual fees."""

    def __init__(self, store: LedgerStore, today: Callable[[], date] = date.today):
        """Initialize fee service.

        Args:
            store: Ledger store running the atomic units
            today: Clock used for applied dates and default fee years
        """
        self.store = store
        self.today = today

    async def check_fees_applied(self, year: int) -> set[int]:
        """Ids of members who already have a fee recorded for ``year``."""
        async with self.store.session() as session:
            return await FeeRepository(session).member_ids_for_year(year)

    async def _load_run_inputs(
        self, year: int
    ) -> tuple[list[Member], dict[int, MembershipCategory], set[int]]:
        async with self.store.session() as session:
            members = await MemberRepository(session).list_active()
            categories = await CategoryRepository(session).list_all()
            already_applied = await FeeRepository(session).member_ids_for_year(year)
        return members, categories, already_applied

    async def preview_fee_application(
        self,
        year: int,
        category_fee_overrides: Mapping[int, Any] | None = None,
    ) -> FeePreview:
        """Dry-run the annual fee run. No writes.

        Args:
            year: Fee year (2020-2100)
            category_fee_overrides: Optional category id -> amount overrides

        Returns:
            FeePreview with totals for eligible members and a per-category breakdown.
            Members whose category cannot be found are left out of the totals.

        Raises:
            ValidationError: Invalid year or negative override
        """
        request = parse_input(
            FeeApplicationRequest,
            {"year": year, "category_fee_overrides": dict(category_fee_overrides or {})},
        )
        members, categories, already_applied = await self._load_run_inputs(request.year)

        preview = FeePreview(year=request.year)
        for member in members:
            if member.id in already_applied:
                preview.already_applied_count += 1
                continue

            category = categories.get(member.category_id)
            if category is None:
                continue

            fee_amount = annual_charge_amount(
                category, request.category_fee_overrides.get(category.id)
            )
            line = preview.breakdown.get(category.id)
            if line is None:
                line = CategoryBreakdown(category_name=category.name, fee_amount=fee_amount)
                preview.breakdown[category.id] = line
            line.member_count += 1
            line.member_names.append(member.full_name)
            preview.total_members += 1
            preview.total_amount += fee_amount

        logger.info(
            f"Fee preview {request.year}: {preview.total_members} members, "
            f"total={preview.total_amount}, already_applied={preview.already_applied_count}"
        )
        return preview

    async def apply_annual_fees(
        self,
        year: int,
        category_fee_overrides: Mapping[int, Any] | None,
        applied_by: str,
        *,
        timeout: float | None = None,
    ) -> FeeApplicationResult:
        """Charge the annual fee to every active member not yet charged for ``year``.

        Never raises for a single member's problem: every active member ends
        up in ``details`` as success, skipped or failed.

        Args:
            year: Fee year (2020-2100)
            category_fee_overrides: Optional category id -> amount overrides
            applied_by: Staff user running the batch
            timeout: Per-member atomic unit timeout (store default if None)

        Raises:
            ValidationError: Invalid year or negative override (nothing charged)
        """
        request = parse_input(
            FeeApplicationRequest,
            {"year": year, "category_fee_overrides": dict(category_fee_overrides or {})},
        )
        members, categories, already_applied = await self._load_run_inputs(request.year)
        logger.info(
            f"Applying {request.year} annual fees to {len(members)} active members (by {applied_by})"
        )

        result = FeeApplicationResult(year=request.year)
        for member in members:
            outcome = await self._apply_to_member(
                member, categories, already_applied, request, applied_by, timeout
            )
            result.details.append(outcome)
            if outcome.status == "success":
                result.successful += 1
                result.total_amount += outcome.fee_amount
            elif outcome.status == "skipped":
                result.skipped += 1
            else:
                result.failed += 1

        logger.info(
            f"Annual fees {request.year}: successful={result.successful}, skipped={result.skipped}, "
            f"failed={result.failed}, total={result.total_amount}"
        )
        return result

    async def _apply_to_member(
        self,
        member: Member,
        categories: dict[int, MembershipCategory],
        already_applied: set[int],
        request: FeeApplicationRequest,
        applied_by: str,
        timeout: float | None,
    ) -> MemberFeeOutcome:
        outcome = MemberFeeOutcome(member_id=member.id, member_name=member.full_name, status="skipped")

        if member.id in already_applied:
            outcome.reason = SKIP_ALREADY_APPLIED
            return outcome

        category = categories.get(member.category_id)
        if category is None:
            outcome.reason = SKIP_CATEGORY_NOT_FOUND
            return outcome

        outcome.category_name = category.name
        fee_amount = annual_charge_amount(category, request.category_fee_overrides.get(category.id))
        year = request.year

        async def _charge(session: AsyncSession) -> Fee | None:
            fees = FeeRepository(session)
            members = MemberRepository(session)

            # Reads: a concurrent run may have charged this member since the batch started
            if await fees.exists_for_year(member.id, year):
                return None
            current = await members.get(member.id)

            # Writes
            fee = fees.create(
                Fee(
                    member_id=current.id,
                    category_id=category.id,
                    category_name=category.name,
                    fee_year=year,
                    amount=fee_amount,
                    applied_date=self.today(),
                    applied_by=applied_by,
                    notes=f"{year} Annual Membership Fee - {category.name}",
                )
            )
            members.adjust_balance(current, -fee_amount)
            await session.flush()
            AuditService.log(
                session,
                entity_type="fee",
                entity_id=fee.id,
                action="create",
                actor_id=applied_by,
                changes={"amount": str(fee_amount), "fee_year": year},
            )
            return fee

        try:
            fee = await self.store.run_atomic(
                _charge, timeout=timeout, description=f"annual fee {year} for member {member.id}"
            )
        except LedgerError as e:
            logger.error(f"Annual fee {year} failed for member {member.id}: {e.message}")
            outcome.status = "failed"
            outcome.reason = e.message
            return outcome
        except Exception as e:
            logger.exception(f"Annual fee {year} failed for member {member.id}")
            outcome.status = "failed"
            outcome.reason = str(e) or type(e).__name__
            return outcome

        if fee is None:
            outcome.reason = SKIP_ALREADY_APPLIED
            return outcome

        outcome.status = "success"
        outcome.fee_amount = fee_amount
        return outcome

    async def apply_fee_to_member(
        self,
        data: FeeCreate | dict[str, Any],
        applied_by: str,
        *,
        timeout: float | None = None,
    ) -> Fee:
        """Charge a single fee to one member outside the annual run.

        Raises:
            ValidationError: Invalid amount or year
            NotFoundError: Member (or given category) does not exist
        """
        fee_in = parse_input(FeeCreate, data)
        fee_year = fee_in.fee_year or self.today().year

        async def _charge(session: AsyncSession) -> Fee:
            members = MemberRepository(session)

            # Reads
            member = await members.get(fee_in.member_id)
            category = None
            if fee_in.category_id is not None:
                category = await CategoryRepository(session).get(fee_in.category_id)

            # Writes
            fee = FeeRepository(session).create(
                Fee(
                    member_id=member.id,
                    category_id=category.id if category else None,
                    category_name=category.name if category else "Manual Fee",
                    fee_year=fee_year,
                    amount=fee_in.amount,
                    applied_date=self.today(),
                    applied_by=applied_by,
                    notes=fee_in.notes or f"Fee applied - ${fee_in.amount}",
                )
            )
            members.adjust_balance(member, -fee_in.amount)
            await session.flush()
            AuditService.log(
                session,
                entity_type="fee",
                entity_id=fee.id,
                action="create",
                actor_id=applied_by,
                changes={"amount": str(fee_in.amount), "fee_year": fee_year},
            )
            return fee

        fee = await self.store.run_atomic(
            _charge, timeout=timeout, description=f"manual fee for member {fee_in.member_id}"
        )
        logger.info(f"Applied fee {fee.id} to member {fee.member_id}: amount={fee.amount}, year={fee_year}")
        return fee

    async def get_fees_by_member(self, member_id: int) -> list[Fee]:
        """All fees charged to a member, most recent first."""
        stmt = (
            select(Fee)
            .where(Fee.member_id == member_id)
            .order_by(Fee.applied_date.desc(), Fee.id.desc())
        )
        async with self.store.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_fee_stats(self, year: int) -> FeeStats:
        """Count and total of fees for ``year``, grouped by category name."""
        async with self.store.session() as session:
            result = await session.execute(select(Fee).where(Fee.fee_year == year))
            fees = result.scalars().all()

        stats = FeeStats(year=year)
        for fee in fees:
            stats.total_count += 1
            stats.total_amount += fee.amount
            line = stats.by_category.setdefault(fee.category_name, CategoryFeeStats())
            line.count += 1
            line.amount += fee.amount
        return stats


__all__ = ["FeeService", "SKIP_ALREADY_APPLIED", "SKIP_CATEGORY_NOT_FOUND"]
