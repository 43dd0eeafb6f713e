"""Integration tests for the annual fee batch and manual fees."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from clubledger.models import Fee, MemberStatus
from clubledger.services.errors import NotFoundError, ValidationError
from clubledger.services.fee_service import SKIP_ALREADY_APPLIED, SKIP_CATEGORY_NOT_FOUND
from clubledger.services.repositories import MemberRepository


async def fees_for(store, member_id) -> list[Fee]:
    async with store.session() as session:
        result = await session.execute(select(Fee).where(Fee.member_id == member_id))
        return list(result.scalars().all())


@pytest.fixture
async def club(make_category, make_member):
    """Two categories, three active members and one inactive member."""
    full = await make_category(name="Full", annual_fee="480")
    junior = await make_category(name="Junior", annual_fee="120", pro_rata_rates={"3": "100"})
    members = {
        "ann": await make_member("Ann Smith", full, balance="500"),
        "bob": await make_member("Bob Jones", full),
        "cat": await make_member("Cat Brown", junior),
        "dan": await make_member("Dan White", full, status=MemberStatus.INACTIVE),
    }
    return {"full": full, "junior": junior, "members": members}


class TestPreview:
    """Preview is a dry run with per-category totals."""

    @pytest.mark.asyncio
    async def test_preview_totals(self, fee_service, club, store):
        preview = await fee_service.preview_fee_application(2025, {})

        assert preview.year == 2025
        assert preview.total_members == 3
        # Junior uses its March rate, Full its annual fee
        assert preview.total_amount == Decimal("1060")
        assert preview.already_applied_count == 0

        full_line = preview.breakdown[club["full"].id]
        assert full_line.category_name == "Full"
        assert full_line.fee_amount == Decimal("480")
        assert full_line.member_count == 2
        assert full_line.member_names == ["Ann Smith", "Bob Jones"]
        assert preview.breakdown[club["junior"].id].fee_amount == Decimal("100")

        # No writes
        assert await fee_service.check_fees_applied(2025) == set()

    @pytest.mark.asyncio
    async def test_preview_with_override(self, fee_service, club):
        preview = await fee_service.preview_fee_application(2025, {club["full"].id: "400"})

        assert preview.breakdown[club["full"].id].fee_amount == Decimal("400")
        assert preview.total_amount == Decimal("900")

    @pytest.mark.asyncio
    async def test_preview_counts_already_applied(self, fee_service, club):
        await fee_service.apply_fee_to_member(
            {"member_id": club["members"]["bob"].id, "amount": "480", "fee_year": 2025},
            applied_by="treasurer",
        )

        preview = await fee_service.preview_fee_application(2025)

        assert preview.already_applied_count == 1
        assert preview.total_members == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("year", [2019, 2101])
    async def test_invalid_year(self, fee_service, year):
        with pytest.raises(ValidationError):
            await fee_service.preview_fee_application(year)


class TestApplyAnnualFees:
    """Each active member is charged at most once per year."""

    @pytest.mark.asyncio
    async def test_apply_matches_preview_and_rerun_skips(self, fee_service, club, fetch_member):
        preview = await fee_service.preview_fee_application(2025, {})

        result = await fee_service.apply_annual_fees(2025, {}, applied_by="admin1")

        assert result.successful == preview.total_members
        assert result.failed == 0
        assert result.total_amount == preview.total_amount
        assert (await fetch_member(club["members"]["ann"].id)).account_balance == Decimal("20")
        assert (await fetch_member(club["members"]["cat"].id)).account_balance == Decimal("-100")

        rerun = await fee_service.apply_annual_fees(2025, {}, applied_by="admin1")

        assert rerun.successful == 0
        assert rerun.skipped == preview.total_members
        assert all(d.reason == SKIP_ALREADY_APPLIED for d in rerun.details)
        assert (await fetch_member(club["members"]["ann"].id)).account_balance == Decimal("20")

    @pytest.mark.asyncio
    async def test_fee_rows(self, fee_service, club, store):
        await fee_service.apply_annual_fees(2025, {club["junior"].id: 0}, applied_by="admin1")

        fees = await fees_for(store, club["members"]["cat"].id)
        assert len(fees) == 1
        assert fees[0].amount == Decimal("0")
        assert fees[0].fee_year == 2025
        assert fees[0].category_name == "Junior"
        assert fees[0].applied_by == "admin1"
        assert fees[0].notes == "2025 Annual Membership Fee - Junior"

    @pytest.mark.asyncio
    async def test_inactive_members_untouched(self, fee_service, club, store, fetch_member):
        result = await fee_service.apply_annual_fees(2025, None, applied_by="admin1")

        dan = club["members"]["dan"]
        assert dan.id not in {d.member_id for d in result.details}
        assert await fees_for(store, dan.id) == []
        assert (await fetch_member(dan.id)).account_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_member_without_category_skipped(self, fee_service, club, make_member):
        orphan = await make_member("Eve Black")

        result = await fee_service.apply_annual_fees(2025, None, applied_by="admin1")

        outcome = next(d for d in result.details if d.member_id == orphan.id)
        assert outcome.status == "skipped"
        assert outcome.reason == SKIP_CATEGORY_NOT_FOUND
        assert result.successful == 3

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(
        self, fee_service, club, store, monkeypatch, fetch_member
    ):
        bob_id = club["members"]["bob"].id
        original = MemberRepository.adjust_balance

        def failing_adjust(member, delta):
            if member.id == bob_id:
                raise RuntimeError("ledger write failed")
            return original(member, delta)

        monkeypatch.setattr(MemberRepository, "adjust_balance", staticmethod(failing_adjust))

        result = await fee_service.apply_annual_fees(2025, {}, applied_by="admin1")

        assert result.successful == 2
        assert result.failed == 1
        outcome = next(d for d in result.details if d.member_id == bob_id)
        assert outcome.status == "failed"
        assert "ledger write failed" in outcome.reason
        # The failed member's unit rolled back entirely
        assert await fees_for(store, bob_id) == []
        assert (await fetch_member(bob_id)).account_balance == Decimal("0")

        # A later run charges only the member that failed
        monkeypatch.undo()
        retry = await fee_service.apply_annual_fees(2025, {}, applied_by="admin1")
        assert retry.successful == 1
        assert retry.skipped == 2

    @pytest.mark.asyncio
    async def test_concurrent_runs_charge_once(self, fee_service, club, store):
        first, second = await asyncio.gather(
            fee_service.apply_annual_fees(2025, {}, applied_by="admin1"),
            fee_service.apply_annual_fees(2025, {}, applied_by="admin2"),
        )

        assert first.successful + second.successful == 3
        assert first.skipped + second.skipped == 3
        for member in club["members"].values():
            expected = 0 if member.status == MemberStatus.INACTIVE.value else 1
            assert len(await fees_for(store, member.id)) == expected

    @pytest.mark.asyncio
    async def test_concurrent_zero_fee_runs_charge_once(self, fee_service, make_category, make_member, store):
        """A zero charge still writes the member row, so racing runs cannot both charge."""
        category = await make_category(name="Honorary", annual_fee="480")
        members = [await make_member(f"Honorary {i}", category) for i in range(6)]

        first, second = await asyncio.gather(
            fee_service.apply_annual_fees(2025, {category.id: 0}, applied_by="admin1"),
            fee_service.apply_annual_fees(2025, {category.id: 0}, applied_by="admin2"),
        )

        assert first.successful + second.successful == len(members)
        assert first.failed == second.failed == 0
        for member in members:
            assert len(await fees_for(store, member.id)) == 1

    @pytest.mark.asyncio
    async def test_zero_fee_bumps_member_version(self, fee_service, club, fetch_member):
        cat = club["members"]["cat"]
        before = (await fetch_member(cat.id)).version_id

        await fee_service.apply_annual_fees(2025, {club["junior"].id: 0}, applied_by="admin1")

        after = await fetch_member(cat.id)
        assert after.version_id == before + 1
        assert after.account_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_negative_override_rejected_before_any_charge(self, fee_service, club):
        with pytest.raises(ValidationError):
            await fee_service.apply_annual_fees(2025, {club["full"].id: "-5"}, applied_by="admin1")

        assert await fee_service.check_fees_applied(2025) == set()


class TestManualFees:
    """Single fees outside the annual run."""

    @pytest.mark.asyncio
    async def test_apply_fee_to_member(self, fee_service, club, fetch_member):
        ann = club["members"]["ann"]

        fee = await fee_service.apply_fee_to_member(
            {"member_id": ann.id, "amount": "25.50"}, applied_by="treasurer"
        )

        assert fee.category_name == "Manual Fee"
        assert fee.fee_year == 2025
        assert fee.notes == "Fee applied - $25.50"
        assert (await fetch_member(ann.id)).account_balance == Decimal("474.50")

    @pytest.mark.asyncio
    async def test_manual_fee_with_category(self, fee_service, club):
        fee = await fee_service.apply_fee_to_member(
            {
                "member_id": club["members"]["cat"].id,
                "amount": "10",
                "category_id": club["junior"].id,
                "notes": "Locker",
            },
            applied_by="treasurer",
        )

        assert fee.category_name == "Junior"
        assert fee.notes == "Locker"

    @pytest.mark.asyncio
    async def test_unknown_member(self, fee_service):
        with pytest.raises(NotFoundError):
            await fee_service.apply_fee_to_member({"member_id": 999, "amount": "10"}, applied_by="treasurer")

    @pytest.mark.asyncio
    async def test_fees_by_member_and_stats(self, fee_service, club):
        await fee_service.apply_annual_fees(2025, {}, applied_by="admin1")
        ann = club["members"]["ann"]
        await fee_service.apply_fee_to_member({"member_id": ann.id, "amount": "15"}, applied_by="treasurer")

        assert len(await fee_service.get_fees_by_member(ann.id)) == 2

        stats = await fee_service.get_fee_stats(2025)
        assert stats.total_count == 4
        assert stats.total_amount == Decimal("1075")
        assert stats.by_category["Full"].count == 2
        assert stats.by_category["Full"].amount == Decimal("960")
        assert stats.by_category["Manual Fee"].amount == Decimal("15")
