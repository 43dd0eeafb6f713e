"""Integration tests for recording, editing and deleting payments."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from clubledger.models import AuditLog, Payment
from clubledger.services.balance_service import BalanceReconciliationService
from clubledger.services.errors import NotFoundError, ValidationError
from clubledger.services.payment_service import PaymentLedger
from clubledger.services.receipt_service import ReceiptSequencer


def payment_data(member_id, amount, **overrides):
    data = {
        "member_id": member_id,
        "amount": amount,
        "payment_date": date(2025, 6, 1),
        "payment_method": "bank_transfer",
        "reference": "BACS 1234",
    }
    data.update(overrides)
    return data


async def count_rows(store, model) -> int:
    async with store.session() as session:
        return await session.scalar(select(func.count()).select_from(model))


class TestRecordPayment:
    """Recording a payment credits the member and issues a receipt."""

    @pytest.mark.asyncio
    async def test_records_payment_and_credits_balance(self, ledger, make_member, fetch_member):
        member = await make_member("Ann Smith", balance="-150")

        payment = await ledger.record_payment(payment_data(member.id, "100"), recorded_by="treasurer")

        assert payment.id is not None
        assert payment.receipt_number == "R2025-001"
        assert payment.amount == Decimal("100")
        assert payment.payment_method == "bank_transfer"
        assert payment.recorded_by == "treasurer"
        assert (await fetch_member(member.id)).account_balance == Decimal("-50")

    @pytest.mark.asyncio
    async def test_concurrent_payments_same_member(self, ledger, make_member, fetch_member):
        """Two payments racing on one member both land with distinct receipts."""
        member = await make_member("Ann Smith", balance="-150")

        first, second = await asyncio.gather(
            ledger.record_payment(payment_data(member.id, "100"), recorded_by="desk-1"),
            ledger.record_payment(payment_data(member.id, "50", payment_method="cash"), recorded_by="desk-2"),
        )

        assert {first.receipt_number, second.receipt_number} == {"R2025-001", "R2025-002"}
        assert (await fetch_member(member.id)).account_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_receipt_year_follows_clock(self, store, make_member):
        member = await make_member("Ann Smith")
        ledger = PaymentLedger(store, today=lambda: date(2026, 3, 1))

        payment = await ledger.record_payment(
            payment_data(member.id, "10", payment_date=date(2025, 12, 31)), recorded_by="treasurer"
        )

        assert payment.receipt_number == "R2026-001"

    @pytest.mark.asyncio
    async def test_unknown_member_has_no_side_effects(self, ledger, store):
        with pytest.raises(NotFoundError) as exc_info:
            await ledger.record_payment(payment_data(999, "100"), recorded_by="treasurer")

        assert exc_info.value.http_status == 404
        assert await count_rows(store, Payment) == 0
        # The receipt sequence was not consumed
        assert await ReceiptSequencer().current_value(store, 2025) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-25"])
    async def test_non_positive_amount_rejected(self, ledger, store, make_member, fetch_member, amount):
        member = await make_member("Ann Smith", balance="10")

        with pytest.raises(ValidationError):
            await ledger.record_payment(payment_data(member.id, amount), recorded_by="treasurer")

        assert await count_rows(store, Payment) == 0
        assert (await fetch_member(member.id)).account_balance == Decimal("10")

    @pytest.mark.asyncio
    async def test_writes_audit_entry(self, ledger, store, make_member):
        member = await make_member("Ann Smith")

        payment = await ledger.record_payment(payment_data(member.id, "75"), recorded_by="treasurer")

        async with store.session() as session:
            entries = (await session.execute(select(AuditLog))).scalars().all()
        assert len(entries) == 1
        assert entries[0].entity_type == "payment"
        assert entries[0].entity_id == payment.id
        assert entries[0].action == "create"
        assert entries[0].actor_id == "treasurer"
        assert entries[0].changes["receipt_number"] == "R2025-001"


class TestUpdatePayment:
    """Editing a payment moves the balance by the difference only."""

    @pytest.mark.asyncio
    async def test_balance_moves_by_delta(self, ledger, make_member, fetch_member):
        member = await make_member("Ann Smith", balance="-200")
        payment = await ledger.record_payment(payment_data(member.id, "100"), recorded_by="treasurer")

        updated = await ledger.update_payment(
            payment.id,
            {"amount": "150", "payment_date": date(2025, 6, 2), "payment_method": "cash", "notes": "corrected"},
            updated_by="auditor",
        )

        assert updated.amount == Decimal("150")
        assert updated.payment_method == "cash"
        assert updated.updated_by == "auditor"
        assert updated.receipt_number == payment.receipt_number
        assert (await fetch_member(member.id)).account_balance == Decimal("-50")

    @pytest.mark.asyncio
    async def test_concurrent_record_preserved(self, ledger, make_member, fetch_member):
        """An edit racing a new payment for the same member keeps both effects."""
        member = await make_member("Ann Smith", balance="0")
        payment = await ledger.record_payment(payment_data(member.id, "100"), recorded_by="treasurer")

        await asyncio.gather(
            ledger.update_payment(payment.id, payment_data(member.id, "80"), updated_by="auditor"),
            ledger.record_payment(payment_data(member.id, "30"), recorded_by="desk"),
        )

        assert (await fetch_member(member.id)).account_balance == Decimal("110")

    @pytest.mark.asyncio
    async def test_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.update_payment(404, payment_data(1, "10"), updated_by="auditor")

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_payment_untouched(self, ledger, make_member, fetch_member):
        member = await make_member("Ann Smith")
        payment = await ledger.record_payment(payment_data(member.id, "100"), recorded_by="treasurer")

        with pytest.raises(ValidationError):
            await ledger.update_payment(payment.id, payment_data(member.id, "-1"), updated_by="auditor")

        assert (await ledger.get_payment(payment.id)).amount == Decimal("100")
        assert (await fetch_member(member.id)).account_balance == Decimal("100")


class TestDeletePayment:
    """Deleting a payment reverses its credit."""

    @pytest.mark.asyncio
    async def test_delete_reverses_credit(self, ledger, store, make_member, fetch_member):
        member = await make_member("Ann Smith", balance="-20")
        payment = await ledger.record_payment(payment_data(member.id, "70"), recorded_by="treasurer")

        await ledger.delete_payment(payment.id, deleted_by="auditor")

        assert (await fetch_member(member.id)).account_balance == Decimal("-20")
        with pytest.raises(NotFoundError):
            await ledger.get_payment(payment.id)

        async with store.session() as session:
            actions = (await session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all()
        assert actions == ["create", "delete"]

    @pytest.mark.asyncio
    async def test_receipt_numbers_not_reused(self, ledger, make_member):
        member = await make_member("Ann Smith")
        first = await ledger.record_payment(payment_data(member.id, "10"), recorded_by="treasurer")
        await ledger.delete_payment(first.id)

        second = await ledger.record_payment(payment_data(member.id, "10"), recorded_by="treasurer")

        assert second.receipt_number == "R2025-002"

    @pytest.mark.asyncio
    async def test_delete_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.delete_payment(12345)


class TestPaymentQueries:
    """Read-side helpers."""

    @pytest.mark.asyncio
    async def test_list_and_stats(self, ledger, make_member):
        ann = await make_member("Ann Smith")
        bob = await make_member("Bob Jones")
        await ledger.record_payment(payment_data(ann.id, "100", payment_date=date(2025, 3, 5)), "treasurer")
        await ledger.record_payment(
            payment_data(bob.id, "40", payment_date=date(2025, 3, 20), payment_method="cash"), "treasurer"
        )
        await ledger.record_payment(payment_data(ann.id, "60", payment_date=date(2025, 7, 1)), "treasurer")
        await ledger.record_payment(payment_data(ann.id, "5", payment_date=date(2024, 12, 31)), "treasurer")

        ann_payments = await ledger.list_payments(member_id=ann.id)
        assert [p.payment_date for p in ann_payments] == [date(2025, 7, 1), date(2025, 3, 5), date(2024, 12, 31)]

        march = await ledger.list_payments_by_date_range(date(2025, 3, 1), date(2025, 3, 31))
        assert len(march) == 2

        stats = await ledger.get_payment_stats(2025)
        assert stats.total_count == 3
        assert stats.total_amount == Decimal("200")
        assert stats.by_method == {"bank_transfer": Decimal("160"), "cash": Decimal("40")}
        assert stats.by_month == {"2025-03": Decimal("140"), "2025-07": Decimal("60")}


class TestBalanceInvariant:
    """Stored balances always equal payments minus fees."""

    @pytest.mark.asyncio
    async def test_mixed_operations_reconcile(self, ledger, fee_service, store, make_category, make_member):
        category = await make_category(annual_fee="120")
        member = await make_member("Ann Smith", category)

        await fee_service.apply_annual_fees(2025, None, applied_by="treasurer")
        p1 = await ledger.record_payment(payment_data(member.id, "50"), recorded_by="treasurer")
        p2 = await ledger.record_payment(payment_data(member.id, "90"), recorded_by="treasurer")
        await ledger.update_payment(p1.id, payment_data(member.id, "60"), updated_by="auditor")
        await ledger.delete_payment(p2.id)

        result = await BalanceReconciliationService(store).reconcile_member(member.id)

        assert result.is_consistent
        assert result.stored_balance == Decimal("-60.00")
        assert result.computed_balance == Decimal("-60.00")
