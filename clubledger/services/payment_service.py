"""Payment ledger: recording, editing and deleting member payments.

Each write is one atomic unit run by ``LedgerStore.run_atomic``:

- record: read member + year's receipt counter, then advance the counter,
  insert the payment and credit the member balance;
- update: read payment + member, then rewrite the payment and move the
  balance by ``new_amount - old_amount``;
- delete: read payment + member, then remove the payment and debit its amount.

All reads come before all writes so a concurrent commit on the same member,
payment or counter is seen as a stale version and the unit is re-run.
Emails and PDF receipts are the caller's business once a call succeeds.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models.payment import Payment
from clubledger.services.audit_service import AuditService
from clubledger.services.receipt_service import ReceiptSequencer
from clubledger.services.repositories import MemberRepository, PaymentRepository
from clubledger.services.schemas import (
    PaymentCreate,
    PaymentStats,
    PaymentUpdate,
    parse_input,
)
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)

PAYMENT_METHOD_LABELS = {
    "bank_transfer": "Bank Transfer",
    "cash": "Cash",
}


def format_payment_method(method: str) -> str:
    """Display label for a payment method; unknown methods are returned as-is."""
    return PAYMENT_METHOD_LABELS.get(method, method)


class PaymentLedger:
    """Core payment operations service."""

    def __init__(
        self,
        store: LedgerStore,
        sequencer: ReceiptSequencer | None = None,
        today: Callable[[], date] = date.today,
    ):
        """Initialize payment ledger.

        Args:
            store: Ledger store running the atomic units
            sequencer: Receipt sequencer (default: a new ReceiptSequencer)
            today: Clock used for the receipt year
        """
        self.store = store
        self.sequencer = sequencer or ReceiptSequencer()
        self.today = today

    async def record_payment(
        self,
        data: PaymentCreate | dict[str, Any],
        recorded_by: str,
        *,
        timeout: float | None = None,
    ) -> Payment:
        """Record a payment, issue its receipt number and credit the member.

        Args:
            data: PaymentCreate or a dict with the same fields
            recorded_by: Staff user recording the payment
            timeout: Seconds allowed for the atomic unit (store default if None)

        Returns:
            The committed Payment

        Raises:
            ValidationError: Non-positive amount, bad date or method
            NotFoundError: Member does not exist
            ConflictError: Retries exhausted, nothing persisted
            OperationTimeoutError: Outcome unknown; re-fetch before resubmitting
        """
        payment_in = parse_input(PaymentCreate, data)
        year = self.today().year

        async def _record(session: AsyncSession) -> Payment:
            members = MemberRepository(session)

            # Reads
            counter = await self.sequencer.read_counter(session, year)
            member = await members.get(payment_in.member_id)

            # Writes
            receipt_number = self.sequencer.advance(session, year, counter)
            payment = Payment(
                member_id=member.id,
                amount=payment_in.amount,
                payment_date=payment_in.payment_date,
                payment_method=payment_in.payment_method.value,
                reference=payment_in.reference,
                notes=payment_in.notes,
                receipt_number=receipt_number,
                recorded_by=recorded_by,
            )
            session.add(payment)
            members.adjust_balance(member, payment_in.amount)
            await session.flush()
            AuditService.log(
                session,
                entity_type="payment",
                entity_id=payment.id,
                action="create",
                actor_id=recorded_by,
                changes={"amount": str(payment.amount), "receipt_number": receipt_number},
            )
            return payment

        payment = await self.store.run_atomic(
            _record, timeout=timeout, description=f"record payment for member {payment_in.member_id}"
        )
        logger.info(
            f"Recorded payment: member_id={payment.member_id}, amount={payment.amount}, "
            f"receipt={payment.receipt_number}, payment_id={payment.id}"
        )
        return payment

    async def update_payment(
        self,
        payment_id: int,
        data: PaymentUpdate | dict[str, Any],
        updated_by: str,
        *,
        timeout: float | None = None,
    ) -> Payment:
        """Edit a payment and move the member balance by the amount difference.

        The balance is adjusted by the delta rather than recomputed, so
        payments recorded concurrently for the same member are preserved.

        Raises:
            ValidationError: Invalid fields
            NotFoundError: Payment or its member does not exist
        """
        update_in = parse_input(PaymentUpdate, data)

        async def _update(session: AsyncSession) -> Payment:
            # Reads
            payment = await PaymentRepository(session).get(payment_id)
            members = MemberRepository(session)
            member = await members.get(payment.member_id)

            # Writes
            old_amount = payment.amount
            delta = update_in.amount - old_amount
            payment.amount = update_in.amount
            payment.payment_date = update_in.payment_date
            payment.payment_method = update_in.payment_method.value
            payment.reference = update_in.reference
            payment.notes = update_in.notes
            payment.updated_by = updated_by
            if delta:
                members.adjust_balance(member, delta)
            AuditService.log(
                session,
                entity_type="payment",
                entity_id=payment.id,
                action="update",
                actor_id=updated_by,
                changes={"amount": {"old": str(old_amount), "new": str(update_in.amount)}},
            )
            return payment

        payment = await self.store.run_atomic(
            _update, timeout=timeout, description=f"update payment {payment_id}"
        )
        logger.info(f"Updated payment {payment_id}: amount={payment.amount}, updated_by={updated_by}")
        return payment

    async def delete_payment(
        self,
        payment_id: int,
        deleted_by: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Remove a payment and reverse its credit on the member balance.

        Raises:
            NotFoundError: Payment or its member does not exist
        """

        async def _delete(session: AsyncSession) -> Decimal:
            # Reads
            payment = await PaymentRepository(session).get(payment_id)
            members = MemberRepository(session)
            member = await members.get(payment.member_id)

            # Writes
            amount = payment.amount
            await session.delete(payment)
            members.adjust_balance(member, -amount)
            AuditService.log(
                session,
                entity_type="payment",
                entity_id=payment_id,
                action="delete",
                actor_id=deleted_by,
                changes={"amount": str(amount), "receipt_number": payment.receipt_number},
            )
            return amount

        amount = await self.store.run_atomic(
            _delete, timeout=timeout, description=f"delete payment {payment_id}"
        )
        logger.info(f"Deleted payment {payment_id}: reversed amount={amount}, deleted_by={deleted_by}")

    async def get_payment(self, payment_id: int) -> Payment:
        """Get payment by ID.

        Raises:
            NotFoundError: Payment does not exist
        """
        async with self.store.session() as session:
            return await PaymentRepository(session).get(payment_id)

    async def list_payments(self, member_id: int | None = None) -> list[Payment]:
        """List payments, newest payment date first, optionally for one member."""
        stmt = select(Payment).order_by(Payment.payment_date.desc(), Payment.id.desc())
        if member_id is not None:
            stmt = stmt.where(Payment.member_id == member_id)
        async with self.store.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_payments_by_date_range(self, start_date: date, end_date: date) -> list[Payment]:
        """List payments dated within [start_date, end_date], newest first."""
        stmt = (
            select(Payment)
            .where(Payment.payment_date >= start_date, Payment.payment_date <= end_date)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        )
        async with self.store.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_payment_stats(self, year: int) -> PaymentStats:
        """Totals for payments dated in ``year``, by method and by month (YYYY-MM)."""
        payments = await self.list_payments_by_date_range(date(year, 1, 1), date(year, 12, 31))

        stats = PaymentStats(
            year=year,
            total_count=len(payments),
            by_method={method: Decimal("0") for method in PAYMENT_METHOD_LABELS},
        )
        for payment in payments:
            stats.total_amount += payment.amount
            stats.by_method[payment.payment_method] = (
                stats.by_method.get(payment.payment_method, Decimal("0")) + payment.amount
            )
            month = payment.payment_date.strftime("%Y-%m")
            stats.by_month[month] = stats.by_month.get(month, Decimal("0")) + payment.amount
        return stats


__all__ = ["PaymentLedger", "format_payment_method", "PAYMENT_METHOD_LABELS"]
