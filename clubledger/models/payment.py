"""Payment ORM model for recorded member payments."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clubledger.models import Base, BaseModel


class PaymentMethod(str, Enum):
    """How the payment was received."""

    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class Payment(Base, BaseModel):
    """Model representing a payment received from a member.

    Every payment carries a receipt number ``R{year}-{seq:03d}`` issued by the
    receipt sequencer in the same transaction that credits the member balance.
    """

    __tablename__ = "payments"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"),
        nullable=False,
        index=True,
        comment="Member who made the payment",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Payment amount (always positive)",
    )
    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Date the money was received",
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        nullable=False,
        comment="'bank_transfer' or 'cash'",
    )
    reference: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Bank reference or cheque number",
    )
    notes: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Free-form notes",
    )
    receipt_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        comment="Printed receipt identifier, e.g. R2025-001",
    )
    recorded_by: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Staff user who recorded the payment",
    )
    updated_by: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Staff user who last edited the payment",
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Indexes for common queries
    __table_args__ = (Index("idx_payment_member_date", "member_id", "payment_date"),)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, member_id={self.member_id}, amount={self.amount}, "
            f"receipt={self.receipt_number!r}, payment_date={self.payment_date})>"
        )


__all__ = ["Payment", "PaymentMethod"]
