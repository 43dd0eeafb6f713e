"""Membership category ORM model (fee schedule consumed by the ledger)."""

from decimal import Decimal

from sqlalchemy import JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from clubledger.models import Base, BaseModel


class MembershipCategory(Base, BaseModel):
    """Model representing a membership category and its fee schedule.

    Categories are managed elsewhere; the ledger only reads them to resolve
    pro-rata subscriptions, joining fees and annual charges.
    """

    __tablename__ = "membership_categories"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Category name (e.g., 'Full', 'Junior', 'Restricted')",
    )
    annual_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Full-year subscription",
    )
    joining_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="One-off fee charged on joining",
    )
    joining_fee_months: Mapped[list[int]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Calendar months (1-12) when the joining fee applies; empty = all year",
    )
    pro_rata_rates: Mapped[dict[str, float]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Sparse override table: calendar month ('1'-'12') -> subscription amount",
    )

    def __repr__(self) -> str:
        return f"<MembershipCategory(id={self.id}, name={self.name!r}, annual_fee={self.annual_fee})>"


__all__ = ["MembershipCategory"]
