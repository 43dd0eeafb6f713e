"""Fee ORM model for charges debited from member balances."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clubledger.models import Base, BaseModel


class Fee(Base, BaseModel):
    """Model representing a fee charged to a member.

    Created by the annual fee run (one per member and fee year) or manually
    for a single member. Fees are never edited in place.
    """

    __tablename__ = "fees"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"),
        nullable=False,
        index=True,
        comment="Member charged",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("membership_categories.id"),
        nullable=True,
        comment="Category the fee was charged under (None for manual fees)",
    )
    category_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="Manual Fee",
        comment="Category name at the time of charging",
    )
    fee_year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Calendar year the charge belongs to",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Amount debited from the member balance",
    )
    applied_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Date the fee was applied",
    )
    applied_by: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Staff user who applied the fee",
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_fee_member_year", "member_id", "fee_year"),
        Index("idx_fee_year", "fee_year"),
    )

    def __repr__(self) -> str:
        return (
            f"<Fee(id={self.id}, member_id={self.member_id}, fee_year={self.fee_year}, "
            f"amount={self.amount})>"
        )


__all__ = ["Fee"]
