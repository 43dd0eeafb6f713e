"""Member ORM model holding the running account balance."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from clubledger.models import Base, BaseModel


class MemberStatus(str, Enum):
    """Membership status."""

    ACTIVE = "active"
    """Current member; receives annual fees."""

    INACTIVE = "inactive"
    """Lapsed or resigned member; skipped by fee runs."""


class Member(Base, BaseModel):
    """Model representing a club member.

    ``account_balance`` is the single source of truth for what a member owes:
    positive = credit, negative = owing. It is only changed by the payment
    ledger and fee services, always inside an atomic unit.

    ``version_id`` is an optimistic concurrency counter: an UPDATE from a
    transaction that read an older version matches no rows and raises
    StaleDataError, which the ledger store retries.
    """

    __tablename__ = "members"

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="First and last name",
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Contact email",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("membership_categories.id"),
        nullable=True,
        index=True,
        comment="Membership category",
    )
    status: Mapped[MemberStatus] = mapped_column(
        String(20),
        nullable=False,
        default=MemberStatus.ACTIVE.value,
        comment="'active' or 'inactive'",
    )
    account_balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Running balance: payments minus fees",
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (Index("idx_member_status_category", "status", "category_id"),)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Member(id={self.id}, name={self.full_name!r}, status={self.status}, "
            f"balance={self.account_balance})>"
        )


__all__ = ["Member", "MemberStatus"]
