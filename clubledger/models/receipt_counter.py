"""Receipt counter table: one row per calendar year."""

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from clubledger.models import Base, BaseModel


class ReceiptCounter(Base, BaseModel):
    """Per-year receipt sequence.

    ``last_number`` is the last receipt sequence committed for ``year``. The
    row is shared by every payment recorded in that year; ``version_id`` makes
    a stale increment fail instead of issuing a duplicate number.
    """

    __tablename__ = "receipt_counters"

    year: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ReceiptCounter(year={self.year}, last_number={self.last_number})>"


__all__ = ["ReceiptCounter"]
