"""Pydantic models for ledger inputs and results.

Inputs are validated here before any database work; ``parse_input`` turns a
pydantic failure into the ledger's own ValidationError so callers see a
single error taxonomy.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from clubledger.models.payment import PaymentMethod
from clubledger.services.errors import ValidationError

MIN_FEE_YEAR = 2020
MAX_FEE_YEAR = 2100

PositiveAmount = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]
NonNegativeAmount = Annotated[Decimal, Field(ge=0, max_digits=10, decimal_places=2)]
FeeYear = Annotated[int, Field(ge=MIN_FEE_YEAR, le=MAX_FEE_YEAR)]

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model``.

    Raises:
        ValidationError: with pydantic's error list in ``details``
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(messages, details=e.errors(include_url=False, include_context=False)) from e


# Payments


class PaymentUpdate(BaseModel):
    """Editable payment fields."""

    amount: PositiveAmount
    payment_date: date
    payment_method: PaymentMethod
    reference: str = Field(default="", max_length=255)
    notes: str = ""

    @field_validator("reference", "notes", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class PaymentCreate(PaymentUpdate):
    """Payment recording input."""

    member_id: int


class PaymentResponse(BaseModel):
    """Payment as returned to callers."""

    id: int
    member_id: int
    amount: Decimal
    payment_date: date
    payment_method: str
    reference: str
    notes: str
    receipt_number: str
    recorded_by: str
    updated_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentStats(BaseModel):
    """Payment totals for a calendar year."""

    year: int
    total_amount: Decimal = Decimal("0")
    total_count: int = 0
    by_method: dict[str, Decimal] = Field(default_factory=dict)
    by_month: dict[str, Decimal] = Field(default_factory=dict)


# Fees


class FeeApplicationRequest(BaseModel):
    """Annual fee run parameters: target year and per-category amount overrides."""

    year: FeeYear
    category_fee_overrides: dict[int, NonNegativeAmount] = Field(default_factory=dict)

    @field_validator("category_fee_overrides", mode="before")
    @classmethod
    def _drop_blank_overrides(cls, value: Any) -> Any:
        # Blank form inputs mean "use the category default"
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None and str(v).strip() != ""}
        return value


class FeeCreate(BaseModel):
    """Single manual fee for one member."""

    member_id: int
    amount: PositiveAmount
    fee_year: FeeYear | None = None
    category_id: int | None = None
    notes: str | None = None


class FeeResponse(BaseModel):
    """Fee as returned to callers."""

    id: int
    member_id: int
    category_id: int | None
    category_name: str
    fee_year: int
    amount: Decimal
    applied_date: date
    applied_by: str
    notes: str

    model_config = ConfigDict(from_attributes=True)


class CategoryBreakdown(BaseModel):
    """Preview line for one category."""

    category_name: str
    fee_amount: Decimal
    member_count: int = 0
    member_names: list[str] = Field(default_factory=list)


class FeePreview(BaseModel):
    """Dry-run result of an annual fee run."""

    year: int
    total_members: int = 0
    total_amount: Decimal = Decimal("0")
    already_applied_count: int = 0
    breakdown: dict[int, CategoryBreakdown] = Field(default_factory=dict)


class MemberFeeOutcome(BaseModel):
    """What happened to one member during a fee run."""

    member_id: int
    member_name: str
    status: Literal["success", "skipped", "failed"]
    category_name: str | None = None
    fee_amount: Decimal | None = None
    reason: str | None = None


class FeeApplicationResult(BaseModel):
    """Aggregate result of an annual fee run."""

    year: int
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    total_amount: Decimal = Decimal("0")
    details: list[MemberFeeOutcome] = Field(default_factory=list)


class CategoryFeeStats(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0")


class FeeStats(BaseModel):
    """Fee totals for a fee year."""

    year: int
    total_count: int = 0
    total_amount: Decimal = Decimal("0")
    by_category: dict[str, CategoryFeeStats] = Field(default_factory=dict)


# Rate table / reconciliation


class ProRataFeeResponse(BaseModel):
    pro_rata_subscription: Decimal
    joining_fee: Decimal
    total: Decimal
    months_remaining: int
    current_month: int


class ReconciliationResult(BaseModel):
    """Stored balance versus the balance recomputed from payments and fees."""

    member_id: int
    stored_balance: Decimal
    computed_balance: Decimal
    is_consistent: bool


__all__ = [
    "parse_input",
    "PaymentCreate",
    "PaymentUpdate",
    "PaymentResponse",
    "PaymentStats",
    "FeeApplicationRequest",
    "FeeCreate",
    "FeeResponse",
    "CategoryBreakdown",
    "FeePreview",
    "MemberFeeOutcome",
    "FeeApplicationResult",
    "CategoryFeeStats",
    "FeeStats",
    "ProRataFeeResponse",
    "ReconciliationResult",
]
