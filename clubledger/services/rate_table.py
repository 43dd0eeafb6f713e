"""Pro-rata subscription and joining fee resolution.

The membership year runs March to February. A member joining in March pays
12/12 of the annual fee, April 11/12, ... December 3/12, January 2/12 and
February 1/12. A category may override any month with a fixed amount in its
``pro_rata_rates`` table; a present key always wins, including an explicit 0.

Everything in this module is pure: the same functions price the cost
calculator on the application form and the amounts actually charged.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, NamedTuple

from clubledger.services.errors import ValidationError

ZERO = Decimal("0")

# Calendar month whose rate-table entry prices a full membership year
MEMBERSHIP_YEAR_START_MONTH = 3


class ProRataFee(NamedTuple):
    """Cost of joining in a given month."""

    pro_rata_subscription: Decimal
    joining_fee: Decimal
    total: Decimal
    months_remaining: int
    current_month: int


def to_decimal(value: Any) -> Decimal:
    """Convert a stored amount (int, float, str or Decimal) to Decimal without float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _validate_month(month: int) -> None:
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month!r}")


def months_remaining(month: int) -> int:
    """Months left in the March-February membership year, counting ``month`` itself."""
    _validate_month(month)
    return 3 - month if month <= 2 else 15 - month


def calculate_default_pro_rata_rate(annual_fee: Any, month: int) -> Decimal:
    """Formula rate: ``round(months_remaining / 12 * annual_fee)``, half-up to a whole unit."""
    remaining = months_remaining(month)
    amount = Decimal(remaining) * to_decimal(annual_fee) / Decimal(12)
    return amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def generate_default_pro_rata_rates(annual_fee: Any) -> dict[str, Decimal]:
    """Full twelve-month rate table computed from the formula, keyed "1".."12"."""
    return {str(month): calculate_default_pro_rata_rate(annual_fee, month) for month in range(1, 13)}


def clean_pro_rata_rates(rates: Mapping[Any, Any] | None) -> dict[str, Decimal]:
    """
    Keep only well-formed entries of an operator-supplied rate table.

    Keys must name a month 1-12 and values must parse as non-negative numbers;
    anything else is dropped silently, matching the rate editor's behaviour.
    """
    cleaned: dict[str, Decimal] = {}
    if not rates:
        return cleaned
    for month in range(1, 13):
        key = str(month)
        raw = rates.get(key, rates.get(month))
        if raw is None or raw == "":
            continue
        try:
            rate = to_decimal(raw)
        except (InvalidOperation, ValueError):
            continue
        if rate.is_finite() and rate >= 0:
            cleaned[key] = rate
    return cleaned


def lookup_rate(category: Any, month: int) -> Decimal | None:
    """Rate-table entry for ``month`` or None when the key is absent (a 0 entry is returned)."""
    rates = getattr(category, "pro_rata_rates", None) or {}
    for key in (str(month), month):
        if key in rates:
            return to_decimal(rates[key])
    return None


def resolve_pro_rata_subscription(category: Any, month: int) -> Decimal:
    """Subscription for joining in ``month``: rate-table entry if present, else the formula."""
    _validate_month(month)
    rate = lookup_rate(category, month)
    if rate is not None:
        return rate
    return calculate_default_pro_rata_rate(category.annual_fee, month)


def resolve_joining_fee(category: Any, month: int) -> Decimal:
    """Joining fee if it applies in ``month`` (empty month list = all year), else 0."""
    joining_fee = to_decimal(getattr(category, "joining_fee", None))
    if joining_fee <= 0:
        return ZERO
    months = getattr(category, "joining_fee_months", None) or []
    if months and month not in {int(m) for m in months}:
        return ZERO
    return joining_fee


def resolve_month(category: Any, month: int) -> ProRataFee:
    """Price joining ``category`` in calendar ``month``.

    Args:
        category: Object exposing annual_fee, joining_fee, joining_fee_months and
            pro_rata_rates (a MembershipCategory row or any look-alike); None allowed
        month: Calendar month 1-12

    Returns:
        ProRataFee; all zeros when category is None

    Raises:
        ValidationError: month outside 1-12
    """
    _validate_month(month)
    if category is None:
        return ProRataFee(ZERO, ZERO, ZERO, 0, 0)

    subscription = resolve_pro_rata_subscription(category, month)
    joining_fee = resolve_joining_fee(category, month)
    return ProRataFee(
        pro_rata_subscription=subscription,
        joining_fee=joining_fee,
        total=subscription + joining_fee,
        months_remaining=months_remaining(month),
        current_month=month,
    )


def calculate_pro_rata_fee(category: Any, on_date: date | None = None) -> ProRataFee:
    """Price joining ``category`` on ``on_date`` (defaults to today)."""
    if category is None:
        return ProRataFee(ZERO, ZERO, ZERO, 0, 0)
    on_date = on_date or date.today()
    return resolve_month(category, on_date.month)


def annual_charge_amount(category: Any, override: Any = None) -> Decimal:
    """Amount the annual fee run charges a member of ``category``.

    Precedence: explicit override, then the March rate-table entry (a full
    membership year), then the category's annual fee.
    """
    if override is not None:
        return to_decimal(override)
    march_rate = lookup_rate(category, MEMBERSHIP_YEAR_START_MONTH)
    if march_rate is not None:
        return march_rate
    return to_decimal(category.annual_fee)


__all__ = [
    "ProRataFee",
    "to_decimal",
    "months_remaining",
    "calculate_default_pro_rata_rate",
    "generate_default_pro_rata_rates",
    "clean_pro_rata_rates",
    "lookup_rate",
    "resolve_pro_rata_subscription",
    "resolve_joining_fee",
    "resolve_month",
    "calculate_pro_rata_fee",
    "annual_charge_amount",
]
