"""Ledger API endpoints: payments, annual fees, pro-rata pricing, reconciliation.

Authentication is handled upstream; the acting staff user arrives in the
``X-Actor-Id`` header and is stamped on every write.
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from pydantic import BaseModel, Field

from clubledger.services.balance_service import BalanceReconciliationService
from clubledger.services.fee_service import FeeService
from clubledger.services.payment_service import PaymentLedger
from clubledger.services.rate_table import calculate_pro_rata_fee
from clubledger.services.repositories import CategoryRepository
from clubledger.services.schemas import (
    FeeApplicationRequest,
    FeeApplicationResult,
    FeeCreate,
    FeePreview,
    FeeResponse,
    FeeStats,
    FeeYear,
    PaymentCreate,
    PaymentResponse,
    PaymentStats,
    PaymentUpdate,
    PositiveAmount,
    ProRataFeeResponse,
    ReconciliationResult,
)
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ledger"])


class ManualFeeRequest(BaseModel):
    """Body of a manual fee charge; the member comes from the path."""

    amount: PositiveAmount
    fee_year: FeeYear | None = None
    category_id: int | None = None
    notes: str | None = Field(default=None, max_length=500)


# Dependencies


def get_store(request: Request) -> LedgerStore:
    """Ledger store created by the application lifespan."""
    return request.app.state.store


def get_actor_id(x_actor_id: Annotated[str, Header(min_length=1)]) -> str:
    """Staff user performing the request."""
    return x_actor_id


def get_payment_ledger(store: LedgerStore = Depends(get_store)) -> PaymentLedger:
    return PaymentLedger(store)


def get_fee_service(store: LedgerStore = Depends(get_store)) -> FeeService:
    return FeeService(store)


# Payments


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_in: PaymentCreate,
    actor_id: str = Depends(get_actor_id),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> PaymentResponse:
    """Record a payment and return it with its receipt number."""
    payment = await ledger.record_payment(payment_in, recorded_by=actor_id)
    return PaymentResponse.model_validate(payment)


@router.get("/payments/stats/{year}", response_model=PaymentStats)
async def payment_stats(year: int, ledger: PaymentLedger = Depends(get_payment_ledger)) -> PaymentStats:
    return await ledger.get_payment_stats(year)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int, ledger: PaymentLedger = Depends(get_payment_ledger)
) -> PaymentResponse:
    return PaymentResponse.model_validate(await ledger.get_payment(payment_id))


@router.put("/payments/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    update_in: PaymentUpdate,
    actor_id: str = Depends(get_actor_id),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> PaymentResponse:
    payment = await ledger.update_payment(payment_id, update_in, updated_by=actor_id)
    return PaymentResponse.model_validate(payment)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: int,
    actor_id: str = Depends(get_actor_id),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> Response:
    await ledger.delete_payment(payment_id, deleted_by=actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/members/{member_id}/payments", response_model=list[PaymentResponse])
async def member_payments(
    member_id: int, ledger: PaymentLedger = Depends(get_payment_ledger)
) -> list[PaymentResponse]:
    payments = await ledger.list_payments(member_id=member_id)
    return [PaymentResponse.model_validate(p) for p in payments]


# Fees


@router.post("/fees/preview", response_model=FeePreview)
async def preview_fees(
    request_in: FeeApplicationRequest, fees: FeeService = Depends(get_fee_service)
) -> FeePreview:
    return await fees.preview_fee_application(request_in.year, request_in.category_fee_overrides)


@router.post("/fees/apply", response_model=FeeApplicationResult)
async def apply_fees(
    request_in: FeeApplicationRequest,
    actor_id: str = Depends(get_actor_id),
    fees: FeeService = Depends(get_fee_service),
) -> FeeApplicationResult:
    """Run the annual fee batch. Per-member failures are reported, not raised."""
    return await fees.apply_annual_fees(
        request_in.year, request_in.category_fee_overrides, applied_by=actor_id
    )


@router.get("/fees/stats/{year}", response_model=FeeStats)
async def fee_stats(year: int, fees: FeeService = Depends(get_fee_service)) -> FeeStats:
    return await fees.get_fee_stats(year)


@router.post(
    "/members/{member_id}/fees", response_model=FeeResponse, status_code=status.HTTP_201_CREATED
)
async def charge_member_fee(
    member_id: int,
    fee_in: ManualFeeRequest,
    actor_id: str = Depends(get_actor_id),
    fees: FeeService = Depends(get_fee_service),
) -> FeeResponse:
    fee = await fees.apply_fee_to_member(
        FeeCreate(member_id=member_id, **fee_in.model_dump()), applied_by=actor_id
    )
    return FeeResponse.model_validate(fee)


@router.get("/members/{member_id}/fees", response_model=list[FeeResponse])
async def member_fees(member_id: int, fees: FeeService = Depends(get_fee_service)) -> list[FeeResponse]:
    return [FeeResponse.model_validate(f) for f in await fees.get_fees_by_member(member_id)]


# Pricing and reconciliation


@router.get("/categories/{category_id}/pro-rata", response_model=ProRataFeeResponse)
async def category_pro_rata(
    category_id: int,
    on_date: date | None = Query(default=None),
    store: LedgerStore = Depends(get_store),
) -> ProRataFeeResponse:
    """Cost of joining a category on a date (today by default)."""
    async with store.session() as session:
        category = await CategoryRepository(session).get(category_id)
    fee = calculate_pro_rata_fee(category, on_date)
    return ProRataFeeResponse(**fee._asdict())


@router.get("/members/{member_id}/reconciliation", response_model=ReconciliationResult)
async def member_reconciliation(
    member_id: int, store: LedgerStore = Depends(get_store)
) -> ReconciliationResult:
    return await BalanceReconciliationService(store).reconcile_member(member_id)


__all__ = ["router", "ManualFeeRequest"]
