"""Ledger services: store, payments, receipts, fees and balances."""

from clubledger.services.balance_service import BalanceReconciliationService
from clubledger.services.db import create_engine_from_url, create_session_factory, create_tables
from clubledger.services.errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from clubledger.services.fee_service import FeeService
from clubledger.services.payment_service import PaymentLedger
from clubledger.services.rate_table import ProRataFee, calculate_pro_rata_fee
from clubledger.services.receipt_service import ReceiptSequencer, format_receipt_number
from clubledger.services.store import LedgerStore

__all__ = [
    "BalanceReconciliationService",
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "ConflictError",
    "LedgerError",
    "NotFoundError",
    "OperationTimeoutError",
    "ValidationError",
    "FeeService",
    "PaymentLedger",
    "ProRataFee",
    "calculate_pro_rata_fee",
    "ReceiptSequencer",
    "format_receipt_number",
    "LedgerStore",
]
