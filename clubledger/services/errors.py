"""Ledger error taxonomy.

Every error carries a machine-readable code and the HTTP status the API
returns for it, so services can raise them without knowing about FastAPI.
"""

from typing import Any


class LedgerError(Exception):
    """Base ledger error."""

    def __init__(
        self,
        message: str,
        code: str = "ledger_error",
        http_status: int = 400,
        details: Any = None,
    ):
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details
        super().__init__(message)


class ValidationError(LedgerError):
    """Input rejected before any write (bad amount, date, method, month, year)."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, "validation_error", 400, details)


class NotFoundError(LedgerError):
    """Member, payment or category does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", "not_found", 404)


class ConflictError(LedgerError):
    """Transaction retries exhausted. Nothing was persisted; safe to resubmit."""

    def __init__(self, message: str = "Concurrent modification, please retry"):
        super().__init__(message, "conflict", 409)


class OperationTimeoutError(LedgerError):
    """Atomic operation did not finish in time.

    The outcome is unknown: the commit may or may not have landed. Callers
    must re-fetch the member or payment before resubmitting.
    """

    def __init__(self, message: str = "Operation timed out; outcome unknown"):
        super().__init__(message, "timeout", 504)


__all__ = [
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "OperationTimeoutError",
]
