"""Audit service for logging ledger mutations."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models.audit_log import AuditLog


class AuditService:
    """Service for audit log operations.

    Provides static method to create minimal audit log entries inside the
    caller's transaction.
    """

    @staticmethod
    def log(
        session: AsyncSession,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            session: Session of the enclosing atomic unit
            entity_type: Type of entity ("payment", "fee")
            entity_id: Primary key of the entity
            action: Action performed ("create", "update", "delete")
            actor_id: Staff user who performed the action (optional)
            changes: Optional JSON snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=changes,
        )
        session.add(audit)
        return audit


__all__ = ["AuditService"]
