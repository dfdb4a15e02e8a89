"""Audit service for recording coupon catalog and ledger changes."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.repositories.audit_log_repository import AuditLogRepository

COUPON_RESOURCE = "coupon"
USAGE_RESOURCE = "coupon_usage"


class AuditService:
    """Service for recording audit trail entries.

    Pass ``commit=False`` when the entry must land in the caller's transaction.
    """

    def __init__(self, db: Session):
        self.repo = AuditLogRepository(db)

    def log_action(
        self,
        coupon_id: UUID,
        action: str,
        actor_type: str = "system",
        actor_id: str | None = None,
        data: dict[str, Any] | None = None,
        resource_type: str = COUPON_RESOURCE,
        resource_id: UUID | None = None,
        commit: bool = True,
    ) -> None:
        self.repo.create(
            coupon_id=coupon_id,
            resource_type=resource_type,
            resource_id=resource_id or coupon_id,
            action=action,
            changes=data or {},
            actor_type=actor_type,
            actor_id=actor_id,
            commit=commit,
        )

    def log_update(
        self,
        coupon_id: UUID,
        actor_type: str = "system",
        actor_id: str | None = None,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> None:
        """Log a coupon update, auto-diffing changed fields."""
        old = old_data or {}
        new = new_data or {}
        changes: dict[str, Any] = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = {"old": old_val, "new": new_val}
        if not changes:
            return
        self.log_action(
            coupon_id,
            "updated",
            actor_type=actor_type,
            actor_id=actor_id,
            data=changes,
        )

    def log_usage_status_change(
        self,
        coupon_id: UUID,
        usage_id: UUID,
        old_status: str,
        new_status: str,
        actor_type: str = "system",
        actor_id: str | None = None,
        reason: str | None = None,
        commit: bool = True,
    ) -> None:
        changes: dict[str, Any] = {"status": {"old": old_status, "new": new_status}}
        if reason:
            changes["reason"] = reason
        self.log_action(
            coupon_id,
            new_status,
            actor_type=actor_type,
            actor_id=actor_id,
            data=changes,
            resource_type=USAGE_RESOURCE,
            resource_id=usage_id,
            commit=commit,
        )
