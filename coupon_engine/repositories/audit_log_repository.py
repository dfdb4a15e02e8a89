"""Repository for AuditLog CRUD operations."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.models.audit_log import AuditLog
from coupon_engine.models.shared import generate_uuid


class AuditLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        coupon_id: UUID,
        resource_type: str,
        resource_id: UUID,
        action: str,
        changes: dict[str, Any],
        actor_type: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        commit: bool = True,
    ) -> AuditLog:
        audit_log = AuditLog(
            id=generate_uuid(),
            coupon_id=coupon_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            changes=changes,
            actor_type=actor_type,
            actor_id=actor_id,
            metadata_=metadata,
        )
        self.db.add(audit_log)
        if commit:
            self.db.commit()
            self.db.refresh(audit_log)
        else:
            self.db.flush()
        return audit_log

    def get_by_coupon(
        self,
        coupon_id: UUID,
        skip: int = 0,
        limit: int = 100,
        action: str | None = None,
    ) -> list[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.coupon_id == coupon_id)
        if action is not None:
            query = query.filter(AuditLog.action == action)
        return (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id)
            .offset(skip)
            .limit(limit)
            .all()
        )
