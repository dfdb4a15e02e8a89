"""Audit trail entries as returned by ``GET /v1/coupons/{id}/audit_logs``."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    """One recorded change to a coupon or to one of its ledger entries.

    ``changes`` holds ``{"field": {"old": ..., "new": ...}}`` for updates and
    status transitions, and a free-form payload for other actions.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    resource_type: str
    resource_id: UUID
    action: str
    changes: dict[str, Any]
    actor_type: str
    actor_id: str | None = None
    metadata_: dict[str, Any] | None = None
    created_at: datetime
