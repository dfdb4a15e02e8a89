"""AuditLog model for tracking state changes to coupons and their usages."""

from sqlalchemy import JSON, Column, String, func

from coupon_engine.core.database import Base
from coupon_engine.models.shared import UTCDateTime, UUIDType, generate_uuid


class AuditLog(Base):
    """AuditLog model - records catalog edits and ledger transitions."""

    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    coupon_id = Column(UUIDType, nullable=False, index=True)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(UUIDType, nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    changes = Column(JSON, nullable=False, default=dict)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
