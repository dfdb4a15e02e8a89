"""Caller identity and coupon ownership checks.

Identity itself is resolved upstream (session/identity service) and forwarded
in headers; this module only turns those headers into an ``Actor`` and decides
whether that actor may see or manage a given coupon.
"""

from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException, Request

from coupon_engine.core.exceptions import CouponAccessDeniedError
from coupon_engine.models.coupon import Coupon


class ActorRole(str, Enum):
    MASTER = "master"
    PARTNER = "partner"
    EMPLOYEE = "employee"
    TRAVELER = "traveler"


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    user_id: str | None = None
    partner_id: str | None = None

    @property
    def actor_type(self) -> str:
        return self.role.value

    @property
    def is_master(self) -> bool:
        return self.role == ActorRole.MASTER

    @property
    def partner_scope(self) -> str | None:
        """Partner whose coupons this actor is confined to; None means unrestricted."""
        if self.role in (ActorRole.PARTNER, ActorRole.EMPLOYEE):
            return self.partner_id
        return None


SYSTEM_ACTOR = Actor(role=ActorRole.MASTER, user_id=None)


def get_current_actor(request: Request) -> Actor:
    """Build the caller from ``X-Actor-Role``, ``X-Actor-Id`` and ``X-Partner-Id``.

    Requests without a role header are treated as travelers.
    """
    raw_role = request.headers.get("X-Actor-Role", ActorRole.TRAVELER.value)
    try:
        role = ActorRole(raw_role.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-Actor-Role header") from None

    user_id = request.headers.get("X-Actor-Id") or None
    partner_id = request.headers.get("X-Partner-Id") or None
    if role == ActorRole.PARTNER and partner_id is None:
        partner_id = user_id
    if role in (ActorRole.PARTNER, ActorRole.EMPLOYEE) and partner_id is None:
        raise HTTPException(status_code=401, detail="Partner identity is required")

    return Actor(role=role, user_id=user_id, partner_id=partner_id)


def ensure_can_manage(actor: Actor, coupon: Coupon) -> None:
    """Raise ``CouponAccessDeniedError`` unless the actor may administer the coupon."""
    if actor.is_master:
        return
    if actor.role == ActorRole.TRAVELER:
        raise CouponAccessDeniedError("Sem permissão para gerenciar cupons")
    if coupon.partner_id != actor.partner_scope:
        raise CouponAccessDeniedError("Sem permissão para acessar este cupom")


def ensure_can_create(actor: Actor) -> None:
    if actor.role == ActorRole.TRAVELER:
        raise CouponAccessDeniedError("Sem permissão para criar cupons")
