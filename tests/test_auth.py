"""Tests for actor resolution and coupon ownership checks."""

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from coupon_engine.core.auth import (
    Actor,
    ActorRole,
    ensure_can_create,
    ensure_can_manage,
    get_current_actor,
)
from coupon_engine.core.exceptions import CouponAccessDeniedError
from coupon_engine.models.coupon import Coupon

whoami_app = FastAPI()


@whoami_app.get("/whoami")
async def whoami(actor: Actor = Depends(get_current_actor)) -> dict[str, str | None]:
    return {"role": actor.actor_type, "user_id": actor.user_id, "partner_id": actor.partner_id}


@pytest.fixture
def client():
    return TestClient(whoami_app)


class TestGetCurrentActor:
    def test_defaults_to_anonymous_traveler(self, client):
        response = client.get("/whoami")
        assert response.status_code == 200
        assert response.json() == {"role": "traveler", "user_id": None, "partner_id": None}

    def test_partner_defaults_partner_id_to_user(self, client):
        response = client.get("/whoami", headers={"X-Actor-Role": "partner", "X-Actor-Id": "p1"})
        assert response.json() == {"role": "partner", "user_id": "p1", "partner_id": "p1"}

    def test_employee_requires_partner(self, client):
        response = client.get("/whoami", headers={"X-Actor-Role": "employee", "X-Actor-Id": "e1"})
        assert response.status_code == 401

    def test_employee_with_partner(self, client):
        response = client.get(
            "/whoami",
            headers={"X-Actor-Role": "EMPLOYEE", "X-Actor-Id": "e1", "X-Partner-Id": "p1"},
        )
        assert response.json()["partner_id"] == "p1"

    def test_invalid_role(self, client):
        response = client.get("/whoami", headers={"X-Actor-Role": "pirate"})
        assert response.status_code == 400


class TestOwnership:
    def test_master_manages_everything(self):
        ensure_can_manage(Actor(role=ActorRole.MASTER), Coupon(partner_id="p1"))

    def test_partner_manages_own_coupons_only(self):
        actor = Actor(role=ActorRole.PARTNER, user_id="p1", partner_id="p1")
        ensure_can_manage(actor, Coupon(partner_id="p1"))
        with pytest.raises(CouponAccessDeniedError):
            ensure_can_manage(actor, Coupon(partner_id="p2"))
        with pytest.raises(CouponAccessDeniedError):
            ensure_can_manage(actor, Coupon(partner_id=None))

    def test_employee_acts_for_partner(self):
        actor = Actor(role=ActorRole.EMPLOYEE, user_id="e1", partner_id="p1")
        ensure_can_manage(actor, Coupon(partner_id="p1"))
        assert actor.partner_scope == "p1"

    def test_traveler_cannot_manage_or_create(self):
        actor = Actor(role=ActorRole.TRAVELER, user_id="u1")
        with pytest.raises(CouponAccessDeniedError):
            ensure_can_manage(actor, Coupon(partner_id=None))
        with pytest.raises(CouponAccessDeniedError):
            ensure_can_create(actor)
