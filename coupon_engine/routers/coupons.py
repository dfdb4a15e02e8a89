"""Coupon catalog API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from coupon_engine.core.auth import Actor, get_current_actor
from coupon_engine.core.config import settings
from coupon_engine.core.database import get_db
from coupon_engine.core.exceptions import ENGINE_ERRORS, to_http_exception
from coupon_engine.models.audit_log import AuditLog
from coupon_engine.models.coupon import Coupon, CouponType
from coupon_engine.models.coupon_usage import CouponUsage
from coupon_engine.models.shared import utc_now
from coupon_engine.schemas.audit_log import AuditLogResponse
from coupon_engine.schemas.coupon import (
    BulkCouponRequest,
    BulkCouponResult,
    CouponAssetsUpdate,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponUsersRequest,
    DuplicateCouponRequest,
)
from coupon_engine.schemas.redemption import CouponUsageResponse
from coupon_engine.services.coupon_service import CouponService

router = APIRouter()

_MANAGE_RESPONSES: dict[int | str, dict[str, str]] = {
    403: {"description": "Not allowed to manage this coupon"},
    404: {"description": "Coupon not found"},
}


@router.post(
    "/",
    response_model=CouponResponse,
    status_code=201,
    summary="Create coupon",
    responses={
        403: {"description": "Not allowed to create coupons"},
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_coupon(
    data: CouponCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    """Create a new coupon."""
    try:
        return CouponService(db).create_coupon(data, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.get(
    "/",
    response_model=list[CouponResponse],
    summary="List coupons",
    responses={403: {"description": "Not allowed to list coupons"}},
)
async def list_coupons(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=settings.COUPON_LIST_PAGE_SIZE, ge=1, le=1000),
    order_by: str | None = Query(default=None),
    partner_id: str | None = Query(default=None),
    organization_id: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    coupon_type: CouponType | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[Coupon]:
    """List coupons, newest first. Partners only see their own coupons."""
    try:
        coupons, total = CouponService(db).list_coupons(
            actor,
            skip=skip,
            limit=limit,
            partner_id=partner_id,
            organization_id=organization_id,
            is_active=is_active,
            coupon_type=coupon_type,
            order_by=order_by,
        )
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None
    response.headers["X-Total-Count"] = str(total)
    return coupons


@router.get(
    "/public",
    response_model=list[CouponResponse],
    summary="List public coupons",
)
async def list_public_coupons(
    asset_type: str | None = Query(default=None),
    asset_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[Coupon]:
    """Active, publicly visible coupons usable right now, optionally for one item."""
    return CouponService(db).get_public_coupons(utc_now(), asset_type, asset_id)


@router.get(
    "/by_asset",
    response_model=list[CouponResponse],
    summary="List coupons applicable to an item",
    responses={403: {"description": "Not allowed to list coupons"}},
)
async def list_coupons_by_asset(
    asset_type: str = Query(...),
    asset_id: str = Query(...),
    is_active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[Coupon]:
    try:
        return CouponService(db).get_coupons_by_asset(asset_type, asset_id, actor, is_active)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.get(
    "/code/{code}",
    response_model=CouponResponse,
    summary="Get coupon by code",
    responses=_MANAGE_RESPONSES,
)
async def get_coupon_by_code(
    code: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    service = CouponService(db)
    try:
        coupon = service.get_coupon_by_code(code)
        return service.get_coupon(coupon.id, actor)  # type: ignore[arg-type]
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.get(
    "/{coupon_id}",
    response_model=CouponResponse,
    summary="Get coupon",
    responses=_MANAGE_RESPONSES,
)
async def get_coupon(
    coupon_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).get_coupon(coupon_id, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.put(
    "/{coupon_id}",
    response_model=CouponResponse,
    summary="Update coupon",
    responses={**_MANAGE_RESPONSES, 400: {"description": "Invalid coupon rules"}},
)
async def update_coupon(
    coupon_id: UUID,
    data: CouponUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    """Partially update a coupon. The usage counter cannot be set here."""
    try:
        return CouponService(db).update_coupon(coupon_id, data, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/bulk",
    response_model=list[BulkCouponResult],
    summary="Activate, deactivate or delete several coupons",
    responses={403: {"description": "Not allowed to manage coupons"}},
)
async def bulk_update_coupons(
    data: BulkCouponRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[BulkCouponResult]:
    """One result per coupon; a coupon that cannot be changed does not stop the rest."""
    try:
        return CouponService(db).bulk_update(data.coupon_ids, data.action, utc_now(), actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{coupon_id}/activate",
    response_model=CouponResponse,
    summary="Activate coupon",
    responses=_MANAGE_RESPONSES,
)
async def activate_coupon(
    coupon_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).set_active(coupon_id, True, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{coupon_id}/deactivate",
    response_model=CouponResponse,
    summary="Deactivate coupon",
    responses=_MANAGE_RESPONSES,
)
async def deactivate_coupon(
    coupon_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).set_active(coupon_id, False, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.delete(
    "/{coupon_id}",
    status_code=204,
    summary="Delete coupon",
    responses={**_MANAGE_RESPONSES, 409: {"description": "Coupon has applied usages"}},
)
async def delete_coupon(
    coupon_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    """Soft delete a coupon. Its code stays reserved."""
    try:
        CouponService(db).delete_coupon(coupon_id, utc_now(), actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{coupon_id}/duplicate",
    response_model=CouponResponse,
    status_code=201,
    summary="Duplicate coupon",
    responses={**_MANAGE_RESPONSES, 409: {"description": "Duplicate code already exists"}},
)
async def duplicate_coupon(
    coupon_id: UUID,
    data: DuplicateCouponRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    """Create an inactive, unused copy of a coupon under a new code."""
    try:
        return CouponService(db).duplicate_coupon(coupon_id, data.new_code, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{coupon_id}/users",
    response_model=CouponResponse,
    summary="Allow users to use a private coupon",
    responses=_MANAGE_RESPONSES,
)
async def assign_users(
    coupon_id: UUID,
    data: CouponUsersRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).assign_users(coupon_id, data.user_ids, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.delete(
    "/{coupon_id}/users",
    response_model=CouponResponse,
    summary="Remove users from a private coupon",
    responses=_MANAGE_RESPONSES,
)
async def remove_users(
    coupon_id: UUID,
    data: CouponUsersRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).remove_users(coupon_id, data.user_ids, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.put(
    "/{coupon_id}/assets",
    response_model=CouponResponse,
    summary="Replace coupon applicability",
    responses=_MANAGE_RESPONSES,
)
async def update_assets(
    coupon_id: UUID,
    data: CouponAssetsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Coupon:
    try:
        return CouponService(db).update_assets(coupon_id, data, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.get(
    "/{coupon_id}/usages",
    response_model=list[CouponUsageResponse],
    summary="List coupon usage history",
    responses=_MANAGE_RESPONSES,
)
async def list_usage_history(
    coupon_id: UUID,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=settings.COUPON_USAGE_HISTORY_PAGE_SIZE, ge=1, le=1000),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[CouponUsage]:
    """Ledger entries of a coupon, newest first."""
    try:
        usages, total = CouponService(db).list_usage_history(coupon_id, actor, skip, limit)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None
    response.headers["X-Total-Count"] = str(total)
    return usages


@router.get(
    "/{coupon_id}/audit_logs",
    response_model=list[AuditLogResponse],
    summary="List coupon audit trail",
    responses=_MANAGE_RESPONSES,
)
async def list_audit_logs(
    coupon_id: UUID,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    action: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[AuditLog]:
    try:
        return CouponService(db).list_audit_logs(coupon_id, actor, skip, limit, action)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None
