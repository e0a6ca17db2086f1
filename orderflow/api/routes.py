"""API routes for orders and verification codes."""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from orderflow.api.dependencies import Identity, get_identity, get_order_service, get_otp_service
from orderflow.config import get_settings
from orderflow.database.base import OrderCriteria
from orderflow.errors import NotOwnerError
from orderflow.models.order import Order, OrderState
from orderflow.models.otp import IssueResult, OTPPurpose, OTPStats, VerifyResult
from orderflow.models.request import (
    AssignCourierRequest,
    CheckoutRequest,
    CleanupResponse,
    ErrorResponse,
    HealthResponse,
    OrderPage,
    OTPSendRequest,
    OTPVerifyRequest,
    RateRequest,
    StatusUpdateRequest,
)
from orderflow.models.user import Role
from orderflow.services.order_service import OrderService
from orderflow.services.order_state import permitted_for
from orderflow.services.otp_service import OTPService

logger = logging.getLogger(__name__)
settings = get_settings()

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 403, 404, 409, 429, 503)
}

router = APIRouter(prefix=settings.api_prefix, responses=ERROR_RESPONSES)


def _ensure_party(order: Order, identity: Identity) -> None:
    """Admins see everything; everyone else only orders they take part in."""
    if identity.role is Role.ADMIN:
        return
    party = {
        Role.CUSTOMER: order.customerId,
        Role.STORE: order.storeId,
        Role.COURIER: order.courierId,
    }[identity.role]
    if party != identity.user_id:
        raise NotOwnerError(order.orderNumber)


def _page(orders: list[Order], total: int, page: int, limit: int) -> OrderPage:
    return OrderPage(
        orders=orders,
        page=page,
        total_pages=math.ceil(total / limit) if total else 0,
        total=total,
        per_page=limit,
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    storage_status = request.app.state.storage.status
    return HealthResponse(
        status="degraded" if storage_status == "disconnected" else "healthy",
        version=settings.app_version,
        services={"storage": storage_status},
    )


# Orders


@router.post("/orders", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Place an order for the calling customer."""
    identity.require("place orders", Role.CUSTOMER)
    return await service.checkout(
        customer_id=identity.user_id,
        items=body.items,
        shipping_address=body.shipping_address,
        payment_method=body.payment_method,
        note=body.note,
    )


@router.get("/orders", response_model=OrderPage)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    state: Optional[OrderState] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    store_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    courier_id: Optional[str] = None,
    number: Optional[str] = None,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> OrderPage:
    """List orders the caller takes part in. Admins may filter freely."""
    criteria = OrderCriteria(state=state, created_from=created_from, created_to=created_to)
    if identity.role is Role.CUSTOMER:
        criteria.customer_id = identity.user_id
    elif identity.role is Role.STORE:
        criteria.store_id = identity.user_id
    elif identity.role is Role.COURIER:
        criteria.courier_id = identity.user_id
    else:
        criteria.store_id = store_id
        criteria.customer_id = customer_id
        criteria.courier_id = courier_id
        criteria.order_number = number

    orders, total = await service.list_orders(criteria, page, limit)
    return _page(orders, total, page, limit)


@router.get("/orders/available", response_model=OrderPage)
async def list_available_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> OrderPage:
    """Ready orders no courier has claimed yet."""
    identity.require("list available orders", Role.COURIER)
    orders, total = await service.list_available(page, limit)
    return _page(orders, total, page, limit)


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Get one order."""
    order = await service.get_order(order_id)
    _ensure_party(order, identity)
    return order


@router.put("/orders/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Move an order to a new state, within what the caller's role allows."""
    order = await service.get_order(order_id)
    _ensure_party(order, identity)
    return await service.transition(order_id, body.state, permitted_for(identity.role))


@router.put("/orders/{order_id}/claim", response_model=Order)
async def claim_order(
    order_id: str,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Take a ready order as the calling courier."""
    identity.require("claim orders", Role.COURIER)
    return await service.claim(order_id, identity.user_id)


@router.put("/orders/{order_id}/assign-courier", response_model=Order)
async def assign_courier(
    order_id: str,
    body: AssignCourierRequest,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Assign a courier directly (store or admin)."""
    identity.require("assign couriers", Role.STORE, Role.ADMIN)
    order = await service.get_order(order_id)
    _ensure_party(order, identity)
    return await service.assign_courier(order_id, body.courier_id, identity.role)


@router.put("/orders/{order_id}/rate", response_model=Order)
async def rate_order(
    order_id: str,
    body: RateRequest,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
) -> Order:
    """Rate a delivered order (its customer only)."""
    identity.require("rate orders", Role.CUSTOMER)
    return await service.rate(order_id, identity.user_id, body.score, body.comment)


# Verification codes


def _provenance(request: Request) -> dict[str, Optional[str]]:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/otp/send", response_model=IssueResult)
async def send_code(
    body: OTPSendRequest,
    request: Request,
    service: OTPService = Depends(get_otp_service),
) -> IssueResult:
    """Issue a verification code."""
    return await service.issue(
        body.phone,
        body.email,
        purpose=body.purpose,
        method=body.method,
        metadata=body.metadata,
        **_provenance(request),
    )


@router.post("/otp/verify", response_model=VerifyResult)
async def verify_code(
    body: OTPVerifyRequest,
    service: OTPService = Depends(get_otp_service),
) -> VerifyResult:
    """Verify a code."""
    return await service.verify(body.phone, body.code, body.purpose)


@router.post("/otp/resend", response_model=IssueResult)
async def resend_code(
    body: OTPSendRequest,
    request: Request,
    service: OTPService = Depends(get_otp_service),
) -> IssueResult:
    """Issue a replacement code, subject to the resend interval."""
    return await service.resend(
        body.phone,
        body.email,
        purpose=body.purpose,
        method=body.method,
        metadata=body.metadata,
        **_provenance(request),
    )


@router.get("/otp/stats", response_model=OTPStats)
async def code_stats(
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    purpose: Optional[OTPPurpose] = None,
    identity: Identity = Depends(get_identity),
    service: OTPService = Depends(get_otp_service),
) -> OTPStats:
    """Verification code statistics (admin), optionally by creation range and purpose."""
    identity.require("view code statistics", Role.ADMIN)
    return await service.stats(created_from=created_from, created_to=created_to, purpose=purpose)


@router.delete("/otp/cleanup", response_model=CleanupResponse)
async def cleanup_codes(
    identity: Identity = Depends(get_identity),
    service: OTPService = Depends(get_otp_service),
) -> CleanupResponse:
    """Purge expired, consumed and exhausted codes (admin)."""
    identity.require("clean up codes", Role.ADMIN)
    return CleanupResponse(purged_count=await service.cleanup())
