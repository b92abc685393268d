"""mp_order REST API: order creation, lifecycle actions, disputes. All require JWT."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.middleware.request_log import get_request_id
from src.mp_gateway.user.db_models import UserModel
from src.mp_order.application.schemas import (
    CancelOrderRequest,
    CompleteOrderRequest,
    CreateOrderRequest,
    LocationUpdateRequest,
    OpenDisputeRequest,
    OrderRoleLiteral,
    OrderStatusLiteral,
    RejectOrderRequest,
    ShipOrderRequest,
)
from src.mp_order.application.service import OrderApplicationService

router = APIRouter(prefix="/orders", tags=["orders"])

_service = OrderApplicationService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def _respond(data: object, request: Request) -> ApiResponse:
    resp = success_response(data)
    resp.request_id = get_request_id(request)
    return resp


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.create(db, current_user.id, body)
    return _respond(data.model_dump(), request)


@router.get("")
async def list_orders(
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    role: OrderRoleLiteral = Query("both", description="buyer / seller / both"),
    status: list[OrderStatusLiteral] | None = Query(None, description="Repeatable status filter"),
    limit: int = Query(20, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    data = await _service.list_orders(db, current_user.id, role, status, limit, offset)
    return _respond(data.model_dump(), request)


@router.get("/{order_id}")
async def get_order(
    order_id: str, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.get_order(db, order_id, current_user.id)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/pay")
async def pay_order(
    order_id: str, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.pay(db, order_id, current_user.id)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/accept")
async def accept_order(
    order_id: str, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.accept(db, order_id, current_user.id)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/reject")
async def reject_order(
    order_id: str,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    body: RejectOrderRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    data = await _service.reject(db, order_id, current_user.id, reason)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/start")
async def start_order(
    order_id: str, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.start_progress(db, order_id, current_user.id)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/ship")
async def ship_order(
    order_id: str,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    body: ShipOrderRequest | None = None,
) -> ApiResponse:
    tracking = body.tracking if body else None
    data = await _service.ship(db, order_id, current_user.id, tracking)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/deliver")
async def deliver_order(
    order_id: str, current_user: CurrentUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.mark_delivered(db, order_id, current_user.id)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/complete")
async def complete_order(
    order_id: str,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    body: CompleteOrderRequest | None = None,
) -> ApiResponse:
    rating = body.rating if body else None
    data = await _service.complete(db, order_id, current_user.id, rating)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
    body: CancelOrderRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    data = await _service.cancel(db, order_id, current_user.id, reason)
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/dispute", status_code=201)
async def open_dispute(
    order_id: str,
    body: OpenDisputeRequest,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.open_dispute(
        db, order_id, current_user.id, body.reason, body.description
    )
    return _respond(data.model_dump(), request)


@router.post("/{order_id}/location")
async def update_location(
    order_id: str,
    body: LocationUpdateRequest,
    current_user: CurrentUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.update_location(
        db, order_id, current_user.id, body.lat, body.lng, body.eta
    )
    return _respond(data.model_dump(), request)
