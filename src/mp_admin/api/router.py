"""Admin REST API: requires an authenticated admin user."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_admin.application.service import AdminService
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_gateway.auth.dependencies import require_admin
from src.mp_gateway.middleware.request_log import get_request_id
from src.mp_gateway.user.db_models import UserModel
from src.mp_order.application.schemas import (
    OrderRoleLiteral,
    OrderStatusLiteral,
    ResolveDisputeRequest,
)
from src.mp_wallet.application.schemas import AdjustBalanceRequest, TransactionTypeLiteral

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()

AdminUser = Annotated[UserModel, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/orders/{order_id}/resolve-dispute")
async def resolve_dispute(
    order_id: str,
    body: ResolveDisputeRequest,
    admin: AdminUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.resolve_dispute(db, order_id, admin.id, body)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str, admin: AdminUser, db: DbSession, request: Request
) -> ApiResponse:
    data = await _service.get_order(db, order_id)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.get("/ledger/verify")
async def verify_ledger(admin: AdminUser, db: DbSession, request: Request) -> ApiResponse:
    result = await _service.verify_ledger(db)
    resp = success_response(result)
    resp.request_id = get_request_id(request)
    return resp


@router.get("/wallets/{user_id}/transactions")
async def user_transactions(
    user_id: str,
    admin: AdminUser,
    db: DbSession,
    request: Request,
    tx_type: TransactionTypeLiteral | None = Query(None, alias="type"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    data = await _service.user_transactions(db, user_id, tx_type, limit, offset)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.get("/orders")
async def list_orders(
    admin: AdminUser,
    db: DbSession,
    request: Request,
    user_id: str | None = Query(None, description="Only orders this user takes part in"),
    role: OrderRoleLiteral = Query("both", description="Applies with user_id"),
    status: list[OrderStatusLiteral] | None = Query(None, description="Repeatable status filter"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    data = await _service.list_orders(db, user_id, role, status, limit, offset)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.get("/wallets")
async def list_wallets(
    admin: AdminUser,
    db: DbSession,
    request: Request,
    min_balance: int | None = Query(None, ge=0, description="Minimum total balance in cents"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    result = await _service.list_wallets(db, min_balance, limit, offset)
    resp = success_response(result)
    resp.request_id = get_request_id(request)
    return resp


@router.post("/wallets/{user_id}/adjust")
async def adjust_balance(
    user_id: str,
    body: AdjustBalanceRequest,
    admin: AdminUser,
    db: DbSession,
    request: Request,
) -> ApiResponse:
    data = await _service.adjust_balance(db, user_id, admin.id, body)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp
