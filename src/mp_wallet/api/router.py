"""mp_wallet REST API: 4 endpoints, all require JWT authentication."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.middleware.request_log import get_request_id
from src.mp_gateway.user.db_models import UserModel
from src.mp_wallet.application.schemas import (
    DepositRequest,
    TransactionTypeLiteral,
    WithdrawRequest,
)
from src.mp_wallet.application.service import WalletApplicationService

router = APIRouter(prefix="/wallet", tags=["wallet"])

_service = WalletApplicationService()


@router.get("/balance")
async def get_balance(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_balance(db, current_user.id)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.post("/deposit")
async def deposit(
    body: DepositRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.deposit(
        db, current_user.id, body.amount_cents, body.reference, body.description
    )
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.post("/withdraw")
async def withdraw(
    body: WithdrawRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.withdraw(db, current_user.id, body.amount_cents, body.reference)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp


@router.get("/transactions")
async def list_transactions(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    tx_type: TransactionTypeLiteral | None = Query(None, alias="type", description="Filter by type"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    data = await _service.list_transactions(db, current_user.id, tx_type, limit, offset)
    resp = success_response(data.model_dump())
    resp.request_id = get_request_id(request)
    return resp
