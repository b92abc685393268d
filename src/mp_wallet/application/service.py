"""WalletApplicationService: each call is one atomic unit.

Wraps WalletLedger operations in `atomic(db)` (commit on success, rollback on
any error) and maps domain results to schemas. hold/release/refund are also
exposed here as standalone atomic units; the order lifecycle calls the ledger
directly inside its own transaction instead.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.database import atomic
from src.mp_wallet.application.schemas import (
    AdjustBalanceRequest,
    BalanceResponse,
    TransactionItem,
    TransactionListResponse,
    WalletMovementResponse,
)
from src.mp_wallet.domain.ledger import WalletLedger
from src.mp_wallet.domain.models import RefundResult, ReleaseResult, Wallet
from src.mp_wallet.infrastructure.persistence import EscrowRepository, WalletRepository

logger = logging.getLogger(__name__)


def build_ledger() -> WalletLedger:
    return WalletLedger(WalletRepository(), EscrowRepository())


class WalletApplicationService:
    def __init__(self, ledger: WalletLedger | None = None) -> None:
        self._ledger = ledger or build_ledger()

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        wallet = await self._ledger.get_balance(db, user_id)
        return BalanceResponse.from_wallet(wallet)

    async def deposit(
        self,
        db: AsyncSession,
        user_id: str,
        amount_cents: int,
        reference: str | None = None,
        description: str | None = None,
    ) -> WalletMovementResponse:
        async with atomic(db):
            wallet, tx = await self._ledger.deposit(
                db, user_id, amount_cents, reference, description
            )
        return WalletMovementResponse(
            balance=BalanceResponse.from_wallet(wallet),
            transaction=TransactionItem.from_domain(tx),
        )

    async def withdraw(
        self,
        db: AsyncSession,
        user_id: str,
        amount_cents: int,
        reference: str | None = None,
    ) -> WalletMovementResponse:
        async with atomic(db):
            wallet, tx = await self._ledger.withdraw(db, user_id, amount_cents, reference)
        return WalletMovementResponse(
            balance=BalanceResponse.from_wallet(wallet),
            transaction=TransactionItem.from_domain(tx),
        )

    async def adjust_balance(
        self,
        db: AsyncSession,
        user_id: str,
        admin_id: str,
        req: AdjustBalanceRequest,
    ) -> WalletMovementResponse:
        description = f"Admin adjustment: {req.reason}"
        metadata = {"admin_id": admin_id, "reason": req.reason}
        async with atomic(db):
            if req.direction == "credit":
                wallet, tx = await self._ledger.deposit(
                    db, user_id, req.amount_cents, description=description, metadata=metadata
                )
            else:
                wallet, tx = await self._ledger.withdraw(
                    db, user_id, req.amount_cents, description=description, metadata=metadata
                )
        logger.info(
            "Balance adjusted by admin %s: user=%s %s %d",
            admin_id, user_id, req.direction, req.amount_cents,
        )
        return WalletMovementResponse(
            balance=BalanceResponse.from_wallet(wallet),
            transaction=TransactionItem.from_domain(tx),
        )

    async def hold(
        self, db: AsyncSession, user_id: str, order_id: str, amount_cents: int
    ) -> Wallet:
        async with atomic(db):
            wallet, _ = await self._ledger.hold(db, user_id, order_id, amount_cents)
        return wallet

    async def release(self, db: AsyncSession, order_id: str) -> ReleaseResult:
        async with atomic(db):
            return await self._ledger.release(db, order_id)

    async def refund(self, db: AsyncSession, order_id: str) -> RefundResult:
        async with atomic(db):
            return await self._ledger.refund(db, order_id)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: str | None,
        limit: int,
        offset: int,
    ) -> TransactionListResponse:
        page = await self._ledger.get_transactions(db, user_id, tx_type, limit, offset)
        return TransactionListResponse(
            items=[TransactionItem.from_domain(tx) for tx in page.items],
            total=page.total,
            limit=limit,
            offset=offset,
        )
