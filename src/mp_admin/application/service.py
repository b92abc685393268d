"""Admin application service: dispute resolution, wallet oversight and ledger audit."""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.cents import cents_to_display
from src.mp_order.application.schemas import (
    OrderListResponse,
    OrderResponse,
    ResolveDisputeRequest,
)
from src.mp_order.application.service import OrderApplicationService
from src.mp_wallet.application.schemas import (
    AdjustBalanceRequest,
    TransactionListResponse,
    WalletMovementResponse,
)
from src.mp_wallet.application.service import WalletApplicationService
from src.mp_wallet.domain.invariants import verify_wallet_invariants

logger = logging.getLogger(__name__)

_LEDGER_STATS_SQL = text("""
    SELECT
        COALESCE(SUM(CASE WHEN type = 'commission' THEN amount END), 0) AS total_commission,
        COALESCE(SUM(CASE WHEN type = 'deposit' THEN amount END), 0)    AS total_deposits,
        COALESCE(-SUM(CASE WHEN type = 'withdrawal' THEN amount END), 0) AS total_withdrawals,
        COUNT(*) AS transaction_count
    FROM ledger_transactions
""")
_OPEN_ESCROW_SQL = text("""
    SELECT COUNT(*) AS orders_in_escrow, COALESCE(SUM(escrow_amount), 0) AS escrow_total
    FROM orders
    WHERE escrow_amount > 0
""")

_WALLET_FILTER = "(CAST(:min_balance AS BIGINT) IS NULL OR u.wallet_balance >= :min_balance)"

_LIST_WALLETS_SQL = text(f"""
    SELECT
        u.id, u.username, u.display_name, u.wallet_balance, u.held_balance,
        (SELECT COUNT(*) FROM orders o WHERE o.buyer_id = u.id)  AS buyer_order_count,
        (SELECT COUNT(*) FROM orders o WHERE o.seller_id = u.id) AS seller_order_count,
        (SELECT COUNT(*) FROM ledger_transactions t WHERE t.user_id = u.id) AS transaction_count
    FROM users u
    WHERE {_WALLET_FILTER}
    ORDER BY u.wallet_balance DESC, u.id
    LIMIT :limit OFFSET :offset
""")
_COUNT_WALLETS_SQL = text(f"""
    SELECT COUNT(*) FROM users u WHERE {_WALLET_FILTER}
""")


def _wallet_row(row: Any) -> dict[str, Any]:
    available = row.wallet_balance - row.held_balance
    return {
        "user_id": str(row.id),
        "username": row.username,
        "display_name": row.display_name,
        "total_cents": row.wallet_balance,
        "total_display": cents_to_display(row.wallet_balance),
        "held_cents": row.held_balance,
        "available_cents": available,
        "available_display": cents_to_display(available),
        "buyer_order_count": int(row.buyer_order_count),
        "seller_order_count": int(row.seller_order_count),
        "transaction_count": int(row.transaction_count),
    }


class AdminService:
    def __init__(
        self,
        orders: OrderApplicationService | None = None,
        wallets: WalletApplicationService | None = None,
    ) -> None:
        self._orders = orders or OrderApplicationService()
        self._wallets = wallets or WalletApplicationService()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def resolve_dispute(
        self, db: AsyncSession, order_id: str, admin_id: str, req: ResolveDisputeRequest
    ) -> OrderResponse:
        resolution = req.to_resolution()
        logger.info(
            "Admin %s resolving dispute on order %s: %s", admin_id, order_id, req.outcome
        )
        return await self._orders.resolve_dispute(db, order_id, admin_id, resolution, req.notes)

    async def get_order(self, db: AsyncSession, order_id: str) -> OrderResponse:
        return await self._orders.get_order(db, order_id)

    async def list_orders(
        self,
        db: AsyncSession,
        user_id: str | None,
        role: str,
        statuses: list[str] | None,
        limit: int,
        offset: int,
    ) -> OrderListResponse:
        """All orders, optionally narrowed to one participant and/or statuses."""
        return await self._orders.list_orders(db, user_id, role, statuses, limit, offset)

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def list_wallets(
        self, db: AsyncSession, min_balance: int | None, limit: int, offset: int
    ) -> dict[str, Any]:
        params = {"min_balance": min_balance, "limit": limit, "offset": offset}
        rows = (await db.execute(_LIST_WALLETS_SQL, params)).fetchall()
        total = (await db.execute(_COUNT_WALLETS_SQL, {"min_balance": min_balance})).scalar_one()
        return {
            "items": [_wallet_row(row) for row in rows],
            "total": int(total),
            "limit": limit,
            "offset": offset,
        }

    async def adjust_balance(
        self, db: AsyncSession, user_id: str, admin_id: str, req: AdjustBalanceRequest
    ) -> WalletMovementResponse:
        return await self._wallets.adjust_balance(db, user_id, admin_id, req)

    async def user_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: str | None,
        limit: int,
        offset: int,
    ) -> TransactionListResponse:
        return await self._wallets.list_transactions(db, user_id, tx_type, limit, offset)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def verify_ledger(self, db: AsyncSession) -> dict[str, Any]:
        violations = await verify_wallet_invariants(db)
        stats = (await db.execute(_LEDGER_STATS_SQL)).fetchone()
        escrow = (await db.execute(_OPEN_ESCROW_SQL)).fetchone()
        return {
            "ok": not violations,
            "violations": violations,
            "total_commission_cents": int(stats.total_commission) if stats else 0,
            "total_deposits_cents": int(stats.total_deposits) if stats else 0,
            "total_withdrawals_cents": int(stats.total_withdrawals) if stats else 0,
            "transaction_count": int(stats.transaction_count) if stats else 0,
            "orders_in_escrow": int(escrow.orders_in_escrow) if escrow else 0,
            "escrow_total_cents": int(escrow.escrow_total) if escrow else 0,
        }
