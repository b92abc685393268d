"""WalletRepository / EscrowRepository: PostgreSQL implementations of the mp_wallet Protocols.

Wallet columns live on the users row (wallet_balance, held_balance).
Escrow lives on the owning orders row (escrow_amount).

Row locks use SELECT ... FOR UPDATE and are held until the caller commits or
rolls back. Wallet rows are always locked in ascending user id order.

Transaction ownership: The CALLER (application service) is responsible for
committing via `mp_common.database.atomic`.
"""

import json
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.errors import InternalError
from src.mp_wallet.domain.models import (
    EscrowState,
    LedgerTransaction,
    TransactionDraft,
    Wallet,
)

# ---------------------------------------------------------------------------
# SQL: wallets (users table)
# ---------------------------------------------------------------------------

_GET_WALLET_SQL = text("""
    SELECT id, wallet_balance, held_balance
    FROM users
    WHERE id = :user_id
""")

_LOCK_WALLET_SQL = text("""
    SELECT id, wallet_balance, held_balance
    FROM users
    WHERE id = :user_id
    FOR UPDATE
""")

_SAVE_WALLET_SQL = text("""
    UPDATE users
    SET wallet_balance = :balance,
        held_balance   = :held,
        updated_at = NOW()
    WHERE id = :user_id
    RETURNING id, wallet_balance, held_balance
""")

# ---------------------------------------------------------------------------
# SQL: ledger_transactions (append-only)
# ---------------------------------------------------------------------------

_TX_COLUMNS = """
    id, user_id, order_id, type, amount, balance_before, balance_after,
    status, reference, description, metadata, created_at
"""

_INSERT_TX_SQL = text(f"""
    INSERT INTO ledger_transactions
        (user_id, order_id, type, amount, balance_before, balance_after,
         status, reference, description, metadata)
    VALUES
        (:user_id, :order_id, :type, :amount, :balance_before, :balance_after,
         :status, :reference, :description, CAST(:metadata AS JSONB))
    RETURNING {_TX_COLUMNS}
""")

_LIST_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM ledger_transactions
    WHERE user_id = :user_id
      AND (CAST(:tx_type AS TEXT) IS NULL OR type = :tx_type)
    ORDER BY created_at DESC, id DESC
    LIMIT :limit OFFSET :offset
""")

_COUNT_TX_SQL = text("""
    SELECT COUNT(*)
    FROM ledger_transactions
    WHERE user_id = :user_id
      AND (CAST(:tx_type AS TEXT) IS NULL OR type = :tx_type)
""")

# ---------------------------------------------------------------------------
# SQL: escrow (orders table)
# ---------------------------------------------------------------------------

_LOCK_ESCROW_SQL = text("""
    SELECT id, buyer_id, seller_id, escrow_amount, total_amount,
           platform_fee_percent, platform_fee_amount, seller_amount
    FROM orders
    WHERE id = :order_id
    FOR UPDATE
""")

_SET_ESCROW_SQL = text("""
    UPDATE orders
    SET escrow_amount = :new, updated_at = NOW()
    WHERE id = :order_id AND escrow_amount = :expected
    RETURNING id
""")


def _row_to_wallet(row: Any) -> Wallet:
    return Wallet(
        user_id=str(row.id),
        balance=row.wallet_balance,
        held=row.held_balance,
    )


def _row_to_tx(row: Any) -> LedgerTransaction:
    metadata = row.metadata
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return LedgerTransaction(
        id=row.id,
        user_id=str(row.user_id),
        order_id=row.order_id,
        type=row.type,
        amount=row.amount,
        balance_before=row.balance_before,
        balance_after=row.balance_after,
        status=row.status,
        reference=row.reference,
        description=row.description,
        metadata=metadata or {},
        created_at=row.created_at,
    )


def _row_to_escrow(row: Any) -> EscrowState:
    return EscrowState(
        order_id=row.id,
        buyer_id=str(row.buyer_id),
        seller_id=str(row.seller_id),
        escrow_amount=row.escrow_amount,
        total_amount=row.total_amount,
        platform_fee_percent=Decimal(row.platform_fee_percent),
        platform_fee_amount=row.platform_fee_amount,
        seller_amount=row.seller_amount,
    )


class WalletRepository:
    """Concrete wallet repository: raw SQL, caller-owned transaction."""

    async def get_wallet(self, db: AsyncSession, user_id: str) -> Wallet | None:
        result = await db.execute(_GET_WALLET_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def lock_wallets(
        self, db: AsyncSession, user_ids: list[str]
    ) -> dict[str, Wallet]:
        wallets: dict[str, Wallet] = {}
        for user_id in sorted(set(user_ids)):
            result = await db.execute(_LOCK_WALLET_SQL, {"user_id": user_id})
            row = result.fetchone()
            if row is not None:
                wallets[user_id] = _row_to_wallet(row)
        return wallets

    async def save_wallet(self, db: AsyncSession, wallet: Wallet) -> Wallet:
        result = await db.execute(
            _SAVE_WALLET_SQL,
            {"user_id": wallet.user_id, "balance": wallet.balance, "held": wallet.held},
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Wallet row vanished for user {wallet.user_id}")
        return _row_to_wallet(row)

    async def append_transaction(
        self, db: AsyncSession, draft: TransactionDraft
    ) -> LedgerTransaction:
        result = await db.execute(
            _INSERT_TX_SQL,
            {
                "user_id": draft.user_id,
                "order_id": draft.order_id,
                "type": draft.type,
                "amount": draft.amount,
                "balance_before": draft.balance_before,
                "balance_after": draft.balance_after,
                "status": draft.status,
                "reference": draft.reference,
                "description": draft.description,
                "metadata": json.dumps(draft.metadata),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows")
        return _row_to_tx(row)

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: str | None,
        limit: int,
        offset: int,
    ) -> list[LedgerTransaction]:
        result = await db.execute(
            _LIST_TX_SQL,
            {"user_id": user_id, "tx_type": tx_type, "limit": limit, "offset": offset},
        )
        return [_row_to_tx(row) for row in result.fetchall()]

    async def count_transactions(
        self, db: AsyncSession, user_id: str, tx_type: str | None
    ) -> int:
        result = await db.execute(_COUNT_TX_SQL, {"user_id": user_id, "tx_type": tx_type})
        return int(result.scalar_one())


class EscrowRepository:
    """Escrow columns of the orders table, as seen by the ledger."""

    async def lock_escrow(self, db: AsyncSession, order_id: str) -> EscrowState | None:
        result = await db.execute(_LOCK_ESCROW_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_escrow(row) if row else None

    async def set_escrow(
        self, db: AsyncSession, order_id: str, expected: int, new: int
    ) -> bool:
        result = await db.execute(
            _SET_ESCROW_SQL, {"order_id": order_id, "expected": expected, "new": new}
        )
        return result.fetchone() is not None
