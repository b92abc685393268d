"""Ledger-wide escrow audit.

Checks that hold across the whole store, not just one operation:
  - every wallet: 0 <= held_balance <= wallet_balance
  - sum(users.held_balance) == sum(orders.escrow_amount)
  - every order: platform_fee_amount + seller_amount == total_amount
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_BAD_WALLETS_SQL = text("""
    SELECT id, wallet_balance, held_balance
    FROM users
    WHERE held_balance < 0 OR held_balance > wallet_balance
""")
_TOTAL_HELD_SQL = text("SELECT COALESCE(SUM(held_balance), 0) FROM users")
_TOTAL_ESCROW_SQL = text("SELECT COALESCE(SUM(escrow_amount), 0) FROM orders")
_BAD_SPLITS_SQL = text("""
    SELECT id, total_amount, platform_fee_amount, seller_amount
    FROM orders
    WHERE platform_fee_amount + seller_amount <> total_amount
""")


async def verify_wallet_invariants(db: AsyncSession) -> list[str]:
    """Returns list of violation strings (empty when the ledger is consistent)."""
    violations: list[str] = []

    for row in (await db.execute(_BAD_WALLETS_SQL)).fetchall():
        violations.append(
            f"wallet {row.id}: held={row.held_balance} outside [0, balance={row.wallet_balance}]"
        )

    total_held = (await db.execute(_TOTAL_HELD_SQL)).scalar_one()
    total_escrow = (await db.execute(_TOTAL_ESCROW_SQL)).scalar_one()
    if total_held != total_escrow:
        violations.append(
            f"held balances ({total_held}) != open escrow on orders ({total_escrow})"
        )

    for row in (await db.execute(_BAD_SPLITS_SQL)).fetchall():
        violations.append(
            f"order {row.id}: fee({row.platform_fee_amount}) + seller({row.seller_amount}) "
            f"!= total({row.total_amount})"
        )

    for msg in violations:
        logger.error("Ledger invariant violated: %s", msg)
    return violations
