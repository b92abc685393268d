"""Repository Protocols: dependency inversion for testability.

Unit tests inject an in-memory store that conforms to these Protocols.
Infrastructure layer provides the PostgreSQL implementation.

Every method runs inside the caller's transaction; none of them commit.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_wallet.domain.models import (
    EscrowState,
    LedgerTransaction,
    TransactionDraft,
    Wallet,
)


class WalletRepositoryProtocol(Protocol):
    async def get_wallet(self, db: AsyncSession, user_id: str) -> Wallet | None: ...

    async def lock_wallets(
        self, db: AsyncSession, user_ids: list[str]
    ) -> dict[str, Wallet]:
        """Lock wallet rows in ascending user id order; unknown ids are absent from the result."""
        ...

    async def save_wallet(self, db: AsyncSession, wallet: Wallet) -> Wallet: ...

    async def append_transaction(
        self, db: AsyncSession, draft: TransactionDraft
    ) -> LedgerTransaction: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: str | None,
        limit: int,
        offset: int,
    ) -> list[LedgerTransaction]: ...

    async def count_transactions(
        self, db: AsyncSession, user_id: str, tx_type: str | None
    ) -> int: ...


class EscrowRepositoryProtocol(Protocol):
    async def lock_escrow(self, db: AsyncSession, order_id: str) -> EscrowState | None: ...

    async def set_escrow(
        self, db: AsyncSession, order_id: str, expected: int, new: int
    ) -> bool:
        """Compare-and-set escrow_amount; False when the stored value is no longer `expected`."""
        ...
