"""WalletLedger: balance, escrow and the append-only transaction log.

All mutations run within the caller's transaction (see mp_common.database.atomic).
Rows are locked before they are read for update:
  1. the owning order row (escrow), when the operation concerns an order
  2. wallet rows, in ascending user id order
so two operations touching the same rows serialize instead of interleaving,
and lock acquisition order is the same everywhere.

Escrow is claimed with a compare-and-set on the order row before any money
moves. A second release/refund of the same escrow sees escrow_amount == 0 and
fails with NoEscrowError; nothing is paid twice.

Transaction amounts:
  deposit/withdrawal/release  signed, balance_after - balance_before == amount
  hold/refund                 unsigned, balance_before == balance_after (only held moves)
  commission                  platform revenue record, no wallet movement
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.cents import split_amount
from src.mp_common.enums import TransactionType
from src.mp_common.errors import (
    EscrowAlreadyHeldError,
    InsufficientBalanceError,
    InvalidAmountError,
    NoEscrowError,
    OrderNotFoundError,
    UserNotFoundError,
)
from src.mp_wallet.domain.models import (
    EscrowState,
    LedgerTransaction,
    RefundResult,
    ReleaseResult,
    SplitResult,
    TransactionDraft,
    TransactionPage,
    Wallet,
)
from src.mp_wallet.domain.repository import (
    EscrowRepositoryProtocol,
    WalletRepositoryProtocol,
)

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise InvalidAmountError(amount)


class WalletLedger:
    def __init__(
        self,
        wallets: WalletRepositoryProtocol,
        escrows: EscrowRepositoryProtocol,
    ) -> None:
        self._wallets = wallets
        self._escrows = escrows

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, db: AsyncSession, user_id: str) -> Wallet:
        wallet = await self._wallets.get_wallet(db, user_id)
        if wallet is None:
            raise UserNotFoundError(user_id)
        return wallet

    async def get_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        tx_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> TransactionPage:
        items = await self._wallets.list_transactions(db, user_id, tx_type, limit, offset)
        total = await self._wallets.count_transactions(db, user_id, tx_type)
        return TransactionPage(items=items, total=total)

    # ------------------------------------------------------------------
    # Single-wallet mutations
    # ------------------------------------------------------------------

    async def deposit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        reference: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Wallet, LedgerTransaction]:
        _require_positive(amount)
        wallet = await self._lock_one(db, user_id)
        updated = await self._wallets.save_wallet(db, wallet.adjusted(balance_delta=amount))
        tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=user_id,
                type=TransactionType.DEPOSIT.value,
                amount=amount,
                balance_before=wallet.balance,
                balance_after=updated.balance,
                reference=reference,
                description=description or "Wallet deposit",
                metadata=dict(metadata or {}),
            ),
        )
        return updated, tx

    async def withdraw(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        reference: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Wallet, LedgerTransaction]:
        """Debit available funds only; held escrow is never withdrawable."""
        _require_positive(amount)
        wallet = await self._lock_one(db, user_id)
        if amount > wallet.available:
            raise InsufficientBalanceError(amount, wallet.available)
        updated = await self._wallets.save_wallet(db, wallet.adjusted(balance_delta=-amount))
        tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=user_id,
                type=TransactionType.WITHDRAWAL.value,
                amount=-amount,
                balance_before=wallet.balance,
                balance_after=updated.balance,
                reference=reference,
                description=description or "Wallet withdrawal",
                metadata=dict(metadata or {}),
            ),
        )
        return updated, tx

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    async def hold(
        self, db: AsyncSession, user_id: str, order_id: str, amount: int
    ) -> tuple[Wallet, LedgerTransaction]:
        """Reserve `amount` of the user's available funds against an order."""
        _require_positive(amount)
        escrow = await self._lock_escrow(db, order_id)
        if escrow.escrow_amount != 0:
            raise EscrowAlreadyHeldError(order_id)
        wallet = await self._lock_one(db, user_id)
        if amount > wallet.available:
            raise InsufficientBalanceError(amount, wallet.available)

        if not await self._escrows.set_escrow(db, order_id, expected=0, new=amount):
            raise EscrowAlreadyHeldError(order_id)
        updated = await self._wallets.save_wallet(db, wallet.adjusted(held_delta=amount))
        tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=user_id,
                order_id=order_id,
                type=TransactionType.HOLD.value,
                amount=amount,
                balance_before=wallet.balance,
                balance_after=wallet.balance,
                description="Order escrow hold",
            ),
        )
        logger.info("Escrow hold: order=%s user=%s amount=%d", order_id, user_id, amount)
        return updated, tx

    async def release(self, db: AsyncSession, order_id: str) -> ReleaseResult:
        """Pay the full escrow to the seller, minus the order's snapshotted commission."""
        escrow, amount = await self._claim_escrow(db, order_id)
        wallets = await self._lock_parties(db, escrow)
        buyer, seller = wallets[escrow.buyer_id], wallets[escrow.seller_id]

        if amount == escrow.total_amount:
            commission, seller_amount = escrow.platform_fee_amount, escrow.seller_amount
        else:
            commission, seller_amount = split_amount(amount, escrow.platform_fee_percent)

        txs = await self._release_portion(
            db, escrow, buyer, seller, amount, commission, seller_amount,
        )
        logger.info(
            "Escrow released: order=%s amount=%d seller_received=%d commission=%d",
            order_id, amount, seller_amount, commission,
        )
        return ReleaseResult(
            order_id=order_id,
            released=amount,
            seller_received=seller_amount,
            commission=commission,
            transactions=txs,
        )

    async def refund(self, db: AsyncSession, order_id: str) -> RefundResult:
        """Return the full escrow to the buyer's available balance."""
        escrow, amount = await self._claim_escrow(db, order_id)
        buyer = (await self._lock_parties(db, escrow, include_seller=False))[escrow.buyer_id]
        _, tx = await self._refund_portion(db, escrow, buyer, amount)
        logger.info("Escrow refunded: order=%s amount=%d", order_id, amount)
        return RefundResult(order_id=order_id, refunded=amount, transaction=tx)

    async def settle_split(
        self, db: AsyncSession, order_id: str, refund_amount: int
    ) -> SplitResult:
        """Partial resolution: refund `refund_amount` to the buyer, release the rest to the seller.

        Both sub-operations share the caller's transaction. Commission is charged on the
        released part only, at the order's snapshotted fee percent.
        """
        escrow, amount = await self._claim_escrow(db, order_id)
        if not (0 < refund_amount < amount):
            raise InvalidAmountError(refund_amount)
        release_amount = amount - refund_amount
        commission, seller_amount = split_amount(release_amount, escrow.platform_fee_percent)

        wallets = await self._lock_parties(db, escrow)
        buyer, seller = wallets[escrow.buyer_id], wallets[escrow.seller_id]

        buyer, refund_tx = await self._refund_portion(db, escrow, buyer, refund_amount)
        release_txs = await self._release_portion(
            db, escrow, buyer, seller, release_amount, commission, seller_amount,
        )
        logger.info(
            "Escrow split: order=%s refunded=%d released=%d commission=%d",
            order_id, refund_amount, release_amount, commission,
        )
        return SplitResult(
            order_id=order_id,
            refunded_to_buyer=refund_amount,
            released_to_seller=release_amount,
            seller_received=seller_amount,
            commission=commission,
            transactions=[refund_tx, *release_txs],
        )

    # ------------------------------------------------------------------
    # Internals: callers hold the order and wallet locks
    # ------------------------------------------------------------------

    async def _lock_one(self, db: AsyncSession, user_id: str) -> Wallet:
        wallets = await self._wallets.lock_wallets(db, [user_id])
        if user_id not in wallets:
            raise UserNotFoundError(user_id)
        return wallets[user_id]

    async def _lock_escrow(self, db: AsyncSession, order_id: str) -> EscrowState:
        escrow = await self._escrows.lock_escrow(db, order_id)
        if escrow is None:
            raise OrderNotFoundError(order_id)
        return escrow

    async def _claim_escrow(
        self, db: AsyncSession, order_id: str
    ) -> tuple[EscrowState, int]:
        """Lock the order row and zero its escrow; returns the amount that was held."""
        escrow = await self._lock_escrow(db, order_id)
        amount = escrow.escrow_amount
        if amount <= 0:
            logger.warning("No escrow to settle: order=%s", order_id)
            raise NoEscrowError(order_id)
        if not await self._escrows.set_escrow(db, order_id, expected=amount, new=0):
            logger.warning("Escrow changed under lock: order=%s", order_id)
            raise NoEscrowError(order_id)
        return escrow, amount

    async def _lock_parties(
        self, db: AsyncSession, escrow: EscrowState, include_seller: bool = True
    ) -> dict[str, Wallet]:
        ids = [escrow.buyer_id, escrow.seller_id] if include_seller else [escrow.buyer_id]
        wallets = await self._wallets.lock_wallets(db, ids)
        for user_id in ids:
            if user_id not in wallets:
                raise UserNotFoundError(user_id)
        return wallets

    async def _refund_portion(
        self, db: AsyncSession, escrow: EscrowState, buyer: Wallet, amount: int
    ) -> tuple[Wallet, LedgerTransaction]:
        updated = await self._wallets.save_wallet(db, buyer.adjusted(held_delta=-amount))
        tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=buyer.user_id,
                order_id=escrow.order_id,
                type=TransactionType.REFUND.value,
                amount=amount,
                balance_before=buyer.balance,
                balance_after=buyer.balance,
                description="Order refund",
            ),
        )
        return updated, tx

    async def _release_portion(
        self,
        db: AsyncSession,
        escrow: EscrowState,
        buyer: Wallet,
        seller: Wallet,
        amount: int,
        commission: int,
        seller_amount: int,
    ) -> list[LedgerTransaction]:
        buyer_after = await self._wallets.save_wallet(
            db, buyer.adjusted(balance_delta=-amount, held_delta=-amount)
        )
        buyer_tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=buyer.user_id,
                order_id=escrow.order_id,
                type=TransactionType.RELEASE.value,
                amount=-amount,
                balance_before=buyer.balance,
                balance_after=buyer_after.balance,
                description="Order payment released",
            ),
        )

        seller_after = await self._wallets.save_wallet(
            db, seller.adjusted(balance_delta=seller_amount)
        )
        seller_tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=seller.user_id,
                order_id=escrow.order_id,
                type=TransactionType.RELEASE.value,
                amount=seller_amount,
                balance_before=seller.balance,
                balance_after=seller_after.balance,
                description="Order payment received",
            ),
        )

        commission_tx = await self._wallets.append_transaction(
            db,
            TransactionDraft(
                user_id=seller.user_id,
                order_id=escrow.order_id,
                type=TransactionType.COMMISSION.value,
                amount=commission,
                balance_before=seller_after.balance,
                balance_after=seller_after.balance,
                description="Platform commission",
                metadata={"rate": str(escrow.platform_fee_percent)},
            ),
        )
        return [buyer_tx, seller_tx, commission_tx]
