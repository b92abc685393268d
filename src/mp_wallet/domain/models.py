"""Domain models for mp_wallet: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.mp_common.errors import InternalError


@dataclass
class Wallet:
    user_id: str
    balance: int   # cents, total funds owned
    held: int      # cents, escrowed portion of balance

    @property
    def available(self) -> int:
        return self.balance - self.held

    def adjusted(self, balance_delta: int = 0, held_delta: int = 0) -> "Wallet":
        """Return a copy with the deltas applied; refuses to break 0 <= held <= balance."""
        balance = self.balance + balance_delta
        held = self.held + held_delta
        if not (0 <= held <= balance):
            raise InternalError(
                f"Wallet invariant violated for user {self.user_id}: "
                f"held={held} balance={balance}"
            )
        return Wallet(user_id=self.user_id, balance=balance, held=held)


@dataclass
class TransactionDraft:
    """A ledger row about to be appended (id and created_at assigned by the store)."""

    user_id: str
    type: str                        # TransactionType value
    amount: int                      # cents, signed for deposit/withdrawal/release
    balance_before: int
    balance_after: int
    order_id: str | None = None
    status: str = "completed"        # TransactionStatus value
    reference: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerTransaction:
    id: int                          # BIGSERIAL
    user_id: str
    type: str
    amount: int
    balance_before: int
    balance_after: int
    status: str
    order_id: str | None = None
    reference: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class EscrowState:
    """The escrow-relevant columns of the owning order row, read under lock."""

    order_id: str
    buyer_id: str
    seller_id: str
    escrow_amount: int
    total_amount: int
    platform_fee_percent: Decimal
    platform_fee_amount: int
    seller_amount: int


@dataclass
class ReleaseResult:
    order_id: str
    released: int
    seller_received: int
    commission: int
    transactions: list[LedgerTransaction]


@dataclass
class RefundResult:
    order_id: str
    refunded: int
    transaction: LedgerTransaction


@dataclass
class SplitResult:
    order_id: str
    refunded_to_buyer: int
    released_to_seller: int
    seller_received: int
    commission: int
    transactions: list[LedgerTransaction]


@dataclass
class TransactionPage:
    items: list[LedgerTransaction]
    total: int
