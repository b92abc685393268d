"""Pydantic schemas for mp_wallet API."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.mp_common.cents import cents_to_display
from src.mp_wallet.domain.models import LedgerTransaction, Wallet

TransactionTypeLiteral = Literal[
    "deposit", "withdrawal", "hold", "release", "refund", "commission"
]

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Amount to deposit in cents")
    reference: str | None = Field(None, max_length=128, description="External payment reference")
    description: str | None = Field(None, max_length=500)


class WithdrawRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Amount to withdraw in cents")
    reference: str | None = Field(None, max_length=128, description="External payout reference")


class AdjustBalanceRequest(BaseModel):
    """Manual admin correction: credit posts a deposit, debit a withdrawal."""

    amount_cents: int = Field(..., gt=0)
    direction: Literal["credit", "debit"]
    reason: str = Field(..., min_length=5, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    total_cents: int
    total_display: str
    held_cents: int
    held_display: str
    available_cents: int
    available_display: str

    @classmethod
    def from_wallet(cls, wallet: Wallet) -> "BalanceResponse":
        return cls(
            user_id=wallet.user_id,
            total_cents=wallet.balance,
            total_display=cents_to_display(wallet.balance),
            held_cents=wallet.held,
            held_display=cents_to_display(wallet.held),
            available_cents=wallet.available,
            available_display=cents_to_display(wallet.available),
        )


class TransactionItem(BaseModel):
    id: int
    order_id: str | None
    type: str
    amount_cents: int
    amount_display: str
    balance_before_cents: int
    balance_after_cents: int
    status: str
    reference: str | None
    description: str | None
    metadata: dict[str, Any]
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, tx: LedgerTransaction) -> "TransactionItem":
        return cls(
            id=tx.id,
            order_id=tx.order_id,
            type=tx.type,
            amount_cents=tx.amount,
            amount_display=cents_to_display(tx.amount),
            balance_before_cents=tx.balance_before,
            balance_after_cents=tx.balance_after,
            status=tx.status,
            reference=tx.reference,
            description=tx.description,
            metadata=tx.metadata,
            created_at=tx.created_at.isoformat() if tx.created_at else "",
        )


class WalletMovementResponse(BaseModel):
    """Result of a deposit or withdrawal."""

    balance: BalanceResponse
    transaction: TransactionItem


class TransactionListResponse(BaseModel):
    items: list[TransactionItem]
    total: int
    limit: int
    offset: int
