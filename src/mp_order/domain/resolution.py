"""Dispute resolution outcomes: one tagged variant per outcome."""

from dataclasses import dataclass
from typing import ClassVar

from src.mp_common.enums import DisputeOutcome, OrderStatus
from src.mp_common.errors import InvalidResolutionError


@dataclass(frozen=True)
class RefundBuyer:
    outcome: ClassVar[DisputeOutcome] = DisputeOutcome.REFUND_BUYER


@dataclass(frozen=True)
class ReleaseToSeller:
    outcome: ClassVar[DisputeOutcome] = DisputeOutcome.RELEASE_TO_SELLER


@dataclass(frozen=True)
class PartialRefund:
    refund_amount: int  # cents back to the buyer; the rest goes to the seller
    outcome: ClassVar[DisputeOutcome] = DisputeOutcome.PARTIAL_REFUND


Resolution = RefundBuyer | ReleaseToSeller | PartialRefund


def parse_resolution(outcome: str, refund_amount: int | None = None) -> Resolution:
    try:
        kind = DisputeOutcome(outcome)
    except ValueError:
        raise InvalidResolutionError(f"unknown outcome {outcome!r}") from None

    if kind is DisputeOutcome.PARTIAL_REFUND:
        if refund_amount is None:
            raise InvalidResolutionError("partial_refund requires refund_amount")
        return PartialRefund(refund_amount=refund_amount)
    if refund_amount is not None:
        raise InvalidResolutionError(f"refund_amount is only valid for partial_refund, not {outcome}")
    if kind is DisputeOutcome.REFUND_BUYER:
        return RefundBuyer()
    return ReleaseToSeller()


def split_winner(refund_amount: int, escrow_amount: int) -> tuple[OrderStatus, str]:
    """Terminal status for a partial refund: the side receiving the larger share.

    An even split resolves in the buyer's favour and is tagged "even".
    """
    release_amount = escrow_amount - refund_amount
    if release_amount > refund_amount:
        return OrderStatus.RESOLVED_SELLER, "seller"
    if refund_amount > release_amount:
        return OrderStatus.RESOLVED_BUYER, "buyer"
    return OrderStatus.RESOLVED_BUYER, "even"
