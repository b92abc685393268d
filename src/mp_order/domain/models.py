"""Order domain models: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, TypedDict

from src.mp_common.enums import ListingStatus, OrderStatus


class OrderMetadata(TypedDict, total=False):
    """Known keys of the free-form order metadata map. Other keys are passed through."""

    delivery_address: dict[str, Any] | str
    tracking: dict[str, Any]
    rejection_reason: str | None
    cancellation_reason: str | None
    cancelled_by: str
    current_location: dict[str, float]
    eta: int | None
    resolution_notes: str | None
    resolution_split: str  # buyer / seller / even


KNOWN_METADATA_KEYS = frozenset(OrderMetadata.__annotations__)
# Keys only the lifecycle itself writes; clients may not supply them at creation.
SYSTEM_METADATA_KEYS = KNOWN_METADATA_KEYS - {"delivery_address"}


@dataclass
class Listing:
    id: str
    owner_id: str
    title: str
    price: int          # cents per unit
    status: str         # ListingStatus value

    @property
    def is_purchasable(self) -> bool:
        return self.status == ListingStatus.LIVE.value


@dataclass
class Order:
    id: str
    order_number: str
    listing_id: str
    buyer_id: str
    seller_id: str
    # Commercial terms: snapshotted at creation, never updated
    quantity: int
    unit_price: int
    total_amount: int
    platform_fee_percent: Decimal
    platform_fee_amount: int
    seller_amount: int
    # Mutable
    status: str = OrderStatus.CREATED.value
    escrow_amount: int = 0
    metadata: OrderMetadata = field(default_factory=OrderMetadata)
    paid_at: datetime | None = None
    accepted_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    disputed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    listing_title: str = ""  # joined from listings, read-only

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def counterparty_of(self, user_id: str) -> str:
        return self.seller_id if user_id == self.buyer_id else self.buyer_id


@dataclass
class Dispute:
    order_id: str
    opened_by_id: str
    reason: str
    description: str | None = None
    id: int | None = None
    outcome: str | None = None          # DisputeOutcome value once resolved
    refund_amount: int | None = None    # partial_refund only
    notes: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.outcome is not None


@dataclass
class OrderPage:
    items: list[Order]
    total: int
