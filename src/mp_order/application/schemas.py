"""Pydantic schemas for mp_order API."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from src.mp_common.cents import cents_to_display
from src.mp_common.datetime_utils import isoformat_or_none
from src.mp_order.domain.models import SYSTEM_METADATA_KEYS, Dispute, Order
from src.mp_order.domain.resolution import Resolution, parse_resolution

OrderStatusLiteral = Literal[
    "created", "paid", "accepted", "in_progress", "shipped", "delivered",
    "completed", "cancelled", "refunded", "disputed", "resolved_buyer", "resolved_seller",
]
OrderRoleLiteral = Literal["buyer", "seller", "both"]

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(1, ge=1, le=10_000)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def no_system_keys(cls, v: dict[str, Any]) -> dict[str, Any]:
        reserved = sorted(SYSTEM_METADATA_KEYS & v.keys())
        if reserved:
            raise ValueError(f"metadata keys are reserved: {', '.join(reserved)}")
        return v


class RejectOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ShipOrderRequest(BaseModel):
    tracking: dict[str, Any] | None = Field(None, description="Carrier / tracking number etc.")


class CompleteOrderRequest(BaseModel):
    # Values outside 1-5 are accepted and ignored (no rating recorded).
    rating: int | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class OpenDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    eta: int | None = Field(None, ge=0, description="Minutes to arrival")


class ResolveDisputeRequest(BaseModel):
    outcome: Literal["refund_buyer", "release_to_seller", "partial_refund"]
    refund_amount_cents: int | None = Field(None, gt=0)
    notes: str | None = Field(None, max_length=2000)

    def to_resolution(self) -> Resolution:
        return parse_resolution(self.outcome, self.refund_amount_cents)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class DisputeResponse(BaseModel):
    id: int | None
    order_id: str
    opened_by_id: str
    reason: str
    description: str | None
    outcome: str | None
    refund_amount_cents: int | None
    notes: str | None
    resolved_by: str | None
    resolved_at: str | None
    created_at: str | None

    @classmethod
    def from_domain(cls, dispute: Dispute) -> "DisputeResponse":
        return cls(
            id=dispute.id,
            order_id=dispute.order_id,
            opened_by_id=dispute.opened_by_id,
            reason=dispute.reason,
            description=dispute.description,
            outcome=dispute.outcome,
            refund_amount_cents=dispute.refund_amount,
            notes=dispute.notes,
            resolved_by=dispute.resolved_by,
            resolved_at=isoformat_or_none(dispute.resolved_at),
            created_at=isoformat_or_none(dispute.created_at),
        )


class OrderResponse(BaseModel):
    id: str
    order_number: str
    listing_id: str
    listing_title: str
    buyer_id: str
    seller_id: str
    quantity: int
    unit_price_cents: int
    total_amount_cents: int
    total_amount_display: str
    platform_fee_percent: str
    platform_fee_cents: int
    seller_amount_cents: int
    status: str
    escrow_amount_cents: int
    metadata: dict[str, Any]
    paid_at: str | None
    accepted_at: str | None
    shipped_at: str | None
    delivered_at: str | None
    completed_at: str | None
    cancelled_at: str | None
    disputed_at: str | None
    created_at: str | None
    updated_at: str | None
    dispute: DisputeResponse | None = None

    @classmethod
    def from_domain(cls, order: Order, dispute: Dispute | None = None) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            listing_id=order.listing_id,
            listing_title=order.listing_title,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            quantity=order.quantity,
            unit_price_cents=order.unit_price,
            total_amount_cents=order.total_amount,
            total_amount_display=cents_to_display(order.total_amount),
            platform_fee_percent=str(order.platform_fee_percent),
            platform_fee_cents=order.platform_fee_amount,
            seller_amount_cents=order.seller_amount,
            status=order.status,
            escrow_amount_cents=order.escrow_amount,
            metadata=dict(order.metadata),
            paid_at=isoformat_or_none(order.paid_at),
            accepted_at=isoformat_or_none(order.accepted_at),
            shipped_at=isoformat_or_none(order.shipped_at),
            delivered_at=isoformat_or_none(order.delivered_at),
            completed_at=isoformat_or_none(order.completed_at),
            cancelled_at=isoformat_or_none(order.cancelled_at),
            disputed_at=isoformat_or_none(order.disputed_at),
            created_at=isoformat_or_none(order.created_at),
            updated_at=isoformat_or_none(order.updated_at),
            dispute=DisputeResponse.from_domain(dispute) if dispute else None,
        )


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    limit: int
    offset: int
