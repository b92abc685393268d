"""Global enums: must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import Enum


class OrderStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    RESOLVED_BUYER = "resolved_buyer"
    RESOLVED_SELLER = "resolved_seller"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"
    COMMISSION = "commission"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ListingStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    LIVE = "live"
    PAUSED = "paused"
    SOLD = "sold"
    REJECTED = "rejected"


class DisputeOutcome(str, Enum):
    REFUND_BUYER = "refund_buyer"
    RELEASE_TO_SELLER = "release_to_seller"
    PARTIAL_REFUND = "partial_refund"


class NotificationType(str, Enum):
    ORDER_PAID = "order_paid"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_REJECTED = "order_rejected"
    ORDER_IN_PROGRESS = "order_in_progress"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_COMPLETED = "order_completed"
    ORDER_CANCELLED = "order_cancelled"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    PAYMENT_RECEIVED = "payment_received"


class OrderRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    BOTH = "both"
