"""Order / Dispute / Listing / SellerRating repositories: PostgreSQL, raw SQL.

Transaction ownership: The CALLER (application service) is responsible for
committing via `mp_common.database.atomic`.

Orders are always read joined with the listing title (for notification text).
`lock` takes a row lock on the orders row only (FOR UPDATE OF o); the listing
row is never locked. `update` never touches escrow_amount (owned by the
wallet ledger) or the commercial terms (immutable after creation).
"""

import json
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.errors import DuplicateDisputeError, InternalError, UserNotFoundError
from src.mp_order.domain.models import Dispute, Listing, Order, OrderMetadata

# ---------------------------------------------------------------------------
# SQL: orders
# ---------------------------------------------------------------------------

_ORDER_COLUMNS = """
    o.id, o.order_number, o.listing_id, o.buyer_id, o.seller_id,
    o.quantity, o.unit_price, o.total_amount,
    o.platform_fee_percent, o.platform_fee_amount, o.seller_amount,
    o.status, o.escrow_amount, o.metadata,
    o.paid_at, o.accepted_at, o.shipped_at, o.delivered_at,
    o.completed_at, o.cancelled_at, o.disputed_at,
    o.created_at, o.updated_at,
    l.title AS listing_title
"""

_INSERT_ORDER_SQL = text(f"""
    WITH o AS (
        INSERT INTO orders (
            id, order_number, listing_id, buyer_id, seller_id,
            quantity, unit_price, total_amount,
            platform_fee_percent, platform_fee_amount, seller_amount,
            status, escrow_amount, metadata, created_at, updated_at
        ) VALUES (
            :id, :order_number, :listing_id, :buyer_id, :seller_id,
            :quantity, :unit_price, :total_amount,
            :platform_fee_percent, :platform_fee_amount, :seller_amount,
            :status, 0, CAST(:metadata AS JSONB), :created_at, :updated_at
        )
        RETURNING *
    )
    SELECT {_ORDER_COLUMNS}
    FROM o JOIN listings l ON l.id = o.listing_id
""")

_GET_ORDER_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM orders o JOIN listings l ON l.id = o.listing_id
    WHERE o.id = :order_id
""")

_LOCK_ORDER_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM orders o JOIN listings l ON l.id = o.listing_id
    WHERE o.id = :order_id
    FOR UPDATE OF o
""")

_UPDATE_ORDER_SQL = text(f"""
    WITH o AS (
        UPDATE orders
        SET status       = :status,
            metadata     = CAST(:metadata AS JSONB),
            paid_at      = :paid_at,
            accepted_at  = :accepted_at,
            shipped_at   = :shipped_at,
            delivered_at = :delivered_at,
            completed_at = :completed_at,
            cancelled_at = :cancelled_at,
            disputed_at  = :disputed_at,
            updated_at   = :updated_at
        WHERE id = :order_id
        RETURNING *
    )
    SELECT {_ORDER_COLUMNS}
    FROM o JOIN listings l ON l.id = o.listing_id
""")

# role filter: 'buyer' | 'seller' | 'both'; a NULL user_id matches every order (admin listing)
_USER_FILTER = """
    (CAST(:user_id AS TEXT) IS NULL
     OR (:role IN ('buyer', 'both') AND o.buyer_id = :user_id)
     OR (:role IN ('seller', 'both') AND o.seller_id = :user_id))
    AND (CAST(:statuses AS TEXT[]) IS NULL OR o.status = ANY(CAST(:statuses AS TEXT[])))
"""

_LIST_ORDERS_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM orders o JOIN listings l ON l.id = o.listing_id
    WHERE {_USER_FILTER}
    ORDER BY o.created_at DESC, o.id DESC
    LIMIT :limit OFFSET :offset
""")

_COUNT_ORDERS_SQL = text(f"""
    SELECT COUNT(*)
    FROM orders o
    WHERE {_USER_FILTER}
""")

# ---------------------------------------------------------------------------
# SQL: disputes
# ---------------------------------------------------------------------------

_DISPUTE_COLUMNS = """
    id, order_id, opened_by_id, reason, description, outcome, refund_amount,
    notes, resolved_by, resolved_at, created_at
"""

_GET_DISPUTE_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS}
    FROM disputes
    WHERE order_id = :order_id
""")

_INSERT_DISPUTE_SQL = text(f"""
    INSERT INTO disputes (order_id, opened_by_id, reason, description)
    VALUES (:order_id, :opened_by_id, :reason, :description)
    RETURNING {_DISPUTE_COLUMNS}
""")

_RESOLVE_DISPUTE_SQL = text(f"""
    UPDATE disputes
    SET outcome       = :outcome,
        refund_amount = :refund_amount,
        notes         = :notes,
        resolved_by   = :resolved_by,
        resolved_at   = :resolved_at
    WHERE order_id = :order_id AND outcome IS NULL
    RETURNING {_DISPUTE_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: listings / ratings
# ---------------------------------------------------------------------------

_GET_LISTING_SQL = text("""
    SELECT id, user_id, title, price, status
    FROM listings
    WHERE id = :listing_id
""")

# The average is recomputed from the exact integer sum; rating is display-only.
# SET expressions see the pre-update row.
_RECORD_RATING_SQL = text("""
    UPDATE users
    SET rating_sum   = rating_sum + :rating,
        rating_count = rating_count + 1,
        rating       = ROUND(CAST(rating_sum + :rating AS NUMERIC) / (rating_count + 1), 2),
        updated_at   = NOW()
    WHERE id = :seller_id
    RETURNING rating, rating_count
""")


def _row_to_order(row: Any) -> Order:
    metadata = row.metadata
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Order(
        id=row.id,
        order_number=row.order_number,
        listing_id=row.listing_id,
        buyer_id=str(row.buyer_id),
        seller_id=str(row.seller_id),
        quantity=row.quantity,
        unit_price=row.unit_price,
        total_amount=row.total_amount,
        platform_fee_percent=Decimal(row.platform_fee_percent),
        platform_fee_amount=row.platform_fee_amount,
        seller_amount=row.seller_amount,
        status=row.status,
        escrow_amount=row.escrow_amount,
        metadata=cast(OrderMetadata, metadata or {}),
        paid_at=row.paid_at,
        accepted_at=row.accepted_at,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        disputed_at=row.disputed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        listing_title=row.listing_title,
    )


def _row_to_dispute(row: Any) -> Dispute:
    return Dispute(
        id=row.id,
        order_id=row.order_id,
        opened_by_id=str(row.opened_by_id),
        reason=row.reason,
        description=row.description,
        outcome=row.outcome,
        refund_amount=row.refund_amount,
        notes=row.notes,
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
        created_at=row.created_at,
    )


class OrderRepository:
    """Concrete orders repository: raw SQL, caller-owned transaction."""

    async def insert(self, db: AsyncSession, order: Order) -> Order:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "listing_id": order.listing_id,
                "buyer_id": order.buyer_id,
                "seller_id": order.seller_id,
                "quantity": order.quantity,
                "unit_price": order.unit_price,
                "total_amount": order.total_amount,
                "platform_fee_percent": order.platform_fee_percent,
                "platform_fee_amount": order.platform_fee_amount,
                "seller_amount": order.seller_amount,
                "status": order.status,
                "metadata": json.dumps(order.metadata, default=str),
                "created_at": order.created_at,
                "updated_at": order.updated_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Order insert returned no rows: {order.id}")
        return _row_to_order(row)

    async def get(self, db: AsyncSession, order_id: str) -> Order | None:
        result = await db.execute(_GET_ORDER_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def lock(self, db: AsyncSession, order_id: str) -> Order | None:
        result = await db.execute(_LOCK_ORDER_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def update(self, db: AsyncSession, order: Order) -> Order:
        result = await db.execute(
            _UPDATE_ORDER_SQL,
            {
                "order_id": order.id,
                "status": order.status,
                "metadata": json.dumps(order.metadata, default=str),
                "paid_at": order.paid_at,
                "accepted_at": order.accepted_at,
                "shipped_at": order.shipped_at,
                "delivered_at": order.delivered_at,
                "completed_at": order.completed_at,
                "cancelled_at": order.cancelled_at,
                "disputed_at": order.disputed_at,
                "updated_at": order.updated_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Order row vanished: {order.id}")
        return _row_to_order(row)

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str | None,
        role: str,
        statuses: list[str] | None,
        limit: int,
        offset: int,
    ) -> list[Order]:
        result = await db.execute(
            _LIST_ORDERS_SQL,
            {
                "user_id": user_id,
                "role": role,
                "statuses": statuses,
                "limit": limit,
                "offset": offset,
            },
        )
        return [_row_to_order(row) for row in result.fetchall()]

    async def count_for_user(
        self, db: AsyncSession, user_id: str | None, role: str, statuses: list[str] | None
    ) -> int:
        result = await db.execute(
            _COUNT_ORDERS_SQL, {"user_id": user_id, "role": role, "statuses": statuses}
        )
        return int(result.scalar_one())


class DisputeRepository:
    async def get_by_order(self, db: AsyncSession, order_id: str) -> Dispute | None:
        result = await db.execute(_GET_DISPUTE_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_dispute(row) if row else None

    async def insert(self, db: AsyncSession, dispute: Dispute) -> Dispute:
        try:
            result = await db.execute(
                _INSERT_DISPUTE_SQL,
                {
                    "order_id": dispute.order_id,
                    "opened_by_id": dispute.opened_by_id,
                    "reason": dispute.reason,
                    "description": dispute.description,
                },
            )
        except IntegrityError as exc:
            # UNIQUE(order_id): a concurrent open_dispute got there first
            raise DuplicateDisputeError(dispute.order_id) from exc
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Dispute insert returned no rows: {dispute.order_id}")
        return _row_to_dispute(row)

    async def save_resolution(self, db: AsyncSession, dispute: Dispute) -> Dispute:
        result = await db.execute(
            _RESOLVE_DISPUTE_SQL,
            {
                "order_id": dispute.order_id,
                "outcome": dispute.outcome,
                "refund_amount": dispute.refund_amount,
                "notes": dispute.notes,
                "resolved_by": dispute.resolved_by,
                "resolved_at": dispute.resolved_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Dispute for order {dispute.order_id} is already resolved")
        return _row_to_dispute(row)


class ListingRepository:
    """Read-only view of listings; listing management lives elsewhere."""

    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None:
        result = await db.execute(_GET_LISTING_SQL, {"listing_id": listing_id})
        row = result.fetchone()
        if row is None:
            return None
        return Listing(
            id=row.id,
            owner_id=str(row.user_id),
            title=row.title,
            price=row.price,
            status=row.status,
        )


class SellerRatingRepository:
    async def record_rating(
        self, db: AsyncSession, seller_id: str, rating: int
    ) -> tuple[Decimal, int]:
        result = await db.execute(_RECORD_RATING_SQL, {"seller_id": seller_id, "rating": rating})
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError(seller_id)
        return Decimal(row.rating), row.rating_count
