"""OrderApplicationService: one atomic unit per order action.

Each call:
  1. runs the OrderLifecycle operation inside `atomic(db)` (commit or rollback)
  2. after commit, hands the returned notification events to the dispatcher
  3. for location updates, publishes the telemetry after commit

The platform fee percent is read from settings here, at the shell, and passed
into OrderLifecycle.create explicitly.
"""

import logging
from decimal import Decimal
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.cents import to_percent
from src.mp_common.database import atomic
from src.mp_common.enums import OrderRole, OrderStatus
from src.mp_notify.application.dispatcher import NotificationDispatcher, get_dispatcher
from src.mp_notify.domain.ports import LocationPublisherProtocol
from src.mp_notify.infrastructure.sink import RedisLocationPublisher
from src.mp_order.application.schemas import (
    CreateOrderRequest,
    OrderListResponse,
    OrderResponse,
)
from src.mp_order.domain.lifecycle import OrderLifecycle, TransitionResult
from src.mp_order.domain.resolution import Resolution
from src.mp_order.infrastructure.persistence import (
    DisputeRepository,
    ListingRepository,
    OrderRepository,
    SellerRatingRepository,
)
from src.mp_wallet.application.service import build_ledger

logger = logging.getLogger(__name__)


def build_lifecycle() -> OrderLifecycle:
    return OrderLifecycle(
        orders=OrderRepository(),
        disputes=DisputeRepository(),
        listings=ListingRepository(),
        ratings=SellerRatingRepository(),
        ledger=build_ledger(),
    )


class OrderApplicationService:
    def __init__(
        self,
        lifecycle: OrderLifecycle | None = None,
        dispatcher: NotificationDispatcher | None = None,
        location_publisher: LocationPublisherProtocol | None = None,
        fee_percent: Decimal | None = None,
    ) -> None:
        self._lifecycle = lifecycle or build_lifecycle()
        self._dispatcher = dispatcher
        self._location_publisher = location_publisher or RedisLocationPublisher()
        self._fee_percent = (
            fee_percent if fee_percent is not None else to_percent(settings.PLATFORM_FEE_PERCENT)
        )

    # ------------------------------------------------------------------
    # Buyer actions
    # ------------------------------------------------------------------

    async def create(
        self, db: AsyncSession, buyer_id: str, req: CreateOrderRequest
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.create(
                db, buyer_id, req.listing_id, req.quantity, self._fee_percent, req.metadata
            )
        return self._finish(result)

    async def pay(self, db: AsyncSession, order_id: str, buyer_id: str) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.pay(db, order_id, buyer_id)
        return self._finish(result)

    async def complete(
        self, db: AsyncSession, order_id: str, buyer_id: str, rating: int | None = None
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.complete(db, order_id, buyer_id, rating)
        return self._finish(result)

    # ------------------------------------------------------------------
    # Seller actions
    # ------------------------------------------------------------------

    async def accept(self, db: AsyncSession, order_id: str, seller_id: str) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.accept(db, order_id, seller_id)
        return self._finish(result)

    async def reject(
        self, db: AsyncSession, order_id: str, seller_id: str, reason: str | None = None
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.reject(db, order_id, seller_id, reason)
        return self._finish(result)

    async def start_progress(
        self, db: AsyncSession, order_id: str, seller_id: str
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.start_progress(db, order_id, seller_id)
        return self._finish(result)

    async def ship(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        tracking: dict[str, Any] | None = None,
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.ship(db, order_id, seller_id, tracking)
        return self._finish(result)

    async def mark_delivered(
        self, db: AsyncSession, order_id: str, seller_id: str
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.mark_delivered(db, order_id, seller_id)
        return self._finish(result)

    async def update_location(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        lat: float,
        lng: float,
        eta: int | None = None,
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.update_location(db, order_id, seller_id, lat, lng, eta)
        if result.location is not None:
            try:
                await self._location_publisher.publish(result.location)
            except RedisError:
                # Telemetry is advisory; the stored location is already committed.
                logger.warning("Location publish failed: order=%s", order_id, exc_info=True)
        return self._finish(result)

    # ------------------------------------------------------------------
    # Either party
    # ------------------------------------------------------------------

    async def cancel(
        self, db: AsyncSession, order_id: str, user_id: str, reason: str | None = None
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.cancel(db, order_id, user_id, reason)
        return self._finish(result)

    async def open_dispute(
        self,
        db: AsyncSession,
        order_id: str,
        user_id: str,
        reason: str,
        description: str | None = None,
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.open_dispute(db, order_id, user_id, reason, description)
        return self._finish(result)

    async def get_order(
        self, db: AsyncSession, order_id: str, user_id: str | None = None
    ) -> OrderResponse:
        order, dispute = await self._lifecycle.get_order(db, order_id, user_id)
        return OrderResponse.from_domain(order, dispute)

    async def list_orders(
        self,
        db: AsyncSession,
        user_id: str | None,
        role: str = "both",
        statuses: list[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> OrderListResponse:
        page = await self._lifecycle.list_orders(
            db,
            user_id,
            OrderRole(role),
            [OrderStatus(s) for s in statuses] if statuses else None,
            limit,
            offset,
        )
        return OrderListResponse(
            items=[OrderResponse.from_domain(o) for o in page.items],
            total=page.total,
            limit=limit,
            offset=offset,
        )

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    async def resolve_dispute(
        self,
        db: AsyncSession,
        order_id: str,
        admin_id: str,
        resolution: Resolution,
        notes: str | None = None,
    ) -> OrderResponse:
        async with atomic(db):
            result = await self._lifecycle.resolve_dispute(
                db, order_id, admin_id, resolution, notes
            )
        return self._finish(result)

    # ------------------------------------------------------------------

    def _finish(self, result: TransitionResult) -> OrderResponse:
        """Runs after commit: queue notifications, build the response."""
        if result.events:
            dispatcher = self._dispatcher or get_dispatcher()
            dispatcher.enqueue(result.events)
        return OrderResponse.from_domain(result.order, result.dispute)
