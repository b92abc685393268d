"""OrderLifecycle: buyer/seller/admin actions on an order.

Each operation runs inside the caller's transaction (see mp_common.database.atomic):
  1. lock the order row (FOR UPDATE)
  2. check the actor against buyer_id / seller_id
  3. check the transition table
  4. move money through WalletLedger (which locks wallets in user id order)
  5. persist the new status / timestamps / metadata

Nothing is delivered from here. Notification events are returned in the
TransitionResult and dispatched by the application layer after commit.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, assert_never, cast

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.cents import cents_to_display
from src.mp_common.datetime_utils import utc_now
from src.mp_common.enums import NotificationType, OrderRole, OrderStatus
from src.mp_common.errors import (
    CannotBuyOwnListingError,
    DuplicateDisputeError,
    InsufficientBalanceError,
    InvalidResolutionError,
    InvalidStatusTransitionError,
    ListingNotAvailableError,
    NotAuthorizedError,
    OrderNotFoundError,
)
from src.mp_common.id_generator import generate_id, order_number_for
from src.mp_notify.domain.models import LocationUpdate, NotificationEvent
from src.mp_order.domain.models import Dispute, Order, OrderMetadata, OrderPage
from src.mp_order.domain.repository import (
    DisputeRepositoryProtocol,
    ListingRepositoryProtocol,
    OrderRepositoryProtocol,
    SellerRatingRepositoryProtocol,
)
from src.mp_order.domain.resolution import (
    PartialRefund,
    RefundBuyer,
    ReleaseToSeller,
    Resolution,
    split_winner,
)
from src.mp_order.domain.state_machine import (
    LOCATION_STATUSES,
    apply_transition,
    ensure_transition,
)
from src.mp_order.domain.terms import OrderTerms
from src.mp_wallet.domain.ledger import WalletLedger

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order: Order
    events: list[NotificationEvent] = field(default_factory=list)
    dispute: Dispute | None = None
    location: LocationUpdate | None = None


class OrderLifecycle:
    def __init__(
        self,
        orders: OrderRepositoryProtocol,
        disputes: DisputeRepositoryProtocol,
        listings: ListingRepositoryProtocol,
        ratings: SellerRatingRepositoryProtocol,
        ledger: WalletLedger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._orders = orders
        self._disputes = disputes
        self._listings = listings
        self._ratings = ratings
        self._ledger = ledger
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        db: AsyncSession,
        buyer_id: str,
        listing_id: str,
        quantity: int,
        fee_percent: Decimal,
        metadata: dict[str, Any] | None = None,
    ) -> TransitionResult:
        listing = await self._listings.get_listing(db, listing_id)
        if listing is None or not listing.is_purchasable:
            raise ListingNotAvailableError(listing_id)
        if listing.owner_id == buyer_id:
            raise CannotBuyOwnListingError()

        terms = OrderTerms.snapshot(listing.price, quantity, fee_percent)

        # Pre-flight only; funds are held at pay time.
        wallet = await self._ledger.get_balance(db, buyer_id)
        if wallet.available < terms.total_amount:
            raise InsufficientBalanceError(terms.total_amount, wallet.available)

        now = self._clock()
        order_id = generate_id()
        order = await self._orders.insert(
            db,
            Order(
                id=order_id,
                order_number=order_number_for(order_id),
                listing_id=listing.id,
                buyer_id=buyer_id,
                seller_id=listing.owner_id,
                quantity=terms.quantity,
                unit_price=terms.unit_price,
                total_amount=terms.total_amount,
                platform_fee_percent=terms.platform_fee_percent,
                platform_fee_amount=terms.platform_fee_amount,
                seller_amount=terms.seller_amount,
                metadata=cast(OrderMetadata, dict(metadata or {})),
                created_at=now,
                updated_at=now,
                listing_title=listing.title,
            ),
        )
        logger.info(
            "Order created: %s buyer=%s seller=%s total=%d fee=%d",
            order.order_number, buyer_id, order.seller_id,
            order.total_amount, order.platform_fee_amount,
        )
        return TransitionResult(order=order)

    # ------------------------------------------------------------------
    # Buyer / seller transitions
    # ------------------------------------------------------------------

    async def pay(self, db: AsyncSession, order_id: str, buyer_id: str) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_buyer(order, buyer_id)
        ensure_transition(order, OrderStatus.PAID)

        await self._ledger.hold(db, buyer_id, order.id, order.total_amount)
        order = await self._transition(db, order, OrderStatus.PAID)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.seller_id, NotificationType.ORDER_PAID,
                    "New Order!", f"You have a new order for {order.listing_title}",
                )
            ],
        )

    async def accept(self, db: AsyncSession, order_id: str, seller_id: str) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        order = await self._transition(db, order, OrderStatus.ACCEPTED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.buyer_id, NotificationType.ORDER_ACCEPTED,
                    "Order Accepted", f"Your order for {order.listing_title} has been accepted",
                )
            ],
        )

    async def reject(
        self, db: AsyncSession, order_id: str, seller_id: str, reason: str | None = None
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        ensure_transition(order, OrderStatus.REFUNDED)

        if order.escrow_amount > 0:
            await self._ledger.refund(db, order.id)
        order.metadata["rejection_reason"] = reason
        order = await self._transition(db, order, OrderStatus.REFUNDED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.buyer_id, NotificationType.ORDER_REJECTED,
                    "Order Rejected",
                    f"Your order for {order.listing_title} was rejected. Funds have been refunded.",
                    reason=reason,
                )
            ],
        )

    async def start_progress(
        self, db: AsyncSession, order_id: str, seller_id: str
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        order = await self._transition(db, order, OrderStatus.IN_PROGRESS)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.buyer_id, NotificationType.ORDER_IN_PROGRESS,
                    "Order In Progress", f"Work on your order for {order.listing_title} has started",
                )
            ],
        )

    async def ship(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        tracking: dict[str, Any] | None = None,
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        ensure_transition(order, OrderStatus.SHIPPED)

        if tracking is not None:
            order.metadata["tracking"] = tracking
        order = await self._transition(db, order, OrderStatus.SHIPPED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.buyer_id, NotificationType.ORDER_SHIPPED,
                    "Order Shipped", f"Your order for {order.listing_title} has been shipped",
                    tracking=tracking,
                )
            ],
        )

    async def mark_delivered(
        self, db: AsyncSession, order_id: str, seller_id: str
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        order = await self._transition(db, order, OrderStatus.DELIVERED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.buyer_id, NotificationType.ORDER_DELIVERED,
                    "Order Delivered",
                    f"Your order for {order.listing_title} has been marked as delivered. "
                    "Please confirm receipt.",
                )
            ],
        )

    async def complete(
        self, db: AsyncSession, order_id: str, buyer_id: str, rating: int | None = None
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_buyer(order, buyer_id)
        ensure_transition(order, OrderStatus.COMPLETED)

        release = await self._ledger.release(db, order.id)
        if rating is not None and 1 <= rating <= 5:
            new_rating, count = await self._ratings.record_rating(db, order.seller_id, rating)
            logger.info(
                "Seller rated: seller=%s rating=%d average=%s count=%d",
                order.seller_id, rating, new_rating, count,
            )
        order = await self._transition(db, order, OrderStatus.COMPLETED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.seller_id, NotificationType.ORDER_COMPLETED,
                    "Order Completed",
                    f"Order for {order.listing_title} is complete. Payment has been released.",
                ),
                self._event(
                    order, order.seller_id, NotificationType.PAYMENT_RECEIVED,
                    "Payment Received",
                    f"You received {cents_to_display(release.seller_received)} "
                    f"for order #{order.order_number}",
                    amount=release.seller_received,
                ),
            ],
        )

    async def cancel(
        self, db: AsyncSession, order_id: str, user_id: str, reason: str | None = None
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_participant(order, user_id)
        ensure_transition(order, OrderStatus.CANCELLED)

        if order.escrow_amount > 0:
            await self._ledger.refund(db, order.id)
        order.metadata["cancellation_reason"] = reason
        order.metadata["cancelled_by"] = user_id
        order = await self._transition(db, order, OrderStatus.CANCELLED)
        return TransitionResult(
            order=order,
            events=[
                self._event(
                    order, order.counterparty_of(user_id), NotificationType.ORDER_CANCELLED,
                    "Order Cancelled", f"Order for {order.listing_title} has been cancelled",
                    reason=reason,
                )
            ],
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        db: AsyncSession,
        order_id: str,
        user_id: str,
        reason: str,
        description: str | None = None,
    ) -> TransitionResult:
        order = await self._lock(db, order_id)
        self._require_participant(order, user_id)
        if await self._disputes.get_by_order(db, order.id) is not None:
            raise DuplicateDisputeError(order.id)
        ensure_transition(order, OrderStatus.DISPUTED)

        dispute = await self._disputes.insert(
            db,
            Dispute(
                order_id=order.id,
                opened_by_id=user_id,
                reason=reason,
                description=description,
                created_at=self._clock(),
            ),
        )
        order = await self._transition(db, order, OrderStatus.DISPUTED)
        logger.info("Dispute opened: order=%s by=%s", order.order_number, user_id)
        return TransitionResult(
            order=order,
            dispute=dispute,
            events=[
                self._event(
                    order, order.counterparty_of(user_id), NotificationType.DISPUTE_OPENED,
                    "Dispute Opened",
                    f"A dispute has been opened for order #{order.order_number}",
                    reason=reason,
                )
            ],
        )

    async def resolve_dispute(
        self,
        db: AsyncSession,
        order_id: str,
        admin_id: str,
        resolution: Resolution,
        notes: str | None = None,
    ) -> TransitionResult:
        """Administrative path: no buyer/seller actor check."""
        order = await self._lock(db, order_id)
        dispute = await self._disputes.get_by_order(db, order.id)
        if dispute is None or order.status != OrderStatus.DISPUTED.value:
            raise InvalidStatusTransitionError(order.status, "resolved")

        refund_amount: int | None = None
        if isinstance(resolution, RefundBuyer):
            target = OrderStatus.RESOLVED_BUYER
            ensure_transition(order, target)
            await self._ledger.refund(db, order.id)
        elif isinstance(resolution, ReleaseToSeller):
            target = OrderStatus.RESOLVED_SELLER
            ensure_transition(order, target)
            await self._ledger.release(db, order.id)
        elif isinstance(resolution, PartialRefund):
            refund_amount = resolution.refund_amount
            if not (0 < refund_amount < order.escrow_amount):
                raise InvalidResolutionError(
                    f"refund_amount must be between 1 and {order.escrow_amount - 1}, "
                    f"got {refund_amount}"
                )
            target, side = split_winner(refund_amount, order.escrow_amount)
            ensure_transition(order, target)
            await self._ledger.settle_split(db, order.id, refund_amount)
            order.metadata["resolution_split"] = side
        else:
            assert_never(resolution)

        now = self._clock()
        dispute.outcome = resolution.outcome.value
        dispute.refund_amount = refund_amount
        dispute.notes = notes
        dispute.resolved_by = admin_id
        dispute.resolved_at = now
        dispute = await self._disputes.save_resolution(db, dispute)

        if notes is not None:
            order.metadata["resolution_notes"] = notes
        order = await self._transition(db, order, target)
        logger.info(
            "Dispute resolved: order=%s outcome=%s status=%s by=%s",
            order.order_number, dispute.outcome, order.status, admin_id,
        )
        body = f"The dispute for order #{order.order_number} has been resolved"
        return TransitionResult(
            order=order,
            dispute=dispute,
            events=[
                self._event(
                    order, user_id, NotificationType.DISPUTE_RESOLVED, "Dispute Resolved", body,
                    outcome=dispute.outcome, refund_amount=refund_amount,
                )
                for user_id in (order.buyer_id, order.seller_id)
            ],
        )

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def update_location(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        lat: float,
        lng: float,
        eta: int | None = None,
    ) -> TransitionResult:
        """Record the seller's in-transit position. Does not change status."""
        order = await self._lock(db, order_id)
        self._require_seller(order, seller_id)
        if OrderStatus(order.status) not in LOCATION_STATUSES:
            raise InvalidStatusTransitionError(order.status, "location_update")

        now = self._clock()
        order.metadata["current_location"] = {"lat": lat, "lng": lng}
        order.metadata["eta"] = eta
        order.updated_at = now
        order = await self._orders.update(db, order)
        return TransitionResult(
            order=order,
            location=LocationUpdate(order_id=order.id, lat=lat, lng=lng, eta=eta, timestamp=now),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(
        self, db: AsyncSession, order_id: str, user_id: str | None = None
    ) -> tuple[Order, Dispute | None]:
        """user_id=None is the administrative read (no participant check)."""
        order = await self._orders.get(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if user_id is not None:
            self._require_participant(order, user_id)
        dispute = await self._disputes.get_by_order(db, order.id)
        return order, dispute

    async def list_orders(
        self,
        db: AsyncSession,
        user_id: str | None,
        role: OrderRole = OrderRole.BOTH,
        statuses: list[OrderStatus] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> OrderPage:
        """Newest first. user_id=None lists every order (administrative); role is then ignored."""
        status_values = [s.value for s in statuses] if statuses else None
        items = await self._orders.list_for_user(
            db, user_id, role.value, status_values, limit, offset
        )
        total = await self._orders.count_for_user(db, user_id, role.value, status_values)
        return OrderPage(items=items, total=total)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _lock(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._orders.lock(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _transition(self, db: AsyncSession, order: Order, target: OrderStatus) -> Order:
        previous = order.status
        apply_transition(order, target, self._clock())
        updated = await self._orders.update(db, order)
        logger.debug("Order %s: %s -> %s", order.id, previous, target.value)
        return updated

    @staticmethod
    def _require_buyer(order: Order, user_id: str) -> None:
        if order.buyer_id != user_id:
            raise NotAuthorizedError("Only the buyer can perform this action")

    @staticmethod
    def _require_seller(order: Order, user_id: str) -> None:
        if order.seller_id != user_id:
            raise NotAuthorizedError("Only the seller can perform this action")

    @staticmethod
    def _require_participant(order: Order, user_id: str) -> None:
        if not order.is_participant(user_id):
            raise NotAuthorizedError("Not a participant of this order")

    @staticmethod
    def _event(
        order: Order,
        user_id: str,
        event_type: NotificationType,
        title: str,
        body: str,
        **extra: Any,
    ) -> NotificationEvent:
        return NotificationEvent(
            user_id=user_id,
            event_type=event_type,
            title=title,
            body=body,
            data={"order_id": order.id, "order_number": order.order_number, **extra},
        )

