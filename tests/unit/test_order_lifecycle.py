"""OrderLifecycle end-to-end against the in-memory store."""

from decimal import Decimal

import pytest

from src.mp_common.enums import NotificationType, OrderRole, OrderStatus
from src.mp_common.errors import (
    CannotBuyOwnListingError,
    DuplicateDisputeError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    ListingNotAvailableError,
    NotAuthorizedError,
    OrderNotFoundError,
)
from src.mp_order.domain.lifecycle import OrderLifecycle
from tests.unit.fakes import InMemoryStore, build_lifecycle, in_tx, seed_order

FEE = Decimal("10.00")


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_user("buyer", balance=10000)
    s.add_user("seller", balance=0, rating="4.0", rating_count=10)
    s.add_user("stranger", balance=0)
    s.add_listing("L1", owner_id="seller", price=5000)
    return s


@pytest.fixture
def lifecycle(store: InMemoryStore) -> OrderLifecycle:
    return build_lifecycle(store)


async def _create(store: InMemoryStore, lifecycle: OrderLifecycle, quantity: int = 1) -> str:
    result = await in_tx(
        store, lambda db: lifecycle.create(db, "buyer", "L1", quantity, FEE, {"delivery_address": "1 Main St"})
    )
    return result.order.id


async def _paid(store: InMemoryStore, lifecycle: OrderLifecycle) -> str:
    order_id = await _create(store, lifecycle)
    await in_tx(store, lambda db: lifecycle.pay(db, order_id, "buyer"))
    return order_id


async def _delivered(store: InMemoryStore, lifecycle: OrderLifecycle) -> str:
    order_id = await _paid(store, lifecycle)
    await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
    await in_tx(store, lambda db: lifecycle.start_progress(db, order_id, "seller"))
    await in_tx(store, lambda db: lifecycle.mark_delivered(db, order_id, "seller"))
    return order_id


class TestCreate:
    async def test_snapshots_terms(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        result = await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 1, FEE))
        order = result.order
        assert order.status == OrderStatus.CREATED.value
        assert order.total_amount == 5000
        assert order.platform_fee_percent == FEE
        assert order.platform_fee_amount == 500
        assert order.seller_amount == 4500
        assert order.escrow_amount == 0
        assert order.seller_id == "seller"
        assert order.listing_title == "Vintage Camera"
        assert order.order_number.startswith("MP-")
        assert result.events == []
        # nothing moves at creation
        assert store.wallets["buyer"].held == 0
        assert store.transactions == []

    async def test_quantity_multiplies_price(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        store.wallets["buyer"].balance = 20000
        result = await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 3, FEE))
        assert result.order.total_amount == 15000
        assert result.order.platform_fee_amount == 1500

    async def test_keeps_client_metadata(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        assert store.orders[order_id].metadata == {"delivery_address": "1 Main St"}

    async def test_fee_change_does_not_affect_existing_orders(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        first = await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 1, Decimal("10.00")))
        second = await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 1, Decimal("12.50")))
        assert store.orders[first.order.id].platform_fee_amount == 500
        assert store.orders[second.order.id].platform_fee_amount == 625

    async def test_missing_listing(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        with pytest.raises(ListingNotAvailableError):
            await in_tx(store, lambda db: lifecycle.create(db, "buyer", "nope", 1, FEE))

    async def test_listing_not_live(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        store.add_listing("L2", owner_id="seller", price=100, status="paused")
        with pytest.raises(ListingNotAvailableError):
            await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L2", 1, FEE))

    async def test_cannot_buy_own(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        with pytest.raises(CannotBuyOwnListingError):
            await in_tx(store, lambda db: lifecycle.create(db, "seller", "L1", 1, FEE))

    async def test_insufficient_available(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        store.wallets["buyer"].held = 6000
        with pytest.raises(InsufficientBalanceError):
            await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 1, FEE))
        assert store.orders == {}

    async def test_zero_quantity(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        with pytest.raises(InvalidAmountError):
            await in_tx(store, lambda db: lifecycle.create(db, "buyer", "L1", 0, FEE))


class TestHappyPath:
    async def test_full_flow(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)

        paid = await in_tx(store, lambda db: lifecycle.pay(db, order_id, "buyer"))
        assert paid.order.status == "paid"
        assert paid.order.escrow_amount == 5000
        assert paid.order.paid_at is not None
        assert store.wallets["buyer"].held == 5000
        assert store.wallets["buyer"].available == 5000

        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        await in_tx(store, lambda db: lifecycle.start_progress(db, order_id, "seller"))
        await in_tx(store, lambda db: lifecycle.mark_delivered(db, order_id, "seller"))
        done = await in_tx(store, lambda db: lifecycle.complete(db, order_id, "buyer", 5))

        assert done.order.status == "completed"
        assert done.order.escrow_amount == 0
        assert done.order.completed_at is not None
        assert store.wallets["buyer"].balance == 5000
        assert store.wallets["buyer"].held == 0
        assert store.wallets["seller"].balance == 4500
        assert store.ratings["seller"] == (Decimal("4.09"), 11)
        assert [t.type for t in store.transactions_for(order_id)] == [
            "hold", "release", "release", "commission",
        ]

    async def test_ship_records_tracking(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        await in_tx(store, lambda db: lifecycle.start_progress(db, order_id, "seller"))
        tracking = {"carrier": "UPS", "number": "1Z999"}
        result = await in_tx(store, lambda db: lifecycle.ship(db, order_id, "seller", tracking))
        assert result.order.status == "shipped"
        assert result.order.shipped_at is not None
        assert result.order.metadata["tracking"] == tracking
        assert result.events[0].data["tracking"] == tracking

    async def test_accept_cannot_skip_to_shipped(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _paid(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.ship(db, order_id, "seller"))

    @pytest.mark.parametrize("rating", [None, 0, 6, -1])
    async def test_out_of_range_rating_ignored(
        self, store: InMemoryStore, lifecycle: OrderLifecycle, rating: int | None
    ) -> None:
        order_id = await _delivered(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.complete(db, order_id, "buyer", rating))
        assert store.ratings["seller"] == (Decimal("4.0"), 10)
        assert store.orders[order_id].status == "completed"

    async def test_rating_keeps_moving_for_established_seller(self) -> None:
        store = InMemoryStore()
        store.add_user("buyer", balance=50 * 5000)
        store.add_user("seller", rating="4.0", rating_count=200)
        store.add_listing("L1", owner_id="seller", price=5000)
        lifecycle = build_lifecycle(store)

        for _ in range(50):
            order_id = await _delivered(store, lifecycle)
            await in_tx(store, lambda db: lifecycle.complete(db, order_id, "buyer", 5))

        # (4.0 * 200 + 5 * 50) / 250
        assert store.ratings["seller"] == (Decimal("4.20"), 250)
        assert store.rating_sums["seller"] == 1050

    async def test_complete_before_delivery(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.complete(db, order_id, "buyer"))
        assert store.wallets["buyer"].held == 5000
        assert store.wallets["seller"].balance == 0

    async def test_pay_twice(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.pay(db, order_id, "buyer"))
        assert store.wallets["buyer"].held == 5000

    async def test_pay_without_funds_rolls_back(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _create(store, lifecycle)
        store.wallets["buyer"].balance = 4000
        with pytest.raises(InsufficientBalanceError):
            await in_tx(store, lambda db: lifecycle.pay(db, order_id, "buyer"))
        assert store.orders[order_id].status == "created"
        assert store.orders[order_id].escrow_amount == 0
        assert store.transactions == []


class TestAuthorization:
    async def test_seller_cannot_pay(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.pay(db, order_id, "seller"))

    async def test_buyer_cannot_accept(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.accept(db, order_id, "buyer"))

    async def test_seller_cannot_complete(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _delivered(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.complete(db, order_id, "seller"))

    async def test_stranger_cannot_cancel(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.cancel(db, order_id, "stranger"))
        assert store.orders[order_id].status == "paid"

    async def test_unknown_order(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        with pytest.raises(OrderNotFoundError):
            await in_tx(store, lambda db: lifecycle.pay(db, "999", "buyer"))


class TestCancelAndReject:
    async def test_cancel_unpaid(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.cancel(db, order_id, "buyer", "changed mind"))
        assert result.order.status == "cancelled"
        assert result.order.cancelled_at is not None
        assert store.transactions == []

    async def test_cancel_paid_refunds(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.cancel(db, order_id, "buyer", "changed mind"))

        assert result.order.status == "cancelled"
        assert result.order.escrow_amount == 0
        assert result.order.metadata["cancellation_reason"] == "changed mind"
        assert result.order.metadata["cancelled_by"] == "buyer"
        assert store.wallets["buyer"].balance == 10000
        assert store.wallets["buyer"].held == 0
        assert [t.type for t in store.transactions_for(order_id)] == ["hold", "refund"]

        event = result.events[0]
        assert event.user_id == "seller"
        assert event.event_type is NotificationType.ORDER_CANCELLED
        assert event.data["reason"] == "changed mind"

    async def test_seller_cancel_notifies_buyer(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _paid(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.cancel(db, order_id, "seller"))
        assert result.events[0].user_id == "buyer"

    async def test_cannot_cancel_in_progress(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        await in_tx(store, lambda db: lifecycle.start_progress(db, order_id, "seller"))
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.cancel(db, order_id, "buyer"))
        assert store.wallets["buyer"].held == 5000

    async def test_reject_refunds(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.reject(db, order_id, "seller", "out of stock"))

        assert result.order.status == "refunded"
        assert result.order.cancelled_at is not None
        assert result.order.metadata["rejection_reason"] == "out of stock"
        assert store.wallets["buyer"].held == 0
        assert store.wallets["buyer"].balance == 10000
        event = result.events[0]
        assert event.user_id == "buyer"
        assert event.event_type is NotificationType.ORDER_REJECTED
        assert event.data["reason"] == "out of stock"

    async def test_reject_unpaid_not_allowed(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.reject(db, order_id, "seller"))


class TestDisputes:
    async def test_open_dispute(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _delivered(store, lifecycle)
        result = await in_tx(
            store, lambda db: lifecycle.open_dispute(db, order_id, "buyer", "damaged", "box crushed")
        )
        assert result.order.status == "disputed"
        assert result.order.disputed_at is not None
        assert result.dispute is not None
        assert result.dispute.opened_by_id == "buyer"
        assert result.dispute.description == "box crushed"
        assert result.dispute.is_resolved is False
        # escrow stays held while disputed
        assert result.order.escrow_amount == 5000
        assert result.events[0].user_id == "seller"
        assert result.events[0].event_type is NotificationType.DISPUTE_OPENED

    async def test_duplicate_dispute(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _delivered(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.open_dispute(db, order_id, "buyer", "damaged"))
        with pytest.raises(DuplicateDisputeError):
            await in_tx(store, lambda db: lifecycle.open_dispute(db, order_id, "seller", "buyer lies"))

    async def test_dispute_not_allowed_before_work_starts(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _paid(store, lifecycle)
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.open_dispute(db, order_id, "buyer", "slow"))
        assert store.disputes == {}

    async def test_stranger_cannot_dispute(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _delivered(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.open_dispute(db, order_id, "stranger", "x"))


class TestEvents:
    async def test_pay_notifies_seller(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.pay(db, order_id, "buyer"))
        [event] = result.events
        assert event.user_id == "seller"
        assert event.event_type is NotificationType.ORDER_PAID
        assert event.title == "New Order!"
        assert event.data["order_id"] == order_id
        assert event.data["order_number"] == result.order.order_number

    async def test_complete_emits_payment_received(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _delivered(store, lifecycle)
        result = await in_tx(store, lambda db: lifecycle.complete(db, order_id, "buyer"))
        types = [e.event_type for e in result.events]
        assert types == [NotificationType.ORDER_COMPLETED, NotificationType.PAYMENT_RECEIVED]
        payment = result.events[1]
        assert payment.user_id == "seller"
        assert payment.data["amount"] == 4500
        assert "$45.00" in payment.body


class TestLocation:
    async def test_update_location(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        result = await in_tx(
            store, lambda db: lifecycle.update_location(db, order_id, "seller", 40.7, -74.0, 15)
        )
        assert result.order.status == "accepted"
        assert result.order.metadata["current_location"] == {"lat": 40.7, "lng": -74.0}
        assert result.order.metadata["eta"] == 15
        assert result.location is not None
        assert result.location.order_id == order_id
        assert result.location.eta == 15
        assert result.events == []

    async def test_location_rejected_when_not_in_transit(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        order_id = await _create(store, lifecycle)
        with pytest.raises(InvalidStatusTransitionError):
            await in_tx(store, lambda db: lifecycle.update_location(db, order_id, "seller", 1.0, 2.0))

    async def test_location_only_by_seller(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _paid(store, lifecycle)
        await in_tx(store, lambda db: lifecycle.accept(db, order_id, "seller"))
        with pytest.raises(NotAuthorizedError):
            await in_tx(store, lambda db: lifecycle.update_location(db, order_id, "buyer", 1.0, 2.0))


class TestReads:
    async def test_get_order_as_participant(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        order, dispute = await lifecycle.get_order(store.session(), order_id, "seller")
        assert order.id == order_id
        assert dispute is None

    async def test_get_order_as_stranger(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        with pytest.raises(NotAuthorizedError):
            await lifecycle.get_order(store.session(), order_id, "stranger")

    async def test_get_order_admin_path(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        order_id = await _create(store, lifecycle)
        order, _ = await lifecycle.get_order(store.session(), order_id)
        assert order.id == order_id

    async def test_get_missing_order(self, store: InMemoryStore, lifecycle: OrderLifecycle) -> None:
        with pytest.raises(OrderNotFoundError):
            await lifecycle.get_order(store.session(), "404", "buyer")

    async def test_list_orders_by_role_and_status(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        seed_order(store, "2001", status="created")
        seed_order(store, "2002", status="paid")
        seed_order(store, "2003", buyer_id="seller", seller_id="buyer", status="created")
        db = store.session()

        both = await lifecycle.list_orders(db, "buyer")
        assert both.total == 3
        assert [o.id for o in both.items] == ["2003", "2002", "2001"]

        as_buyer = await lifecycle.list_orders(db, "buyer", OrderRole.BUYER)
        assert {o.id for o in as_buyer.items} == {"2001", "2002"}

        created = await lifecycle.list_orders(db, "buyer", OrderRole.BOTH, [OrderStatus.CREATED])
        assert {o.id for o in created.items} == {"2001", "2003"}

        page = await lifecycle.list_orders(db, "buyer", limit=1, offset=1)
        assert page.total == 3
        assert [o.id for o in page.items] == ["2002"]

    async def test_list_all_orders_for_admin(
        self, store: InMemoryStore, lifecycle: OrderLifecycle
    ) -> None:
        seed_order(store, "2001", status="created")
        seed_order(store, "2002", buyer_id="stranger", seller_id="seller", status="disputed")
        seed_order(store, "2003", buyer_id="stranger", seller_id="buyer", status="disputed")
        db = store.session()

        everything = await lifecycle.list_orders(db, None, OrderRole.BUYER)
        assert everything.total == 3

        disputed = await lifecycle.list_orders(db, None, statuses=[OrderStatus.DISPUTED])
        assert [o.id for o in disputed.items] == ["2003", "2002"]
