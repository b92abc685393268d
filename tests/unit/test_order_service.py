"""OrderApplicationService: commit boundaries, post-commit dispatch and location publishing."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.mp_common.enums import NotificationType
from src.mp_common.errors import InsufficientBalanceError, NotAuthorizedError
from src.mp_notify.domain.models import LocationUpdate
from src.mp_order.application.schemas import CreateOrderRequest, OrderResponse
from src.mp_order.application.service import OrderApplicationService
from src.mp_order.domain.resolution import PartialRefund
from tests.unit.fakes import FakeSession, InMemoryStore, build_lifecycle


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_user("buyer", balance=10000)
    s.add_user("seller", balance=0)
    s.add_listing("L1", owner_id="seller", price=5000)
    return s


@pytest.fixture
def dispatcher() -> MagicMock:
    d = MagicMock()
    d.enqueue.side_effect = lambda events: len(list(events))
    return d


@pytest.fixture
def publisher() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def svc(store: InMemoryStore, dispatcher: MagicMock, publisher: AsyncMock) -> OrderApplicationService:
    return OrderApplicationService(
        lifecycle=build_lifecycle(store),
        dispatcher=dispatcher,
        location_publisher=publisher,
        fee_percent=Decimal("10.00"),
    )


async def _create_and_pay(store: InMemoryStore, svc: OrderApplicationService) -> str:
    created = await svc.create(store.session(), "buyer", CreateOrderRequest(listing_id="L1"))
    await svc.pay(store.session(), created.id, "buyer")
    return created.id


class TestCreate:
    async def test_commits_and_returns_response(
        self, store: InMemoryStore, svc: OrderApplicationService, dispatcher: MagicMock
    ) -> None:
        db = store.session()
        resp = await svc.create(db, "buyer", CreateOrderRequest(listing_id="L1", quantity=1))
        assert isinstance(resp, OrderResponse)
        assert resp.status == "created"
        assert resp.total_amount_cents == 5000
        assert resp.platform_fee_cents == 500
        assert resp.platform_fee_percent == "10.00"
        assert resp.listing_title == "Vintage Camera"
        assert db.commits == 1
        dispatcher.enqueue.assert_not_called()

    async def test_failure_rolls_back(
        self, store: InMemoryStore, svc: OrderApplicationService
    ) -> None:
        store.wallets["buyer"].balance = 100
        db = store.session()
        with pytest.raises(InsufficientBalanceError):
            await svc.create(db, "buyer", CreateOrderRequest(listing_id="L1"))
        assert db.commits == 0
        assert db.rollbacks == 1
        assert store.orders == {}


class TestDispatch:
    async def test_events_enqueued_after_commit(
        self, store: InMemoryStore, svc: OrderApplicationService, dispatcher: MagicMock
    ) -> None:
        created = await svc.create(store.session(), "buyer", CreateOrderRequest(listing_id="L1"))
        db = store.session()
        commits_seen: list[int] = []
        dispatcher.enqueue.side_effect = lambda events: commits_seen.append(db.commits)

        await svc.pay(db, created.id, "buyer")

        assert commits_seen == [1]
        [events] = dispatcher.enqueue.call_args.args
        assert [e.event_type for e in events] == [NotificationType.ORDER_PAID]
        assert events[0].user_id == "seller"

    async def test_no_events_on_failure(
        self, store: InMemoryStore, svc: OrderApplicationService, dispatcher: MagicMock
    ) -> None:
        order_id = await _create_and_pay(store, svc)
        dispatcher.enqueue.reset_mock()
        db = store.session()
        with pytest.raises(NotAuthorizedError):
            await svc.accept(db, order_id, "buyer")
        dispatcher.enqueue.assert_not_called()
        assert db.rollbacks == 1

    async def test_complete_enqueues_payment_received(
        self, store: InMemoryStore, svc: OrderApplicationService, dispatcher: MagicMock
    ) -> None:
        order_id = await _create_and_pay(store, svc)
        await svc.accept(store.session(), order_id, "seller")
        await svc.start_progress(store.session(), order_id, "seller")
        await svc.ship(store.session(), order_id, "seller", {"carrier": "DHL"})
        await svc.mark_delivered(store.session(), order_id, "seller")
        resp = await svc.complete(store.session(), order_id, "buyer", rating=5)

        assert resp.status == "completed"
        assert resp.escrow_amount_cents == 0
        [events] = dispatcher.enqueue.call_args.args
        assert [e.event_type for e in events] == [
            NotificationType.ORDER_COMPLETED,
            NotificationType.PAYMENT_RECEIVED,
        ]
        assert store.wallets["seller"].balance == 4500

    async def test_uses_global_dispatcher_by_default(
        self, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fallback = MagicMock()
        monkeypatch.setattr("src.mp_order.application.service.get_dispatcher", lambda: fallback)
        svc = OrderApplicationService(
            lifecycle=build_lifecycle(store),
            location_publisher=AsyncMock(),
            fee_percent=Decimal("10.00"),
        )
        await _create_and_pay(store, svc)
        fallback.enqueue.assert_called_once()


class TestLocation:
    async def _accepted(self, store: InMemoryStore, svc: OrderApplicationService) -> str:
        order_id = await _create_and_pay(store, svc)
        await svc.accept(store.session(), order_id, "seller")
        return order_id

    async def test_publishes_after_commit(
        self, store: InMemoryStore, svc: OrderApplicationService, publisher: AsyncMock
    ) -> None:
        order_id = await self._accepted(store, svc)
        db = store.session()
        commits_seen: list[int] = []

        async def record(update: LocationUpdate) -> None:
            commits_seen.append(db.commits)

        publisher.publish.side_effect = record

        resp = await svc.update_location(db, order_id, "seller", 51.5, -0.12, 7)

        assert commits_seen == [1]
        [update] = publisher.publish.call_args.args
        assert update.order_id == order_id
        assert (update.lat, update.lng, update.eta) == (51.5, -0.12, 7)
        assert resp.metadata["current_location"] == {"lat": 51.5, "lng": -0.12}

    async def test_redis_failure_does_not_fail_request(
        self, store: InMemoryStore, svc: OrderApplicationService, publisher: AsyncMock
    ) -> None:
        order_id = await self._accepted(store, svc)
        publisher.publish.side_effect = RedisConnectionError("down")
        db: FakeSession = store.session()

        resp = await svc.update_location(db, order_id, "seller", 1.0, 2.0)

        assert resp.metadata["current_location"] == {"lat": 1.0, "lng": 2.0}
        assert db.commits == 1

    async def test_not_published_when_rejected(
        self, store: InMemoryStore, svc: OrderApplicationService, publisher: AsyncMock
    ) -> None:
        order_id = await self._accepted(store, svc)
        with pytest.raises(NotAuthorizedError):
            await svc.update_location(store.session(), order_id, "buyer", 1.0, 2.0)
        publisher.publish.assert_not_awaited()


class TestReadsAndDisputes:
    async def test_list_orders(self, store: InMemoryStore, svc: OrderApplicationService) -> None:
        await svc.create(store.session(), "buyer", CreateOrderRequest(listing_id="L1"))
        await svc.create(store.session(), "buyer", CreateOrderRequest(listing_id="L1"))
        resp = await svc.list_orders(store.session(), "seller", role="seller", statuses=["created"])
        assert resp.total == 2
        assert len(resp.items) == 2
        assert (resp.limit, resp.offset) == (20, 0)

    async def test_get_order_includes_dispute(
        self, store: InMemoryStore, svc: OrderApplicationService
    ) -> None:
        order_id = await _create_and_pay(store, svc)
        await svc.accept(store.session(), order_id, "seller")
        await svc.start_progress(store.session(), order_id, "seller")
        await svc.open_dispute(store.session(), order_id, "seller", "buyer unreachable")

        resp = await svc.get_order(store.session(), order_id, "buyer")
        assert resp.status == "disputed"
        assert resp.dispute is not None
        assert resp.dispute.reason == "buyer unreachable"

    async def test_resolve_dispute(
        self, store: InMemoryStore, svc: OrderApplicationService, dispatcher: MagicMock
    ) -> None:
        store.add_user("admin")
        order_id = await _create_and_pay(store, svc)
        await svc.accept(store.session(), order_id, "seller")
        await svc.start_progress(store.session(), order_id, "seller")
        await svc.open_dispute(store.session(), order_id, "buyer", "late")

        resp = await svc.resolve_dispute(
            store.session(), order_id, "admin", PartialRefund(3000), "split"
        )
        assert resp.status == "resolved_buyer"
        assert resp.dispute is not None
        assert resp.dispute.outcome == "partial_refund"
        assert resp.dispute.refund_amount_cents == 3000
        [events] = dispatcher.enqueue.call_args.args
        assert {e.user_id for e in events} == {"buyer", "seller"}
