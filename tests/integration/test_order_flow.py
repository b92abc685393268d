"""Integration tests for the order lifecycle over HTTP (requires running PG + Redis).

Pre-condition: alembic upgrade head

Each test seeds its own buyer / seller / listing to avoid state pollution.
"""

import asyncio

import pytest
from httpx import AsyncClient

pytestmark = [pytest.mark.asyncio(loop_scope="session"), pytest.mark.integration]

PRICE = 5000


async def _setup(seed_user, seed_listing, buyer_balance: int = 10000):  # type: ignore[no-untyped-def]
    buyer_id, buyer = await seed_user(balance=buyer_balance)
    seller_id, seller = await seed_user()
    listing_id = await seed_listing(seller_id, PRICE)
    return buyer_id, buyer, seller_id, seller, listing_id


async def _balance(client: AsyncClient, headers: dict[str, str]) -> dict[str, int]:
    resp = await client.get("/api/v1/wallet/balance", headers=headers)
    return resp.json()["data"]


async def _paid_order(client: AsyncClient, buyer: dict[str, str], listing_id: str) -> str:
    resp = await client.post("/api/v1/orders", json={"listing_id": listing_id}, headers=buyer)
    assert resp.status_code == 201
    order_id = resp.json()["data"]["id"]
    resp = await client.post(f"/api/v1/orders/{order_id}/pay", headers=buyer)
    assert resp.status_code == 200
    return order_id


class TestHappyPath:
    async def test_create_pay_complete(self, client: AsyncClient, seed_user, seed_listing) -> None:
        _, buyer, _, seller, listing_id = await _setup(seed_user, seed_listing)

        resp = await client.post(
            "/api/v1/orders",
            json={"listing_id": listing_id, "metadata": {"delivery_address": "1 Main St"}},
            headers=buyer,
        )
        assert resp.status_code == 201
        order = resp.json()["data"]
        assert order["status"] == "created"
        assert order["total_amount_cents"] == 5000
        assert order["order_number"].startswith("MP-")

        order_id = order["id"]
        resp = await client.post(f"/api/v1/orders/{order_id}/pay", headers=buyer)
        assert resp.json()["data"]["escrow_amount_cents"] == 5000
        assert (await _balance(client, buyer))["held_cents"] == 5000

        for action in ("accept", "start", "deliver"):
            resp = await client.post(f"/api/v1/orders/{order_id}/{action}", headers=seller)
            assert resp.status_code == 200, resp.json()

        resp = await client.post(f"/api/v1/orders/{order_id}/complete", json={"rating": 5}, headers=buyer)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "completed"

        buyer_wallet = await _balance(client, buyer)
        assert (buyer_wallet["total_cents"], buyer_wallet["held_cents"]) == (5000, 0)
        fee = order["platform_fee_cents"]
        assert (await _balance(client, seller))["total_cents"] == 5000 - fee

    async def test_buyer_cannot_accept(self, client: AsyncClient, seed_user, seed_listing) -> None:
        _, buyer, _, _, listing_id = await _setup(seed_user, seed_listing)
        order_id = await _paid_order(client, buyer, listing_id)
        resp = await client.post(f"/api/v1/orders/{order_id}/accept", headers=buyer)
        assert resp.status_code == 403
        assert resp.json()["error_code"] == "NOT_AUTHORIZED"


class TestCancellation:
    async def test_cancel_paid_refunds(self, client: AsyncClient, seed_user, seed_listing) -> None:
        _, buyer, _, _, listing_id = await _setup(seed_user, seed_listing)
        order_id = await _paid_order(client, buyer, listing_id)

        resp = await client.post(
            f"/api/v1/orders/{order_id}/cancel", json={"reason": "changed mind"}, headers=buyer
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "cancelled"
        wallet = await _balance(client, buyer)
        assert (wallet["total_cents"], wallet["held_cents"]) == (10000, 0)

    async def test_insufficient_balance(self, client: AsyncClient, seed_user, seed_listing) -> None:
        _, buyer, _, _, listing_id = await _setup(seed_user, seed_listing, buyer_balance=100)
        resp = await client.post("/api/v1/orders", json={"listing_id": listing_id}, headers=buyer)
        assert resp.status_code == 422
        assert resp.json()["code"] == 2001


class TestConcurrency:
    async def test_double_complete_pays_once(self, client: AsyncClient, seed_user, seed_listing) -> None:
        _, buyer, _, seller, listing_id = await _setup(seed_user, seed_listing)
        order_id = await _paid_order(client, buyer, listing_id)
        for action in ("accept", "start", "deliver"):
            await client.post(f"/api/v1/orders/{order_id}/{action}", headers=seller)

        first, second = await asyncio.gather(
            client.post(f"/api/v1/orders/{order_id}/complete", headers=buyer),
            client.post(f"/api/v1/orders/{order_id}/complete", headers=buyer),
        )

        assert sorted([first.status_code, second.status_code]) == [200, 409]
        completed = first if first.status_code == 200 else second
        seller_amount = completed.json()["data"]["seller_amount_cents"]
        assert (await _balance(client, seller))["total_cents"] == seller_amount
        assert (await _balance(client, buyer))["held_cents"] == 0


class TestDisputes:
    async def test_dispute_and_admin_partial_refund(
        self, client: AsyncClient, seed_user, seed_listing
    ) -> None:
        _, buyer, _, seller, listing_id = await _setup(seed_user, seed_listing)
        _, admin = await seed_user(is_admin=True)
        order_id = await _paid_order(client, buyer, listing_id)
        for action in ("accept", "start"):
            await client.post(f"/api/v1/orders/{order_id}/{action}", headers=seller)

        resp = await client.post(
            f"/api/v1/orders/{order_id}/dispute", json={"reason": "late"}, headers=buyer
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["status"] == "disputed"

        resp = await client.post(
            f"/api/v1/orders/{order_id}/dispute", json={"reason": "again"}, headers=seller
        )
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "DUPLICATE_DISPUTE"

        resp = await client.post(
            f"/api/v1/admin/orders/{order_id}/resolve-dispute",
            json={"outcome": "partial_refund", "refund_amount_cents": 1000},
            headers=buyer,
        )
        assert resp.status_code == 403

        resp = await client.post(
            f"/api/v1/admin/orders/{order_id}/resolve-dispute",
            json={"outcome": "partial_refund", "refund_amount_cents": 1000, "notes": "late by a week"},
            headers=admin,
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "resolved_seller"
        assert data["dispute"]["outcome"] == "partial_refund"
        assert (await _balance(client, buyer))["total_cents"] == 6000

        resp = await client.get("/api/v1/admin/ledger/verify", headers=admin)
        assert resp.json()["data"]["ok"] is True
