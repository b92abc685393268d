"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.

Identity comes from the external auth service, so users are inserted straight
into the users table and tokens are minted locally with the shared secret.
"""

import uuid
from collections.abc import Awaitable, Callable

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.main import app
from src.mp_common.database import async_session_factory
from src.mp_gateway.auth.jwt_handler import create_access_token

_INSERT_USER_SQL = text("""
    INSERT INTO users (id, username, is_admin, wallet_balance)
    VALUES (:id, :username, :is_admin, :balance)
""")
_INSERT_LISTING_SQL = text("""
    INSERT INTO listings (id, user_id, title, price, status)
    VALUES (:id, :user_id, :title, :price, 'live')
""")


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client: keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _seed_user(balance: int = 0, is_admin: bool = False) -> tuple[str, dict[str, str]]:
    user_id = f"u_{uuid.uuid4().hex[:12]}"
    async with async_session_factory() as db:
        await db.execute(
            _INSERT_USER_SQL,
            {"id": user_id, "username": user_id, "is_admin": is_admin, "balance": balance},
        )
        await db.commit()
    return user_id, {"Authorization": f"Bearer {create_access_token(user_id)}"}


async def _seed_listing(owner_id: str, price: int, title: str = "Integration Widget") -> str:
    listing_id = f"lst_{uuid.uuid4().hex[:12]}"
    async with async_session_factory() as db:
        await db.execute(
            _INSERT_LISTING_SQL,
            {"id": listing_id, "user_id": owner_id, "title": title, "price": price},
        )
        await db.commit()
    return listing_id


@pytest_asyncio.fixture(loop_scope="session")
async def seed_user() -> Callable[..., Awaitable[tuple[str, dict[str, str]]]]:
    """Factory: insert a fresh user, return (user_id, auth headers)."""
    return _seed_user


@pytest_asyncio.fixture(loop_scope="session")
async def seed_listing() -> Callable[..., Awaitable[str]]:
    """Factory: insert a live listing for owner_id, return its id."""
    return _seed_listing
