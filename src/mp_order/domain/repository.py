"""Order-side repository Protocols: interface contracts for the persistence layer."""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_order.domain.models import Dispute, Listing, Order


class ListingRepositoryProtocol(Protocol):
    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None: ...


class OrderRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, order: Order) -> Order: ...

    async def get(self, db: AsyncSession, order_id: str) -> Order | None: ...

    async def lock(self, db: AsyncSession, order_id: str) -> Order | None:
        """Read the order row FOR UPDATE (held until the caller's transaction ends)."""
        ...

    async def update(self, db: AsyncSession, order: Order) -> Order:
        """Persist status, timestamps and metadata. Never writes escrow_amount or terms."""
        ...

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str | None,
        role: str,
        statuses: list[str] | None,
        limit: int,
        offset: int,
    ) -> list[Order]: ...

    async def count_for_user(
        self, db: AsyncSession, user_id: str | None, role: str, statuses: list[str] | None
    ) -> int: ...


class DisputeRepositoryProtocol(Protocol):
    async def get_by_order(self, db: AsyncSession, order_id: str) -> Dispute | None: ...

    async def insert(self, db: AsyncSession, dispute: Dispute) -> Dispute:
        """Raises DuplicateDisputeError if the order already has one."""
        ...

    async def save_resolution(self, db: AsyncSession, dispute: Dispute) -> Dispute: ...


class SellerRatingRepositoryProtocol(Protocol):
    async def record_rating(
        self, db: AsyncSession, seller_id: str, rating: int
    ) -> tuple[Decimal, int]:
        """Add one rating to the seller's exact sum; returns (display_average, new_count)."""
        ...
