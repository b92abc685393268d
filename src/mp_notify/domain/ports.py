"""Outbound ports. The dispatcher and order service depend on these, not on Redis."""

from typing import Protocol

from src.mp_notify.domain.models import LocationUpdate, NotificationEvent


class NotificationSinkProtocol(Protocol):
    async def emit(self, event: NotificationEvent) -> None: ...


class LocationPublisherProtocol(Protocol):
    async def publish(self, update: LocationUpdate) -> None: ...
