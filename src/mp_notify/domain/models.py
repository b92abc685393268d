"""Outbound event payloads: produced by order transitions, delivered after commit."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.mp_common.enums import NotificationType


@dataclass(frozen=True)
class NotificationEvent:
    user_id: str
    event_type: NotificationType
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    # Stable across delivery retries; the notifications row is keyed on it.
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)


@dataclass(frozen=True)
class LocationUpdate:
    """Advisory in-transit telemetry for delivery/taxi orders; not part of the state machine."""

    order_id: str
    lat: float
    lng: float
    eta: int | None     # minutes
    timestamp: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "lat": self.lat,
            "lng": self.lng,
            "eta": self.eta,
            "timestamp": self.timestamp.isoformat(),
        }
