"""Redis + PostgreSQL delivery for notifications and location telemetry.

Notifications are stored in the notifications table (own session, own commit,
never the order transaction) and published on `notifications:{user_id}`.
The insert is keyed on event_id: when the publish fails and the dispatcher
retries emit, the retry finds the stored row instead of adding a second one.
Location updates are published on `order:{order_id}:location`.
"""

import json
import logging

from sqlalchemy import text

from src.mp_common.database import async_session_factory
from src.mp_common.redis_client import publish_json
from src.mp_notify.domain.models import LocationUpdate, NotificationEvent

logger = logging.getLogger(__name__)

_INSERT_NOTIFICATION_SQL = text("""
    INSERT INTO notifications (event_id, user_id, type, title, body, data)
    VALUES (:event_id, :user_id, :type, :title, :body, CAST(:data AS JSONB))
    ON CONFLICT (event_id) DO UPDATE SET event_id = EXCLUDED.event_id
    RETURNING id, created_at
""")


def notification_channel(user_id: str) -> str:
    return f"notifications:{user_id}"


def location_channel(order_id: str) -> str:
    return f"order:{order_id}:location"


class RedisNotificationSink:
    async def emit(self, event: NotificationEvent) -> None:
        async with async_session_factory() as db:
            result = await db.execute(
                _INSERT_NOTIFICATION_SQL,
                {
                    "event_id": event.event_id,
                    "user_id": event.user_id,
                    "type": event.event_type.value,
                    "title": event.title,
                    "body": event.body,
                    "data": json.dumps(event.data, default=str),
                },
            )
            row = result.fetchone()
            await db.commit()

        await publish_json(
            notification_channel(event.user_id),
            {
                "type": "notification",
                "payload": {
                    "id": row.id if row else None,
                    "event_id": event.event_id,
                    "type": event.event_type.value,
                    "title": event.title,
                    "body": event.body,
                    "data": event.data,
                    "created_at": row.created_at.isoformat() if row else None,
                },
            },
        )


class RedisLocationPublisher:
    async def publish(self, update: LocationUpdate) -> None:
        receivers = await publish_json(location_channel(update.order_id), update.to_payload())
        logger.debug("Location published: order=%s receivers=%d", update.order_id, receivers)
