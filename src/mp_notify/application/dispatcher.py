"""NotificationDispatcher: drains transition events after the order/ledger commit.

Fire-and-forget from the caller's point of view: `enqueue` never blocks and
never raises. A single worker task delivers events through the sink. Delivery
is best-effort with bounded retries: each event is tried up to `max_attempts`
times, then logged and dropped. Events still queued when the process dies are
lost. Failures never reach back into the financial transaction.
"""

import asyncio
import logging
from collections.abc import Iterable

from config.settings import settings
from src.mp_notify.domain.models import NotificationEvent
from src.mp_notify.domain.ports import NotificationSinkProtocol
from src.mp_notify.infrastructure.sink import RedisNotificationSink

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        sink: NotificationSinkProtocol,
        queue_size: int = 10_000,
        max_attempts: int = 3,
        retry_delay: float = 0.2,
    ) -> None:
        self._sink = sink
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=queue_size)
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def enqueue(self, events: Iterable[NotificationEvent]) -> int:
        """Queue events for delivery; returns how many were accepted."""
        accepted = 0
        for event in events:
            try:
                self._queue.put_nowait(event)
                accepted += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Notification queue full, dropping %s for user %s",
                    event.event_type.value,
                    event.user_id,
                )
        return accepted

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: NotificationEvent) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._sink.emit(event)
                return
            except Exception:
                logger.exception(
                    "Notification delivery failed (attempt %d/%d): %s -> %s",
                    attempt,
                    self._max_attempts,
                    event.event_type.value,
                    event.user_id,
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)


_dispatcher: NotificationDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(
            RedisNotificationSink(),
            queue_size=settings.NOTIFY_QUEUE_SIZE,
            max_attempts=settings.NOTIFY_MAX_ATTEMPTS,
        )
    return _dispatcher
