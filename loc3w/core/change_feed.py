"""Booking change notifications for availability consumers.

Events are hints only: a consumer that receives one re-queries
availability instead of trusting the payload.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

import redis.asyncio as redis
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

SESSION_QUEUE_KEY = "booking_changes"

_publish_tasks: set[asyncio.Task] = set()

ChangeCallback = Callable[["BookingChange"], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class BookingChange:
    equipment_id: str
    booking_id: str
    status: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> BookingChange:
        return cls(**json.loads(raw))


async def _invoke(callback: ChangeCallback, change: BookingChange) -> None:
    try:
        result = callback(change)
        if asyncio.iscoroutine(result):
            await result
    except Exception:
        logger.exception(f"Availability subscriber failed for equipment {change.equipment_id}")


class ChangeFeed(ABC):
    """Publish/subscribe interface keyed by equipment id."""

    @abstractmethod
    def subscribe(self, equipment_id: str, callback: ChangeCallback) -> Unsubscribe:
        """Register a callback; returns a function that removes it."""

    @abstractmethod
    async def publish(self, change: BookingChange) -> None:
        """Deliver a change to subscribers of its equipment."""

    async def close(self) -> None:
        return None


class LocalChangeFeed(ChangeFeed):
    """In-process feed; subscribers only see changes made by this process."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    def subscribe(self, equipment_id: str, callback: ChangeCallback) -> Unsubscribe:
        key = str(equipment_id)
        self._subscribers[key].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    async def publish(self, change: BookingChange) -> None:
        for callback in list(self._subscribers.get(change.equipment_id, [])):
            await _invoke(callback, change)


class RedisChangeFeed(ChangeFeed):
    """Cross-process feed over Redis pub/sub, one channel per equipment."""

    CHANNEL_PREFIX = "bookings:"

    def __init__(self, redis_url: str) -> None:
        self.redis = redis.from_url(redis_url, decode_responses=True)
        self._listeners: dict[tuple[str, int], asyncio.Task] = {}

    def _channel(self, equipment_id: str) -> str:
        return f"{self.CHANNEL_PREFIX}{equipment_id}"

    def subscribe(self, equipment_id: str, callback: ChangeCallback) -> Unsubscribe:
        channel = self._channel(str(equipment_id))
        task = asyncio.get_running_loop().create_task(self._listen(channel, callback))
        key = (channel, id(task))
        self._listeners[key] = task

        def unsubscribe() -> None:
            listener = self._listeners.pop(key, None)
            if listener is not None:
                listener.cancel()

        return unsubscribe

    async def _listen(self, channel: str, callback: ChangeCallback) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    change = BookingChange.from_json(message["data"])
                except (ValueError, TypeError):
                    logger.warning(f"Ignoring malformed change on {channel}")
                    continue
                await _invoke(callback, change)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def publish(self, change: BookingChange) -> None:
        try:
            await self.redis.publish(self._channel(change.equipment_id), change.to_json())
        except redis.RedisError as e:
            # Subscribers fall back to re-querying on their own schedule
            logger.warning(f"Could not publish booking change {change.booking_id}: {e}")

    async def close(self) -> None:
        for task in self._listeners.values():
            task.cancel()
        self._listeners.clear()
        await self.redis.aclose()


def queue_change(db: AsyncSession, feed: ChangeFeed | None, change: BookingChange) -> None:
    """Publish ``change`` once the session's transaction commits.

    Changes are dropped when the transaction rolls back.
    """
    if feed is None:
        return

    queue: list[BookingChange] | None = db.info.get(SESSION_QUEUE_KEY)
    if queue is None:
        queue = []
        db.info[SESSION_QUEUE_KEY] = queue
        sync_session = db.sync_session

        @event.listens_for(sync_session, "after_commit")
        def _publish(session) -> None:
            pending = list(queue)
            queue.clear()
            loop = asyncio.get_running_loop()
            for item in pending:
                task = loop.create_task(feed.publish(item))
                _publish_tasks.add(task)
                task.add_done_callback(_publish_tasks.discard)

        @event.listens_for(sync_session, "after_soft_rollback")
        def _discard(session, previous_transaction) -> None:
            queue.clear()

    queue.append(change)


def change_for(booking) -> BookingChange:
    """Build the change hint for a booking row."""
    return BookingChange(
        equipment_id=str(booking.equipment_id),
        booking_id=str(booking.id),
        status=booking.status,
    )


def new_feed(backend: str, redis_url: str) -> ChangeFeed:
    if backend == "redis":
        return RedisChangeFeed(redis_url)
    return LocalChangeFeed()

