"""Change feed that live views subscribe to.

Committed issue changes are published on ``issue:{id}`` and new or updated
notifications on ``notifications``. Subscribers receive the JSON payload and
re-read whatever they display; the feed carries change signals, not state.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from uuid import UUID

from campusfix.logging_config import get_logger

logger = get_logger(__name__)

NOTIFICATIONS_CHANNEL = "notifications"

OnChange = Callable[[dict[str, Any]], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


def issue_channel(issue_id: UUID | str) -> str:
    return f"issue:{issue_id}"


class ChangeFeed(ABC):
    @abstractmethod
    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        """Announce a committed change. Never raises; failures are logged."""

    @abstractmethod
    async def subscribe(self, channel: str, on_change: OnChange) -> Unsubscribe:
        """Call ``on_change`` for every payload on ``channel`` until unsubscribed."""


class InMemoryChangeFeed(ChangeFeed):
    """Single-process feed; delivers synchronously to registered callbacks."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[OnChange]] = {}

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        for callback in list(self._subscribers.get(channel, [])):
            try:
                await callback(payload)
            except Exception as e:
                logger.warning("change_feed_callback_failed", channel=channel, error=str(e))

    async def subscribe(self, channel: str, on_change: OnChange) -> Unsubscribe:
        self._subscribers.setdefault(channel, []).append(on_change)

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(channel, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))


class RedisChangeFeed(ChangeFeed):
    """Redis pub/sub feed shared by every API worker."""

    def __init__(self, redis) -> None:
        self.redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        try:
            await self.redis.publish(channel, json.dumps(payload, default=str))
        except Exception as e:
            logger.warning("change_feed_publish_failed", channel=channel, error=str(e))

    async def subscribe(self, channel: str, on_change: OnChange) -> Unsubscribe:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        task = asyncio.create_task(self._pump(pubsub, channel, on_change))

        async def unsubscribe() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

        return unsubscribe

    async def _pump(self, pubsub, channel: str, on_change: OnChange) -> None:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                try:
                    await on_change(json.loads(message["data"]))
                except Exception as e:
                    logger.warning(
                        "change_feed_callback_failed", channel=channel, error=str(e)
                    )
            await asyncio.sleep(0.05)


async def iter_changes(feed: ChangeFeed, channel: str) -> AsyncIterator[dict[str, Any]]:
    """Adapt a subscription into an async iterator (used by SSE endpoints)."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    unsubscribe = await feed.subscribe(channel, queue.put)
    try:
        while True:
            yield await queue.get()
    finally:
        await unsubscribe()
