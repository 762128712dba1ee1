"""FastAPI dependencies wiring the lifecycle service to its bindings."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.config import get_settings
from campusfix.database import get_db, get_db_session
from campusfix.notifications.dispatcher import NotificationDispatcher
from campusfix.realtime.feed import ChangeFeed, InMemoryChangeFeed, RedisChangeFeed
from campusfix.redis import get_redis
from campusfix.repositories.sql import SqlIssueRepository, SqlNotificationRepository
from campusfix.services.lifecycle_service import IssueLifecycleService

_memory_feed: InMemoryChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """The process-wide change feed selected by ``CAMPUSFIX_FEED_BACKEND``."""
    global _memory_feed
    if get_settings().feed_backend == "redis":
        return RedisChangeFeed(get_redis())
    if _memory_feed is None:
        _memory_feed = InMemoryChangeFeed()
    return _memory_feed


def get_notification_dispatcher(
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
) -> NotificationDispatcher:
    return NotificationDispatcher(SqlNotificationRepository(db), feed)


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    feed: ChangeFeed = Depends(get_change_feed),
) -> IssueLifecycleService:
    return IssueLifecycleService(SqlIssueRepository(db), dispatcher, feed)


@asynccontextmanager
async def _stream_dispatcher(feed: ChangeFeed) -> AsyncGenerator[NotificationDispatcher, None]:
    async with get_db_session() as session:
        yield NotificationDispatcher(SqlNotificationRepository(session), feed)


def get_stream_dispatcher_factory():
    """Dispatcher factory for SSE streams, which outlive the request's session."""
    return _stream_dispatcher
