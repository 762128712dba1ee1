"""Notification dispatcher: persists targeted notifications and serves inboxes.

Dispatch is best effort. A failed insert is logged and swallowed so it can
never block or roll back the lifecycle transition that triggered it; once an
insert commits it is durable. Read state only ever moves from unread to read.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection, Iterable
from typing import Any
from uuid import UUID, uuid4

from campusfix.exceptions import NotificationDispatchFailure, NotificationNotFound
from campusfix.lifecycle.domain import (
    Actor,
    Notification,
    NotificationDraft,
    Role,
    utcnow,
)
from campusfix.logging_config import get_logger
from campusfix.notifications.targeting import ADMIN_TOKEN, check_audience
from campusfix.realtime.feed import NOTIFICATIONS_CHANNEL, ChangeFeed, Unsubscribe
from campusfix.repositories.base import NotificationRepository

logger = get_logger(__name__)

OnInboxChange = Callable[[list[Notification], int], Awaitable[None]]


def audience_filter_for(actor: Actor) -> frozenset[str]:
    """Inbox filter: the shared admin pool, or the student's own id."""
    if actor.role is Role.admin:
        return frozenset({ADMIN_TOKEN})
    return frozenset({actor.id})


def _feed_payload(event: str, notification: Notification) -> dict[str, Any]:
    return {
        "event": event,
        "notification_id": str(notification.id),
        "audience": sorted(notification.audience),
        "related_issue_id": (
            str(notification.related_issue_id) if notification.related_issue_id else None
        ),
    }


class NotificationDispatcher:
    """Service layer for notification creation, read state and live inboxes."""

    def __init__(self, repository: NotificationRepository, feed: ChangeFeed) -> None:
        self.repository = repository
        self.feed = feed

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, draft: NotificationDraft) -> Notification | None:
        """Stamp and persist a notification.

        Returns the stored record, or ``None`` if persistence failed.

        Raises:
            InvalidAudience: the draft's audience is empty.
        """
        check_audience(draft.audience)
        notification = Notification(
            id=uuid4(),
            audience=frozenset(draft.audience),
            notification_type=draft.notification_type,
            title=draft.title,
            message=draft.message,
            created_at=utcnow(),
            read=False,
            related_issue_id=draft.related_issue_id,
            related_comment_id=draft.related_comment_id,
            action_url=draft.action_url,
        )

        try:
            stored = await self._persist(notification)
        except NotificationDispatchFailure as e:
            logger.error(
                "notification_dispatch_failed",
                notification_type=draft.notification_type.value,
                audience=sorted(draft.audience),
                related_issue_id=str(draft.related_issue_id),
                error=e.message,
            )
            return None

        logger.info(
            "notification_created",
            notification_id=str(stored.id),
            notification_type=stored.notification_type.value,
            audience=sorted(stored.audience),
        )
        await self.feed.publish(NOTIFICATIONS_CHANNEL, _feed_payload("created", stored))
        return stored

    async def dispatch(self, drafts: Iterable[NotificationDraft]) -> list[Notification]:
        """Create each draft independently; return the ones that were stored."""
        stored = []
        for draft in drafts:
            notification = await self.create(draft)
            if notification is not None:
                stored.append(notification)
        return stored

    async def _persist(self, notification: Notification) -> Notification:
        try:
            return await self.repository.add(notification)
        except Exception as e:
            raise NotificationDispatchFailure(
                f"Could not store notification {notification.id}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------

    async def get(self, notification_id: UUID) -> Notification:
        notification = await self.repository.get(notification_id)
        if notification is None:
            raise NotificationNotFound(str(notification_id))
        return notification

    async def mark_read(self, notification_id: UUID) -> Notification:
        """Mark one notification read. Calling it again is a no-op."""
        current = await self.get(notification_id)
        if current.read:
            return current

        updated = await self.repository.mark_read(notification_id, utcnow())
        if updated is None:
            raise NotificationNotFound(str(notification_id))
        logger.debug("notification_marked_read", notification_id=str(notification_id))
        await self.feed.publish(NOTIFICATIONS_CHANNEL, _feed_payload("read", updated))
        return updated

    async def mark_all_read(self, audience_filter: Collection[str]) -> int:
        """Mark every unread notification matching the filter read; return the count."""
        count = await self.repository.mark_all_read(frozenset(audience_filter), utcnow())
        logger.info(
            "notifications_marked_all_read",
            audience_filter=sorted(audience_filter),
            count=count,
        )
        if count:
            await self.feed.publish(
                NOTIFICATIONS_CHANNEL,
                {"event": "read_all", "audience": sorted(audience_filter)},
            )
        return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_for(self, audience_filter: Collection[str]) -> list[Notification]:
        """Notifications whose audience intersects the filter, newest first."""
        return await self.repository.list_for(frozenset(audience_filter))

    async def unread_count(self, audience_filter: Collection[str]) -> int:
        """Derived from the current list every time, never cached."""
        return sum(1 for n in await self.list_for(audience_filter) if not n.read)

    async def watch(
        self,
        audience_filter: Collection[str],
        on_change: OnInboxChange,
    ) -> Unsubscribe:
        """Push the inbox and its unread count now and after every relevant change."""
        wanted = frozenset(audience_filter)

        async def refresh(payload: dict[str, Any]) -> None:
            audience = payload.get("audience")
            if audience is not None and not wanted.intersection(audience):
                return
            notifications = await self.list_for(wanted)
            await on_change(notifications, sum(1 for n in notifications if not n.read))

        unsubscribe = await self.feed.subscribe(NOTIFICATIONS_CHANNEL, refresh)
        await refresh({})
        return unsubscribe
