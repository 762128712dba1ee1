"""Notification endpoints: inbox, unread count, mark-read, and the live inbox stream."""

import asyncio
import json
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from campusfix.auth import get_current_actor
from campusfix.dependencies import (
    get_change_feed,
    get_notification_dispatcher,
    get_stream_dispatcher_factory,
)
from campusfix.exceptions import LifecycleError, raise_http_exception
from campusfix.lifecycle.domain import Actor, Notification
from campusfix.logging_config import get_logger
from campusfix.notifications.dispatcher import NotificationDispatcher, audience_filter_for
from campusfix.realtime.feed import ChangeFeed
from campusfix.schemas import (
    NotificationListResponse,
    NotificationResponse,
    NotificationUnreadCountResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """List notifications for the current user, newest first."""
    notifications = await dispatcher.list_for(audience_filter_for(actor))

    # Unread count (always computed, regardless of filter)
    unread_count = sum(1 for n in notifications if not n.read)
    if unread_only:
        notifications = [n for n in notifications if not n.read]

    start = (page - 1) * per_page
    items = [
        NotificationResponse.model_validate(n)
        for n in notifications[start : start + per_page]
    ]
    return NotificationListResponse(
        items=items,
        total=len(notifications),
        unread_count=unread_count,
    )


@router.get("/unread-count", response_model=NotificationUnreadCountResponse)
async def get_unread_count(
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Get the number of unread notifications for the current user."""
    count = await dispatcher.unread_count(audience_filter_for(actor))
    return NotificationUnreadCountResponse(unread_count=count)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Mark a single notification as read."""
    try:
        notification = await dispatcher.get(notification_id)
        if not notification.audience & audience_filter_for(actor):
            raise HTTPException(status_code=403, detail="Not your notification")
        notification = await dispatcher.mark_read(notification_id)
    except LifecycleError as e:
        raise_http_exception(e)
    return NotificationResponse.model_validate(notification)


@router.post("/read-all", response_model=NotificationUnreadCountResponse)
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Mark all notifications as read for the current user."""
    audience_filter = audience_filter_for(actor)
    await dispatcher.mark_all_read(audience_filter)
    count = await dispatcher.unread_count(audience_filter)
    return NotificationUnreadCountResponse(unread_count=count)


@router.get("/stream")
async def notification_stream(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    feed: ChangeFeed = Depends(get_change_feed),
    dispatcher_factory=Depends(get_stream_dispatcher_factory),
):
    """SSE stream of the caller's inbox, re-sent whenever it changes."""
    audience_filter = audience_filter_for(actor)

    async def event_generator():
        snapshots: asyncio.Queue[tuple[list[Notification], int]] = asyncio.Queue()

        async def on_change(notifications: list[Notification], unread_count: int) -> None:
            await snapshots.put((notifications, unread_count))

        async with dispatcher_factory(feed) as dispatcher:
            unsubscribe = await dispatcher.watch(audience_filter, on_change)
            try:
                while True:
                    if await request.is_disconnected():
                        break
                    try:
                        notifications, unread_count = await asyncio.wait_for(
                            snapshots.get(), timeout=1.0
                        )
                    except asyncio.TimeoutError:
                        continue
                    payload = {
                        "unread_count": unread_count,
                        "items": [
                            NotificationResponse.model_validate(n).model_dump(mode="json")
                            for n in notifications
                        ],
                    }
                    yield {"event": "notifications", "data": json.dumps(payload)}
            finally:
                await unsubscribe()
                logger.debug("notification_stream_closed", actor_id=actor.id)

    return EventSourceResponse(event_generator())
