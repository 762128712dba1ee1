"""Notification targeting rules and the dispatcher that stores and serves them."""

from campusfix.notifications.dispatcher import NotificationDispatcher, audience_filter_for
from campusfix.notifications.targeting import build_notifications, targets_for

__all__ = [
    "NotificationDispatcher",
    "audience_filter_for",
    "build_notifications",
    "targets_for",
]
