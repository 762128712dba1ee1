"""Issue and notification persistence: interfaces plus SQL and in-memory bindings."""

from campusfix.repositories.base import IssueRepository, NotificationRepository
from campusfix.repositories.memory import (
    InMemoryIssueRepository,
    InMemoryNotificationRepository,
)

__all__ = [
    "InMemoryIssueRepository",
    "InMemoryNotificationRepository",
    "IssueRepository",
    "NotificationRepository",
]
