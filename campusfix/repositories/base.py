"""Repository interfaces for the issue and notification documents.

The lifecycle service only talks to these interfaces. ``atomic_update`` is the
sole concurrency guard: it applies a patch only when the stored version still
equals the version the caller validated against.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from campusfix.lifecycle.domain import (
    Comment,
    Issue,
    IssuePatch,
    Notification,
    Status,
)

# Maximum allowed limit for pagination
MAX_QUERY_LIMIT = 1000


def apply_patch(issue: Issue, patch: IssuePatch, now: datetime) -> Issue:
    """Return ``issue`` with ``patch`` applied and its version bumped."""
    changes: dict = {"version": issue.version + 1, "updated_at": now}
    if patch.status is not None:
        changes["status"] = patch.status
    if patch.event is not None:
        changes["status_history"] = (*issue.status_history, patch.event)
    # Confirmation flags and times are write-once.
    if patch.resolved_by_admin and not issue.resolved_by_admin:
        changes["resolved_by_admin"] = True
    if patch.admin_resolution_time is not None and issue.admin_resolution_time is None:
        changes["admin_resolution_time"] = patch.admin_resolution_time
    if patch.resolved_by_student and not issue.resolved_by_student:
        changes["resolved_by_student"] = True
    if (
        patch.student_confirmation_time is not None
        and issue.student_confirmation_time is None
    ):
        changes["student_confirmation_time"] = patch.student_confirmation_time
    if patch.assignee_id is not None:
        changes["assignee_id"] = patch.assignee_id
        changes["assigned_at"] = patch.assigned_at or now
    return replace(issue, **changes)


class IssueRepository(ABC):
    """Persistence for issues, their status history and comments."""

    @abstractmethod
    async def get(self, issue_id: UUID) -> Issue | None:
        """Fresh read of an issue, history included."""

    @abstractmethod
    async def create(self, issue: Issue) -> Issue:
        """Store a new issue together with its seeded history."""

    @abstractmethod
    async def atomic_update(
        self,
        issue_id: UUID,
        expected_version: int,
        patch: IssuePatch,
        now: datetime,
    ) -> Issue:
        """Apply ``patch`` (status, appended event, flags) as one write.

        Raises:
            IssueNotFound: no such issue.
            ConcurrentModification: the stored version is not ``expected_version``.
        """

    @abstractmethod
    async def query(
        self,
        creator_id: str | None = None,
        status: Status | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Issue]:
        """Issues matching the filters, newest first."""

    @abstractmethod
    async def add_comment(self, comment: Comment) -> Comment:
        """Store a comment."""

    @abstractmethod
    async def list_comments(self, issue_id: UUID) -> list[Comment]:
        """Comments on an issue, oldest first."""

    @abstractmethod
    async def get_comment(self, comment_id: UUID) -> Comment | None:
        """Fetch one comment."""

    @abstractmethod
    async def delete_comment(self, comment_id: UUID) -> bool:
        """Remove a comment; False if it did not exist."""


class NotificationRepository(ABC):
    """Persistence for write-once, flip-read notification documents."""

    @abstractmethod
    async def add(self, notification: Notification) -> Notification:
        """Durably store a notification."""

    @abstractmethod
    async def get(self, notification_id: UUID) -> Notification | None:
        """Fetch one notification."""

    @abstractmethod
    async def mark_read(self, notification_id: UUID, now: datetime) -> Notification | None:
        """Flip ``read`` to true if it is not already; ``None`` if missing."""

    @abstractmethod
    async def mark_all_read(self, audience_filter: Collection[str], now: datetime) -> int:
        """Flip every unread notification matching the filter; return the count."""

    @abstractmethod
    async def list_for(self, audience_filter: Collection[str]) -> list[Notification]:
        """Notifications whose audience intersects the filter, newest first."""
