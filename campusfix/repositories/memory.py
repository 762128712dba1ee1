"""In-process repository binding, used for local development and tests.

Records are frozen dataclasses, so they are stored and handed out as-is.
Each operation completes without awaiting, which makes the version check and
the write of ``atomic_update`` indivisible on the event loop.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from campusfix.exceptions import ConcurrentModification, IssueNotFound
from campusfix.lifecycle.domain import Comment, Issue, IssuePatch, Notification, Status
from campusfix.repositories.base import (
    MAX_QUERY_LIMIT,
    IssueRepository,
    NotificationRepository,
    apply_patch,
)


class InMemoryIssueRepository(IssueRepository):
    def __init__(self) -> None:
        self._issues: dict[UUID, Issue] = {}
        self._comments: dict[UUID, list[Comment]] = {}

    async def get(self, issue_id: UUID) -> Issue | None:
        return self._issues.get(issue_id)

    async def create(self, issue: Issue) -> Issue:
        self._issues[issue.id] = issue
        self._comments[issue.id] = []
        return issue

    async def atomic_update(
        self,
        issue_id: UUID,
        expected_version: int,
        patch: IssuePatch,
        now: datetime,
    ) -> Issue:
        current = self._issues.get(issue_id)
        if current is None:
            raise IssueNotFound(str(issue_id))
        if current.version != expected_version:
            raise ConcurrentModification(str(issue_id), expected_version, current.version)
        updated = apply_patch(current, patch, now)
        self._issues[issue_id] = updated
        return updated

    async def query(
        self,
        creator_id: str | None = None,
        status: Status | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Issue]:
        issues = [
            issue
            for issue in self._issues.values()
            if (creator_id is None or issue.creator_id == creator_id)
            and (status is None or issue.status is status)
        ]
        issues.sort(key=lambda i: i.created_at, reverse=True)
        limit = MAX_QUERY_LIMIT if limit is None else min(limit, MAX_QUERY_LIMIT)
        return issues[offset : offset + limit]

    async def add_comment(self, comment: Comment) -> Comment:
        if comment.issue_id not in self._issues:
            raise IssueNotFound(str(comment.issue_id))
        self._comments[comment.issue_id].append(comment)
        return comment

    async def list_comments(self, issue_id: UUID) -> list[Comment]:
        return sorted(self._comments.get(issue_id, []), key=lambda c: c.created_at)

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        for comments in self._comments.values():
            for comment in comments:
                if comment.id == comment_id:
                    return comment
        return None

    async def delete_comment(self, comment_id: UUID) -> bool:
        for comments in self._comments.values():
            for i, comment in enumerate(comments):
                if comment.id == comment_id:
                    del comments[i]
                    return True
        return False


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self) -> None:
        self._notifications: dict[UUID, Notification] = {}
        self._order: list[UUID] = []

    async def add(self, notification: Notification) -> Notification:
        self._notifications[notification.id] = notification
        self._order.append(notification.id)
        return notification

    async def get(self, notification_id: UUID) -> Notification | None:
        return self._notifications.get(notification_id)

    async def mark_read(self, notification_id: UUID, now: datetime) -> Notification | None:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.read:
            return notification
        updated = replace(notification, read=True, read_at=now)
        self._notifications[notification_id] = updated
        return updated

    async def mark_all_read(self, audience_filter: Collection[str], now: datetime) -> int:
        wanted = set(audience_filter)
        count = 0
        for notification_id, notification in self._notifications.items():
            if not notification.read and notification.audience & wanted:
                self._notifications[notification_id] = replace(
                    notification, read=True, read_at=now
                )
                count += 1
        return count

    async def list_for(self, audience_filter: Collection[str]) -> list[Notification]:
        wanted = set(audience_filter)
        # Insertion order breaks created_at ties, newest first.
        ranked = [
            (self._notifications[nid], index)
            for index, nid in enumerate(self._order)
            if self._notifications[nid].audience & wanted
        ]
        ranked.sort(key=lambda pair: (pair[0].created_at, pair[1]), reverse=True)
        return [notification for notification, _ in ranked]
