"""PostgreSQL repository binding (SQLAlchemy async + asyncpg).

``atomic_update`` issues a conditional ``UPDATE ... WHERE version = :expected``
and inserts the status event in the same transaction. The row lock taken by
the update makes a racing writer re-check the version after the first commit,
so it matches zero rows and is reported as a concurrent modification.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campusfix.exceptions import ConcurrentModification, IssueNotFound
from campusfix.lifecycle.audit import ordered_history
from campusfix.lifecycle.domain import (
    Attachment,
    AttachmentKind,
    Comment,
    Issue,
    IssuePatch,
    Notification,
    NotificationType,
    Priority,
    Role,
    Status,
    StatusEvent,
)
from campusfix.logging_config import get_logger
from campusfix.models import (
    CommentRecord,
    IssueRecord,
    NotificationRecord,
    StatusEventRecord,
)
from campusfix.repositories.base import (
    MAX_QUERY_LIMIT,
    IssueRepository,
    NotificationRepository,
)

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Row <-> domain mapping
# ---------------------------------------------------------------------------


def _attachments_to_json(attachments: Collection[Attachment]) -> list[dict]:
    return [{"url": a.url, "kind": a.kind.value, "name": a.name} for a in attachments]


def _attachments_from_json(rows: list[dict] | None) -> tuple[Attachment, ...]:
    return tuple(
        Attachment(
            url=row["url"],
            kind=AttachmentKind(row.get("kind") or AttachmentKind.image.value),
            name=row.get("name"),
        )
        for row in rows or []
    )


def _event_from_row(row: StatusEventRecord) -> StatusEvent:
    return StatusEvent(
        status=Status(row.status),
        timestamp=row.timestamp,
        sequence=row.sequence,
        actor_id=row.actor_id,
        actor_role=Role(row.actor_role),
        notes=row.notes,
        attachments=_attachments_from_json(row.attachments),
    )


def _event_to_row(issue_id: UUID, event: StatusEvent) -> StatusEventRecord:
    return StatusEventRecord(
        issue_id=issue_id,
        sequence=event.sequence,
        status=event.status.value,
        timestamp=event.timestamp,
        actor_id=event.actor_id,
        actor_role=event.actor_role.value,
        notes=event.notes,
        attachments=_attachments_to_json(event.attachments),
    )


def _issue_from_row(row: IssueRecord) -> Issue:
    # Status is kept as stored; an unrecognised value surfaces in the
    # transition table's recovery path rather than failing the read.
    try:
        status = Status(row.status)
    except ValueError:
        status = row.status  # type: ignore[assignment]
    return Issue(
        id=row.id,
        title=row.title,
        description=row.description,
        creator_id=row.creator_id,
        creator_name=row.creator_name,
        status=status,
        status_history=ordered_history([_event_from_row(e) for e in row.events]),
        created_at=row.created_at,
        category=row.category,
        sub_category=row.sub_category,
        location=row.location,
        priority=Priority(row.priority),
        attachments=_attachments_from_json(row.attachments),
        assignee_id=row.assignee_id,
        assigned_at=row.assigned_at,
        resolved_by_admin=row.resolved_by_admin,
        resolved_by_student=row.resolved_by_student,
        admin_resolution_time=row.admin_resolution_time,
        student_confirmation_time=row.student_confirmation_time,
        updated_at=row.updated_at,
        version=row.version,
    )


def _comment_from_row(row: CommentRecord) -> Comment:
    return Comment(
        id=row.id,
        issue_id=row.issue_id,
        author_id=row.author_id,
        author_role=Role(row.author_role),
        author_name=row.author_name,
        content=row.content,
        created_at=row.created_at,
    )


def _notification_from_row(row: NotificationRecord) -> Notification:
    return Notification(
        id=row.id,
        audience=frozenset(row.audience),
        notification_type=NotificationType(row.notification_type),
        title=row.title,
        message=row.message,
        created_at=row.created_at,
        read=row.read,
        read_at=row.read_at,
        related_issue_id=row.related_issue_id,
        related_comment_id=row.related_comment_id,
        action_url=row.action_url,
    )


def _patch_values(patch: IssuePatch, now: datetime) -> dict:
    values: dict = {"version": IssueRecord.version + 1, "updated_at": now}
    if patch.status is not None:
        values["status"] = patch.status.value
    if patch.resolved_by_admin:
        values["resolved_by_admin"] = True
    if patch.resolved_by_student:
        values["resolved_by_student"] = True
    if patch.assignee_id is not None:
        values["assignee_id"] = patch.assignee_id
        values["assigned_at"] = patch.assigned_at or now
    return values


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class SqlIssueRepository(IssueRepository):
    """Issue persistence within the caller-provided ``AsyncSession``.

    Each write commits its own transaction so that a committed transition is
    never rolled back by later notification work on the same session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _load(self, issue_id: UUID) -> IssueRecord | None:
        result = await self.session.execute(
            select(IssueRecord)
            .where(IssueRecord.id == issue_id)
            .options(selectinload(IssueRecord.events))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, issue_id: UUID) -> Issue | None:
        row = await self._load(issue_id)
        return _issue_from_row(row) if row else None

    async def create(self, issue: Issue) -> Issue:
        row = IssueRecord(
            id=issue.id,
            title=issue.title,
            description=issue.description,
            category=issue.category,
            sub_category=issue.sub_category,
            location=issue.location,
            priority=issue.priority.value,
            attachments=_attachments_to_json(issue.attachments),
            status=issue.status.value,
            creator_id=issue.creator_id,
            creator_name=issue.creator_name,
            version=issue.version,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
        )
        row.events = [_event_to_row(issue.id, e) for e in issue.status_history]
        self.session.add(row)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.debug("issue_row_created", issue_id=str(issue.id))
        return issue

    async def atomic_update(
        self,
        issue_id: UUID,
        expected_version: int,
        patch: IssuePatch,
        now: datetime,
    ) -> Issue:
        try:
            result = await self.session.execute(
                update(IssueRecord)
                .where(
                    IssueRecord.id == issue_id,
                    IssueRecord.version == expected_version,
                )
                .values(**_patch_values(patch, now))
            )
            if result.rowcount != 1:
                await self.session.rollback()
                actual = (
                    await self.session.execute(
                        select(IssueRecord.version).where(IssueRecord.id == issue_id)
                    )
                ).scalar_one_or_none()
                if actual is None:
                    raise IssueNotFound(str(issue_id))
                raise ConcurrentModification(str(issue_id), expected_version, actual)

            # Write-once fields only land while still NULL.
            if patch.admin_resolution_time is not None:
                await self.session.execute(
                    update(IssueRecord)
                    .where(
                        IssueRecord.id == issue_id,
                        IssueRecord.admin_resolution_time.is_(None),
                    )
                    .values(admin_resolution_time=patch.admin_resolution_time)
                )
            if patch.student_confirmation_time is not None:
                await self.session.execute(
                    update(IssueRecord)
                    .where(
                        IssueRecord.id == issue_id,
                        IssueRecord.student_confirmation_time.is_(None),
                    )
                    .values(student_confirmation_time=patch.student_confirmation_time)
                )
            if patch.event is not None:
                self.session.add(_event_to_row(issue_id, patch.event))

            await self.session.commit()
        except (IssueNotFound, ConcurrentModification):
            raise
        except Exception:
            await self.session.rollback()
            raise

        updated = await self.get(issue_id)
        if updated is None:
            raise IssueNotFound(str(issue_id))
        return updated

    async def query(
        self,
        creator_id: str | None = None,
        status: Status | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Issue]:
        stmt = select(IssueRecord).options(selectinload(IssueRecord.events))
        if creator_id is not None:
            stmt = stmt.where(IssueRecord.creator_id == creator_id)
        if status is not None:
            stmt = stmt.where(IssueRecord.status == status.value)
        limit = MAX_QUERY_LIMIT if limit is None else min(limit, MAX_QUERY_LIMIT)
        stmt = (
            stmt.order_by(IssueRecord.created_at.desc(), IssueRecord.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return [_issue_from_row(row) for row in result.scalars().all()]

    async def add_comment(self, comment: Comment) -> Comment:
        exists = (
            await self.session.execute(
                select(IssueRecord.id).where(IssueRecord.id == comment.issue_id)
            )
        ).scalar_one_or_none()
        if exists is None:
            raise IssueNotFound(str(comment.issue_id))

        self.session.add(
            CommentRecord(
                id=comment.id,
                issue_id=comment.issue_id,
                author_id=comment.author_id,
                author_role=comment.author_role.value,
                author_name=comment.author_name,
                content=comment.content,
                created_at=comment.created_at,
            )
        )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return comment

    async def list_comments(self, issue_id: UUID) -> list[Comment]:
        result = await self.session.execute(
            select(CommentRecord)
            .where(CommentRecord.issue_id == issue_id)
            .order_by(CommentRecord.created_at.asc())
        )
        return [_comment_from_row(row) for row in result.scalars().all()]

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        result = await self.session.execute(
            select(CommentRecord).where(CommentRecord.id == comment_id)
        )
        row = result.scalar_one_or_none()
        return _comment_from_row(row) if row else None

    async def delete_comment(self, comment_id: UUID) -> bool:
        result = await self.session.execute(
            delete(CommentRecord).where(CommentRecord.id == comment_id)
        )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class SqlNotificationRepository(NotificationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, notification: Notification) -> Notification:
        self.session.add(
            NotificationRecord(
                id=notification.id,
                audience=sorted(notification.audience),
                notification_type=notification.notification_type.value,
                title=notification.title,
                message=notification.message,
                action_url=notification.action_url,
                related_issue_id=notification.related_issue_id,
                related_comment_id=notification.related_comment_id,
                read=notification.read,
                read_at=notification.read_at,
                created_at=notification.created_at,
            )
        )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return notification

    async def get(self, notification_id: UUID) -> Notification | None:
        result = await self.session.execute(
            select(NotificationRecord)
            .where(NotificationRecord.id == notification_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _notification_from_row(row) if row else None

    async def mark_read(self, notification_id: UUID, now: datetime) -> Notification | None:
        await self.session.execute(
            update(NotificationRecord)
            .where(
                NotificationRecord.id == notification_id,
                NotificationRecord.read.is_(False),
            )
            .values(read=True, read_at=now)
        )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return await self.get(notification_id)

    async def mark_all_read(self, audience_filter: Collection[str], now: datetime) -> int:
        result = await self.session.execute(
            update(NotificationRecord)
            .where(
                NotificationRecord.audience.overlap(list(audience_filter)),
                NotificationRecord.read.is_(False),
            )
            .values(read=True, read_at=now)
        )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount

    async def list_for(self, audience_filter: Collection[str]) -> list[Notification]:
        result = await self.session.execute(
            select(NotificationRecord)
            .where(NotificationRecord.audience.overlap(list(audience_filter)))
            .order_by(NotificationRecord.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [_notification_from_row(row) for row in result.scalars().all()]
