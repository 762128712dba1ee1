"""Domain types for the issue lifecycle: statuses, actors, issues, notifications.

These are plain dataclasses shared by the pure rule modules, the lifecycle
service and both persistence bindings. Records are frozen; a change to an
issue is expressed as a new ``Issue`` built with ``dataclasses.replace``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID


def utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Status(str, enum.Enum):
    submitted = "submitted"
    in_review = "in-review"
    assigned = "assigned"
    in_progress = "in-progress"
    waiting_for_parts = "waiting-for-parts"
    delayed = "delayed"
    completed = "completed"
    pending_student_confirmation = "pending-student-confirmation"
    resolved = "resolved"
    closed = "closed"


def status_value(status: Status | str) -> str:
    """Wire value of a status, including unrecognised values read from storage."""
    return status.value if isinstance(status, Status) else str(status)


TERMINAL_STATUSES: frozenset[Status] = frozenset({Status.resolved, Status.closed})

# Statuses governed by the dual-confirmation protocol.
RESOLUTION_ADJACENT: frozenset[Status] = frozenset(
    {Status.pending_student_confirmation, Status.resolved}
)


class Intent(str, enum.Enum):
    """Resolution requests that are never stored as a status themselves."""

    resolved_by_admin = "resolved-by-admin"
    resolved_by_student = "resolved-by-student"


class Role(str, enum.Enum):
    admin = "admin"
    student = "student"


class Priority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class AttachmentKind(str, enum.Enum):
    image = "image"
    video = "video"
    document = "document"


class NotificationType(str, enum.Enum):
    issue = "issue"
    comment = "comment"
    assignment = "assignment"
    resolution = "resolution"


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation, as resolved by the auth layer."""

    id: str
    role: Role
    display_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin


@dataclass(frozen=True)
class Attachment:
    """Reference to evidence already uploaded to blob storage."""

    url: str
    kind: AttachmentKind = AttachmentKind.image
    name: str | None = None


@dataclass(frozen=True)
class StatusEvent:
    status: Status
    timestamp: datetime
    sequence: int
    actor_id: str
    actor_role: Role
    notes: str = ""
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class Issue:
    id: UUID
    title: str
    description: str
    creator_id: str
    status: Status
    status_history: tuple[StatusEvent, ...]
    created_at: datetime
    category: str | None = None
    sub_category: str | None = None
    location: str | None = None
    priority: Priority = Priority.medium
    attachments: tuple[Attachment, ...] = ()
    creator_name: str | None = None
    assignee_id: str | None = None
    assigned_at: datetime | None = None
    resolved_by_admin: bool = False
    resolved_by_student: bool = False
    admin_resolution_time: datetime | None = None
    student_confirmation_time: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def latest_event(self) -> StatusEvent:
        return self.status_history[-1]


@dataclass(frozen=True)
class IssueDraft:
    """What a student supplies when submitting an issue."""

    title: str
    description: str
    category: str | None = None
    sub_category: str | None = None
    location: str | None = None
    priority: Priority = Priority.medium
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class IssuePatch:
    """Fields written together with an optional status event in one atomic update."""

    status: Status | None = None
    event: StatusEvent | None = None
    resolved_by_admin: bool | None = None
    resolved_by_student: bool | None = None
    admin_resolution_time: datetime | None = None
    student_confirmation_time: datetime | None = None
    assignee_id: str | None = None
    assigned_at: datetime | None = None


@dataclass(frozen=True)
class Comment:
    id: UUID
    issue_id: UUID
    author_id: str
    author_role: Role
    content: str
    created_at: datetime
    author_name: str | None = None


@dataclass(frozen=True)
class NotificationDraft:
    """A notification before the dispatcher stamps and stores it."""

    audience: frozenset[str]
    notification_type: NotificationType
    title: str
    message: str
    related_issue_id: UUID | None = None
    related_comment_id: UUID | None = None
    action_url: str | None = None


@dataclass(frozen=True)
class Notification:
    id: UUID
    audience: frozenset[str]
    notification_type: NotificationType
    title: str
    message: str
    created_at: datetime
    read: bool = False
    read_at: datetime | None = None
    related_issue_id: UUID | None = None
    related_comment_id: UUID | None = None
    action_url: str | None = None
