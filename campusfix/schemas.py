"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campusfix.lifecycle.domain import (
    Attachment,
    AttachmentKind,
    IssueDraft,
    NotificationType,
    Priority,
    Role,
    Status,
)


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class AttachmentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    url: str = Field(..., min_length=1, max_length=2048)
    kind: AttachmentKind = AttachmentKind.image
    name: str | None = Field(default=None, max_length=255)

    def to_domain(self) -> Attachment:
        return Attachment(url=self.url, kind=self.kind, name=self.name)


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class IssueSubmitRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)
    category: str | None = Field(default=None, max_length=100)
    sub_category: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=255)
    priority: Priority = Priority.medium
    attachments: list[AttachmentSchema] = Field(default_factory=list, max_length=20)

    def to_draft(self) -> IssueDraft:
        return IssueDraft(
            title=self.title,
            description=self.description,
            category=self.category,
            sub_category=self.sub_category,
            location=self.location,
            priority=self.priority,
            attachments=tuple(a.to_domain() for a in self.attachments),
        )


class TransitionRequest(BaseModel):
    status: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Target status, or resolved-by-admin / resolved-by-student",
    )
    notes: str | None = Field(default=None, max_length=5000)
    attachments: list[AttachmentSchema] = Field(default_factory=list, max_length=20)
    expected_version: int | None = Field(default=None, ge=1)


class AssignRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1, max_length=128)
    expected_version: int | None = Field(default=None, ge=1)


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment must not be blank")
        return v


class StatusEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: Status
    timestamp: datetime
    sequence: int
    actor_id: str
    actor_role: Role
    notes: str
    attachments: list[AttachmentSchema]


class IssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    category: str | None
    sub_category: str | None
    location: str | None
    priority: Priority
    attachments: list[AttachmentSchema]
    creator_id: str
    creator_name: str | None
    # Unrecognised stored statuses are passed through as plain strings.
    status: Status | str
    status_history: list[StatusEventResponse]
    assignee_id: str | None
    assigned_at: datetime | None
    resolved_by_admin: bool
    resolved_by_student: bool
    admin_resolution_time: datetime | None
    student_confirmation_time: datetime | None
    created_at: datetime
    updated_at: datetime | None
    version: int


class IssueListResponse(BaseModel):
    items: list[IssueResponse]
    page: int
    per_page: int


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: UUID
    author_id: str
    author_role: Role
    author_name: str | None
    content: str
    created_at: datetime


class AllowedActionsResponse(BaseModel):
    issue_id: UUID
    status: Status | str
    version: int
    actions: list[str]


class ResolutionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    resolved_count: int
    average_resolution_seconds: float | None
    admin_claimed_count: int
    average_admin_resolution_seconds: float | None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    audience: list[str]
    notification_type: NotificationType
    title: str
    message: str
    read: bool
    read_at: datetime | None
    related_issue_id: UUID | None
    related_comment_id: UUID | None
    action_url: str | None
    created_at: datetime

    @field_validator("audience", mode="before")
    @classmethod
    def sort_audience(cls, v):
        return sorted(v)


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread_count: int


class NotificationUnreadCountResponse(BaseModel):
    unread_count: int
