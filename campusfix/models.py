"""SQLAlchemy ORM models: issues, their status history, comments, notifications."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import Boolean, DateTime, Integer


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class IssueRecord(Base):
    __tablename__ = "issues"
    __table_args__ = (
        Index("idx_issues_creator", "creator_id"),
        Index("idx_issues_status", "status"),
        Index("idx_issues_assignee", "assignee_id"),
        CheckConstraint(
            "priority IN ('low','medium','high','urgent')", name="ck_issue_priority"
        ),
        CheckConstraint(
            "status <> 'resolved' OR (resolved_by_admin AND resolved_by_student)",
            name="ck_issue_resolved_needs_both",
        ),
        CheckConstraint(
            "NOT resolved_by_student OR resolved_by_admin",
            name="ck_issue_student_after_admin",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    sub_category: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'medium'")
    )
    attachments: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )

    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'submitted'")
    )
    creator_id: Mapped[str] = mapped_column(Text, nullable=False)
    creator_name: Mapped[str | None] = mapped_column(Text)
    assignee_id: Mapped[str | None] = mapped_column(Text)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Dual confirmation
    resolved_by_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    resolved_by_student: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    admin_resolution_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    student_confirmation_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )

    # Optimistic concurrency token, bumped by every write
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("1")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    events: Mapped[list["StatusEventRecord"]] = relationship(
        back_populates="issue",
        order_by="StatusEventRecord.sequence",
        cascade="all, delete-orphan",
    )


class StatusEventRecord(Base):
    __tablename__ = "issue_status_events"
    __table_args__ = (
        UniqueConstraint("issue_id", "sequence", name="uq_status_event_sequence"),
        Index("idx_status_events_issue", "issue_id", "timestamp"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    issue_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("issues.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_id: Mapped[str] = mapped_column(Text, nullable=False)
    actor_role: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    attachments: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )

    issue: Mapped["IssueRecord"] = relationship(back_populates="events")


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentRecord(Base):
    __tablename__ = "issue_comments"
    __table_args__ = (Index("idx_comments_issue_created", "issue_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    issue_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("issues.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[str] = mapped_column(Text, nullable=False)
    author_role: Mapped[str] = mapped_column(Text, nullable=False)
    author_name: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationRecord(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_audience", "audience", postgresql_using="gin"),
        Index("idx_notifications_created", "created_at"),
        CheckConstraint("cardinality(audience) > 0", name="ck_notification_audience"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    audience: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False)
    notification_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[str | None] = mapped_column(Text)
    # Weak back-references: navigation only, no foreign keys.
    related_issue_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    related_comment_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )
