"""Create issues, status events, comments and notifications tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "issues",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("sub_category", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("priority", sa.Text(), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("attachments", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'submitted'")),
        sa.Column("creator_id", sa.Text(), nullable=False),
        sa.Column("creator_name", sa.Text(), nullable=True),
        sa.Column("assignee_id", sa.Text(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("resolved_by_student", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("admin_resolution_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("student_confirmation_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("priority IN ('low','medium','high','urgent')", name="ck_issue_priority"),
        sa.CheckConstraint(
            "status <> 'resolved' OR (resolved_by_admin AND resolved_by_student)",
            name="ck_issue_resolved_needs_both",
        ),
        sa.CheckConstraint("NOT resolved_by_student OR resolved_by_admin", name="ck_issue_student_after_admin"),
    )
    op.create_index("idx_issues_creator", "issues", ["creator_id"])
    op.create_index("idx_issues_status", "issues", ["status"])
    op.create_index("idx_issues_assignee", "issues", ["assignee_id"])

    op.create_table(
        "issue_status_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("issue_id", UUID(as_uuid=True), sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("actor_role", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("attachments", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.UniqueConstraint("issue_id", "sequence", name="uq_status_event_sequence"),
    )
    op.create_index("idx_status_events_issue", "issue_status_events", ["issue_id", "timestamp"])

    op.create_table(
        "issue_comments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("issue_id", UUID(as_uuid=True), sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Text(), nullable=False),
        sa.Column("author_role", sa.Text(), nullable=False),
        sa.Column("author_name", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_comments_issue_created", "issue_comments", ["issue_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("audience", ARRAY(sa.Text()), nullable=False),
        sa.Column("notification_type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_url", sa.Text(), nullable=True),
        sa.Column("related_issue_id", UUID(as_uuid=True), nullable=True),
        sa.Column("related_comment_id", UUID(as_uuid=True), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("cardinality(audience) > 0", name="ck_notification_audience"),
    )
    op.create_index("idx_notifications_audience", "notifications", ["audience"], postgresql_using="gin")
    op.create_index("idx_notifications_created", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_notifications_created", table_name="notifications")
    op.drop_index("idx_notifications_audience", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_comments_issue_created", table_name="issue_comments")
    op.drop_table("issue_comments")
    op.drop_index("idx_status_events_issue", table_name="issue_status_events")
    op.drop_table("issue_status_events")
    op.drop_index("idx_issues_assignee", table_name="issues")
    op.drop_index("idx_issues_status", table_name="issues")
    op.drop_index("idx_issues_creator", table_name="issues")
    op.drop_table("issues")
