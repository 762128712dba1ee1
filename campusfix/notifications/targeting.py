"""Notification targeting rules.

Translates lifecycle events into notification audiences and drafts. An
audience is a set of tokens: the role pools ``"admin"`` / ``"student"`` and
specific user ids. Rules follow the counterparty principle: whoever acts,
the *other* side hears about it.

Each entry of ``targets_for`` becomes its own notification record, so
recipient groups keep independent read state.
"""

from __future__ import annotations

from dataclasses import dataclass

from campusfix.exceptions import InvalidAudience
from campusfix.lifecycle.domain import (
    Actor,
    Comment,
    Issue,
    NotificationDraft,
    NotificationType,
    Role,
    Status,
    status_value,
)

ADMIN_TOKEN = Role.admin.value
STUDENT_TOKEN = Role.student.value

COMMENT_PREVIEW_LENGTH = 50


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssueSubmitted:
    issue: Issue
    actor: Actor


@dataclass(frozen=True)
class StatusChanged:
    issue: Issue  # state after the committed transition
    actor: Actor
    previous_status: Status


@dataclass(frozen=True)
class IssueAssigned:
    issue: Issue
    actor: Actor
    assignee_id: str


@dataclass(frozen=True)
class CommentAdded:
    issue: Issue
    actor: Actor
    comment: Comment


LifecycleEvent = IssueSubmitted | StatusChanged | IssueAssigned | CommentAdded


# ---------------------------------------------------------------------------
# Audiences
# ---------------------------------------------------------------------------


def owner_audience(issue: Issue) -> frozenset[str]:
    return frozenset({STUDENT_TOKEN, issue.creator_id})


def counterparty_audience(issue: Issue, actor: Actor) -> frozenset[str]:
    """The owning student when someone else acts, all admins when the owner acts."""
    if actor.id != issue.creator_id:
        return owner_audience(issue)
    return frozenset({ADMIN_TOKEN})


def is_resolution(event: LifecycleEvent) -> bool:
    return isinstance(event, StatusChanged) and event.issue.status is Status.resolved


def targets_for(event: LifecycleEvent) -> list[frozenset[str]]:
    """Return one audience per notification record to create for ``event``."""
    if isinstance(event, IssueSubmitted):
        audiences = [frozenset({ADMIN_TOKEN})]
    elif is_resolution(event):
        # Admins initiated the resolution; only the student hears it is final.
        audiences = [owner_audience(event.issue)]
    elif isinstance(event, (StatusChanged, CommentAdded)):
        audiences = [counterparty_audience(event.issue, event.actor)]
    elif isinstance(event, IssueAssigned):
        audiences = [
            frozenset({ADMIN_TOKEN, event.assignee_id}),
            owner_audience(event.issue),
        ]
    else:
        raise InvalidAudience(f"No targeting rule for {type(event).__name__}")

    for audience in audiences:
        check_audience(audience, event.actor)
    return audiences


def check_audience(audience: frozenset[str], actor: Actor | None = None) -> None:
    """Reject empty audiences and audiences made only of the acting user."""
    if not audience:
        raise InvalidAudience("Notification audience must not be empty")
    if actor is not None and audience == frozenset({actor.id}):
        raise InvalidAudience(
            f"Notification audience contains only the acting user {actor.id}"
        )


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


def action_url_for(issue: Issue, audience: frozenset[str]) -> str:
    if ADMIN_TOKEN in audience:
        return f"/admin/issues/{issue.id}"
    return f"/issues/{issue.id}"


def _preview(content: str) -> str:
    if len(content) > COMMENT_PREVIEW_LENGTH:
        return content[:COMMENT_PREVIEW_LENGTH] + "..."
    return content


def _render(event: LifecycleEvent, audience: frozenset[str]) -> tuple[NotificationType, str, str]:
    issue = event.issue
    if isinstance(event, IssueSubmitted):
        who = event.actor.display_name or "a student"
        return (
            NotificationType.issue,
            "New Issue Submitted",
            f'A new issue "{issue.title}" has been submitted by {who}.',
        )
    if is_resolution(event):
        return (
            NotificationType.resolution,
            f"Issue Resolved: {issue.title}",
            f'Your confirmation was recorded; issue "{issue.title}" is now resolved.',
        )
    if isinstance(event, StatusChanged):
        return (
            NotificationType.issue,
            f"Issue Status Updated: {issue.title}",
            f'The status of issue "{issue.title}" has been updated from '
            f"{status_value(event.previous_status)} to {status_value(issue.status)}.",
        )
    if isinstance(event, CommentAdded):
        who = event.comment.author_name or "Someone"
        return (
            NotificationType.comment,
            f"New Comment on Issue: {issue.title}",
            f'{who} commented: "{_preview(event.comment.content)}"',
        )
    # IssueAssigned: the assignee's record first, then the owner's.
    if ADMIN_TOKEN in audience:
        return (
            NotificationType.assignment,
            f"Issue Assigned: {issue.title}",
            f'You have been assigned to handle issue "{issue.title}".',
        )
    return (
        NotificationType.assignment,
        "Your Issue Has Been Assigned",
        f'Your issue "{issue.title}" has been assigned to an administrator.',
    )


def build_notifications(event: LifecycleEvent) -> list[NotificationDraft]:
    """Targeted, rendered notification drafts for a lifecycle event."""
    drafts = []
    for audience in targets_for(event):
        notification_type, title, message = _render(event, audience)
        drafts.append(
            NotificationDraft(
                audience=audience,
                notification_type=notification_type,
                title=title,
                message=message,
                related_issue_id=event.issue.id,
                related_comment_id=(
                    event.comment.id if isinstance(event, CommentAdded) else None
                ),
                action_url=action_url_for(event.issue, audience),
            )
        )
    return drafts
