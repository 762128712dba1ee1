"""Issue lifecycle service: the single entry point for changing an issue.

Every operation takes the acting identity explicitly. A transition is a fresh
read, validation against that read, then one conditional write keyed on the
version that was read. Notifications go out only after the write committed
and never undo it.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID, uuid4

from campusfix.exceptions import (
    CommentNotFound,
    ConcurrentModification,
    InvalidTransition,
    IssueAccessDenied,
    IssueNotFound,
    LifecycleError,
)
from campusfix.lifecycle.audit import append_event, submission_event
from campusfix.lifecycle.domain import (
    Actor,
    Attachment,
    Comment,
    Intent,
    Issue,
    IssueDraft,
    IssuePatch,
    Role,
    Status,
    status_value,
    utcnow,
)
from campusfix.lifecycle.resolution import (
    ResolutionStats,
    resolution_patch,
    stored_status_for,
    summarize_resolution_times,
)
from campusfix.lifecycle.transitions import allowed_next
from campusfix.logging_config import get_logger
from campusfix.notifications.dispatcher import NotificationDispatcher
from campusfix.notifications.targeting import (
    CommentAdded,
    IssueAssigned,
    IssueSubmitted,
    LifecycleEvent,
    StatusChanged,
    build_notifications,
)
from campusfix.realtime.feed import ChangeFeed, issue_channel
from campusfix.repositories.base import MAX_QUERY_LIMIT, IssueRepository

logger = get_logger(__name__)


class IssueLifecycleService:
    """Orchestrates validation, persistence, the change feed and notifications."""

    def __init__(
        self,
        issues: IssueRepository,
        dispatcher: NotificationDispatcher,
        feed: ChangeFeed,
    ) -> None:
        self.issues = issues
        self.dispatcher = dispatcher
        self.feed = feed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_issue(self, issue_id: UUID, actor: Actor) -> Issue:
        issue = await self._load(issue_id)
        self._authorize(issue, actor)
        return issue

    async def list_issues(
        self,
        actor: Actor,
        status: Status | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Issue]:
        """Students see their own issues; admins see everything."""
        creator_id = None if actor.is_admin else actor.id
        return await self.issues.query(
            creator_id=creator_id, status=status, limit=limit, offset=offset
        )

    async def list_comments(self, issue_id: UUID, actor: Actor) -> list[Comment]:
        await self.get_issue(issue_id, actor)
        return await self.issues.list_comments(issue_id)

    async def allowed_actions(self, issue_id: UUID, actor: Actor) -> list[str]:
        """What the actor can request next, expressed the way it should be requested.

        The resolution steps are offered as their intents rather than the
        statuses they are stored as.
        """
        issue = await self.get_issue(issue_id, actor)
        return self.allowed_actions_for(issue, actor)

    @staticmethod
    def allowed_actions_for(issue: Issue, actor: Actor) -> list[str]:
        actions = []
        for target in allowed_next(issue.status, actor.role):
            if target is Status.pending_student_confirmation:
                actions.append(Intent.resolved_by_admin.value)
            elif target is Status.resolved and actor.role is Role.student:
                if issue.resolved_by_admin:
                    actions.append(Intent.resolved_by_student.value)
            else:
                actions.append(target.value)
        return sorted(actions)

    async def resolution_stats(self) -> ResolutionStats:
        """Resolution-time statistics over every stored issue."""
        issues: list[Issue] = []
        offset = 0
        while True:
            page = await self.issues.query(limit=MAX_QUERY_LIMIT, offset=offset)
            issues.extend(page)
            if len(page) < MAX_QUERY_LIMIT:
                break
            offset += len(page)
        return summarize_resolution_times(issues)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit_issue(self, actor: Actor, draft: IssueDraft) -> Issue:
        """Create an issue with its history seeded by the submission event."""
        if actor.role is not Role.student:
            raise IssueAccessDenied("new", actor.id, "only students submit issues")

        now = utcnow()
        issue = Issue(
            id=uuid4(),
            title=draft.title.strip(),
            description=draft.description.strip(),
            creator_id=actor.id,
            creator_name=actor.display_name,
            status=Status.submitted,
            status_history=(submission_event(actor, now),),
            created_at=now,
            updated_at=now,
            category=draft.category,
            sub_category=draft.sub_category,
            location=draft.location,
            priority=draft.priority,
            attachments=tuple(draft.attachments),
        )
        issue = await self.issues.create(issue)
        logger.info(
            "issue_submitted",
            issue_id=str(issue.id),
            creator_id=actor.id,
            priority=issue.priority.value,
        )

        await self._publish(issue, "submitted")
        await self._notify(IssueSubmitted(issue=issue, actor=actor))
        return issue

    async def request_transition(
        self,
        issue_id: UUID,
        actor: Actor,
        requested_status: Status | Intent | str,
        notes: str | None = None,
        attachments: Sequence[Attachment] = (),
        expected_version: int | None = None,
    ) -> Issue:
        """Move an issue to a new status on behalf of ``actor``.

        ``requested_status`` may be a status or a resolution intent; the
        stored status can therefore differ from the requested one.

        Raises:
            IssueNotFound: no such issue.
            IssueAccessDenied: a student acting on someone else's issue.
            InvalidTransition, MissingResolutionNotes, MissingEvidence,
            ResolutionNotAdminConfirmed: the request was rejected; nothing changed.
            ConcurrentModification: the issue changed since it was read.
        """
        issue = await self._load(issue_id)
        if expected_version is not None and expected_version != issue.version:
            raise ConcurrentModification(str(issue_id), expected_version, issue.version)
        self._authorize(issue, actor)

        target = stored_status_for(issue, actor, requested_status)
        now = utcnow()
        event = append_event(issue, actor, target, notes, attachments, now)
        patch = resolution_patch(issue, event, now)

        updated = await self.issues.atomic_update(issue.id, issue.version, patch, now)
        logger.info(
            "issue_transitioned",
            issue_id=str(issue.id),
            from_status=status_value(issue.status),
            to_status=updated.status.value,
            requested=str(getattr(requested_status, "value", requested_status)),
            actor_id=actor.id,
            actor_role=actor.role.value,
            version=updated.version,
        )

        await self._publish(updated, "transitioned")
        await self._notify(
            StatusChanged(issue=updated, actor=actor, previous_status=issue.status)
        )
        return updated

    async def assign_issue(
        self,
        issue_id: UUID,
        actor: Actor,
        assignee_id: str,
        expected_version: int | None = None,
    ) -> Issue:
        """Record who handles an issue. Re-assigning the same admin changes nothing."""
        if not actor.is_admin:
            raise IssueAccessDenied(str(issue_id), actor.id, "only admins assign issues")

        issue = await self._load(issue_id)
        if expected_version is not None and expected_version != issue.version:
            raise ConcurrentModification(str(issue_id), expected_version, issue.version)
        if issue.is_terminal:
            raise InvalidTransition(
                status_value(issue.status), Status.assigned.value, actor.role.value
            )
        if issue.assignee_id == assignee_id:
            return issue

        now = utcnow()
        updated = await self.issues.atomic_update(
            issue.id,
            issue.version,
            IssuePatch(assignee_id=assignee_id, assigned_at=now),
            now,
        )
        logger.info(
            "issue_assigned",
            issue_id=str(issue.id),
            assignee_id=assignee_id,
            previous_assignee_id=issue.assignee_id,
            actor_id=actor.id,
        )

        await self._publish(updated, "assigned")
        await self._notify(IssueAssigned(issue=updated, actor=actor, assignee_id=assignee_id))
        return updated

    async def add_comment(self, issue_id: UUID, actor: Actor, content: str) -> Comment:
        issue = await self.get_issue(issue_id, actor)
        comment = Comment(
            id=uuid4(),
            issue_id=issue.id,
            author_id=actor.id,
            author_role=actor.role,
            author_name=actor.display_name,
            content=content.strip(),
            created_at=utcnow(),
        )
        comment = await self.issues.add_comment(comment)
        logger.info(
            "issue_comment_added",
            issue_id=str(issue.id),
            comment_id=str(comment.id),
            actor_id=actor.id,
        )

        await self.feed.publish(
            issue_channel(issue.id),
            {"event": "commented", "issue_id": str(issue.id), "comment_id": str(comment.id)},
        )
        await self._notify(CommentAdded(issue=issue, actor=actor, comment=comment))
        return comment

    async def delete_comment(self, issue_id: UUID, comment_id: UUID, actor: Actor) -> None:
        """Remove a comment. Only its author or an administrator may do so."""
        issue = await self.get_issue(issue_id, actor)
        comment = await self.issues.get_comment(comment_id)
        if comment is None or comment.issue_id != issue.id:
            raise CommentNotFound(str(comment_id))
        if actor.role is not Role.admin and comment.author_id != actor.id:
            raise IssueAccessDenied(str(issue.id), actor.id, "not the comment's author")

        if not await self.issues.delete_comment(comment_id):
            raise CommentNotFound(str(comment_id))
        logger.info(
            "issue_comment_deleted",
            issue_id=str(issue.id),
            comment_id=str(comment_id),
            actor_id=actor.id,
        )

        await self.feed.publish(
            issue_channel(issue.id),
            {"event": "comment_deleted", "issue_id": str(issue.id), "comment_id": str(comment_id)},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, issue_id: UUID) -> Issue:
        issue = await self.issues.get(issue_id)
        if issue is None:
            raise IssueNotFound(str(issue_id))
        return issue

    @staticmethod
    def _authorize(issue: Issue, actor: Actor) -> None:
        if actor.role is Role.student and issue.creator_id != actor.id:
            raise IssueAccessDenied(str(issue.id), actor.id, "not the issue's creator")

    async def _publish(self, issue: Issue, event: str) -> None:
        await self.feed.publish(
            issue_channel(issue.id),
            {
                "event": event,
                "issue_id": str(issue.id),
                "status": status_value(issue.status),
                "version": issue.version,
            },
        )

    async def _notify(self, event: LifecycleEvent) -> None:
        """Fan out notifications for a committed change. Never raises."""
        try:
            await self.dispatcher.dispatch(build_notifications(event))
        except LifecycleError as e:
            logger.error(
                "notification_targeting_failed",
                issue_id=str(event.issue.id),
                lifecycle_event=type(event).__name__,
                error=e.message,
            )
        except Exception as e:
            logger.error(
                "notification_targeting_failed",
                issue_id=str(event.issue.id),
                lifecycle_event=type(event).__name__,
                error=str(e),
                exc_info=True,
            )
