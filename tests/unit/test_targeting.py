"""Tests for notification audience targeting."""

from uuid import uuid4

import pytest

from campusfix.exceptions import InvalidAudience
from campusfix.lifecycle.domain import (
    Actor,
    Comment,
    NotificationType,
    Role,
    Status,
    utcnow,
)
from campusfix.notifications.targeting import (
    CommentAdded,
    IssueAssigned,
    IssueSubmitted,
    StatusChanged,
    build_notifications,
    check_audience,
    counterparty_audience,
    targets_for,
)


def _comment(issue, actor, content="Any update on this?"):
    return Comment(
        id=uuid4(),
        issue_id=issue.id,
        author_id=actor.id,
        author_role=actor.role,
        author_name=actor.display_name,
        content=content,
        created_at=utcnow(),
    )


class TestCounterpartyAudience:
    def test_someone_else_acts_notifies_owner(self, issue_factory, admin):
        issue = issue_factory(Status.in_review)

        assert counterparty_audience(issue, admin) == {"student", "student-1"}

    def test_owner_acts_notifies_admins(self, issue_factory, student):
        issue = issue_factory(Status.in_review)

        assert counterparty_audience(issue, student) == {"admin"}


class TestTargetsFor:
    def test_submission_goes_to_admins(self, issue_factory, student):
        issue = issue_factory(Status.submitted)

        assert targets_for(IssueSubmitted(issue=issue, actor=student)) == [{"admin"}]

    def test_admin_status_change_goes_to_owner(self, issue_factory, admin):
        issue = issue_factory(Status.in_progress)
        event = StatusChanged(issue=issue, actor=admin, previous_status=Status.assigned)

        assert targets_for(event) == [{"student", "student-1"}]

    def test_resolution_goes_only_to_owner(self, issue_factory, student):
        issue = issue_factory(
            Status.resolved, resolved_by_admin=True, resolved_by_student=True
        )
        event = StatusChanged(
            issue=issue, actor=student, previous_status=Status.pending_student_confirmation
        )

        assert targets_for(event) == [{"student", "student-1"}]

    def test_assignment_creates_two_records(self, issue_factory, admin):
        issue = issue_factory(Status.in_review, assignee_id="admin-7")
        event = IssueAssigned(issue=issue, actor=admin, assignee_id="admin-7")

        assert targets_for(event) == [
            {"admin", "admin-7"},
            {"student", "student-1"},
        ]

    def test_owner_comment_goes_to_admins(self, issue_factory, student):
        issue = issue_factory(Status.in_progress)
        event = CommentAdded(issue=issue, actor=student, comment=_comment(issue, student))

        assert targets_for(event) == [{"admin"}]

    def test_admin_comment_goes_to_owner(self, issue_factory, admin):
        issue = issue_factory(Status.in_progress)
        event = CommentAdded(issue=issue, actor=admin, comment=_comment(issue, admin))

        assert targets_for(event) == [{"student", "student-1"}]

    @pytest.mark.parametrize("actor_id", ["student-1", "admin-1", "student-9"])
    def test_audience_never_only_the_actor(self, issue_factory, actor_id):
        issue = issue_factory(Status.in_progress)
        role = Role.admin if actor_id.startswith("admin") else Role.student
        actor = Actor(id=actor_id, role=role)
        event = CommentAdded(issue=issue, actor=actor, comment=_comment(issue, actor))

        for audience in targets_for(event):
            assert audience
            assert audience != {actor_id}

    def test_unknown_event(self):
        with pytest.raises(InvalidAudience):
            targets_for(object())


class TestCheckAudience:
    def test_empty(self):
        with pytest.raises(InvalidAudience):
            check_audience(frozenset())

    def test_only_the_actor(self, student):
        with pytest.raises(InvalidAudience):
            check_audience(frozenset({student.id}), student)

    def test_actor_plus_pool_is_fine(self, student):
        check_audience(frozenset({"student", student.id}), student)


class TestBuildNotifications:
    def test_submission_draft(self, issue_factory, student):
        issue = issue_factory(Status.submitted)

        (draft,) = build_notifications(IssueSubmitted(issue=issue, actor=student))

        assert draft.notification_type is NotificationType.issue
        assert draft.title == "New Issue Submitted"
        assert "Ada Student" in draft.message
        assert draft.related_issue_id == issue.id
        assert draft.action_url == f"/admin/issues/{issue.id}"

    def test_status_change_draft(self, issue_factory, admin):
        issue = issue_factory(Status.in_progress)
        event = StatusChanged(issue=issue, actor=admin, previous_status=Status.assigned)

        (draft,) = build_notifications(event)

        assert draft.notification_type is NotificationType.issue
        assert "from assigned to in-progress" in draft.message
        assert draft.action_url == f"/issues/{issue.id}"

    def test_resolution_draft(self, issue_factory, student):
        issue = issue_factory(
            Status.resolved, resolved_by_admin=True, resolved_by_student=True
        )
        event = StatusChanged(
            issue=issue, actor=student, previous_status=Status.pending_student_confirmation
        )

        (draft,) = build_notifications(event)

        assert draft.notification_type is NotificationType.resolution

    def test_assignment_drafts(self, issue_factory, admin):
        issue = issue_factory(Status.in_review, assignee_id="admin-7")

        assignee, owner = build_notifications(
            IssueAssigned(issue=issue, actor=admin, assignee_id="admin-7")
        )

        assert assignee.notification_type is NotificationType.assignment
        assert assignee.title.startswith("Issue Assigned")
        assert owner.title == "Your Issue Has Been Assigned"

    def test_comment_preview_is_truncated(self, issue_factory, admin):
        issue = issue_factory(Status.in_progress)
        comment = _comment(issue, admin, content="x" * 80)

        (draft,) = build_notifications(CommentAdded(issue=issue, actor=admin, comment=comment))

        assert draft.notification_type is NotificationType.comment
        assert draft.related_comment_id == comment.id
        assert "x" * 50 + "..." in draft.message
        assert "x" * 51 not in draft.message
