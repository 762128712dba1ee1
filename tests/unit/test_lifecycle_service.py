"""Tests for IssueLifecycleService over the in-memory bindings."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from campusfix.exceptions import (
    CommentNotFound,
    ConcurrentModification,
    InvalidAudience,
    InvalidTransition,
    IssueAccessDenied,
    IssueNotFound,
    MissingEvidence,
    MissingResolutionNotes,
    ResolutionNotAdminConfirmed,
)
from campusfix.lifecycle.domain import (
    Intent,
    IssueDraft,
    IssuePatch,
    NotificationType,
    Priority,
    Status,
    utcnow,
)
from campusfix.repositories.base import MAX_QUERY_LIMIT

ADMIN_PATH = [Status.in_review, Status.assigned, Status.in_progress, Status.completed]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _draft(**overrides):
    fields = {
        "title": "Broken window latch",
        "description": "The latch on room 214's window is broken.",
        "category": "maintenance",
        "location": "Block B, room 214",
        "priority": Priority.high,
    }
    fields.update(overrides)
    return IssueDraft(**fields)


async def _submit(service, student):
    return await service.submit_issue(student, _draft())


async def _walk_to_completed(service, issue, admin, evidence):
    for status in ADMIN_PATH:
        issue = await service.request_transition(
            issue.id, admin, status, f"moving to {status.value}", evidence
        )
    return issue


async def _all_notifications(notification_repo):
    return await notification_repo.list_for({"admin", "student"})


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmitIssue:
    @pytest.mark.asyncio
    async def test_submit_seeds_history(self, service, student):
        issue = await _submit(service, student)

        assert issue.status is Status.submitted
        assert issue.creator_id == student.id
        assert issue.creator_name == student.display_name
        assert issue.version == 1
        assert len(issue.status_history) == 1
        assert issue.status_history[0].notes == "Issue submitted"
        assert issue.resolved_by_admin is False
        assert issue.resolved_by_student is False

    @pytest.mark.asyncio
    async def test_submit_notifies_admins(self, service, student, notification_repo):
        issue = await _submit(service, student)

        (notification,) = await _all_notifications(notification_repo)
        assert notification.audience == {"admin"}
        assert notification.related_issue_id == issue.id

    @pytest.mark.asyncio
    async def test_admin_cannot_submit(self, service, admin):
        with pytest.raises(IssueAccessDenied):
            await service.submit_issue(admin, _draft())


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestResolutionScenarios:
    @pytest.mark.asyncio
    async def test_scenario_a_admin_claims_resolution(
        self, service, student, admin, evidence, notification_repo
    ):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)
        before = len(await _all_notifications(notification_repo))

        issue = await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )

        assert issue.status is Status.pending_student_confirmation
        assert issue.resolved_by_admin is True
        assert issue.admin_resolution_time is not None
        assert issue.latest_event.status is Status.pending_student_confirmation

        notifications = await _all_notifications(notification_repo)
        assert len(notifications) == before + 1
        assert notifications[0].audience == {"student", student.id}

    @pytest.mark.asyncio
    async def test_scenario_b_student_confirms(
        self, service, student, admin, evidence, notification_repo
    ):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)
        issue = await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )
        before = len(await _all_notifications(notification_repo))

        issue = await service.request_transition(
            issue.id, student, Intent.resolved_by_student, "looks fixed"
        )

        assert issue.status is Status.resolved
        assert issue.resolved_by_student is True
        assert issue.student_confirmation_time is not None
        assert issue.is_terminal

        notifications = await _all_notifications(notification_repo)
        assert len(notifications) == before + 1
        assert notifications[0].audience == {"student", student.id}
        assert notifications[0].notification_type is NotificationType.resolution

    @pytest.mark.asyncio
    async def test_scenario_c_skipping_steps_changes_nothing(
        self, service, student, admin, evidence, notification_repo
    ):
        issue = await _submit(service, student)
        before = len(await _all_notifications(notification_repo))

        with pytest.raises(InvalidTransition):
            await service.request_transition(
                issue.id, admin, Status.in_progress, "skip", evidence
            )

        unchanged = await service.get_issue(issue.id, admin)
        assert unchanged == issue
        assert len(unchanged.status_history) == 1
        assert len(await _all_notifications(notification_repo)) == before

    @pytest.mark.asyncio
    async def test_scenario_d_admin_without_evidence(self, service, student, admin):
        issue = await _submit(service, student)

        with pytest.raises(MissingEvidence):
            await service.request_transition(issue.id, admin, Status.in_review, "triage")

        assert await service.get_issue(issue.id, admin) == issue

    @pytest.mark.asyncio
    async def test_scenario_e_force_close_is_not_resolved(
        self, service, student, admin, evidence
    ):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)
        await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )

        issue = await service.request_transition(
            issue.id, admin, Status.closed, "No reply from student", evidence
        )

        assert issue.status is Status.closed
        assert issue.resolved_by_student is False
        stats = await service.resolution_stats()
        assert stats.resolved_count == 0
        assert stats.admin_claimed_count == 1

    @pytest.mark.asyncio
    async def test_confirm_before_claim(self, service, student, admin, evidence):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)

        with pytest.raises(ResolutionNotAdminConfirmed):
            await service.request_transition(issue.id, student, Intent.resolved_by_student, "ok")

    @pytest.mark.asyncio
    async def test_confirmation_needs_notes(self, service, student, admin, evidence):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)
        await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )

        with pytest.raises(MissingResolutionNotes):
            await service.request_transition(issue.id, student, Intent.resolved_by_student, " ")

    @pytest.mark.asyncio
    async def test_reopen_then_confirm_is_rejected(self, service, student, admin, evidence):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)
        await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )
        await service.request_transition(
            issue.id, admin, Status.in_progress, "Still loose", evidence
        )

        with pytest.raises(InvalidTransition):
            await service.request_transition(issue.id, student, Intent.resolved_by_student, "ok")


# ---------------------------------------------------------------------------
# History and concurrency
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.asyncio
    async def test_n_transitions_append_n_events_in_order(
        self, service, student, admin, evidence
    ):
        issue = await _submit(service, student)

        issue = await _walk_to_completed(service, issue, admin, evidence)

        assert len(issue.status_history) == 1 + len(ADMIN_PATH)
        assert [e.status for e in issue.status_history[1:]] == ADMIN_PATH
        assert [e.sequence for e in issue.status_history] == list(range(len(ADMIN_PATH) + 1))
        assert issue.status is issue.latest_event.status
        assert issue.version == 1 + len(ADMIN_PATH)

    @pytest.mark.asyncio
    async def test_event_records_actor_and_evidence(self, service, student, admin, evidence):
        issue = await _submit(service, student)

        issue = await service.request_transition(
            issue.id, admin, "in-review", "Checking", evidence
        )

        event = issue.latest_event
        assert event.actor_id == admin.id
        assert event.notes == "Checking"
        assert list(event.attachments) == evidence


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_stale_expected_version(self, service, student, admin, evidence):
        issue = await _submit(service, student)
        await service.request_transition(issue.id, admin, Status.in_review, "", evidence)

        with pytest.raises(ConcurrentModification):
            await service.request_transition(
                issue.id, admin, Status.assigned, "", evidence, expected_version=issue.version
            )

    @pytest.mark.asyncio
    async def test_lost_race_on_write(self, service, issue_repo, student, admin, evidence):
        issue = await _submit(service, student)
        real_get = issue_repo.get

        async def get_then_race(issue_id):
            snapshot = await real_get(issue_id)
            # Another writer commits between our read and our write.
            await issue_repo.atomic_update(
                issue_id, snapshot.version, IssuePatch(assignee_id="admin-9"), utcnow()
            )
            return snapshot

        issue_repo.get = get_then_race

        with pytest.raises(ConcurrentModification):
            await service.request_transition(issue.id, admin, Status.in_review, "", evidence)

        issue_repo.get = real_get
        current = await service.get_issue(issue.id, admin)
        assert current.status is Status.submitted
        assert len(current.status_history) == 1


class TestDispatchIsBestEffort:
    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_transition(
        self, service, notification_repo, student, admin, evidence
    ):
        issue = await _submit(service, student)
        notification_repo.add = AsyncMock(side_effect=RuntimeError("db down"))

        updated = await service.request_transition(
            issue.id, admin, Status.in_review, "Triage", evidence
        )

        assert updated.status is Status.in_review
        assert (await service.get_issue(issue.id, admin)).status is Status.in_review

    @pytest.mark.asyncio
    async def test_targeting_failure_is_logged(self, service, student, admin, evidence):
        issue = await _submit(service, student)

        with patch(
            "campusfix.services.lifecycle_service.build_notifications",
            side_effect=InvalidAudience("bad"),
        ), patch("campusfix.services.lifecycle_service.logger") as mock_logger:
            updated = await service.request_transition(
                issue.id, admin, Status.in_review, "Triage", evidence
            )

        assert updated.status is Status.in_review
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.args[0] == "notification_targeting_failed"

    @pytest.mark.asyncio
    async def test_unexpected_targeting_error_is_absorbed(
        self, service, student, admin, evidence
    ):
        issue = await _submit(service, student)

        with patch(
            "campusfix.services.lifecycle_service.build_notifications",
            side_effect=KeyError("title"),
        ), patch("campusfix.services.lifecycle_service.logger") as mock_logger:
            updated = await service.request_transition(
                issue.id, admin, Status.in_review, "Triage", evidence
            )

        assert updated.status is Status.in_review
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.args[0] == "notification_targeting_failed"
        assert mock_logger.error.call_args.kwargs["exc_info"] is True

    @pytest.mark.asyncio
    async def test_transition_publishes_issue_change(self, service, feed, student, admin, evidence):
        issue = await _submit(service, student)
        received = []

        async def on_change(payload):
            received.append(payload)

        await feed.subscribe(f"issue:{issue.id}", on_change)
        await service.request_transition(issue.id, admin, Status.in_review, "", evidence)

        assert received == [
            {
                "event": "transitioned",
                "issue_id": str(issue.id),
                "status": "in-review",
                "version": 2,
            }
        ]


# ---------------------------------------------------------------------------
# Access, assignment, comments
# ---------------------------------------------------------------------------


class TestAccess:
    @pytest.mark.asyncio
    async def test_missing_issue(self, service, admin):
        with pytest.raises(IssueNotFound):
            await service.get_issue(uuid4(), admin)

    @pytest.mark.asyncio
    async def test_student_cannot_read_others_issue(self, service, student, other_student):
        issue = await _submit(service, student)

        with pytest.raises(IssueAccessDenied):
            await service.get_issue(issue.id, other_student)

    @pytest.mark.asyncio
    async def test_list_issues_scoped_by_role(self, service, student, other_student, admin):
        await _submit(service, student)
        await _submit(service, other_student)

        assert len(await service.list_issues(student)) == 1
        assert len(await service.list_issues(admin)) == 2
        assert len(await service.list_issues(admin, status=Status.resolved)) == 0

    @pytest.mark.asyncio
    async def test_allowed_actions_use_intents(self, service, student, admin, evidence):
        issue = await _walk_to_completed(service, await _submit(service, student), admin, evidence)

        assert await service.allowed_actions(issue.id, admin) == ["resolved-by-admin"]
        assert await service.allowed_actions(issue.id, student) == []

        await service.request_transition(
            issue.id, admin, Intent.resolved_by_admin, "Replaced the latch", evidence
        )

        assert await service.allowed_actions(issue.id, student) == ["resolved-by-student"]
        assert await service.allowed_actions(issue.id, admin) == ["closed", "in-progress"]


class TestResolutionStats:
    @pytest.mark.asyncio
    async def test_counts_every_resolved_issue(self, service, issue_repo, issue_factory):
        total = MAX_QUERY_LIMIT + 1
        for _ in range(total):
            issue = issue_factory(Status.resolved, resolved_by_admin=True)
            await issue_repo.create(
                replace(
                    issue,
                    resolved_by_student=True,
                    student_confirmation_time=issue.created_at + timedelta(hours=10),
                )
            )
        await issue_repo.create(issue_factory(Status.closed, resolved_by_admin=True))

        stats = await service.resolution_stats()

        assert stats.resolved_count == total
        assert stats.average_resolution_seconds == pytest.approx(10 * 3600)
        assert stats.admin_claimed_count == total + 1
        assert stats.average_admin_resolution_seconds == pytest.approx(5 * 3600)

    @pytest.mark.asyncio
    async def test_empty(self, service):
        stats = await service.resolution_stats()

        assert stats.resolved_count == 0
        assert stats.average_resolution_seconds is None


class TestAssignIssue:
    @pytest.mark.asyncio
    async def test_assign_notifies_assignee_and_owner(
        self, service, student, admin, notification_repo
    ):
        issue = await _submit(service, student)

        updated = await service.assign_issue(issue.id, admin, "admin-7")

        assert updated.assignee_id == "admin-7"
        assert updated.assigned_at is not None
        assert updated.status is Status.submitted
        audiences = [n.audience for n in await _all_notifications(notification_repo)]
        assert {"admin", "admin-7"} in audiences
        assert {"student", student.id} in audiences

    @pytest.mark.asyncio
    async def test_same_assignee_is_a_no_op(self, service, student, admin, notification_repo):
        issue = await _submit(service, student)
        first = await service.assign_issue(issue.id, admin, "admin-7")
        count = len(await _all_notifications(notification_repo))

        again = await service.assign_issue(issue.id, admin, "admin-7")

        assert again.version == first.version
        assert len(await _all_notifications(notification_repo)) == count

    @pytest.mark.asyncio
    async def test_student_cannot_assign(self, service, student):
        issue = await _submit(service, student)

        with pytest.raises(IssueAccessDenied):
            await service.assign_issue(issue.id, student, "admin-7")

    @pytest.mark.asyncio
    async def test_terminal_issue_cannot_be_assigned(self, service, student, admin, evidence):
        issue = await _submit(service, student)
        await service.request_transition(issue.id, admin, Status.in_review, "", evidence)
        await service.request_transition(issue.id, admin, Status.closed, "Duplicate", evidence)

        with pytest.raises(InvalidTransition):
            await service.assign_issue(issue.id, admin, "admin-7")


class TestComments:
    @pytest.mark.asyncio
    async def test_owner_comment_notifies_admins(
        self, service, student, notification_repo
    ):
        issue = await _submit(service, student)

        comment = await service.add_comment(issue.id, student, "  Any news?  ")

        assert comment.content == "Any news?"
        latest = (await _all_notifications(notification_repo))[0]
        assert latest.audience == {"admin"}
        assert latest.related_comment_id == comment.id

    @pytest.mark.asyncio
    async def test_admin_comment_notifies_owner(self, service, student, admin, notification_repo):
        issue = await _submit(service, student)

        await service.add_comment(issue.id, admin, "Parts ordered")

        latest = (await _all_notifications(notification_repo))[0]
        assert latest.audience == {"student", student.id}

    @pytest.mark.asyncio
    async def test_comments_listed_oldest_first(self, service, student, admin):
        issue = await _submit(service, student)
        await service.add_comment(issue.id, student, "first")
        await service.add_comment(issue.id, admin, "second")

        comments = await service.list_comments(issue.id, student)

        assert [c.content for c in comments] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_other_student_cannot_comment(self, service, student, other_student):
        issue = await _submit(service, student)

        with pytest.raises(IssueAccessDenied):
            await service.add_comment(issue.id, other_student, "me too")

    @pytest.mark.asyncio
    async def test_author_deletes_own_comment(self, service, feed, student):
        issue = await _submit(service, student)
        comment = await service.add_comment(issue.id, student, "typo")
        received = []

        async def on_change(payload):
            received.append(payload)

        await feed.subscribe(f"issue:{issue.id}", on_change)
        await service.delete_comment(issue.id, comment.id, student)

        assert await service.list_comments(issue.id, student) == []
        assert received == [
            {"event": "comment_deleted", "issue_id": str(issue.id), "comment_id": str(comment.id)}
        ]

    @pytest.mark.asyncio
    async def test_admin_deletes_any_comment(self, service, student, admin):
        issue = await _submit(service, student)
        comment = await service.add_comment(issue.id, student, "spam")

        await service.delete_comment(issue.id, comment.id, admin)

        assert await service.list_comments(issue.id, admin) == []

    @pytest.mark.asyncio
    async def test_owner_cannot_delete_admin_comment(self, service, student, admin):
        issue = await _submit(service, student)
        comment = await service.add_comment(issue.id, admin, "Parts ordered")

        with pytest.raises(IssueAccessDenied):
            await service.delete_comment(issue.id, comment.id, student)
        assert len(await service.list_comments(issue.id, admin)) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_comment(self, service, student):
        issue = await _submit(service, student)

        with pytest.raises(CommentNotFound):
            await service.delete_comment(issue.id, uuid4(), student)

    @pytest.mark.asyncio
    async def test_delete_comment_through_wrong_issue(self, service, student, admin):
        first = await _submit(service, student)
        second = await _submit(service, student)
        comment = await service.add_comment(first.id, student, "hello")

        with pytest.raises(CommentNotFound):
            await service.delete_comment(second.id, comment.id, admin)
