"""Dual-confirmation resolution protocol.

An issue is only ``resolved`` once both sides agree:

1. The administrator claims the fix with the ``resolved-by-admin`` intent.
   The claim is stored as ``pending-student-confirmation`` and flips
   ``resolved_by_admin``.
2. The owning student confirms with the ``resolved-by-student`` intent, which
   requires the admin claim and stores ``resolved``.

The administrator may still reopen (``in-progress``) or force-close a pending
issue; a force-closed issue never counts as resolved in the statistics below.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from campusfix.exceptions import InvalidTransition, ResolutionNotAdminConfirmed
from campusfix.lifecycle.domain import (
    Actor,
    Intent,
    Issue,
    IssuePatch,
    Role,
    Status,
    StatusEvent,
    status_value,
)


def _parse_request(requested: Status | Intent | str) -> Status | Intent | None:
    if isinstance(requested, (Status, Intent)):
        return requested
    for enum_cls in (Intent, Status):
        try:
            return enum_cls(requested)
        except ValueError:
            continue
    return None


def stored_status_for(issue: Issue, actor: Actor, requested: Status | Intent | str) -> Status:
    """Map a requested status or intent to the status that will actually be stored.

    The student's confirmation is checked against the admin claim before any
    other rule, so confirming too early fails the same way whatever the
    issue's current status.

    Raises:
        ResolutionNotAdminConfirmed: student confirmation without an admin claim.
        InvalidTransition: unknown request, or an intent belonging to the other role.
    """
    parsed = _parse_request(requested)
    if parsed is None:
        raise InvalidTransition(status_value(issue.status), str(requested), actor.role.value)

    is_student_confirm = parsed in (Intent.resolved_by_student, Status.resolved)
    if is_student_confirm and actor.role is Role.student:
        if not issue.resolved_by_admin:
            raise ResolutionNotAdminConfirmed(str(issue.id))
        return Status.resolved

    if parsed is Intent.resolved_by_admin and actor.role is Role.admin:
        return Status.pending_student_confirmation

    if isinstance(parsed, Intent):
        raise InvalidTransition(status_value(issue.status), parsed.value, actor.role.value)
    return parsed


def resolution_patch(issue: Issue, event: StatusEvent, now: datetime) -> IssuePatch:
    """Build the atomic update for an event, including the confirmation fields."""
    if event.status is Status.pending_student_confirmation:
        # Reopened and re-claimed issues keep their first claim time.
        return IssuePatch(
            status=event.status,
            event=event,
            resolved_by_admin=True,
            admin_resolution_time=issue.admin_resolution_time or now,
        )
    if event.status is Status.resolved:
        return IssuePatch(
            status=event.status,
            event=event,
            resolved_by_student=True,
            student_confirmation_time=now,
        )
    return IssuePatch(status=event.status, event=event)


# ---------------------------------------------------------------------------
# Resolution-time reporting
# ---------------------------------------------------------------------------


def resolution_time(issue: Issue) -> timedelta | None:
    """Total time from submission to the student's confirmation.

    Only issues in ``resolved`` count; a force-closed issue has none.
    """
    if issue.status is not Status.resolved or issue.student_confirmation_time is None:
        return None
    delta = issue.student_confirmation_time - issue.created_at
    return delta if delta > timedelta(0) else None


def admin_resolution_time(issue: Issue) -> timedelta | None:
    """Time from submission to the administrator's resolution claim."""
    if not issue.resolved_by_admin or issue.admin_resolution_time is None:
        return None
    delta = issue.admin_resolution_time - issue.created_at
    return delta if delta > timedelta(0) else None


@dataclass(frozen=True)
class ResolutionStats:
    resolved_count: int
    average_resolution_seconds: float | None
    admin_claimed_count: int
    average_admin_resolution_seconds: float | None


def _mean_seconds(deltas: list[timedelta]) -> float | None:
    if not deltas:
        return None
    return sum(d.total_seconds() for d in deltas) / len(deltas)


def summarize_resolution_times(issues: Iterable[Issue]) -> ResolutionStats:
    """Aggregate resolution times; admin partial times are kept separate."""
    totals: list[timedelta] = []
    admin_parts: list[timedelta] = []
    for issue in issues:
        total = resolution_time(issue)
        if total is not None:
            totals.append(total)
        partial = admin_resolution_time(issue)
        if partial is not None:
            admin_parts.append(partial)

    return ResolutionStats(
        resolved_count=len(totals),
        average_resolution_seconds=_mean_seconds(totals),
        admin_claimed_count=len(admin_parts),
        average_admin_resolution_seconds=_mean_seconds(admin_parts),
    )
