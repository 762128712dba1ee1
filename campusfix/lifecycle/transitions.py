"""Issue status transition table.

Administrators drive the issue through triage and repair:

    submitted → in-review → assigned → in-progress → completed
              → pending-student-confirmation → resolved (student confirms)

with side branches through ``delayed`` and ``waiting-for-parts``. Students
cannot move their own issues except to confirm a resolution. ``resolved`` and
``closed`` are terminal for both roles.
"""

from __future__ import annotations

from campusfix.exceptions import InvalidTransition
from campusfix.lifecycle.domain import TERMINAL_STATUSES, Role, Status, status_value
from campusfix.logging_config import get_logger

logger = get_logger(__name__)

ADMIN_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.submitted: frozenset({Status.in_review, Status.assigned, Status.delayed}),
    Status.in_review: frozenset({Status.assigned, Status.delayed, Status.closed}),
    Status.assigned: frozenset({Status.in_progress, Status.delayed}),
    Status.in_progress: frozenset(
        {Status.waiting_for_parts, Status.delayed, Status.completed}
    ),
    Status.waiting_for_parts: frozenset({Status.in_progress, Status.delayed}),
    Status.delayed: frozenset({Status.in_review, Status.assigned, Status.in_progress}),
    # Entering pending-student-confirmation is the admin's resolution claim.
    Status.completed: frozenset({Status.pending_student_confirmation}),
    # Reopen, or force-close an unresponsive student's issue.
    Status.pending_student_confirmation: frozenset({Status.in_progress, Status.closed}),
    Status.resolved: frozenset(),
    Status.closed: frozenset(),
}

STUDENT_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.pending_student_confirmation: frozenset({Status.resolved}),
}

# Offered to admins when the stored status is not one we recognise.
ADMIN_RECOVERY_DEFAULT: frozenset[Status] = frozenset(
    {Status.in_review, Status.assigned, Status.in_progress, Status.closed}
)


def _parse_status(value: Status | str) -> Status | None:
    if isinstance(value, Status):
        return value
    try:
        return Status(value)
    except ValueError:
        return None


def allowed_next(current_status: Status | str, actor_role: Role | str) -> frozenset[Status]:
    """Return the statuses ``actor_role`` may move an issue to from ``current_status``."""
    role = Role(actor_role)
    current = _parse_status(current_status)

    if current in TERMINAL_STATUSES:
        return frozenset()

    if role is Role.student:
        if current is None:
            return frozenset()
        return STUDENT_TRANSITIONS.get(current, frozenset())

    if current is None:
        logger.warning(
            "transition_recovery_default",
            current_status=str(current_status),
            allowed=sorted(s.value for s in ADMIN_RECOVERY_DEFAULT),
        )
        return ADMIN_RECOVERY_DEFAULT
    return ADMIN_TRANSITIONS[current]


def can_transition(
    current_status: Status | str,
    requested_status: Status | str,
    actor_role: Role | str,
) -> bool:
    """Check whether ``actor_role`` may move an issue to ``requested_status``."""
    requested = _parse_status(requested_status)
    return requested is not None and requested in allowed_next(current_status, actor_role)


def validate_transition(
    current_status: Status | str,
    requested_status: Status | str,
    actor_role: Role | str,
) -> Status:
    """Validate a transition, raising InvalidTransition if it is not allowed."""
    if not can_transition(current_status, requested_status, actor_role):
        raise InvalidTransition(
            status_value(current_status), status_value(requested_status), Role(actor_role).value
        )
    return Status(requested_status)
