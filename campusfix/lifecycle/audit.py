"""Audit log builder for an issue's status history.

Builds the immutable ``StatusEvent`` for a validated transition. The builder
never writes anything: the lifecycle service persists the event and the new
status in the same atomic update, so readers never see one without the other.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from campusfix.exceptions import MissingEvidence, MissingResolutionNotes
from campusfix.lifecycle.domain import (
    RESOLUTION_ADJACENT,
    Actor,
    Attachment,
    Issue,
    Role,
    Status,
    StatusEvent,
    utcnow,
)
from campusfix.lifecycle.transitions import validate_transition

SUBMISSION_NOTE = "Issue submitted"


def append_event(
    issue: Issue,
    actor: Actor,
    requested_status: Status | str,
    notes: str | None = None,
    attachments: Sequence[Attachment] = (),
    now: datetime | None = None,
) -> StatusEvent:
    """Validate a transition and build the status event that records it.

    Raises:
        InvalidTransition: ``requested_status`` is not reachable for the actor's role.
        MissingResolutionNotes: resolution-adjacent status without notes.
        MissingEvidence: an administrator supplied no attachments.
    """
    target = validate_transition(issue.status, requested_status, actor.role)

    notes = (notes or "").strip()
    if target in RESOLUTION_ADJACENT and not notes:
        raise MissingResolutionNotes(target.value)
    if actor.role is Role.admin and not attachments:
        raise MissingEvidence(target.value)

    return StatusEvent(
        status=target,
        timestamp=now or utcnow(),
        sequence=len(issue.status_history),
        actor_id=actor.id,
        actor_role=actor.role,
        notes=notes,
        attachments=tuple(attachments),
    )


def submission_event(actor: Actor, now: datetime | None = None) -> StatusEvent:
    """The first history entry of every issue."""
    return StatusEvent(
        status=Status.submitted,
        timestamp=now or utcnow(),
        sequence=0,
        actor_id=actor.id,
        actor_role=actor.role,
        notes=SUBMISSION_NOTE,
    )


def ordered_history(events: Sequence[StatusEvent]) -> tuple[StatusEvent, ...]:
    """Order events by timestamp, ties broken by insertion sequence."""
    return tuple(sorted(events, key=lambda e: (e.timestamp, e.sequence)))
