"""Issue lifecycle rules: statuses, transition table, audit trail, resolution protocol."""

from campusfix.lifecycle.audit import append_event, submission_event
from campusfix.lifecycle.domain import (
    Actor,
    Attachment,
    Intent,
    Issue,
    Role,
    Status,
    StatusEvent,
)
from campusfix.lifecycle.resolution import stored_status_for, summarize_resolution_times
from campusfix.lifecycle.transitions import allowed_next, can_transition, validate_transition

__all__ = [
    "Actor",
    "Attachment",
    "Intent",
    "Issue",
    "Role",
    "Status",
    "StatusEvent",
    "allowed_next",
    "append_event",
    "can_transition",
    "stored_status_for",
    "submission_event",
    "summarize_resolution_times",
    "validate_transition",
]
