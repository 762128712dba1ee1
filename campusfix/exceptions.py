"""Custom exceptions for the issue lifecycle engine."""

from fastapi import HTTPException, status


class LifecycleError(Exception):
    """Base exception for lifecycle and notification errors."""

    def __init__(self, message: str, error_type: str = "lifecycle_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class InvalidTransition(LifecycleError):
    """Raised when the requested status is not reachable for the actor's role."""

    def __init__(self, current_status: str, requested_status: str, actor_role: str):
        super().__init__(
            f"Cannot move issue from '{current_status}' to '{requested_status}' "
            f"as {actor_role}",
            "invalid_transition",
        )
        self.current_status = current_status
        self.requested_status = requested_status
        self.actor_role = actor_role


class MissingResolutionNotes(LifecycleError):
    """Raised when a resolution-adjacent transition carries no notes."""

    def __init__(self, requested_status: str):
        super().__init__(
            f"Notes are required when moving an issue to '{requested_status}'",
            "missing_resolution_notes",
        )
        self.requested_status = requested_status


class MissingEvidence(LifecycleError):
    """Raised when an administrator changes status without evidence."""

    def __init__(self, requested_status: str):
        super().__init__(
            f"At least one attachment is required to move an issue to '{requested_status}'",
            "missing_evidence",
        )
        self.requested_status = requested_status


class ResolutionNotAdminConfirmed(LifecycleError):
    """Raised when a student confirms a resolution the admin has not claimed."""

    def __init__(self, issue_id: str):
        super().__init__(
            "This issue has not been marked as resolved by an administrator yet",
            "resolution_not_admin_confirmed",
        )
        self.issue_id = issue_id


class ConcurrentModification(LifecycleError):
    """Raised when the issue changed between read and conditional write."""

    def __init__(self, issue_id: str, expected_version: int, actual_version: int | None):
        super().__init__(
            f"Issue {issue_id} was modified concurrently: expected version "
            f"{expected_version}, found {actual_version}. Reload and retry.",
            "concurrent_modification",
        )
        self.issue_id = issue_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class IssueNotFound(LifecycleError):
    """Raised when an issue does not exist."""

    def __init__(self, issue_id: str):
        super().__init__(f"Issue with ID {issue_id} not found", "issue_not_found")
        self.issue_id = issue_id


class CommentNotFound(LifecycleError):
    """Raised when a comment does not exist on the given issue."""

    def __init__(self, comment_id: str):
        super().__init__(f"Comment with ID {comment_id} not found", "comment_not_found")
        self.comment_id = comment_id


class NotificationNotFound(LifecycleError):
    """Raised when a notification does not exist."""

    def __init__(self, notification_id: str):
        super().__init__(
            f"Notification with ID {notification_id} not found",
            "notification_not_found",
        )
        self.notification_id = notification_id


class IssueAccessDenied(LifecycleError):
    """Raised when an actor may not act on an issue."""

    def __init__(self, issue_id: str, actor_id: str, reason: str):
        super().__init__(
            f"Actor {actor_id} may not act on issue {issue_id}: {reason}",
            "issue_access_denied",
        )
        self.issue_id = issue_id
        self.actor_id = actor_id
        self.reason = reason


class InvalidAudience(LifecycleError):
    """Raised when a notification audience breaks the targeting rules."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_audience")


class NotificationDispatchFailure(LifecycleError):
    """Internal: a notification could not be persisted. Logged, never surfaced."""

    def __init__(self, message: str):
        super().__init__(message, "notification_dispatch_failure")


def raise_http_exception(error: LifecycleError) -> None:
    """Convert LifecycleError to HTTPException."""
    status_map = {
        "invalid_transition": status.HTTP_400_BAD_REQUEST,
        "missing_resolution_notes": status.HTTP_400_BAD_REQUEST,
        "missing_evidence": status.HTTP_400_BAD_REQUEST,
        "resolution_not_admin_confirmed": status.HTTP_400_BAD_REQUEST,
        "concurrent_modification": status.HTTP_409_CONFLICT,
        "issue_not_found": status.HTTP_404_NOT_FOUND,
        "notification_not_found": status.HTTP_404_NOT_FOUND,
        "comment_not_found": status.HTTP_404_NOT_FOUND,
        "issue_access_denied": status.HTTP_403_FORBIDDEN,
    }
    code = status_map.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)

    raise HTTPException(
        status_code=code,
        detail={
            "type": error.error_type,
            "title": error.error_type.replace("_", " ").title(),
            "status": code,
            "detail": error.message,
        },
    )
