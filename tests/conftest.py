"""Global pytest fixtures for CampusFix.

This module provides shared fixtures for testing including:
- Actors for both roles
- In-memory repositories and change feed
- A fully wired lifecycle service
- Issue builders for the pure rule modules
"""

from collections.abc import Generator
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from campusfix.config import get_settings
from campusfix.lifecycle.audit import submission_event
from campusfix.lifecycle.domain import (
    Actor,
    Attachment,
    Issue,
    Role,
    Status,
    StatusEvent,
)
from campusfix.notifications.dispatcher import NotificationDispatcher
from campusfix.realtime.feed import InMemoryChangeFeed
from campusfix.repositories.memory import (
    InMemoryIssueRepository,
    InMemoryNotificationRepository,
)
from campusfix.services.lifecycle_service import IssueLifecycleService

TEST_JWT_SECRET = "test-secret-key-for-campusfix-tests-only"


def utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


# ===========================================
# SETTINGS
# ===========================================


@pytest.fixture(autouse=True)
def test_settings(monkeypatch) -> Generator[None, None, None]:
    """Point settings at test values and drop the cached instance around each test."""
    monkeypatch.setenv("CAMPUSFIX_JWT_SECRET_KEY", TEST_JWT_SECRET)
    monkeypatch.setenv("CAMPUSFIX_FEED_BACKEND", "memory")
    monkeypatch.setenv("CAMPUSFIX_LOG_JSON", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ===========================================
# ACTORS
# ===========================================


@pytest.fixture
def student() -> Actor:
    return Actor(id="student-1", role=Role.student, display_name="Ada Student")


@pytest.fixture
def other_student() -> Actor:
    return Actor(id="student-2", role=Role.student, display_name="Grace Student")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", role=Role.admin, display_name="Facilities Admin")


@pytest.fixture
def evidence() -> list[Attachment]:
    return [Attachment(url="https://files.example.edu/evidence/photo-1.jpg")]


# ===========================================
# BINDINGS
# ===========================================


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def issue_repo() -> InMemoryIssueRepository:
    return InMemoryIssueRepository()


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def dispatcher(notification_repo, feed) -> NotificationDispatcher:
    return NotificationDispatcher(notification_repo, feed)


@pytest.fixture
def service(issue_repo, dispatcher, feed) -> IssueLifecycleService:
    return IssueLifecycleService(issue_repo, dispatcher, feed)


# ===========================================
# ISSUE BUILDERS
# ===========================================


def make_issue(
    status: Status = Status.submitted,
    creator_id: str = "student-1",
    resolved_by_admin: bool = False,
    history_length: int = 1,
    **overrides,
) -> Issue:
    """Build an issue at ``status`` with a plausible history of ``history_length`` events."""
    created = utcnow() - timedelta(days=2)
    creator = Actor(id=creator_id, role=Role.student)
    history = [submission_event(creator, created)]
    for i in range(1, history_length):
        history.append(
            StatusEvent(
                status=status,
                timestamp=created + timedelta(minutes=i),
                sequence=i,
                actor_id="admin-1",
                actor_role=Role.admin,
                notes=f"step {i}",
            )
        )
    issue = Issue(
        id=uuid4(),
        title="Leaking tap in kitchen",
        description="The kitchen tap on floor 2 drips constantly.",
        creator_id=creator_id,
        status=status,
        status_history=tuple(history),
        created_at=created,
        resolved_by_admin=resolved_by_admin,
        admin_resolution_time=created + timedelta(hours=5) if resolved_by_admin else None,
    )
    return replace(issue, **overrides) if overrides else issue


@pytest.fixture
def issue_factory():
    return make_issue
