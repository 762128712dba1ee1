"""Issue endpoints: submit, browse, transition, assign, comment, and live updates."""

import json
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sse_starlette.sse import EventSourceResponse

from campusfix.auth import get_current_actor, require_admin
from campusfix.config import get_settings
from campusfix.dependencies import get_change_feed, get_lifecycle_service
from campusfix.exceptions import LifecycleError, raise_http_exception
from campusfix.lifecycle.domain import Actor, Status
from campusfix.logging_config import get_logger
from campusfix.realtime.feed import ChangeFeed, issue_channel, iter_changes
from campusfix.schemas import (
    AllowedActionsResponse,
    AssignRequest,
    CommentCreateRequest,
    CommentResponse,
    IssueListResponse,
    IssueResponse,
    IssueSubmitRequest,
    ResolutionStatsResponse,
    TransitionRequest,
)
from campusfix.services.lifecycle_service import IssueLifecycleService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/issues", tags=["issues"])


@router.post("", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
async def submit_issue(
    body: IssueSubmitRequest,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """Submit a new issue (students only)."""
    try:
        issue = await service.submit_issue(actor, body.to_draft())
    except LifecycleError as e:
        raise_http_exception(e)
    return IssueResponse.model_validate(issue)


@router.get("", response_model=IssueListResponse)
async def list_issues(
    status_filter: Status | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """List issues, newest first. Students only see their own."""
    settings = get_settings()
    per_page = min(per_page or settings.default_page_size, settings.max_page_size)
    issues = await service.list_issues(
        actor,
        status=status_filter,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return IssueListResponse(
        items=[IssueResponse.model_validate(i) for i in issues],
        page=page,
        per_page=per_page,
    )


@router.get("/stats/resolution", response_model=ResolutionStatsResponse)
async def resolution_stats(
    actor: Actor = Depends(require_admin),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """Average time to resolution, with the admin-claim partial kept separate."""
    stats = await service.resolution_stats()
    return ResolutionStatsResponse.model_validate(stats)


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(
    issue_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    try:
        issue = await service.get_issue(issue_id, actor)
    except LifecycleError as e:
        raise_http_exception(e)
    return IssueResponse.model_validate(issue)


@router.get("/{issue_id}/actions", response_model=AllowedActionsResponse)
async def allowed_actions(
    issue_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """Statuses or resolution intents the caller may request next."""
    try:
        issue = await service.get_issue(issue_id, actor)
        actions = service.allowed_actions_for(issue, actor)
    except LifecycleError as e:
        raise_http_exception(e)
    return AllowedActionsResponse(
        issue_id=issue.id,
        status=issue.status,
        version=issue.version,
        actions=actions,
    )


@router.post("/{issue_id}/transitions", response_model=IssueResponse)
async def request_transition(
    issue_id: UUID,
    body: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """Request a status change or a resolution intent."""
    try:
        issue = await service.request_transition(
            issue_id,
            actor,
            body.status,
            notes=body.notes,
            attachments=[a.to_domain() for a in body.attachments],
            expected_version=body.expected_version,
        )
    except LifecycleError as e:
        raise_http_exception(e)
    return IssueResponse.model_validate(issue)


@router.post("/{issue_id}/assign", response_model=IssueResponse)
async def assign_issue(
    issue_id: UUID,
    body: AssignRequest,
    actor: Actor = Depends(require_admin),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    try:
        issue = await service.assign_issue(
            issue_id, actor, body.assignee_id, expected_version=body.expected_version
        )
    except LifecycleError as e:
        raise_http_exception(e)
    return IssueResponse.model_validate(issue)


@router.get("/{issue_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    issue_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    try:
        comments = await service.list_comments(issue_id, actor)
    except LifecycleError as e:
        raise_http_exception(e)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post(
    "/{issue_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    issue_id: UUID,
    body: CommentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    try:
        comment = await service.add_comment(issue_id, actor, body.content)
    except LifecycleError as e:
        raise_http_exception(e)
    return CommentResponse.model_validate(comment)


@router.delete(
    "/{issue_id}/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_comment(
    issue_id: UUID,
    comment_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
):
    """Delete a comment (its author or an admin)."""
    try:
        await service.delete_comment(issue_id, comment_id, actor)
    except LifecycleError as e:
        raise_http_exception(e)


@router.get("/{issue_id}/stream")
async def issue_stream(
    issue_id: UUID,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: IssueLifecycleService = Depends(get_lifecycle_service),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """SSE stream of committed changes to one issue."""
    try:
        await service.get_issue(issue_id, actor)
    except LifecycleError as e:
        raise_http_exception(e)

    async def event_generator():
        changes = iter_changes(feed, issue_channel(issue_id))
        try:
            async for payload in changes:
                if await request.is_disconnected():
                    break
                yield {"event": payload.get("event", "changed"), "data": json.dumps(payload)}
        finally:
            await changes.aclose()
            logger.debug("issue_stream_closed", issue_id=str(issue_id), actor_id=actor.id)

    return EventSourceResponse(event_generator())
