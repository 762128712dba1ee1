"""Identity resolution: bearer JWT → ``Actor``.

Tokens are issued by the campus sign-in service; this API only verifies them
and trusts the ``sub`` and ``role`` claims as-is.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
from fastapi import Depends, HTTPException, Request, status

from campusfix.config import get_settings
from campusfix.lifecycle.domain import Actor, Role
from campusfix.logging_config import bind_actor_context, get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def _secret() -> str:
    secret = get_settings().jwt_secret_key
    if not secret:
        raise RuntimeError("CAMPUSFIX_JWT_SECRET_KEY environment variable is required")
    return secret


def create_access_token(
    actor_id: str,
    role: Role | str,
    display_name: str | None = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    """Create a signed access token (used by scripts and tests)."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": actor_id, "role": Role(role).value, "exp": expire}
    if display_name:
        payload["name"] = display_name
    return jwt.encode(payload, _secret(), algorithm=get_settings().jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and validate a JWT token. Raises HTTPException on failure."""
    try:
        return jwt.decode(token, _secret(), algorithms=[get_settings().jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def actor_from_claims(claims: dict) -> Actor:
    subject = claims.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
        )
    try:
        role = Role(claims.get("role", ""))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no valid role",
        )
    return Actor(id=str(subject), role=role, display_name=claims.get("name"))


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    # EventSource clients cannot set headers.
    return request.query_params.get("access_token")


async def get_current_actor(request: Request) -> Actor:
    """
    FastAPI dependency: extract and validate the bearer token.

    Binds the actor to the request's log context.
    """
    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )

    actor = actor_from_claims(decode_jwt(token))
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    bind_actor_context(request_id, actor.id, actor.role.value)
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        logger.warning("admin_required", actor_id=actor.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return actor
