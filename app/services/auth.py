"""Caller authentication against the Supabase-issued session JWT."""

from dataclasses import dataclass
from typing import Annotated

import structlog
from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from app.config import settings

logger = structlog.get_logger()

JWT_ALGORITHMS = ["HS256"]


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated end user."""

    user_id: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_session_token(token: str, secret: str, audience: str) -> CallerIdentity:
    """Decode *token* and return its subject.

    Raises:
        HTTPException: 401 if the token is invalid, expired, or has no subject.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=JWT_ALGORITHMS, audience=audience)
    except JWTError as exc:
        logger.info("auth_token_rejected", error=str(exc))
        raise _unauthorized("Invalid or expired token") from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise _unauthorized("Invalid token payload")
    return CallerIdentity(user_id=user_id)


async def require_caller(
    authorization: Annotated[str | None, Header()] = None,
) -> CallerIdentity:
    """FastAPI dependency: require ``Authorization: Bearer <jwt>``.

    Runs before the request body is read, so unauthenticated calls never
    reach validation or any outbound fetch.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("Missing authorization token")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise _unauthorized("Empty authorization token")

    if not settings.supabase_jwt_secret:
        logger.error("auth_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured",
        )

    return verify_session_token(token, settings.supabase_jwt_secret, settings.supabase_jwt_audience)
