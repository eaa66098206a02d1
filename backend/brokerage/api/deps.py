"""
FastAPI dependencies for identity, authorization and session management.

The actor is resolved from a verified bearer token. When
``trust_gateway_headers`` is enabled, ``x-user-*`` headers set by an
authenticating gateway are accepted instead of a token.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.cache.redis_client import RedisClient
from brokerage.core.actor import AccessLevel, Actor
from brokerage.core.config import get_settings
from brokerage.core.errors import ForbiddenError, UnauthorizedError
from brokerage.core.logging import get_logger, set_actor_id
from brokerage.core.security import actor_from_token
from brokerage.database.connection import get_db

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

GATEWAY_HEADERS = {
    "id": "x-user-id",
    "name": "x-user-name",
    "email": "x-user-email",
    "access_level": "x-user-access-level",
    "company_id": "x-user-company-id",
}


def actor_from_headers(request: Request) -> Optional[Actor]:
    """
    Actor described by gateway headers, None when ``x-user-id`` is absent.

    Raises:
        UnauthorizedError: If the headers are present but malformed
    """
    values = {field: request.headers.get(header) for field, header in GATEWAY_HEADERS.items()}
    if not values["id"]:
        return None
    try:
        return Actor(
            id=UUID(values["id"]),
            name=values["name"] or "",
            email=values["email"] or "",
            access_level=AccessLevel(values["access_level"] or AccessLevel.GUEST.value),
            company_id=UUID(values["company_id"]) if values["company_id"] else None,
        )
    except (ValueError, PydanticValidationError) as e:
        logger.warning("Malformed gateway identity headers", error=str(e))
        raise UnauthorizedError(
            "Invalid identity headers", details={"code": "HEADERS_INVALID"}
        ) from e


async def get_current_actor(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Actor:
    """
    Resolve the actor performing the request.

    Raises:
        UnauthorizedError: If no valid identity is supplied
    """
    if credentials is not None:
        actor = actor_from_token(credentials.credentials)
    elif get_settings().trust_gateway_headers and (actor := actor_from_headers(request)):
        logger.debug("Actor resolved from gateway headers", actor_id=str(actor.id))
    else:
        logger.warning("Authentication failed: no credentials provided", path=request.url.path)
        raise UnauthorizedError(
            "Authentication required", details={"code": "MISSING_CREDENTIALS"}
        )

    set_actor_id(str(actor.id))
    return actor


def require_access(*allowed: AccessLevel):
    """
    Dependency factory restricting an endpoint to some access levels.

    Example:
        @router.post("/", dependencies=[Depends(require_access(AccessLevel.PLATFORM_ADMIN))])
    """

    async def access_checker(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.access_level not in allowed:
            logger.warning(
                "Access denied: insufficient access level",
                actor_id=str(actor.id),
                access_level=actor.access_level.value,
                required=[level.value for level in allowed],
            )
            raise ForbiddenError("Insufficient permissions")
        return actor

    return access_checker


async def require_writer(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    """Rejects viewers and guests."""
    if not actor.access_level.can_write:
        logger.warning("Access denied: read-only actor", actor_id=str(actor.id))
        raise ForbiddenError("Read-only access")
    return actor


def get_cache(request: Request) -> Optional[RedisClient]:
    """Redis client connected at startup, None when caching is unavailable."""
    return getattr(request.app.state, "redis", None)


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
WriterActor = Annotated[Actor, Depends(require_writer)]
Cache = Annotated[Optional[RedisClient], Depends(get_cache)]
