"""
Authentication API endpoints.

Login exchanges email and password for an access/refresh token pair whose
claims carry the actor; refresh rotates the pair. Both are rate limited
per client.
"""

from fastapi import APIRouter, Request

from brokerage.api.deps import CurrentActor, DatabaseSession
from brokerage.api.rate_limit import limiter
from brokerage.core.config import get_settings
from brokerage.core.logging import get_logger
from brokerage.schemas.auth import LoginRequest, LoginResponse, RefreshRequest, TokenResponse
from brokerage.schemas.entities import UserResponse
from brokerage.services.auth.service import AuthService
from brokerage.services.entities.service import UserService

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Log in",
    description="Authenticate with email and password. Inactive or locked accounts are rejected with 403.",
)
@limiter.limit(lambda: get_settings().rate_limit_login)
async def login(request: Request, payload: LoginRequest, db: DatabaseSession) -> LoginResponse:
    """
    Raises:
        LoginError: 401 on an unknown email or wrong password
        AccountUnavailableError: 403 if the account is inactive or locked
    """
    user, tokens = await AuthService(db).login(payload.email, payload.password)
    return LoginResponse(**tokens, user=UserResponse.model_validate(user))


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh tokens",
)
@limiter.limit(lambda: get_settings().rate_limit_login)
async def refresh(request: Request, payload: RefreshRequest, db: DatabaseSession) -> TokenResponse:
    tokens = await AuthService(db).refresh(payload.refresh_token)
    return TokenResponse(**tokens)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current user",
)
async def me(actor: CurrentActor, db: DatabaseSession) -> UserResponse:
    user = await UserService(db).get(actor.id)
    return UserResponse.model_validate(user)
