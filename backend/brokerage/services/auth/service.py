"""
Authentication service.

Exchanges credentials for an access/refresh token pair carrying the actor
claims, and exchanges a refresh token for a new pair after re-reading the
user so that deactivation takes effect at the next refresh.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ForbiddenError, UnauthorizedError
from brokerage.core.logging import get_logger
from brokerage.core.security import (
    REFRESH_TOKEN_TYPE,
    actor_from_token,
    create_token_pair,
    verify_password,
)
from brokerage.database.models.user import User, UserStatus
from brokerage.services.entities.repository import UserRepository

logger = get_logger(__name__)


class LoginError(UnauthorizedError):
    def __init__(self, **context: Any):
        super().__init__(
            "Invalid email or password",
            details={"code": "LOGIN_FAILED"},
            **context,
        )


class AccountUnavailableError(ForbiddenError):
    """Raised for inactive or locked accounts."""

    def __init__(self, status: UserStatus, **context: Any):
        super().__init__(
            "Account is locked" if status is UserStatus.LOCKED else "Account is inactive",
            details={"status": status.value},
            **context,
        )


class AuthService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)

    @staticmethod
    def _ensure_available(user: User) -> None:
        if not user.is_active:
            logger.warning("Rejected unavailable account", user_id=str(user.id), status=user.status.value)
            raise AccountUnavailableError(user.status, user_id=str(user.id))

    async def login(self, email: str, password: str) -> tuple[User, dict[str, Any]]:
        """
        Returns:
            Tuple of (user, token pair)

        Raises:
            LoginError: If the email is unknown or the password is wrong
            AccountUnavailableError: If the account is inactive or locked
        """
        user = await self.users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Login failed", email=email)
            raise LoginError()

        self._ensure_available(user)

        user.last_login_at = datetime.now(timezone.utc)
        await self.users.flush()

        logger.info("Login successful", user_id=str(user.id), access_level=user.access_level.value)
        return user, create_token_pair(user.to_actor())

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        """
        Raises:
            TokenError: If the refresh token is invalid or expired
            UnauthorizedError: If the user no longer exists
            AccountUnavailableError: If the account is inactive or locked
        """
        claimed = actor_from_token(refresh_token, REFRESH_TOKEN_TYPE)
        user = await self.users.get_by_id(claimed.id)
        if user is None:
            logger.warning("Token refresh for unknown user", user_id=str(claimed.id))
            raise UnauthorizedError("User not found", details={"code": "USER_NOT_FOUND"})

        self._ensure_available(user)
        logger.info("Token refreshed", user_id=str(user.id))
        return create_token_pair(user.to_actor())
