"""
Test suite for AuthService login and token refresh.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from brokerage.core.actor import AccessLevel
from brokerage.core.errors import ErrorKind, UnauthorizedError
from brokerage.core.security import (
    REFRESH_TOKEN_TYPE,
    TokenError,
    actor_from_token,
    create_access_token,
    create_refresh_token,
    hash_password,
)
from brokerage.database.models.user import User, UserStatus
from brokerage.services.auth.service import (
    AccountUnavailableError,
    AuthService,
    LoginError,
)

PASSWORD = "secret123"


@pytest.fixture(scope="module")
def password_hash() -> str:
    return hash_password(PASSWORD)


@pytest.fixture
def user(password_hash: str) -> User:
    return User(
        id=uuid.uuid4(),
        email="kim@example.com",
        password_hash=password_hash,
        name="김주선",
        company_id=uuid.uuid4(),
        access_level=AccessLevel.BROKER_ADMIN,
        status=UserStatus.ACTIVE,
    )


@pytest.fixture
def auth_service(mock_session: AsyncMock) -> AuthService:
    service = AuthService(mock_session)
    service.users = AsyncMock()
    return service


class TestLogin:
    async def test_success_issues_tokens(self, auth_service: AuthService, user: User):
        auth_service.users.get_by_email.return_value = user

        logged_in, tokens = await auth_service.login(user.email, PASSWORD)

        assert logged_in is user
        assert user.last_login_at is not None
        auth_service.users.flush.assert_awaited_once()
        assert tokens["token_type"] == "bearer"
        assert actor_from_token(tokens["access_token"]) == user.to_actor()
        refreshed = actor_from_token(tokens["refresh_token"], REFRESH_TOKEN_TYPE)
        assert refreshed.company_id == user.company_id

    async def test_wrong_password(self, auth_service: AuthService, user: User):
        auth_service.users.get_by_email.return_value = user

        with pytest.raises(LoginError) as exc_info:
            await auth_service.login(user.email, "wrong-pass1")

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.details == {"code": "LOGIN_FAILED"}
        assert user.last_login_at is None

    async def test_unknown_email_has_same_error(self, auth_service: AuthService):
        auth_service.users.get_by_email.return_value = None

        with pytest.raises(LoginError) as exc_info:
            await auth_service.login("nobody@example.com", PASSWORD)

        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.parametrize(
        "status,message",
        [
            (UserStatus.INACTIVE, "Account is inactive"),
            (UserStatus.LOCKED, "Account is locked"),
        ],
    )
    async def test_unavailable_account(
        self, auth_service: AuthService, user: User, status: UserStatus, message: str
    ):
        user.status = status
        auth_service.users.get_by_email.return_value = user

        with pytest.raises(AccountUnavailableError) as exc_info:
            await auth_service.login(user.email, PASSWORD)

        assert exc_info.value.kind.status_code == 403
        assert exc_info.value.message == message
        auth_service.users.flush.assert_not_awaited()


class TestRefresh:
    async def test_reissues_pair_from_current_user(self, auth_service: AuthService, user: User):
        stale = user.to_actor().model_copy(update={"access_level": AccessLevel.VIEWER})
        auth_service.users.get_by_id.return_value = user

        tokens = await auth_service.refresh(create_refresh_token(stale))

        auth_service.users.get_by_id.assert_awaited_once_with(user.id)
        assert actor_from_token(tokens["access_token"]).access_level is AccessLevel.BROKER_ADMIN

    async def test_unknown_user(self, auth_service: AuthService, user: User):
        auth_service.users.get_by_id.return_value = None

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.refresh(create_refresh_token(user.to_actor()))

        assert exc_info.value.details == {"code": "USER_NOT_FOUND"}

    async def test_access_token_rejected(self, auth_service: AuthService, user: User):
        with pytest.raises(TokenError) as exc_info:
            await auth_service.refresh(create_access_token(user.to_actor()))

        assert exc_info.value.code == "TOKEN_TYPE_MISMATCH"
        auth_service.users.get_by_id.assert_not_awaited()

    async def test_deactivated_user(self, auth_service: AuthService, user: User):
        token = create_refresh_token(user.to_actor())
        user.status = UserStatus.INACTIVE
        auth_service.users.get_by_id.return_value = user

        with pytest.raises(AccountUnavailableError):
            await auth_service.refresh(token)
