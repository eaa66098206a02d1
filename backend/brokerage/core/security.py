"""
Security utilities for password hashing and JWT token management.

Passwords are hashed with bcrypt through passlib. Access and refresh tokens
are signed JWTs (python-jose) whose claims carry the full actor identity so
that request handling does not need a user lookup per call.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from brokerage.core.actor import Actor
from brokerage.core.config import get_settings
from brokerage.core.errors import UnauthorizedError, ValidationError
from brokerage.core.logging import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
    bcrypt__ident="2b",
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(UnauthorizedError):
    """Raised for invalid, expired or mistyped tokens."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message, details={"code": code}, **context)
        self.code = code


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Raises:
        ValidationError: If the password is empty
    """
    if not password:
        logger.warning("Attempted to hash empty password")
        raise ValidationError("Password cannot be empty")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    Returns False for empty input or an unparseable hash instead of raising.
    """
    if not plain_password or not hashed_password:
        return False

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(
            "Password verification failed - unrecognized hash",
            error=str(e),
        )
        return False


def _create_token(
    claims: Dict[str, Any], token_type: str, expires_delta: timedelta
) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    to_encode = dict(claims)
    to_encode.update({"exp": expire, "iat": now, "type": token_type})

    encoded = jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)

    logger.info(
        "Token created",
        subject=claims.get("sub"),
        token_type=token_type,
        expires_at=expire.isoformat(),
    )
    return encoded


def create_access_token(
    actor: Actor, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a short lived access token for ``actor``."""
    settings = get_settings()
    return _create_token(
        actor.to_claims(),
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(
    actor: Actor, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a long lived refresh token for ``actor``."""
    settings = get_settings()
    return _create_token(
        actor.to_claims(),
        REFRESH_TOKEN_TYPE,
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def create_token_pair(actor: Actor) -> Dict[str, Any]:
    """Create an access/refresh token pair for ``actor``."""
    settings = get_settings()
    return {
        "access_token": create_access_token(actor),
        "refresh_token": create_refresh_token(actor),
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
    }


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Args:
        token: Encoded token
        expected_type: Required value of the ``type`` claim

    Returns:
        Decoded claims

    Raises:
        TokenError: If the token is empty, expired, invalid or of another type
    """
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        logger.warning("Token has expired")
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Invalid token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    if payload.get("type") != expected_type:
        logger.warning(
            "Token type mismatch",
            expected=expected_type,
            actual=payload.get("type"),
        )
        raise TokenError("Wrong token type", code="TOKEN_TYPE_MISMATCH")

    return payload


def actor_from_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Actor:
    """
    Resolve the actor carried by a token.

    Raises:
        TokenError: If the token is invalid or its claims are incomplete
    """
    payload = decode_token(token, expected_type)
    try:
        return Actor.from_claims(payload)
    except (KeyError, ValueError) as e:
        logger.warning("Token claims incomplete", error=str(e))
        raise TokenError("Token claims incomplete", code="TOKEN_CLAIMS") from e
