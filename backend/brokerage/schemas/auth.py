"""
Authentication request and response schemas.
"""

from pydantic import EmailStr, Field

from brokerage.schemas.common import CamelModel
from brokerage.schemas.entities import UserResponse


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class LoginResponse(TokenResponse):
    user: UserResponse
