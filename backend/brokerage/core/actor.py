"""
Authenticated actor value object.

The service layer never reads identity from request headers. The API layer
resolves an ``Actor`` from a verified token (or a trusted gateway) and passes
it down explicitly.
"""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AccessLevel(str, Enum):
    """System access level of a user."""

    PLATFORM_ADMIN = "platform_admin"
    BROKER_ADMIN = "broker_admin"
    SHIPPER_ADMIN = "shipper_admin"
    BROKER_MEMBER = "broker_member"
    SHIPPER_MEMBER = "shipper_member"
    VIEWER = "viewer"
    GUEST = "guest"

    @property
    def is_admin(self) -> bool:
        return self in (
            AccessLevel.PLATFORM_ADMIN,
            AccessLevel.BROKER_ADMIN,
            AccessLevel.SHIPPER_ADMIN,
        )

    @property
    def is_broker(self) -> bool:
        return self in (AccessLevel.BROKER_ADMIN, AccessLevel.BROKER_MEMBER)

    @property
    def can_write(self) -> bool:
        return self not in (AccessLevel.VIEWER, AccessLevel.GUEST)


class Actor(BaseModel):
    """
    Identity of the user performing an operation.

    Immutable once constructed. ``to_snapshot`` produces the JSON copy that
    is frozen into audit fields and change logs.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str = Field(..., min_length=1)
    email: EmailStr
    access_level: AccessLevel = AccessLevel.GUEST
    company_id: Optional[UUID] = None

    def to_snapshot(self) -> dict[str, Any]:
        """Point-in-time copy of the actor for JSON snapshot columns."""
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "accessLevel": self.access_level.value,
            "companyId": str(self.company_id) if self.company_id else None,
        }

    def to_claims(self) -> dict[str, Any]:
        """JWT claims carrying this actor."""
        return {
            "sub": str(self.id),
            "name": self.name,
            "email": self.email,
            "access_level": self.access_level.value,
            "company_id": str(self.company_id) if self.company_id else None,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Actor":
        """Build an actor from decoded JWT claims."""
        company_id = claims.get("company_id")
        return cls(
            id=UUID(claims["sub"]),
            name=claims.get("name") or "",
            email=claims.get("email") or "",
            access_level=AccessLevel(claims.get("access_level", AccessLevel.GUEST.value)),
            company_id=UUID(company_id) if company_id else None,
        )
