"""
User model with authentication and access levels.

Users belong to a company and act on orders, dispatches and ledgers. The
password hash is never serialized into API responses or change logs.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.core.actor import AccessLevel, Actor
from brokerage.database.base import AuditedModel, create_table_args, enum_column_type

if TYPE_CHECKING:
    from brokerage.database.models.company import Company


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    LOCKED = "locked"


class User(AuditedModel):
    """
    Platform user.

    Attributes:
        email: Login email (unique)
        password_hash: bcrypt hash
        name: Display name
        phone: Mobile number
        company_id: Owning company
        access_level: System access level
        status: active, inactive or locked
        department: Department name
        position: Job title
        last_login_at: Last successful login
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Login email",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt password hash",
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Owning company",
    )

    access_level: Mapped[AccessLevel] = mapped_column(
        enum_column_type(AccessLevel, "system_access_level"),
        nullable=False,
        default=AccessLevel.GUEST,
        comment="System access level",
    )

    status: Mapped[UserStatus] = mapped_column(
        enum_column_type(UserStatus, "user_status"),
        nullable=False,
        default=UserStatus.ACTIVE,
        comment="Account status",
    )

    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    company: Mapped[Optional["Company"]] = relationship(
        "Company",
        back_populates="users",
        lazy="selectin",
    )

    __table_args__ = create_table_args(
        Index("ix_users_company_status", "company_id", "status"),
        CheckConstraint("length(email) >= 3", name="ck_users_email_min_length"),
        comment="Platform users",
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def to_actor(self) -> Actor:
        """Identity used for tokens and audit stamps."""
        return Actor(
            id=self.id,
            name=self.name,
            email=self.email,
            access_level=self.access_level,
            company_id=self.company_id,
        )
