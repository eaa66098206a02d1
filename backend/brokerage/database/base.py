"""
SQLAlchemy declarative base and common model mixins.

Provides the async-aware DeclarativeBase plus mixins for UUID keys,
timestamps, soft deletion and actor audit columns. Audit columns store both
the actor id and a JSON snapshot of the actor taken at write time.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from brokerage.core.logging import get_logger

logger = get_logger(__name__)


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models with async support.

    Server-generated defaults are fetched with RETURNING on flush so that
    timestamps can be read without an implicit lazy load.
    """

    __abstract__ = True
    __mapper_args__ = {"eager_defaults": True}

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """
        Convert model instance to a JSON-safe dictionary.

        Keys are attribute names. UUIDs, dates and decimals are converted
        to strings so the result can be stored in a JSONB column.

        Args:
            exclude: Set of attribute names to exclude from output
        """
        exclude = exclude or set()
        result: Dict[str, Any] = {}

        for attr in self.__mapper__.column_attrs:
            key = attr.key
            if key in exclude:
                continue
            value = getattr(self, key)
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value

        return result

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.name, None)
            if value is not None:
                pk_values.append(f"{column.name}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "no primary key"
        return f"<{self.__class__.__name__}({pk_str})>"


class TimestampMixin:
    """
    Mixin for automatic timestamp management.

    Adds created_at and updated_at columns managed by the database.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
            comment="Timestamp when record was last updated",
        )


class UUIDMixin:
    """Mixin for a UUID primary key generated client side."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            UUID(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False,
            comment="Unique identifier for the record",
        )


class SoftDeleteMixin:
    """
    Mixin for soft delete functionality.

    NULL ``deleted_at`` means the record is active.
    """

    @declared_attr
    def deleted_at(cls) -> Mapped[Optional[datetime]]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=True,
            default=None,
            comment="Timestamp when record was soft deleted",
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark record as deleted."""
        if self.deleted_at is None:
            self.deleted_at = datetime.now(timezone.utc)
            logger.info(
                "Record soft deleted",
                model=self.__class__.__name__,
                record_id=str(getattr(self, "id", None)),
            )


class AuditMixin(TimestampMixin):
    """
    Mixin for audit trail functionality.

    Extends TimestampMixin with the id of the creating and last updating
    actor, plus a frozen JSON snapshot of each.
    """

    @declared_attr
    def created_by(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(
            UUID(as_uuid=True),
            nullable=True,
            comment="User ID who created the record",
        )

    @declared_attr
    def created_by_snapshot(cls) -> Mapped[Optional[dict[str, Any]]]:
        return mapped_column(
            JSONB,
            nullable=True,
            comment="Creator at the time of creation",
        )

    @declared_attr
    def updated_by(cls) -> Mapped[Optional[uuid.UUID]]:
        return mapped_column(
            UUID(as_uuid=True),
            nullable=True,
            comment="User ID who last updated the record",
        )

    @declared_attr
    def updated_by_snapshot(cls) -> Mapped[Optional[dict[str, Any]]]:
        return mapped_column(
            JSONB,
            nullable=True,
            comment="Last updater at the time of the update",
        )

    def stamp_created(self, actor: Any) -> None:
        """Record ``actor`` as creator and updater."""
        snapshot = actor.to_snapshot()
        self.created_by = actor.id
        self.created_by_snapshot = snapshot
        self.updated_by = actor.id
        self.updated_by_snapshot = snapshot

    def stamp_updated(self, actor: Any) -> None:
        """Record ``actor`` as last updater."""
        self.updated_by = actor.id
        self.updated_by_snapshot = actor.to_snapshot()


class AuditedModel(Base, UUIDMixin, AuditMixin):
    """
    Base model with UUID, timestamps, and actor audit fields.

    Example:
        class Order(AuditedModel):
            __tablename__ = "orders"

            cargo_name: Mapped[str] = mapped_column(String(200))
    """

    __abstract__ = True


def create_table_args(*constraints: Any, comment: Optional[str] = None) -> tuple:
    """
    Build a ``__table_args__`` tuple of constraints/indexes with a comment.

    Example:
        __table_args__ = create_table_args(
            Index("ix_orders_company_id", "company_id"),
            comment="Shipper transport requests",
        )
    """
    table_kwargs: Dict[str, Any] = {}
    if comment:
        table_kwargs["comment"] = comment
    return (*constraints, table_kwargs)


def enum_column_type(enum_cls: type[Enum], name: str, length: int = 32) -> SQLEnum:
    """
    String-backed enum column type storing member values.

    Values (not member names) are persisted so that rows read naturally in
    SQL and match the API payloads.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=length,
        create_constraint=True,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )
