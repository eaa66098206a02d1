"""
Append-only change log shared by every audited entity.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.core.actor import AccessLevel
from brokerage.database.base import Base, UUIDMixin, create_table_args, enum_column_type
from brokerage.services.audit.enums import ChangeType, EntityType


class ChangeLog(Base, UUIDMixin):
    """
    Immutable record of one mutation.

    Rows are inserted by the audit service and never updated or deleted.
    The actor columns are copied at write time, not joined.
    """

    __tablename__ = "change_logs"

    entity_type: Mapped[EntityType] = mapped_column(
        enum_column_type(EntityType, "change_log_entity_type"),
        nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    changed_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    changed_by_name: Mapped[str] = mapped_column(String(100), nullable=False)
    changed_by_email: Mapped[str] = mapped_column(String(255), nullable=False)
    changed_by_access_level: Mapped[AccessLevel] = mapped_column(
        enum_column_type(AccessLevel, "system_access_level"),
        nullable=False,
    )

    change_type: Mapped[ChangeType] = mapped_column(
        enum_column_type(ChangeType, "change_type"),
        nullable=False,
    )

    old_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    new_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = create_table_args(
        Index("ix_change_logs_entity", "entity_type", "entity_id", "changed_at"),
        Index("ix_change_logs_changed_by", "changed_by"),
        comment="Audit trail of entity mutations",
    )
