"""
Address book model for pickup and delivery locations.
"""

import enum
import uuid
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.database.base import (
    AuditedModel,
    SoftDeleteMixin,
    create_table_args,
    enum_column_type,
)


class AddressType(str, enum.Enum):
    """Whether a location is used for loading, unloading or both."""

    LOAD = "load"
    DROP = "drop"
    ANY = "any"


class Address(AuditedModel, SoftDeleteMixin):
    """
    Saved location of a company.

    Orders copy the address into a snapshot column; later edits or the
    soft deletion of this row leave existing orders untouched.
    """

    __tablename__ = "addresses"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Place name shown in pickers",
    )

    type: Mapped[AddressType] = mapped_column(
        enum_column_type(AddressType, "address_type"),
        nullable=False,
        default=AddressType.ANY,
    )

    road_address: Mapped[str] = mapped_column(String(500), nullable=False)
    jibun_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    detail_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    contact_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    extra: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Geocoding and other free-form metadata",
    )

    memo: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    is_frequent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    __table_args__ = create_table_args(
        Index("ix_addresses_company_frequent", "company_id", "is_frequent"),
        comment="Saved pickup and delivery locations",
    )
