"""
Company model for shippers, brokers and carriers.

A company owns users, drivers, addresses and orders. Orders and bundles keep
a JSON snapshot of the company taken when they were created; edits here do
not flow back into those snapshots.
"""

import enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type

if TYPE_CHECKING:
    from brokerage.database.models.user import User


class CompanyType(str, enum.Enum):
    """Role a company plays in the brokerage."""

    BROKER = "broker"
    SHIPPER = "shipper"
    CARRIER = "carrier"


class CompanyStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Company(AuditedModel):
    """
    Business registered on the platform.

    Attributes:
        name: Trade name
        business_number: Business registration number (unique)
        ceo_name: Representative name
        type: broker, shipper or carrier
        status: active or inactive
        address_line: Head office address
        phone: Main phone number
        email: Contact email
        bank_code: Settlement bank code
        bank_account: Settlement bank account number
        bank_account_holder: Settlement account holder
    """

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Trade name",
    )

    business_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        comment="Business registration number",
    )

    ceo_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Representative name",
    )

    type: Mapped[CompanyType] = mapped_column(
        enum_column_type(CompanyType, "company_type"),
        nullable=False,
        comment="Company role",
    )

    status: Mapped[CompanyStatus] = mapped_column(
        enum_column_type(CompanyStatus, "company_status"),
        nullable=False,
        default=CompanyStatus.ACTIVE,
        comment="Company status",
    )

    address_line: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Head office address",
    )

    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    fax: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    bank_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    bank_account: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_account_holder: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    memo: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="company",
        lazy="noload",
    )

    __table_args__ = create_table_args(
        Index("ix_companies_type_status", "type", "status"),
        Index("ix_companies_name", "name"),
        comment="Shippers, brokers and carriers",
    )
