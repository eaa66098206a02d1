"""
Driver model for carriers assigned to dispatches.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.orders.enums import VehicleType, VehicleWeight


class DriverAffiliation(str, enum.Enum):
    """Independent owner-operator or a company employee."""

    INDEPENDENT = "개인"
    AFFILIATED = "소속"


class Driver(AuditedModel):
    """
    Truck driver with a registered vehicle.

    Attributes:
        name: Driver name
        phone: Mobile number used for dispatch contact
        vehicle_number: Plate number
        vehicle_type: Body type of the registered vehicle
        vehicle_weight: Tonnage class of the registered vehicle
        business_number: Business registration number for independents
        company_id: Carrier company for affiliated drivers
        affiliation: Independent or affiliated
        is_active: Whether the driver accepts dispatches
    """

    __tablename__ = "drivers"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)

    vehicle_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Plate number",
    )

    vehicle_type: Mapped[Optional[VehicleType]] = mapped_column(
        enum_column_type(VehicleType, "vehicle_type"),
        nullable=True,
    )

    vehicle_weight: Mapped[Optional[VehicleWeight]] = mapped_column(
        enum_column_type(VehicleWeight, "vehicle_weight"),
        nullable=True,
    )

    business_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    affiliation: Mapped[DriverAffiliation] = mapped_column(
        enum_column_type(DriverAffiliation, "driver_affiliation"),
        nullable=False,
        default=DriverAffiliation.INDEPENDENT,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    bank_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    bank_account: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_account_holder: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    memo: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    __table_args__ = create_table_args(
        Index("ix_drivers_vehicle_number", "vehicle_number"),
        Index("ix_drivers_phone", "phone"),
        comment="Drivers and their registered vehicles",
    )
