"""
Order model for shipper transport requests.

The order is the root of the brokerage domain. It carries the shipper-side
``flow_status``, cargo and schedule details, and frozen snapshots of the
shipper company, the contact user and both addresses.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.orders.enums import (
    OrderFlowStatus,
    PriceType,
    TaxType,
    VehicleType,
    VehicleWeight,
)

if TYPE_CHECKING:
    from brokerage.database.models.dispatch import OrderDispatch


class Order(AuditedModel):
    """
    Shipper transport request.

    Attributes:
        company_id: Shipper company
        company_snapshot: Shipper company at registration time
        contact_snapshot: Registering contact user
        flow_status: Shipper-side transport progress
        cargo_name: Cargo description
        requested_vehicle_type: Requested truck body type
        requested_vehicle_weight: Requested tonnage class
        pickup_address_snapshot: Pickup location at the time it was chosen
        delivery_address_snapshot: Delivery location at the time it was chosen
        estimated_price_amount: Quoted freight amount
        is_canceled: Soft cancellation flag, terminal once set
    """

    __tablename__ = "orders"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Shipper company",
    )

    company_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Shipper company at registration time",
    )

    contact_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    contact_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Contact user at registration time",
    )

    flow_status: Mapped[OrderFlowStatus] = mapped_column(
        enum_column_type(OrderFlowStatus, "order_flow_status"),
        nullable=False,
        default=OrderFlowStatus.REQUESTED,
        index=True,
        comment="Shipper-side transport progress",
    )

    # Cargo
    cargo_name: Mapped[str] = mapped_column(String(200), nullable=False)
    cargo_weight: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=True,
    )
    cargo_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    cargo_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    packaging_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    requested_vehicle_type: Mapped[Optional[VehicleType]] = mapped_column(
        enum_column_type(VehicleType, "vehicle_type"),
        nullable=True,
    )
    requested_vehicle_weight: Mapped[Optional[VehicleWeight]] = mapped_column(
        enum_column_type(VehicleWeight, "vehicle_weight"),
        nullable=True,
    )

    # Pickup
    pickup_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True,
    )
    pickup_address_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )
    pickup_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    pickup_time: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Delivery
    delivery_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True,
    )
    delivery_address_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )
    delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    delivery_time: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Price
    estimated_distance: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=True,
        comment="Estimated distance in km",
    )
    estimated_price_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=True,
        comment="Quoted freight amount in KRW",
    )
    price_type: Mapped[Optional[PriceType]] = mapped_column(
        enum_column_type(PriceType, "price_type"),
        nullable=True,
    )
    tax_type: Mapped[Optional[TaxType]] = mapped_column(
        enum_column_type(TaxType, "tax_type"),
        nullable=True,
    )

    is_canceled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Soft cancellation flag",
    )

    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    dispatch: Mapped[Optional["OrderDispatch"]] = relationship(
        "OrderDispatch",
        back_populates="order",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = create_table_args(
        Index("ix_orders_company_pickup", "company_id", "pickup_date"),
        Index("ix_orders_company_status", "company_id", "flow_status"),
        CheckConstraint(
            "estimated_price_amount IS NULL OR estimated_price_amount >= 0",
            name="ck_orders_price_non_negative",
        ),
        CheckConstraint(
            "cargo_quantity IS NULL OR cargo_quantity >= 0",
            name="ck_orders_quantity_non_negative",
        ),
        comment="Shipper transport requests",
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, flow_status={self.flow_status}, "
            f"is_canceled={self.is_canceled})>"
        )

    @property
    def can_change_status(self) -> bool:
        return not self.is_canceled
