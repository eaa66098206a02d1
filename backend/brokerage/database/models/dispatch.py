"""
Dispatch model for the broker-side assignment of an order.

Exactly one dispatch exists per order. ``is_closed`` locks the dispatch for
settlement and is only flipped through a conditional update.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.orders.enums import (
    OrderFlowStatus,
    VehicleConnection,
    VehicleType,
    VehicleWeight,
)

if TYPE_CHECKING:
    from brokerage.database.models.order import Order


class OrderDispatch(AuditedModel):
    """
    Broker, driver and vehicle assigned to an order.

    Attributes:
        order_id: Dispatched order (unique)
        broker_company_id: Brokering company
        broker_manager_id: Broker user in charge
        assigned_driver_id: Assigned driver
        assigned_vehicle_number: Plate number of the assigned vehicle
        agreed_freight_cost: Freight cost agreed with the carrier
        broker_flow_status: Broker-side progress, mirrored to the order
        is_closed: Settlement lock
    """

    __tablename__ = "order_dispatches"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Dispatched order",
    )

    broker_company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    broker_company_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )

    broker_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    broker_manager_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )

    assigned_driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("drivers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_driver_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )
    assigned_driver_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    assigned_vehicle_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    assigned_vehicle_type: Mapped[Optional[VehicleType]] = mapped_column(
        enum_column_type(VehicleType, "vehicle_type"),
        nullable=True,
    )
    assigned_vehicle_weight: Mapped[Optional[VehicleWeight]] = mapped_column(
        enum_column_type(VehicleWeight, "vehicle_weight"),
        nullable=True,
    )
    assigned_vehicle_connection: Mapped[Optional[VehicleConnection]] = mapped_column(
        enum_column_type(VehicleConnection, "vehicle_connection"),
        nullable=True,
    )

    agreed_freight_cost: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=True,
    )

    broker_flow_status: Mapped[OrderFlowStatus] = mapped_column(
        enum_column_type(OrderFlowStatus, "order_flow_status"),
        nullable=False,
        default=OrderFlowStatus.DISPATCH_WAIT,
    )

    is_closed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Settlement lock",
    )

    broker_memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="dispatch",
        lazy="joined",
    )

    __table_args__ = create_table_args(
        Index("ix_order_dispatches_closed", "is_closed"),
        CheckConstraint(
            "agreed_freight_cost IS NULL OR agreed_freight_cost >= 0",
            name="ck_order_dispatches_cost_non_negative",
        ),
        comment="Broker-side dispatch of orders",
    )
