"""
Charge ledger models.

A ChargeGroup buckets the cost lines of one order. A locked group accepts
no line writes and no edits other than unlocking.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.charges.enums import ChargeReason, ChargeSide, ChargeStage


class ChargeGroup(AuditedModel):
    """
    Named bucket of cost lines for an order.

    Attributes:
        order_id: Owning order
        dispatch_id: Optional dispatch the charges relate to
        stage: estimate, progress or completed
        reason: Why the group exists
        description: Free text
        is_locked: Rejects line writes while set
    """

    __tablename__ = "charge_groups"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    dispatch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("order_dispatches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    stage: Mapped[ChargeStage] = mapped_column(
        enum_column_type(ChargeStage, "charge_stage"),
        nullable=False,
    )

    reason: Mapped[ChargeReason] = mapped_column(
        enum_column_type(ChargeReason, "charge_reason"),
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_locked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    lines: Mapped[list["ChargeLine"]] = relationship(
        "ChargeLine",
        back_populates="group",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ChargeLine.created_at",
    )

    __table_args__ = create_table_args(
        Index("ix_charge_groups_order_stage", "order_id", "stage"),
        comment="Charge ledger buckets",
    )


class ChargeLine(AuditedModel):
    """
    Single monetary entry within a charge group.

    ``tax_amount`` is fixed at write time and is not recomputed from
    ``tax_rate`` on read.
    """

    __tablename__ = "charge_lines"

    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("charge_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    side: Mapped[ChargeSide] = mapped_column(
        enum_column_type(ChargeSide, "charge_side"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
    )

    tax_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=True,
        comment="Percent, e.g. 10 for 10%",
    )

    tax_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=True,
    )

    memo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    group: Mapped[ChargeGroup] = relationship(
        "ChargeGroup",
        back_populates="lines",
        lazy="noload",
    )

    __table_args__ = create_table_args(
        Index("ix_charge_lines_group_side", "group_id", "side"),
        comment="Charge ledger entries",
    )
