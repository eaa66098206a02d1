"""
Settlement bundle models.

A bundle groups several sales or purchase invoices for one company into a
single settlement. Items reference one invoice each; adjustments apply to
an item or to the bundle as a whole.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.settlement.enums import (
    AdjustmentType,
    BundleKind,
    BundleStatus,
    PaymentMethod,
    PeriodType,
)


class SettlementBundle(AuditedModel):
    """
    Batch of invoices settled together.

    Attributes:
        kind: sales or purchase
        company_id: Counterparty company
        manager_id: User in charge of the settlement
        driver_id: Payee driver for purchase bundles
        period_from: Start of the covered period
        period_to: End of the covered period
        total_amount: Sum of item bases and all adjustment deltas
        total_tax_amount: Sum of item base taxes and adjustment taxes
        total_amount_with_tax: total_amount + total_tax_amount
        status: draft, issued, paid or canceled
    """

    __tablename__ = "settlement_bundles"

    kind: Mapped[BundleKind] = mapped_column(
        enum_column_type(BundleKind, "bundle_kind"),
        nullable=False,
        index=True,
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    company_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    manager_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("drivers.id", ondelete="SET NULL"),
        nullable=True,
    )
    driver_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    period_type: Mapped[Optional[PeriodType]] = mapped_column(
        enum_column_type(PeriodType, "bundle_period_type"),
        nullable=True,
    )
    period_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    period_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        enum_column_type(PaymentMethod, "payment_method"),
        nullable=True,
    )
    bank_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    bank_account: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_account_holder: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    settlement_memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoice_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    invoice_issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deposit_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deposit_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    settlement_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    settlement_batch_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    total_tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    total_amount_with_tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    status: Mapped[BundleStatus] = mapped_column(
        enum_column_type(BundleStatus, "bundle_status"),
        nullable=False,
        default=BundleStatus.DRAFT,
    )

    items: Mapped[list["BundleItem"]] = relationship(
        "BundleItem",
        back_populates="bundle",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    adjustments: Mapped[list["BundleAdjustment"]] = relationship(
        "BundleAdjustment",
        back_populates="bundle",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = create_table_args(
        Index("ix_settlement_bundles_kind_company", "kind", "company_id"),
        comment="Settlement batches of invoices",
    )


class BundleItem(AuditedModel):
    """One invoice inside a bundle with its base amount and tax."""

    __tablename__ = "bundle_items"

    bundle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("settlement_bundles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    order_sale_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("order_sales.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    order_purchase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("order_purchases.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    base_amount: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=2), nullable=False)
    base_tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    memo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    bundle: Mapped[SettlementBundle] = relationship(
        "SettlementBundle",
        back_populates="items",
        lazy="noload",
    )

    adjustments: Mapped[list["ItemAdjustment"]] = relationship(
        "ItemAdjustment",
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = create_table_args(
        CheckConstraint(
            "(order_sale_id IS NULL) <> (order_purchase_id IS NULL)",
            name="ck_bundle_items_single_invoice",
        ),
        comment="Invoices included in a bundle",
    )

    @property
    def invoice_id(self) -> Optional[uuid.UUID]:
        return self.order_sale_id or self.order_purchase_id


class AdjustmentColumnsMixin:
    """Positive amount whose sign is given by ``type``."""

    type: Mapped[AdjustmentType] = mapped_column(
        enum_column_type(AdjustmentType, "adjustment_type"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    @property
    def delta(self) -> Decimal:
        return self.amount * self.type.sign

    @property
    def tax_delta(self) -> Decimal:
        return (self.tax_amount or Decimal("0")) * self.type.sign


class BundleAdjustment(AuditedModel, AdjustmentColumnsMixin):
    """Discount or surcharge on the bundle as a whole."""

    __tablename__ = "bundle_adjustments"

    bundle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("settlement_bundles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    bundle: Mapped[SettlementBundle] = relationship(
        "SettlementBundle",
        back_populates="adjustments",
        lazy="noload",
    )

    __table_args__ = create_table_args(
        CheckConstraint("amount >= 0", name="ck_bundle_adjustments_amount_non_negative"),
        comment="Bundle-level adjustments",
    )


class ItemAdjustment(AuditedModel, AdjustmentColumnsMixin):
    """Discount or surcharge on a single bundle item."""

    __tablename__ = "bundle_item_adjustments"

    bundle_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("bundle_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item: Mapped[BundleItem] = relationship(
        "BundleItem",
        back_populates="adjustments",
        lazy="noload",
    )

    __table_args__ = create_table_args(
        CheckConstraint("amount >= 0", name="ck_bundle_item_adjustments_amount_non_negative"),
        comment="Item-level adjustments",
    )
