"""
Invoice models for the sales (shipper) and purchase (carrier) sides.

Amounts and ``financial_snapshot`` are captured when the invoice is created
and are never recomputed from charge lines afterwards.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.database.base import AuditedModel, create_table_args, enum_column_type
from brokerage.services.settlement.enums import InvoiceStatus


class InvoiceColumnsMixin:
    """Columns shared by OrderSale and OrderPurchase."""

    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[InvoiceStatus] = mapped_column(
        enum_column_type(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )

    issue_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    subtotal_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        default=Decimal("0"),
    )

    financial_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Invoice items frozen at creation",
    )

    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT


class OrderSale(AuditedModel, InvoiceColumnsMixin):
    """Invoice billed to the shipper company of an order."""

    __tablename__ = "order_sales"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    __table_args__ = create_table_args(
        Index("ix_order_sales_company_status", "company_id", "status"),
        CheckConstraint("subtotal_amount >= 0", name="ck_order_sales_subtotal_non_negative"),
        comment="Sales invoices",
    )


class OrderPurchase(AuditedModel, InvoiceColumnsMixin):
    """Invoice payable to the carrier company or the driver of an order."""

    __tablename__ = "order_purchases"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("drivers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    __table_args__ = create_table_args(
        Index("ix_order_purchases_company_status", "company_id", "status"),
        CheckConstraint(
            "company_id IS NOT NULL OR driver_id IS NOT NULL",
            name="ck_order_purchases_payee",
        ),
        CheckConstraint(
            "subtotal_amount >= 0",
            name="ck_order_purchases_subtotal_non_negative",
        ),
        comment="Purchase invoices",
    )
