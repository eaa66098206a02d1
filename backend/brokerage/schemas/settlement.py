"""
Invoice, settlement summary and waiting settlement schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, model_validator

from brokerage.schemas.common import CamelModel
from brokerage.services.charges.enums import ChargeSide
from brokerage.services.orders.enums import OrderFlowStatus
from brokerage.services.settlement.enums import InvoiceStatus


class InvoiceItem(CamelModel):
    """One billed item frozen into an invoice snapshot."""

    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    memo: Optional[str] = Field(None, max_length=500)


class InvoiceFields(CamelModel):
    items: list[InvoiceItem] = Field(..., min_length=1)
    invoice_number: Optional[str] = Field(None, max_length=50)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    memo: Optional[str] = Field(None, max_length=2000)


class SalesInvoiceCreate(InvoiceFields):
    order_id: UUID
    company_id: UUID


class PurchaseInvoiceCreate(InvoiceFields):
    """Purchase invoice payable to a carrier company or a driver."""

    order_id: UUID
    company_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None

    @model_validator(mode="after")
    def require_payee(self) -> "PurchaseInvoiceCreate":
        if self.company_id is None and self.driver_id is None:
            raise ValueError("companyId or driverId is required")
        return self


class SalesPart(InvoiceFields):
    company_id: UUID


class PurchasePart(InvoiceFields):
    company_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None

    @model_validator(mode="after")
    def require_payee(self) -> "PurchasePart":
        if self.company_id is None and self.driver_id is None:
            raise ValueError("companyId or driverId is required")
        return self


class SettlementCreateRequest(CamelModel):
    """Sale and purchase of one order created together."""

    order_id: UUID
    sales: SalesPart
    purchase: PurchasePart


class InvoiceUpdate(CamelModel):
    """Amounts and the snapshot are immutable; only these fields move."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[InvoiceStatus] = None
    invoice_number: Optional[str] = Field(None, max_length=50)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    memo: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def require_any_field(self) -> "InvoiceUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class InvoiceResponse(CamelModel):
    id: UUID
    order_id: UUID
    company_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None
    invoice_number: Optional[str] = None
    status: InvoiceStatus
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    financial_snapshot: Optional[dict[str, Any]] = None
    memo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettlementCreateResponse(CamelModel):
    sale: InvoiceResponse
    purchase: InvoiceResponse


class SummaryLine(CamelModel):
    line_id: UUID
    memo: Optional[str] = None
    amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal


class SettlementSummaryResponse(CamelModel):
    """Invoice preview derived from the charge lines of a dispatch."""

    dispatch_id: UUID
    order_id: UUID
    side: ChargeSide
    invoice_number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    items: list[SummaryLine]
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class WaitingSettlementRow(CamelModel):
    """Completed, closed order awaiting settlement with a projected margin."""

    order_id: UUID
    dispatch_id: UUID
    invoice_id: UUID
    invoice_status: InvoiceStatus
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    cargo_name: str
    flow_status: OrderFlowStatus
    pickup_date: Optional[date] = None
    delivery_date: Optional[date] = None
    charge_amount: Decimal
    dispatch_amount: Decimal
    profit_amount: Decimal
