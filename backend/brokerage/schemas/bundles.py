"""
Settlement bundle schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator, model_validator

from brokerage.schemas.common import CamelModel
from brokerage.services.orders.enums import OrderFlowStatus
from brokerage.services.settlement.enums import (
    AdjustmentType,
    BundleKind,
    BundleStatus,
    InvoiceStatus,
    PaymentMethod,
    PeriodType,
)


class AdjustmentCreate(CamelModel):
    """Amounts are positive; ``type`` decides whether they add or subtract."""

    type: AdjustmentType
    amount: Decimal = Field(..., ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    description: Optional[str] = Field(None, max_length=500)


class AdjustmentUpdate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[AdjustmentType] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_any_field(self) -> "AdjustmentUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class BundleCreate(CamelModel):
    invoice_ids: list[UUID] = Field(..., min_length=1, description="OrderSale or OrderPurchase ids")
    company_id: UUID
    manager_id: Optional[UUID] = None
    driver_id: Optional[UUID] = None
    period_type: Optional[PeriodType] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    settlement_memo: Optional[str] = Field(None, max_length=2000)
    adjustments: list[AdjustmentCreate] = Field(default_factory=list)

    @field_validator("invoice_ids")
    @classmethod
    def deduplicate_ids(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_period(self) -> "BundleCreate":
        if self.period_from and self.period_to and self.period_to < self.period_from:
            raise ValueError("periodTo cannot be before periodFrom")
        return self


class BundleFieldsPatch(CamelModel):
    """Values of an allow-listed bundle field patch."""

    model_config = ConfigDict(extra="forbid")

    company_id: Optional[UUID] = None
    company_snapshot: Optional[dict[str, Any]] = None
    manager_id: Optional[UUID] = None
    manager_snapshot: Optional[dict[str, Any]] = None
    payment_method: Optional[PaymentMethod] = None
    bank_code: Optional[str] = Field(None, max_length=10)
    bank_account: Optional[str] = Field(None, max_length=50)
    bank_account_holder: Optional[str] = Field(None, max_length=100)
    settlement_memo: Optional[str] = Field(None, max_length=2000)
    period_type: Optional[PeriodType] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    invoice_issued_at: Optional[datetime] = None
    deposit_requested_at: Optional[datetime] = None
    deposit_received_at: Optional[datetime] = None
    settlement_confirmed_at: Optional[datetime] = None
    settlement_batch_id: Optional[str] = Field(None, max_length=100)
    settled_at: Optional[datetime] = None
    invoice_no: Optional[str] = Field(None, max_length=50)
    total_amount: Optional[Decimal] = None
    total_tax_amount: Optional[Decimal] = None
    total_amount_with_tax: Optional[Decimal] = None
    status: Optional[BundleStatus] = None


class BundleFieldsUpdateRequest(CamelModel):
    fields: dict[str, Any]


class AdjustmentResponse(CamelModel):
    id: UUID
    type: AdjustmentType
    amount: Decimal
    tax_amount: Decimal
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class ItemAdjustmentResponse(AdjustmentResponse):
    bundle_item_id: UUID


class BundleItemResponse(CamelModel):
    id: UUID
    order_sale_id: Optional[UUID] = None
    order_purchase_id: Optional[UUID] = None
    base_amount: Decimal
    base_tax_amount: Decimal
    memo: Optional[str] = None
    adjustments: list[ItemAdjustmentResponse] = Field(default_factory=list)


class BundleResponse(CamelModel):
    id: UUID
    kind: BundleKind
    company_id: UUID
    company_snapshot: Optional[dict[str, Any]] = None
    manager_id: Optional[UUID] = None
    manager_snapshot: Optional[dict[str, Any]] = None
    driver_id: Optional[UUID] = None
    driver_snapshot: Optional[dict[str, Any]] = None
    period_type: Optional[PeriodType] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_account_holder: Optional[str] = None
    settlement_memo: Optional[str] = None
    invoice_no: Optional[str] = None
    invoice_issued_at: Optional[datetime] = None
    deposit_requested_at: Optional[datetime] = None
    deposit_received_at: Optional[datetime] = None
    settlement_confirmed_at: Optional[datetime] = None
    settlement_batch_id: Optional[str] = None
    settled_at: Optional[datetime] = None
    total_amount: Decimal
    total_tax_amount: Decimal
    total_amount_with_tax: Decimal
    status: BundleStatus
    items: list[BundleItemResponse] = Field(default_factory=list)
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BundleOrderRow(CamelModel):
    """Denormalized row per bundled cargo."""

    item_id: UUID
    invoice_id: UUID
    invoice_status: InvoiceStatus
    base_amount: Decimal
    base_tax_amount: Decimal
    order_id: UUID
    cargo_name: str
    flow_status: OrderFlowStatus
    pickup_date: Optional[date] = None
    delivery_date: Optional[date] = None
    pickup_address_snapshot: Optional[dict[str, Any]] = None
    delivery_address_snapshot: Optional[dict[str, Any]] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)
