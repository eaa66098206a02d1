"""
Order Pydantic schemas for API request/response validation.

Covers order registration, the allow-listed field patch, status changes,
batch actions and the per-order charge summary.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator, model_validator

from brokerage.schemas.common import CamelModel
from brokerage.services.batch import BatchMode
from brokerage.services.charges.enums import ChargeReason, ChargeStage
from brokerage.services.orders.enums import (
    OrderBatchAction,
    OrderFlowStatus,
    PriceType,
    TaxType,
    VehicleType,
    VehicleWeight,
)

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class OrderCreateRequest(CamelModel):
    """Shipper registration of a new order."""

    company_id: Optional[UUID] = Field(
        None,
        description="Shipper company, defaults to the actor's company",
    )
    cargo_name: str = Field(..., min_length=1, max_length=200)
    cargo_weight: Optional[Decimal] = Field(None, ge=0)
    cargo_unit: Optional[str] = Field(None, max_length=20)
    cargo_quantity: Optional[int] = Field(None, ge=0)
    packaging_type: Optional[str] = Field(None, max_length=50)
    requested_vehicle_type: Optional[VehicleType] = None
    requested_vehicle_weight: Optional[VehicleWeight] = None

    pickup_address_id: Optional[UUID] = None
    pickup_date: Optional[date] = None
    pickup_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    delivery_address_id: Optional[UUID] = None
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = Field(None, pattern=TIME_PATTERN)

    estimated_distance: Optional[Decimal] = Field(None, ge=0)
    price_amount: Optional[Decimal] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    tax_type: Optional[TaxType] = None
    memo: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_schedule(self) -> "OrderCreateRequest":
        if self.pickup_date and self.delivery_date and self.delivery_date < self.pickup_date:
            raise ValueError("deliveryDate cannot be before pickupDate")
        return self


class OrderFieldsPatch(CamelModel):
    """
    Values of an allow-listed order field patch.

    Keys are checked against the allow-list before this model is applied, so
    unknown keys never reach it.
    """

    model_config = ConfigDict(extra="forbid")

    flow_status: Optional[OrderFlowStatus] = None
    cargo_name: Optional[str] = Field(None, min_length=1, max_length=200)
    cargo_weight: Optional[Decimal] = Field(None, ge=0)
    cargo_unit: Optional[str] = Field(None, max_length=20)
    cargo_quantity: Optional[int] = Field(None, ge=0)
    packaging_type: Optional[str] = Field(None, max_length=50)
    requested_vehicle_type: Optional[VehicleType] = None
    requested_vehicle_weight: Optional[VehicleWeight] = None
    price_amount: Optional[Decimal] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    tax_type: Optional[TaxType] = None
    pickup_address_id: Optional[UUID] = None
    delivery_address_id: Optional[UUID] = None
    pickup_address_snapshot: Optional[dict[str, Any]] = None
    delivery_address_snapshot: Optional[dict[str, Any]] = None
    pickup_date: Optional[date] = None
    pickup_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    is_canceled: Optional[bool] = None
    memo: Optional[str] = Field(None, max_length=2000)


class OrderFieldsUpdateRequest(CamelModel):
    fields: dict[str, Any] = Field(..., description="camelCase field patch")
    reason: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdateRequest(CamelModel):
    flow_status: OrderFlowStatus
    reason: Optional[str] = Field(None, max_length=500)


class StatusChangeResponse(CamelModel):
    order_id: UUID
    previous_status: OrderFlowStatus
    current_status: OrderFlowStatus


class OrderBatchRequest(CamelModel):
    """Bulk action over a list of orders."""

    order_ids: list[UUID] = Field(..., min_length=1)
    action: OrderBatchAction
    flow_status: Optional[OrderFlowStatus] = None
    mode: BatchMode = BatchMode.BEST_EFFORT
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("order_ids")
    @classmethod
    def deduplicate_ids(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_status_action(self) -> "OrderBatchRequest":
        if self.action == OrderBatchAction.UPDATE_STATUS and self.flow_status is None:
            raise ValueError("flowStatus is required for updateStatus")
        return self


class OrderResponse(CamelModel):
    """Order as returned by the API."""

    id: UUID
    company_id: UUID
    company_snapshot: Optional[dict[str, Any]] = None
    contact_user_id: Optional[UUID] = None
    contact_snapshot: Optional[dict[str, Any]] = None
    flow_status: OrderFlowStatus
    cargo_name: str
    cargo_weight: Optional[Decimal] = None
    cargo_unit: Optional[str] = None
    cargo_quantity: Optional[int] = None
    packaging_type: Optional[str] = None
    requested_vehicle_type: Optional[VehicleType] = None
    requested_vehicle_weight: Optional[VehicleWeight] = None
    pickup_address_id: Optional[UUID] = None
    pickup_address_snapshot: Optional[dict[str, Any]] = None
    pickup_date: Optional[date] = None
    pickup_time: Optional[str] = None
    delivery_address_id: Optional[UUID] = None
    delivery_address_snapshot: Optional[dict[str, Any]] = None
    delivery_date: Optional[date] = None
    delivery_time: Optional[str] = None
    estimated_distance: Optional[Decimal] = None
    estimated_price_amount: Optional[Decimal] = Field(None, alias="priceAmount")
    price_type: Optional[PriceType] = None
    tax_type: Optional[TaxType] = None
    is_canceled: bool = False
    memo: Optional[str] = None
    created_by_snapshot: Optional[dict[str, Any]] = None
    updated_by_snapshot: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChargeSummaryRequest(CamelModel):
    order_ids: list[UUID] = Field(..., min_length=1, max_length=500)


class GroupChargeSummary(CamelModel):
    group_id: UUID
    stage: ChargeStage
    reason: ChargeReason
    is_locked: bool
    sales_amount: Decimal
    purchase_amount: Decimal


class OrderChargeSummary(CamelModel):
    """Totals of every charge line of one order."""

    order_id: UUID
    total_amount: Decimal
    sales_amount: Decimal
    purchase_amount: Decimal
    profit: Decimal
    groups: list[GroupChargeSummary] = Field(default_factory=list)


class OrderValidationResponse(CamelModel):
    message: str
    data: OrderCreateRequest


class RecentCargoResponse(CamelModel):
    order_id: UUID
    cargo_name: str
    requested_vehicle_weight: Optional[VehicleWeight] = None
    requested_vehicle_type: Optional[VehicleType] = None
    memo: Optional[str] = None
    updated_at: datetime
