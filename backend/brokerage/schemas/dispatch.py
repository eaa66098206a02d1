"""
Dispatch Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from brokerage.schemas.common import BatchItemError, CamelModel
from brokerage.schemas.orders import OrderChargeSummary, OrderResponse
from brokerage.services.batch import BatchMode
from brokerage.services.orders.enums import (
    OrderFlowStatus,
    VehicleConnection,
    VehicleType,
    VehicleWeight,
)


class AcceptDispatchesRequest(CamelModel):
    """Broker acceptance of several requested orders at once."""

    order_ids: list[UUID] = Field(..., min_length=1)
    agreed_freight_cost: Optional[Decimal] = Field(None, ge=0)
    assigned_vehicle_type: Optional[VehicleType] = None
    assigned_vehicle_weight: Optional[VehicleWeight] = None
    broker_memo: Optional[str] = Field(None, max_length=500)
    mode: BatchMode = BatchMode.ALL_OR_NOTHING

    @field_validator("order_ids")
    @classmethod
    def deduplicate_ids(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))


class AcceptDispatchesResponse(CamelModel):
    updated_orders: list[str] = Field(default_factory=list)
    inserted_dispatches: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)


class CreateDispatchRequest(CamelModel):
    """Assignment of a driver and vehicle to a single order."""

    broker_company_id: UUID
    broker_manager_id: Optional[UUID] = None
    assigned_driver_id: UUID
    assigned_vehicle_number: str = Field(..., min_length=1, max_length=20)
    assigned_vehicle_type: VehicleType
    assigned_vehicle_weight: VehicleWeight
    assigned_vehicle_connection: Optional[VehicleConnection] = None
    agreed_freight_cost: Optional[Decimal] = Field(None, ge=0)
    broker_memo: Optional[str] = Field(None, max_length=500)


class DispatchFieldsPatch(CamelModel):
    """Values of an allow-listed dispatch field patch."""

    model_config = ConfigDict(extra="forbid")

    assigned_driver_id: Optional[UUID] = None
    assigned_driver_snapshot: Optional[dict[str, Any]] = None
    assigned_driver_phone: Optional[str] = Field(None, max_length=30)
    assigned_vehicle_number: Optional[str] = Field(None, min_length=1, max_length=20)
    assigned_vehicle_type: Optional[VehicleType] = None
    assigned_vehicle_weight: Optional[VehicleWeight] = None
    assigned_vehicle_connection: Optional[VehicleConnection] = None
    agreed_freight_cost: Optional[Decimal] = Field(None, ge=0)
    broker_memo: Optional[str] = Field(None, max_length=500)
    broker_flow_status: Optional[OrderFlowStatus] = None


class DispatchFieldsUpdateRequest(CamelModel):
    fields: dict[str, Any]
    reason: Optional[str] = Field(None, max_length=500)


class DispatchResponse(CamelModel):
    id: UUID
    order_id: UUID
    broker_company_id: UUID
    broker_company_snapshot: Optional[dict[str, Any]] = None
    broker_manager_id: Optional[UUID] = None
    broker_manager_snapshot: Optional[dict[str, Any]] = None
    assigned_driver_id: Optional[UUID] = None
    assigned_driver_snapshot: Optional[dict[str, Any]] = None
    assigned_driver_phone: Optional[str] = None
    assigned_vehicle_number: Optional[str] = None
    assigned_vehicle_type: Optional[VehicleType] = None
    assigned_vehicle_weight: Optional[VehicleWeight] = None
    assigned_vehicle_connection: Optional[VehicleConnection] = None
    agreed_freight_cost: Optional[Decimal] = None
    broker_flow_status: OrderFlowStatus
    is_closed: bool
    broker_memo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DispatchDetailResponse(DispatchResponse):
    """Dispatch joined with its order."""

    order: OrderResponse


class CloseDispatchResponse(CamelModel):
    dispatch_id: UUID
    is_closed: bool
    message: str


class OrderBoardItem(CamelModel):
    """Order on the broker board with its open or closed dispatch and charge totals."""

    order: OrderResponse
    dispatch: Optional[DispatchResponse] = None
    charge: OrderChargeSummary
