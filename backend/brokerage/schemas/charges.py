"""
Charge ledger Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import ConfigDict, Field, model_validator

from brokerage.schemas.common import CamelModel
from brokerage.services.charges.enums import ChargeReason, ChargeSide, ChargeStage


class ChargeGroupCreate(CamelModel):
    order_id: UUID
    dispatch_id: Optional[UUID] = None
    stage: ChargeStage
    reason: ChargeReason
    description: Optional[str] = Field(None, max_length=500)


class ChargeGroupUpdate(CamelModel):
    """Group patch. ``isLocked`` toggles the lock."""

    model_config = ConfigDict(extra="forbid")

    stage: Optional[ChargeStage] = None
    reason: Optional[ChargeReason] = None
    description: Optional[str] = Field(None, max_length=500)
    is_locked: Optional[bool] = None

    @model_validator(mode="after")
    def require_any_field(self) -> "ChargeGroupUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class ChargeLineCreate(CamelModel):
    group_id: UUID
    side: ChargeSide
    amount: Decimal
    memo: Optional[str] = Field(None, max_length=500)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_amount: Optional[Decimal] = None


class ChargeLineUpdate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    side: Optional[ChargeSide] = None
    amount: Optional[Decimal] = None
    memo: Optional[str] = Field(None, max_length=500)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_amount: Optional[Decimal] = None

    @model_validator(mode="after")
    def require_any_field(self) -> "ChargeLineUpdate":
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class ChargeLineResponse(CamelModel):
    id: UUID
    group_id: UUID
    side: ChargeSide
    amount: Decimal
    tax_rate: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    memo: Optional[str] = None
    created_by_snapshot: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChargeGroupResponse(CamelModel):
    id: UUID
    order_id: UUID
    dispatch_id: Optional[UUID] = None
    stage: ChargeStage
    reason: ChargeReason
    description: Optional[str] = None
    is_locked: bool
    lines: list[ChargeLineResponse] = Field(default_factory=list, alias="chargeLines")
    created_by_snapshot: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
