"""
Dashboard response schemas.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from brokerage.schemas.common import CamelModel
from brokerage.services.dashboard.enums import BasisField
from brokerage.services.orders.enums import OrderFlowStatus


class TargetProgress(CamelModel):
    target: int
    current: int
    percentage: int


class KpiMeta(CamelModel):
    company_id: UUID
    date_from: date = Field(..., alias="from")
    date_to: date = Field(..., alias="to")
    basis_field: BasisField
    currency: str = "KRW"


class KpiResponse(CamelModel):
    monthly_order_count: int
    monthly_order_amount: Decimal
    monthly_order_average: Decimal
    weekly_target: TargetProgress
    monthly_target: TargetProgress
    meta: KpiMeta


class StatusCount(CamelModel):
    status: OrderFlowStatus
    count: int


class StatusStatsResponse(CamelModel):
    total_count: int
    by_status: list[StatusCount]
    date_from: date
    date_to: date


class TrendPoint(CamelModel):
    day: date = Field(..., alias="date")
    order_count: int
    order_amount: Decimal


class TrendsResponse(CamelModel):
    """Daily points; ``dateTo`` is exclusive."""

    date_from: date
    date_to: date
    company_id: Optional[UUID] = None
    points: list[TrendPoint]
