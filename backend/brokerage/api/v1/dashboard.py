"""
Dashboard API endpoints: KPI, status counts and daily trends.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from brokerage.api.deps import Cache, CurrentActor, DatabaseSession, require_access
from brokerage.core.actor import AccessLevel
from brokerage.core.logging import get_logger
from brokerage.schemas.common import MessageResponse
from brokerage.schemas.dashboard import KpiResponse, StatusStatsResponse, TrendsResponse
from brokerage.services.dashboard.enums import BasisField, KpiPeriod
from brokerage.services.dashboard.service import DashboardService

logger = get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get(
    "/kpi",
    response_model=KpiResponse,
    summary="Order KPI",
    description=(
        "Order count, sales amount, average and target progress for the month "
        "containing ``date`` or for a custom from/to window"
    ),
)
async def kpi(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    company_id: UUID = Query(..., alias="companyId"),
    period: KpiPeriod = Query(KpiPeriod.MONTH),
    day: Optional[date] = Query(None, alias="date"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    basis_field: BasisField = Query(BasisField.PICKUP_DATE, alias="basisField"),
) -> KpiResponse:
    return await DashboardService(db, cache).kpi(
        company_id,
        period=period,
        day=day,
        date_from=date_from,
        date_to=date_to,
        basis_field=basis_field,
    )


@router.get(
    "/status-stats",
    response_model=StatusStatsResponse,
    summary="Order counts by flow status",
)
async def status_stats(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    company_id: UUID = Query(..., alias="companyId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
) -> StatusStatsResponse:
    return await DashboardService(db, cache).status_stats(
        company_id, date_from=date_from, date_to=date_to
    )


@router.get(
    "/trends",
    response_model=TrendsResponse,
    summary="Daily order trends",
    description="Zero-filled daily points; dateTo is exclusive",
)
async def trends(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    date_from: date = Query(..., alias="dateFrom"),
    date_to: date = Query(..., alias="dateTo"),
    company_id: Optional[UUID] = Query(None, alias="companyId"),
) -> TrendsResponse:
    return await DashboardService(db, cache).trends(date_from, date_to, company_id=company_id)


@router.delete(
    "/cache",
    response_model=MessageResponse,
    summary="Drop cached dashboard aggregates",
    dependencies=[Depends(require_access(AccessLevel.PLATFORM_ADMIN))],
)
async def invalidate_cache(db: DatabaseSession, cache: Cache) -> MessageResponse:
    removed = await DashboardService(db, cache).invalidate()
    logger.info("Dashboard cache invalidated", removed=removed)
    return MessageResponse(message=f"{removed} cached entries removed")
