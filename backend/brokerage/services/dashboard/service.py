"""
Dashboard aggregates: KPI, status counts and daily trends.

Results are cached in Redis for ``dashboard_cache_ttl_seconds``. The cache
is best effort: when Redis is missing or failing the figures are computed
directly and a warning is logged.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.cache.redis_client import CacheKeyManager, RedisClient, get_cache_key_manager
from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import InternalError
from brokerage.core.logging import get_logger, log_performance
from brokerage.database.models.charge import ChargeGroup, ChargeLine
from brokerage.database.models.order import Order
from brokerage.schemas.dashboard import KpiResponse, StatusStatsResponse, TrendsResponse
from brokerage.services.charges.enums import ChargeSide
from brokerage.services.dashboard.enums import BasisField, KpiPeriod
from brokerage.services.dashboard.periods import (
    average_amount,
    business_today,
    fill_daily_points,
    progress,
    resolve_kpi_window,
    status_window,
    validate_trend_window,
)

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class DashboardQueryError(InternalError):
    """Raised when a dashboard aggregate query fails."""

    pass


class DashboardService:
    """
    Attributes:
        cache: Connected Redis client, or None to compute every time
        keys: Cache key manager
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[RedisClient] = None,
        settings: Optional[Settings] = None,
        keys: Optional[CacheKeyManager] = None,
    ):
        self.session = session
        self.cache = cache
        self.settings = settings or get_settings()
        self.keys = keys or get_cache_key_manager()

    def _today(self) -> date:
        return business_today(self.settings.business_timezone)

    async def _cached(
        self,
        metric: str,
        params: dict[str, Any],
        model: type[ResponseT],
        compute: Callable[[], Awaitable[ResponseT]],
    ) -> ResponseT:
        ttl = self.settings.dashboard_cache_ttl_seconds
        if self.cache is None or ttl <= 0:
            return await compute()

        key = self.keys.dashboard_key(metric, {k: str(v) for k, v in params.items()})
        try:
            cached = await self.cache.get_json(key)
            if cached is not None:
                logger.debug("Dashboard cache hit", metric=metric, key=key)
                return model.model_validate(cached)
        except RedisError as e:
            logger.warning("Dashboard cache read failed", metric=metric, error=str(e))
            return await compute()

        result = await compute()
        try:
            await self.cache.set_json(key, result.model_dump(mode="json"), ex=ttl)
        except RedisError as e:
            logger.warning("Dashboard cache write failed", metric=metric, error=str(e))
        return result

    async def _scalar(self, stmt: Any, operation: str) -> Any:
        try:
            return await self.session.scalar(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e))
            raise DashboardQueryError(f"Failed to {operation}") from e

    async def _rows(self, stmt: Any, operation: str) -> list[Any]:
        try:
            result = await self.session.execute(stmt)
            return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e))
            raise DashboardQueryError(f"Failed to {operation}") from e

    async def kpi(
        self,
        company_id: uuid.UUID,
        period: KpiPeriod = KpiPeriod.MONTH,
        day: Optional[date] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        basis_field: BasisField = BasisField.PICKUP_DATE,
    ) -> KpiResponse:
        """
        Order count, sales amount and target progress for a window.

        Raises:
            ValidationError: If a custom period is incomplete or reversed
        """
        start, end = resolve_kpi_window(period, self._today(), day, date_from, date_to)

        async def compute() -> KpiResponse:
            basis = getattr(Order, basis_field.column_name)
            window = [Order.company_id == company_id, basis >= start, basis <= end]

            with log_performance(logger, "dashboard.kpi", company_id=str(company_id)):
                count = await self._scalar(
                    select(func.count(func.distinct(Order.id))).where(*window),
                    "count orders",
                )
                amount = await self._scalar(
                    select(func.coalesce(func.sum(ChargeLine.amount), 0))
                    .join(ChargeGroup, ChargeGroup.id == ChargeLine.group_id)
                    .join(Order, Order.id == ChargeGroup.order_id)
                    .where(*window, ChargeLine.side == ChargeSide.SALES),
                    "sum sales charges",
                )

            count = int(count or 0)
            total = Decimal(amount or 0).quantize(Decimal("1"))
            return KpiResponse(
                monthly_order_count=count,
                monthly_order_amount=total,
                monthly_order_average=average_amount(total, count),
                weekly_target=progress(count, self.settings.kpi_weekly_target),
                monthly_target=progress(count, self.settings.kpi_monthly_target),
                meta={
                    "company_id": company_id,
                    "from": start,
                    "to": end,
                    "basis_field": basis_field,
                },
            )

        return await self._cached(
            "kpi",
            {"company": company_id, "from": start, "to": end, "basis": basis_field.value},
            KpiResponse,
            compute,
        )

    async def status_stats(
        self,
        company_id: uuid.UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> StatusStatsResponse:
        """Order counts per flow status by pickup date."""
        start, end = status_window(self._today(), date_from, date_to)

        async def compute() -> StatusStatsResponse:
            rows = await self._rows(
                select(Order.flow_status, func.count().label("count"))
                .where(
                    Order.company_id == company_id,
                    Order.pickup_date >= start,
                    Order.pickup_date <= end,
                )
                .group_by(Order.flow_status),
                "count orders by status",
            )
            by_status = [{"status": row.flow_status, "count": int(row.count)} for row in rows]
            return StatusStatsResponse(
                total_count=sum(item["count"] for item in by_status),
                by_status=by_status,
                date_from=start,
                date_to=end,
            )

        return await self._cached(
            "status",
            {"company": company_id, "from": start, "to": end},
            StatusStatsResponse,
            compute,
        )

    async def trends(
        self,
        date_from: date,
        date_to: date,
        company_id: Optional[uuid.UUID] = None,
    ) -> TrendsResponse:
        """
        Daily order counts and sales amounts by pickup date.

        Raises:
            ValidationError: If the window is reversed, empty or too long
        """
        validate_trend_window(date_from, date_to, self.settings.trend_max_days)

        async def compute() -> TrendsResponse:
            window = [Order.pickup_date >= date_from, Order.pickup_date < date_to]
            if company_id:
                window.append(Order.company_id == company_id)

            counts = await self._rows(
                select(Order.pickup_date.label("day"), func.count().label("order_count"))
                .where(*window)
                .group_by(Order.pickup_date),
                "count daily orders",
            )
            amounts = await self._rows(
                select(
                    Order.pickup_date.label("day"),
                    func.coalesce(func.sum(ChargeLine.amount), 0).label("order_amount"),
                )
                .join(ChargeGroup, ChargeGroup.order_id == Order.id)
                .join(ChargeLine, ChargeLine.group_id == ChargeGroup.id)
                .where(*window, ChargeLine.side == ChargeSide.SALES)
                .group_by(Order.pickup_date),
                "sum daily sales",
            )
            return TrendsResponse(
                date_from=date_from,
                date_to=date_to,
                company_id=company_id,
                points=fill_daily_points(date_from, date_to, counts, amounts),
            )

        return await self._cached(
            "trends",
            {"company": company_id, "from": date_from, "to": date_to},
            TrendsResponse,
            compute,
        )

    async def invalidate(self) -> int:
        """Drop every cached dashboard aggregate."""
        if self.cache is None:
            return 0
        try:
            return await self.cache.delete_pattern(self.keys.dashboard_pattern())
        except RedisError as e:
            logger.warning("Dashboard cache invalidation failed", error=str(e))
            return 0
