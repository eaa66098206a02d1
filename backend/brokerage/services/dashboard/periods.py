"""
Date windows and arithmetic behind the dashboard figures.

Everything here is pure; "today" is always passed in by the caller, which
resolves it in the business timezone.
"""

import calendar
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from brokerage.core.errors import ValidationError
from brokerage.services.dashboard.enums import KpiPeriod


def business_today(timezone_name: str) -> date:
    return datetime.now(ZoneInfo(timezone_name)).date()


def month_range(day: date, today: Optional[date] = None) -> tuple[date, date]:
    """
    Inclusive first and last day of the month containing ``day``.

    The current month ends at ``today``.

    >>> month_range(date(2025, 2, 10))
    (datetime.date(2025, 2, 1), datetime.date(2025, 2, 28))
    """
    first = day.replace(day=1)
    last = day.replace(day=calendar.monthrange(day.year, day.month)[1])
    if today is not None and first <= today < last:
        last = today
    return first, last


def resolve_kpi_window(
    period: KpiPeriod,
    today: date,
    day: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> tuple[date, date]:
    """
    Inclusive window of a KPI query.

    Raises:
        ValidationError: If a custom period lacks either bound or is reversed
    """
    if period is KpiPeriod.MONTH:
        return month_range(day or today, today)
    if date_from is None or date_to is None:
        raise ValidationError("Invalid date parameters", details={"period": period.value})
    if date_to < date_from:
        raise ValidationError("from must not be after to")
    return date_from, date_to


def status_window(
    today: date, date_from: Optional[date] = None, date_to: Optional[date] = None
) -> tuple[date, date]:
    """Defaults to the first of this month through today."""
    return date_from or today.replace(day=1), date_to or today


def validate_trend_window(date_from: date, date_to: date, max_days: int) -> None:
    """
    ``date_to`` is exclusive.

    Raises:
        ValidationError: If the window is empty, reversed or too long
    """
    if date_from >= date_to:
        raise ValidationError("date_from must be before date_to")
    if (date_to - date_from).days > max_days:
        raise ValidationError(
            f"Date range cannot exceed {max_days} days",
            details={"maxDays": max_days},
        )


def progress(count: int, target: int) -> dict[str, int]:
    """
    Progress toward a target, capped at the target and at 100 percent.

    >>> progress(120, 100)
    {'target': 100, 'current': 100, 'percentage': 100}
    """
    percentage = int((Decimal(count) * 100 / Decimal(target)).quantize(Decimal("1"), ROUND_HALF_UP))
    return {
        "target": target,
        "current": min(count, target),
        "percentage": min(percentage, 100),
    }


def average_amount(total: Decimal, count: int) -> Decimal:
    if count <= 0:
        return Decimal("0")
    return (Decimal(total) / count).quantize(Decimal("1"), ROUND_HALF_UP)


def fill_daily_points(
    date_from: date, date_to: date, counts: Iterable[Any], amounts: Iterable[Any]
) -> list[dict[str, Any]]:
    """
    One point per day in ``[date_from, date_to)``, zero where nothing happened.

    ``counts`` rows carry ``day`` and ``order_count``; ``amounts`` rows carry
    ``day`` and ``order_amount``.
    """
    count_by_day = {row.day: int(row.order_count) for row in counts}
    amount_by_day = {row.day: Decimal(row.order_amount or 0) for row in amounts}

    points = []
    day = date_from
    while day < date_to:
        points.append(
            {
                "date": day,
                "order_count": count_by_day.get(day, 0),
                "order_amount": amount_by_day.get(day, Decimal("0")),
            }
        )
        day += timedelta(days=1)
    return points
