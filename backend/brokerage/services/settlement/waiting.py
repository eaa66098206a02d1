"""Waiting settlements: completed, closed orders not yet settled."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import ValidationError
from brokerage.core.logging import get_logger
from brokerage.services.charges.calculations import round_won
from brokerage.services.settlement.enums import BundleKind
from brokerage.services.settlement.repository import WaitingSettlementRepository

logger = get_logger(__name__)


def project_margin(charge_amount: Decimal, ratio: Decimal) -> tuple[Decimal, Decimal]:
    """
    Estimated dispatch cost and profit for a charge.

    >>> project_margin(Decimal("100000"), Decimal("0.9"))
    (Decimal('90000'), Decimal('10000'))
    """
    dispatch_amount = round_won(Decimal(charge_amount) * Decimal(ratio))
    return dispatch_amount, Decimal(charge_amount) - dispatch_amount


class WaitingSettlementService:
    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.repository = WaitingSettlementRepository(session)

    async def list_waiting(
        self,
        kind: BundleKind,
        company_id: Optional[uuid.UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[dict[str, Any]], int]:
        if start_date and end_date and end_date < start_date:
            raise ValidationError("endDate cannot be before startDate")

        rows, total = await self.repository.list_waiting(
            kind,
            company_id=company_id,
            start_date=start_date,
            end_date=end_date,
            page=page,
            page_size=page_size,
        )

        items = []
        for row in rows:
            charge = Decimal(row.charge_amount or 0)
            dispatch_amount, profit = project_margin(
                charge, self.settings.dispatch_cost_estimate_ratio
            )
            items.append(
                {
                    **row._asdict(),
                    "charge_amount": charge,
                    "dispatch_amount": dispatch_amount,
                    "profit_amount": profit,
                }
            )

        logger.debug("Waiting settlements listed", kind=kind.value, total=total, page=page)
        return items, total
