"""
Settlement summary: an invoice preview computed from a dispatch's charge lines.
"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import NotFoundError
from brokerage.core.logging import get_logger
from brokerage.database.models.charge import ChargeGroup
from brokerage.services.charges.calculations import ZERO, compute_tax
from brokerage.services.charges.enums import ChargeSide
from brokerage.services.charges.repository import ChargeRepositoryError
from brokerage.services.dispatch.repository import DispatchClosedError, DispatchRepository
from brokerage.services.settlement.enums import InvoiceStatus

logger = get_logger(__name__)


def invoice_number_for(order_id: uuid.UUID) -> str:
    """``INV-`` followed by the first eight characters of the order id."""
    return f"INV-{str(order_id)[:8]}"


def build_settlement_summary(
    dispatch_id: uuid.UUID,
    order_id: uuid.UUID,
    side: ChargeSide,
    lines: Iterable[Any],
    default_rate: Decimal,
    issue_date: date,
    due_days: int,
) -> dict[str, Any]:
    """
    Invoice preview from the lines of one side.

    Tax is derived per line from its rate, ``default_rate`` where unset.

    Raises:
        NotFoundError: If there is no line on ``side``
    """
    items = []
    subtotal = ZERO
    tax_total = ZERO
    for line in lines:
        if line.side != side:
            continue
        rate = line.tax_rate if line.tax_rate is not None else default_rate
        tax = compute_tax(line.amount, rate)
        subtotal += Decimal(line.amount)
        tax_total += tax
        items.append(
            {
                "line_id": line.id,
                "memo": line.memo,
                "amount": Decimal(line.amount),
                "tax_rate": Decimal(rate),
                "tax_amount": tax,
            }
        )

    if not items:
        raise NotFoundError(
            "정산할 운임 항목이 없습니다",
            details={"dispatchId": str(dispatch_id), "side": side.value},
        )

    return {
        "dispatch_id": dispatch_id,
        "order_id": order_id,
        "side": side,
        "invoice_number": invoice_number_for(order_id),
        "status": InvoiceStatus.DRAFT,
        "issue_date": issue_date,
        "due_date": issue_date + timedelta(days=due_days),
        "items": items,
        "subtotal": subtotal,
        "tax_amount": tax_total,
        "total_amount": subtotal + tax_total,
    }


class SettlementSummaryService:
    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.dispatches = DispatchRepository(session)

    def _today(self) -> date:
        return datetime.now(ZoneInfo(self.settings.business_timezone)).date()

    async def _groups_for(self, dispatch_id: uuid.UUID, order_id: uuid.UUID) -> list[ChargeGroup]:
        """Groups tied to the dispatch, falling back to every group of the order."""
        try:
            result = await self.session.execute(
                select(ChargeGroup)
                .where(ChargeGroup.dispatch_id == dispatch_id)
                .order_by(ChargeGroup.created_at)
            )
            groups = list(result.scalars().all())
            if groups:
                return groups
            result = await self.session.execute(
                select(ChargeGroup)
                .where(ChargeGroup.order_id == order_id)
                .order_by(ChargeGroup.created_at)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to fetch charge groups", dispatch_id=str(dispatch_id), error=str(e))
            raise ChargeRepositoryError("Failed to fetch charge groups") from e

    async def generate(self, dispatch_id: uuid.UUID, side: ChargeSide) -> dict[str, Any]:
        """
        Raises:
            DispatchNotFoundError: If the dispatch does not exist
            DispatchClosedError: For the sales side of a closed dispatch
            NotFoundError: If the dispatch has no charge group or no line on
                the requested side
        """
        dispatch = await self.dispatches.get_or_raise(dispatch_id)
        if side is ChargeSide.SALES and dispatch.is_closed:
            raise DispatchClosedError(dispatch_id)

        groups = await self._groups_for(dispatch.id, dispatch.order_id)
        if not groups:
            raise NotFoundError(
                "운임 그룹을 찾을 수 없습니다",
                details={"dispatchId": str(dispatch_id)},
            )

        lines = [line for group in groups for line in group.lines]
        summary = build_settlement_summary(
            dispatch.id,
            dispatch.order_id,
            side,
            lines,
            self.settings.default_tax_rate,
            self._today(),
            self.settings.invoice_due_days,
        )
        logger.info(
            "Settlement summary generated",
            dispatch_id=str(dispatch_id),
            side=side.value,
            item_count=len(summary["items"]),
            total_amount=str(summary["total_amount"]),
        )
        return summary
