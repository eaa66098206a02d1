"""
Charge ledger service.

Groups bucket the cost lines of one order. A locked group rejects every
write to itself or its lines except unlocking. Line tax defaults to
``amount * rate / 100`` with the configured default rate, and every new line
that moves an order's sales or purchase total is recorded in the order's
change log.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import ValidationError
from brokerage.core.logging import get_logger
from brokerage.database.models.charge import ChargeGroup, ChargeLine
from brokerage.schemas.charges import (
    ChargeGroupCreate,
    ChargeGroupUpdate,
    ChargeLineCreate,
    ChargeLineUpdate,
)
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.charges.calculations import (
    build_charge_summaries,
    compute_tax,
    format_won,
    resolve_line_tax,
)
from brokerage.services.charges.enums import (
    ChargeReason,
    ChargeSide,
    ChargeSortField,
    ChargeStage,
    SortOrder,
)
from brokerage.services.charges.repository import (
    ChargeGroupLockedError,
    ChargeRepository,
)
from brokerage.services.dispatch.repository import DispatchRepository
from brokerage.services.orders.repository import OrderRepository

logger = get_logger(__name__)


def price_change_type(
    before: dict[ChargeSide, Any], after: dict[ChargeSide, Any]
) -> Optional[ChangeType]:
    """Change log type for a move in an order's side totals, None if unchanged."""
    sales_changed = Decimal(before[ChargeSide.SALES]) != Decimal(after[ChargeSide.SALES])
    purchase_changed = Decimal(before[ChargeSide.PURCHASE]) != Decimal(after[ChargeSide.PURCHASE])
    if sales_changed and purchase_changed:
        return ChangeType.UPDATE_PRICE
    if sales_changed:
        return ChangeType.UPDATE_PRICE_SALES
    if purchase_changed:
        return ChangeType.UPDATE_PRICE_PURCHASE
    return None


def _totals_json(totals: dict[ChargeSide, Any]) -> dict[str, str]:
    return {
        "salesAmount": str(totals[ChargeSide.SALES]),
        "purchaseAmount": str(totals[ChargeSide.PURCHASE]),
    }


class ChargeService:
    """
    Charge group and line operations.

    Attributes:
        repository: Charge repository
        change_logs: Change log writer sharing the session
        default_tax_rate: Rate used when a line has none
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.default_tax_rate = self.settings.default_tax_rate
        self.repository = ChargeRepository(session)
        self.orders = OrderRepository(session)
        self.dispatches = DispatchRepository(session)
        self.change_logs = ChangeLogService(session)

    # Groups

    async def create_group(self, payload: ChargeGroupCreate, actor: Actor) -> ChargeGroup:
        """
        Create an unlocked group for an order.

        Raises:
            OrderNotFoundError: If the order does not exist
            DispatchNotFoundError: If the dispatch does not exist
            ValidationError: If the dispatch belongs to another order
        """
        await self.orders.get_or_raise(payload.order_id)
        if payload.dispatch_id is not None:
            dispatch = await self.dispatches.get_or_raise(payload.dispatch_id)
            if dispatch.order_id != payload.order_id:
                raise ValidationError(
                    "Dispatch does not belong to the order",
                    details={"dispatchId": str(payload.dispatch_id)},
                )

        group = ChargeGroup(
            order_id=payload.order_id,
            dispatch_id=payload.dispatch_id,
            stage=payload.stage,
            reason=payload.reason,
            description=payload.description,
            is_locked=False,
            lines=[],
        )
        group.stamp_created(actor)
        await self.repository.add_group(group)

        logger.info(
            "Charge group created",
            group_id=str(group.id),
            order_id=str(group.order_id),
            stage=group.stage.value,
            reason=group.reason.value,
            actor_id=str(actor.id),
        )
        return group

    async def get_group(self, group_id: uuid.UUID) -> ChargeGroup:
        return await self.repository.get_group_or_raise(group_id)

    async def list_groups(
        self,
        order_id: Optional[uuid.UUID] = None,
        dispatch_id: Optional[uuid.UUID] = None,
        stage: Optional[ChargeStage] = None,
        reason: Optional[ChargeReason] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: ChargeSortField = ChargeSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> tuple[list[ChargeGroup], int]:
        return await self.repository.list_groups(
            order_id=order_id,
            dispatch_id=dispatch_id,
            stage=stage,
            reason=reason,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    async def update_group(
        self, group_id: uuid.UUID, payload: ChargeGroupUpdate, actor: Actor
    ) -> ChargeGroup:
        """
        Patch a group.

        ``isLocked=false`` on a locked group unlocks it and must come alone.
        ``isLocked=true`` applies the other fields first, then locks.

        Raises:
            ChargeGroupNotFoundError: If the group does not exist
            ChargeGroupLockedError: If the group is locked and the patch is
                anything other than an unlock
        """
        values = payload.model_dump(exclude_unset=True)
        lock_value = values.pop("is_locked", None)

        group = await self.repository.get_group_or_raise(group_id)

        if lock_value is False and await self.repository.lock_state(group_id):
            if values:
                raise ChargeGroupLockedError(
                    group_id,
                    reason="unlock must not be combined with other changes",
                )
            await self.repository.unlock(group_id)
            group.stamp_updated(actor)
            await self.repository.flush()
            await self.session.refresh(group)
            logger.info("Charge group unlocked", group_id=str(group_id), actor_id=str(actor.id))
            return group

        await self.repository.require_unlocked(group_id)
        for key, value in values.items():
            setattr(group, key, value)
        group.stamp_updated(actor)
        await self.repository.flush()

        if lock_value is True:
            if not await self.repository.lock(group_id):
                raise ChargeGroupLockedError(group_id)
            logger.info("Charge group locked", group_id=str(group_id), actor_id=str(actor.id))

        await self.session.refresh(group)
        logger.info(
            "Charge group updated",
            group_id=str(group_id),
            fields=sorted(values),
            actor_id=str(actor.id),
        )
        return group

    async def delete_group(self, group_id: uuid.UUID, actor: Actor) -> None:
        """
        Delete an unlocked group together with its lines.

        Raises:
            ChargeGroupNotFoundError: If the group does not exist
            ChargeGroupLockedError: If the group is locked
        """
        await self.repository.require_unlocked(group_id)
        group = await self.repository.get_group_or_raise(group_id)
        line_count = len(group.lines)
        await self.repository.delete_group(group)
        logger.info(
            "Charge group deleted",
            group_id=str(group_id),
            line_count=line_count,
            actor_id=str(actor.id),
        )

    # Lines

    async def create_line(self, payload: ChargeLineCreate, actor: Actor) -> ChargeLine:
        """
        Add a line to an unlocked group.

        Raises:
            ChargeGroupNotFoundError: If the group does not exist
            ChargeGroupLockedError: If the group is locked
        """
        await self.repository.require_unlocked(payload.group_id)
        group = await self.repository.get_group_or_raise(payload.group_id)

        before = await self.repository.order_side_totals(group.order_id)

        tax_rate, tax_amount = resolve_line_tax(
            payload.amount,
            payload.tax_rate,
            payload.tax_amount,
            self.default_tax_rate,
        )
        line = ChargeLine(
            group_id=group.id,
            side=payload.side,
            amount=payload.amount,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            memo=payload.memo,
        )
        line.stamp_created(actor)
        await self.repository.add_line(line)

        after = await self.repository.order_side_totals(group.order_id)
        change_type = price_change_type(before, after)
        if change_type is not None:
            await self.change_logs.log_change_quietly(
                EntityType.ORDER,
                group.order_id,
                actor,
                change_type,
                old_data=_totals_json(before),
                new_data=_totals_json(after),
                reason=payload.memo
                or f"운임 정보 변경: {payload.side.label} {format_won(payload.amount)}원 추가",
            )

        logger.info(
            "Charge line created",
            line_id=str(line.id),
            group_id=str(group.id),
            side=line.side.value,
            amount=str(line.amount),
            actor_id=str(actor.id),
        )
        return line

    async def update_line(
        self, line_id: uuid.UUID, payload: ChargeLineUpdate, actor: Actor
    ) -> ChargeLine:
        """
        Patch a line of an unlocked group.

        Tax is recomputed only when amount or rate changes and no explicit
        tax amount is part of the patch.

        Raises:
            ChargeLineNotFoundError: If the line does not exist
            ChargeGroupLockedError: If the parent group is locked
        """
        line = await self.repository.get_line_or_raise(line_id)
        await self.repository.require_unlocked(line.group_id)

        values = payload.model_dump(exclude_unset=True)
        for key, value in values.items():
            setattr(line, key, value)

        if ("amount" in values or "tax_rate" in values) and "tax_amount" not in values:
            rate = line.tax_rate if line.tax_rate is not None else self.default_tax_rate
            line.tax_rate = rate
            line.tax_amount = compute_tax(line.amount, rate)

        line.stamp_updated(actor)
        await self.repository.flush()

        logger.info(
            "Charge line updated",
            line_id=str(line_id),
            fields=sorted(values),
            actor_id=str(actor.id),
        )
        return line

    async def delete_line(self, line_id: uuid.UUID, actor: Actor) -> None:
        """
        Raises:
            ChargeLineNotFoundError: If the line does not exist
            ChargeGroupLockedError: If the parent group is locked
        """
        line = await self.repository.get_line_or_raise(line_id)
        await self.repository.require_unlocked(line.group_id)
        await self.repository.delete_line(line)
        logger.info("Charge line deleted", line_id=str(line_id), actor_id=str(actor.id))

    async def get_line(self, line_id: uuid.UUID) -> ChargeLine:
        return await self.repository.get_line_or_raise(line_id)

    async def list_lines(
        self,
        group_id: Optional[uuid.UUID] = None,
        side: Optional[ChargeSide] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: ChargeSortField = ChargeSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> tuple[list[ChargeLine], int]:
        return await self.repository.list_lines(
            group_id=group_id,
            side=side,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    async def get_order_charge_summary(self, order_ids: list[uuid.UUID]) -> list[dict[str, Any]]:
        """
        Sales, purchase, total and profit per order.

        Orders without charge groups are reported with zero totals.
        """
        if not order_ids:
            raise ValidationError("orderIds must not be empty")
        rows = await self.repository.group_totals_for_orders(order_ids)
        summaries = build_charge_summaries(order_ids, rows)
        logger.debug("Order charge summaries built", order_count=len(order_ids), group_count=len(rows))
        return summaries
