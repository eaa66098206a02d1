"""
Charge ledger data access repository.

Lock checks are conditional updates rather than read-then-write checks:
``claim_unlocked`` touches the group only while ``is_locked`` is false, so a
concurrent lock either lands first (and the claim fails) or waits on the row
until the claiming transaction ends.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import InternalError, LockedError, NotFoundError
from brokerage.core.logging import get_logger
from brokerage.database.models.charge import ChargeGroup, ChargeLine
from brokerage.services.charges.enums import (
    ChargeReason,
    ChargeSide,
    ChargeSortField,
    ChargeStage,
    SortOrder,
)

logger = get_logger(__name__)


class ChargeRepositoryError(InternalError):
    """Raised when a charge ledger query fails."""

    pass


class ChargeGroupNotFoundError(NotFoundError):
    def __init__(self, group_id: uuid.UUID, **context: Any):
        super().__init__("운임 그룹을 찾을 수 없습니다", group_id=str(group_id), **context)


class ChargeLineNotFoundError(NotFoundError):
    def __init__(self, line_id: uuid.UUID, **context: Any):
        super().__init__("운임 항목을 찾을 수 없습니다", line_id=str(line_id), **context)


class ChargeGroupLockedError(LockedError):
    """Raised when a locked group is asked to change."""

    def __init__(self, group_id: uuid.UUID, **context: Any):
        super().__init__(
            "잠긴 운임 그룹은 수정할 수 없습니다",
            details={"groupId": str(group_id)},
            group_id=str(group_id),
            **context,
        )


def _sort_clause(model: Any, sort_by: ChargeSortField, sort_order: SortOrder) -> Any:
    column = getattr(model, sort_by.column_name)
    return column.asc() if sort_order is SortOrder.ASC else column.desc()


class ChargeRepository:
    """
    Repository for charge groups and lines.

    Attributes:
        session: Async database session
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, stmt: Any, operation: str, **context: Any) -> Any:
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e), **context)
            raise ChargeRepositoryError(f"Failed to {operation}", **context) from e

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to flush charge changes", error=str(e))
            raise ChargeRepositoryError("Failed to save charge changes") from e

    # Groups

    async def get_group(self, group_id: uuid.UUID) -> Optional[ChargeGroup]:
        logger.debug("Fetching charge group", group_id=str(group_id))
        result = await self._execute(
            select(ChargeGroup).where(ChargeGroup.id == group_id),
            "fetch charge group",
            group_id=str(group_id),
        )
        return result.scalar_one_or_none()

    async def get_group_or_raise(self, group_id: uuid.UUID) -> ChargeGroup:
        group = await self.get_group(group_id)
        if group is None:
            raise ChargeGroupNotFoundError(group_id)
        return group

    async def add_group(self, group: ChargeGroup) -> ChargeGroup:
        self.session.add(group)
        await self.flush()
        logger.info("Charge group inserted", group_id=str(group.id), order_id=str(group.order_id))
        return group

    async def delete_group(self, group: ChargeGroup) -> None:
        try:
            await self.session.delete(group)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete charge group", group_id=str(group.id), error=str(e))
            raise ChargeRepositoryError("Failed to delete charge group") from e

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
        """
        List groups with filters and pagination.

        Returns:
            Tuple of (groups, total count)
        """
        conditions = []
        if order_id:
            conditions.append(ChargeGroup.order_id == order_id)
        if dispatch_id:
            conditions.append(ChargeGroup.dispatch_id == dispatch_id)
        if stage:
            conditions.append(ChargeGroup.stage == stage)
        if reason:
            conditions.append(ChargeGroup.reason == reason)

        count_result = await self._execute(
            select(func.count()).select_from(ChargeGroup).where(*conditions),
            "count charge groups",
        )
        result = await self._execute(
            select(ChargeGroup)
            .where(*conditions)
            .order_by(_sort_clause(ChargeGroup, sort_by, sort_order))
            .offset((page - 1) * page_size)
            .limit(page_size),
            "list charge groups",
        )
        return list(result.scalars().all()), count_result.scalar_one()

    async def lock_state(self, group_id: uuid.UUID) -> Optional[bool]:
        """Current ``is_locked`` read from the database, None if absent."""
        result = await self._execute(
            select(ChargeGroup.is_locked).where(ChargeGroup.id == group_id),
            "read charge group lock",
            group_id=str(group_id),
        )
        return result.scalar_one_or_none()

    async def _conditional_update(
        self, group_id: uuid.UUID, expect_locked: bool, values: dict[str, Any], operation: str
    ) -> bool:
        result = await self._execute(
            update(ChargeGroup)
            .where(ChargeGroup.id == group_id, ChargeGroup.is_locked.is_(expect_locked))
            .values(updated_at=func.now(), **values)
            .execution_options(synchronize_session=False),
            operation,
            group_id=str(group_id),
        )
        return result.rowcount == 1

    async def claim_unlocked(self, group_id: uuid.UUID) -> bool:
        """Touch the group if it is unlocked. False means locked or absent."""
        return await self._conditional_update(group_id, False, {}, "claim charge group")

    async def lock(self, group_id: uuid.UUID) -> bool:
        """Lock the group if it is unlocked. False means locked or absent."""
        return await self._conditional_update(
            group_id, False, {"is_locked": True}, "lock charge group"
        )

    async def unlock(self, group_id: uuid.UUID) -> bool:
        """Unlock the group if it is locked. False means unlocked or absent."""
        return await self._conditional_update(
            group_id, True, {"is_locked": False}, "unlock charge group"
        )

    async def require_unlocked(self, group_id: uuid.UUID) -> None:
        """
        Claim an unlocked group or explain why it cannot be claimed.

        Raises:
            ChargeGroupNotFoundError: If the group does not exist
            ChargeGroupLockedError: If the group is locked
        """
        if await self.claim_unlocked(group_id):
            return
        state = await self.lock_state(group_id)
        if state is None:
            raise ChargeGroupNotFoundError(group_id)
        logger.warning("Rejected write to locked charge group", group_id=str(group_id))
        raise ChargeGroupLockedError(group_id)

    # Lines

    async def get_line(self, line_id: uuid.UUID) -> Optional[ChargeLine]:
        result = await self._execute(
            select(ChargeLine).where(ChargeLine.id == line_id),
            "fetch charge line",
            line_id=str(line_id),
        )
        return result.scalar_one_or_none()

    async def get_line_or_raise(self, line_id: uuid.UUID) -> ChargeLine:
        line = await self.get_line(line_id)
        if line is None:
            raise ChargeLineNotFoundError(line_id)
        return line

    async def add_line(self, line: ChargeLine) -> ChargeLine:
        self.session.add(line)
        await self.flush()
        logger.info("Charge line inserted", line_id=str(line.id), group_id=str(line.group_id))
        return line

    async def delete_line(self, line: ChargeLine) -> None:
        try:
            await self.session.delete(line)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete charge line", line_id=str(line.id), error=str(e))
            raise ChargeRepositoryError("Failed to delete charge line") from e

    async def list_lines(
        self,
        group_id: Optional[uuid.UUID] = None,
        side: Optional[ChargeSide] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: ChargeSortField = ChargeSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> tuple[list[ChargeLine], int]:
        """
        List lines with filters and pagination, ``createdAt desc`` by default.

        Returns:
            Tuple of (lines, total count)
        """
        conditions = []
        if group_id:
            conditions.append(ChargeLine.group_id == group_id)
        if side:
            conditions.append(ChargeLine.side == side)

        count_result = await self._execute(
            select(func.count()).select_from(ChargeLine).where(*conditions),
            "count charge lines",
        )
        result = await self._execute(
            select(ChargeLine)
            .where(*conditions)
            .order_by(_sort_clause(ChargeLine, sort_by, sort_order))
            .offset((page - 1) * page_size)
            .limit(page_size),
            "list charge lines",
        )
        return list(result.scalars().all()), count_result.scalar_one()

    # Aggregates

    async def order_side_totals(self, order_id: uuid.UUID) -> dict[ChargeSide, Any]:
        """Sum of line amounts per side across every group of an order."""
        result = await self._execute(
            select(ChargeLine.side, func.coalesce(func.sum(ChargeLine.amount), 0))
            .join(ChargeGroup, ChargeGroup.id == ChargeLine.group_id)
            .where(ChargeGroup.order_id == order_id)
            .group_by(ChargeLine.side),
            "sum order charges",
            order_id=str(order_id),
        )
        totals = {ChargeSide.SALES: 0, ChargeSide.PURCHASE: 0}
        for side, amount in result.all():
            totals[side] = amount
        return totals

    async def group_totals_for_orders(self, order_ids: list[uuid.UUID]) -> list[Any]:
        """One row per group of the given orders with sales and purchase sums."""
        sales_sum = func.coalesce(
            func.sum(case((ChargeLine.side == ChargeSide.SALES, ChargeLine.amount), else_=0)),
            0,
        )
        purchase_sum = func.coalesce(
            func.sum(case((ChargeLine.side == ChargeSide.PURCHASE, ChargeLine.amount), else_=0)),
            0,
        )
        result = await self._execute(
            select(
                ChargeGroup.id.label("group_id"),
                ChargeGroup.order_id,
                ChargeGroup.stage,
                ChargeGroup.reason,
                ChargeGroup.is_locked,
                sales_sum.label("sales_amount"),
                purchase_sum.label("purchase_amount"),
            )
            .outerjoin(ChargeLine, ChargeLine.group_id == ChargeGroup.id)
            .where(ChargeGroup.order_id.in_(order_ids))
            .group_by(ChargeGroup.id)
            .order_by(ChargeGroup.created_at),
            "summarize order charges",
        )
        return list(result.all())
