"""
Order data access repository.

Queries run in the caller's session and transaction. Database failures are
wrapped in ``OrderRepositoryError``; rollback is left to the session scope so
batch savepoints stay intact.
"""

import uuid
from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import InternalError, NotFoundError
from brokerage.core.logging import get_logger
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.database.models.order import Order
from brokerage.services.charges.enums import SortOrder
from brokerage.services.orders.enums import (
    OrderBoardSortField,
    OrderFlowStatus,
    VehicleType,
    VehicleWeight,
)

logger = get_logger(__name__)

# Rows scanned before de-duplicating recent cargo and addresses
RECENT_SCAN_LIMIT = 200

_BOARD_SORT_COLUMNS = {
    OrderBoardSortField.CREATED_AT: Order.created_at,
    OrderBoardSortField.UPDATED_AT: Order.updated_at,
    OrderBoardSortField.PICKUP_DATE: Order.pickup_date,
    OrderBoardSortField.DISPATCH_UPDATED_AT: OrderDispatch.updated_at,
}


class OrderRepositoryError(InternalError):
    """Raised when an order query fails."""

    pass


class OrderNotFoundError(NotFoundError):
    """Raised when an order does not exist."""

    def __init__(self, order_id: uuid.UUID | str, **context):
        super().__init__("주문을 찾을 수 없습니다", order_id=str(order_id), **context)
        self.order_id = order_id


class OrderRepository:
    """
    Repository for order data access operations.

    Attributes:
        session: Async database session
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, order: Order) -> Order:
        try:
            self.session.add(order)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to insert order", error=str(e))
            raise OrderRepositoryError("Failed to create order", error=str(e)) from e
        logger.info("Order inserted", order_id=str(order.id))
        return order

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to flush order changes", error=str(e))
            raise OrderRepositoryError("Failed to update order", error=str(e)) from e

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get order by ID.

        Returns:
            Order if found, None otherwise
        """
        try:
            logger.debug("Fetching order by ID", order_id=str(order_id))
            result = await self.session.execute(select(Order).where(Order.id == order_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
            ) from e

    async def get_or_raise(self, order_id: uuid.UUID) -> Order:
        order = await self.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_for_update(self, order_id: uuid.UUID) -> Order:
        """Fetch an order with a row lock held until the transaction ends."""
        try:
            result = await self.session.execute(
                select(Order).where(Order.id == order_id).with_for_update()
            )
            order = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to lock order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError("Failed to fetch order", order_id=str(order_id)) from e
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def find_missing_ids(self, order_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
        """Return the ids in ``order_ids`` that have no order row."""
        if not order_ids:
            return []
        try:
            result = await self.session.execute(
                select(Order.id).where(Order.id.in_(order_ids))
            )
            existing = set(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to check order ids", error=str(e))
            raise OrderRepositoryError("Failed to check order ids") from e
        return [order_id for order_id in order_ids if order_id not in existing]

    async def list_orders(
        self,
        company_id: Optional[uuid.UUID] = None,
        flow_status: Optional[OrderFlowStatus] = None,
        is_canceled: Optional[bool] = None,
        pickup_from: Optional[date] = None,
        pickup_to: Optional[date] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        """
        List orders with filters and pagination, newest first.

        Returns:
            Tuple of (orders, total count)
        """
        conditions = []
        if company_id:
            conditions.append(Order.company_id == company_id)
        if flow_status:
            conditions.append(Order.flow_status == flow_status)
        if is_canceled is not None:
            conditions.append(Order.is_canceled == is_canceled)
        if pickup_from:
            conditions.append(Order.pickup_date >= pickup_from)
        if pickup_to:
            conditions.append(Order.pickup_date <= pickup_to)
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(
                or_(
                    Order.cargo_name.ilike(pattern),
                    Order.memo.ilike(pattern),
                )
            )

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Order).where(*conditions)
            )
            result = await self.session.execute(
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            orders = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e))
            raise OrderRepositoryError("Failed to list orders", error=str(e)) from e

        logger.debug("Orders listed", count=len(orders), total=total)
        return orders, total or 0

    async def list_with_dispatch(
        self,
        company_id: Optional[uuid.UUID] = None,
        flow_status: Optional[OrderFlowStatus] = None,
        vehicle_type: Optional[VehicleType] = None,
        vehicle_weight: Optional[VehicleWeight] = None,
        pickup_region: Optional[str] = None,
        delivery_region: Optional[str] = None,
        pickup_from: Optional[date] = None,
        pickup_to: Optional[date] = None,
        keyword: Optional[str] = None,
        has_dispatch: Optional[bool] = None,
        sort_by: OrderBoardSortField = OrderBoardSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        """
        List orders left-joined with their dispatch for the broker board.

        ``has_dispatch=True`` keeps dispatched orders whose dispatch is still
        open; ``False`` keeps orders nobody has accepted yet. The dispatch is
        reachable through ``Order.dispatch``.

        Returns:
            Tuple of (orders, total count)
        """
        conditions = []
        if company_id:
            conditions.append(Order.company_id == company_id)
        if flow_status:
            conditions.append(Order.flow_status == flow_status)
        if vehicle_type:
            conditions.append(Order.requested_vehicle_type == vehicle_type)
        if vehicle_weight:
            conditions.append(Order.requested_vehicle_weight == vehicle_weight)
        if pickup_region:
            conditions.append(
                Order.pickup_address_snapshot["roadAddress"].astext.ilike(f"%{pickup_region}%")
            )
        if delivery_region:
            conditions.append(
                Order.delivery_address_snapshot["roadAddress"].astext.ilike(f"%{delivery_region}%")
            )
        if pickup_from:
            conditions.append(Order.pickup_date >= pickup_from)
        if pickup_to:
            conditions.append(Order.pickup_date <= pickup_to)
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(
                or_(
                    Order.cargo_name.ilike(pattern),
                    Order.pickup_address_snapshot["name"].astext.ilike(pattern),
                    Order.delivery_address_snapshot["name"].astext.ilike(pattern),
                    Order.pickup_address_snapshot["roadAddress"].astext.ilike(pattern),
                    Order.delivery_address_snapshot["roadAddress"].astext.ilike(pattern),
                )
            )
        if has_dispatch is True:
            conditions.append(OrderDispatch.id.is_not(None))
            conditions.append(OrderDispatch.is_closed.is_(False))
        elif has_dispatch is False:
            conditions.append(OrderDispatch.id.is_(None))

        column = _BOARD_SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_order is SortOrder.ASC else column.desc()
        joined = select(Order).outerjoin(OrderDispatch, OrderDispatch.order_id == Order.id)

        try:
            total = await self.session.scalar(
                select(func.count())
                .select_from(Order)
                .outerjoin(OrderDispatch, OrderDispatch.order_id == Order.id)
                .where(*conditions)
            )
            result = await self.session.execute(
                joined.where(*conditions)
                .order_by(ordering.nulls_last(), Order.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            orders = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list orders with dispatch", error=str(e))
            raise OrderRepositoryError("Failed to list orders", error=str(e)) from e

        logger.debug("Order board listed", count=len(orders), total=total)
        return orders, total or 0

    async def recent_orders(
        self,
        company_id: uuid.UUID,
        required_column: Any,
        limit: int = RECENT_SCAN_LIMIT,
    ) -> list[Order]:
        """Latest open orders of a company where ``required_column`` is set."""
        try:
            result = await self.session.execute(
                select(Order)
                .where(
                    Order.company_id == company_id,
                    Order.is_canceled.is_(False),
                    required_column.is_not(None),
                )
                .order_by(Order.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to fetch recent orders", company_id=str(company_id), error=str(e))
            raise OrderRepositoryError("Failed to fetch recent orders") from e
