"""
Dispatch data access repository.

``close`` is a compare-and-swap on ``is_closed`` so two concurrent closes
cannot both succeed.
"""

import uuid
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ConflictError, InternalError, NotFoundError
from brokerage.core.logging import get_logger
from brokerage.database.models.dispatch import OrderDispatch

logger = get_logger(__name__)


class DispatchRepositoryError(InternalError):
    """Raised when a dispatch query fails."""

    pass


class DispatchNotFoundError(NotFoundError):
    def __init__(self, dispatch_id: uuid.UUID, **context):
        super().__init__("배차 정보를 찾을 수 없습니다", dispatch_id=str(dispatch_id), **context)


class DispatchConflictError(ConflictError):
    """Raised when an order already has a dispatch."""

    def __init__(self, order_id: uuid.UUID, **context):
        super().__init__(
            "이미 배차된 주문입니다",
            details={"orderId": str(order_id)},
            order_id=str(order_id),
            **context,
        )


class DispatchClosedError(ConflictError):
    """Raised when a closed dispatch is asked to change."""

    def __init__(self, dispatch_id: uuid.UUID, **context):
        super().__init__(
            "정산 마감된 배차입니다",
            details={"dispatchId": str(dispatch_id)},
            dispatch_id=str(dispatch_id),
            **context,
        )


class DispatchRepository:
    """
    Repository for dispatch data access operations.

    Attributes:
        session: Async database session
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, dispatch_id: uuid.UUID) -> Optional[OrderDispatch]:
        try:
            logger.debug("Fetching dispatch by ID", dispatch_id=str(dispatch_id))
            result = await self.session.execute(
                select(OrderDispatch).where(OrderDispatch.id == dispatch_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch dispatch", dispatch_id=str(dispatch_id), error=str(e))
            raise DispatchRepositoryError(
                "Failed to fetch dispatch",
                dispatch_id=str(dispatch_id),
            ) from e

    async def get_or_raise(self, dispatch_id: uuid.UUID) -> OrderDispatch:
        dispatch = await self.get_by_id(dispatch_id)
        if dispatch is None:
            raise DispatchNotFoundError(dispatch_id)
        return dispatch

    async def get_by_order_id(self, order_id: uuid.UUID) -> Optional[OrderDispatch]:
        try:
            result = await self.session.execute(
                select(OrderDispatch).where(OrderDispatch.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch dispatch by order", order_id=str(order_id), error=str(e))
            raise DispatchRepositoryError(
                "Failed to fetch dispatch",
                order_id=str(order_id),
            ) from e

    async def add(self, dispatch: OrderDispatch) -> OrderDispatch:
        try:
            self.session.add(dispatch)
            await self.session.flush()
        except IntegrityError as e:
            # unique(order_id) lost a race with another insert
            raise DispatchConflictError(dispatch.order_id) from e
        except SQLAlchemyError as e:
            logger.error("Failed to insert dispatch", order_id=str(dispatch.order_id), error=str(e))
            raise DispatchRepositoryError("Failed to create dispatch") from e
        logger.info(
            "Dispatch inserted",
            dispatch_id=str(dispatch.id),
            order_id=str(dispatch.order_id),
        )
        return dispatch

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to flush dispatch changes", error=str(e))
            raise DispatchRepositoryError("Failed to update dispatch") from e

    async def delete(self, dispatch: OrderDispatch) -> None:
        try:
            await self.session.delete(dispatch)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete dispatch", dispatch_id=str(dispatch.id), error=str(e))
            raise DispatchRepositoryError("Failed to delete dispatch") from e

    async def close(self, dispatch_id: uuid.UUID) -> bool:
        """
        Set ``is_closed`` if it is currently false.

        Returns:
            True if this call closed the dispatch, False if no open dispatch
            with that id exists
        """
        try:
            result = await self.session.execute(
                update(OrderDispatch)
                .where(OrderDispatch.id == dispatch_id, OrderDispatch.is_closed.is_(False))
                .values(is_closed=True, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to close dispatch", dispatch_id=str(dispatch_id), error=str(e))
            raise DispatchRepositoryError("Failed to close dispatch") from e
        return result.rowcount == 1
