"""
Dispatch API endpoints.

Read, patch, close and delete a dispatch, and preview the sales or
purchase invoice derived from its charge lines.
"""

from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.core.logging import get_logger
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.schemas.dispatch import (
    CloseDispatchResponse,
    DispatchDetailResponse,
    DispatchFieldsUpdateRequest,
    DispatchResponse,
)
from brokerage.schemas.orders import OrderResponse
from brokerage.schemas.settlement import SettlementSummaryResponse
from brokerage.services.charges.enums import ChargeSide
from brokerage.services.dispatch.service import DispatchService
from brokerage.services.orders.service import OrderService
from brokerage.services.settlement.summary import SettlementSummaryService

logger = get_logger(__name__)

router = APIRouter(prefix="/dispatches", tags=["dispatches"])


async def dispatch_detail(db: AsyncSession, dispatch: OrderDispatch) -> DispatchDetailResponse:
    """Dispatch joined with its order, read through the session identity map."""
    order = await OrderService(db).get_order(dispatch.order_id)
    return DispatchDetailResponse(
        **DispatchResponse.model_validate(dispatch).model_dump(),
        order=OrderResponse.model_validate(order),
    )


@router.get(
    "/{dispatch_id}",
    response_model=DispatchDetailResponse,
    summary="Get dispatch",
)
async def get_dispatch(
    dispatch_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> DispatchDetailResponse:
    dispatch = await DispatchService(db).get_dispatch(dispatch_id)
    return await dispatch_detail(db, dispatch)


@router.patch(
    "/{dispatch_id}",
    response_model=DispatchDetailResponse,
    summary="Patch dispatch",
)
@router.patch(
    "/{dispatch_id}/fields",
    response_model=DispatchDetailResponse,
    summary="Patch dispatch fields",
    description=(
        "Apply an allow-listed field patch. A new brokerFlowStatus is mirrored "
        "to the order in the same transaction"
    ),
)
async def update_dispatch_fields(
    dispatch_id: UUID,
    request: DispatchFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> DispatchDetailResponse:
    dispatch = await DispatchService(db).update_dispatch_fields(
        dispatch_id, request.fields, actor, reason=request.reason
    )
    return await dispatch_detail(db, dispatch)


@router.patch(
    "/{dispatch_id}/close",
    response_model=CloseDispatchResponse,
    summary="Close dispatch for settlement",
)
async def close_dispatch(
    dispatch_id: UUID, actor: WriterActor, db: DatabaseSession
) -> CloseDispatchResponse:
    dispatch, closed_now = await DispatchService(db).close_dispatch(dispatch_id, actor)
    return CloseDispatchResponse(
        dispatch_id=dispatch.id,
        is_closed=dispatch.is_closed,
        message="배차가 마감되었습니다" if closed_now else "이미 마감된 배차입니다",
    )


@router.delete(
    "/{dispatch_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete dispatch",
)
async def delete_dispatch(dispatch_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await DispatchService(db).delete_dispatch(dispatch_id, actor)


@router.get(
    "/{dispatch_id}/sales-summary",
    response_model=SettlementSummaryResponse,
    summary="Sales invoice preview",
)
async def sales_summary(
    dispatch_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> SettlementSummaryResponse:
    summary = await SettlementSummaryService(db).generate(dispatch_id, ChargeSide.SALES)
    return SettlementSummaryResponse.model_validate(summary)


@router.get(
    "/{dispatch_id}/purchase-summary",
    response_model=SettlementSummaryResponse,
    summary="Purchase invoice preview",
)
async def purchase_summary(
    dispatch_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> SettlementSummaryResponse:
    summary = await SettlementSummaryService(db).generate(dispatch_id, ChargeSide.PURCHASE)
    return SettlementSummaryResponse.model_validate(summary)
