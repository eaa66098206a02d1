"""
Charge ledger API endpoints.

Groups live at the collection root and under ``/groups``; lines under
``/lines``. Writes to a locked group are rejected with 403.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.core.logging import get_logger
from brokerage.schemas.charges import (
    ChargeGroupCreate,
    ChargeGroupResponse,
    ChargeGroupUpdate,
    ChargeLineCreate,
    ChargeLineResponse,
    ChargeLineUpdate,
)
from brokerage.schemas.common import Page
from brokerage.services.charges.enums import (
    ChargeReason,
    ChargeSide,
    ChargeSortField,
    ChargeStage,
    SortOrder,
)
from brokerage.services.charges.service import ChargeService

logger = get_logger(__name__)

router = APIRouter(prefix="/charges", tags=["charges"])


@router.get(
    "",
    response_model=Page[ChargeGroupResponse],
    summary="List charge groups",
)
async def list_groups(
    actor: CurrentActor,
    db: DatabaseSession,
    order_id: Optional[UUID] = Query(None, alias="orderId"),
    dispatch_id: Optional[UUID] = Query(None, alias="dispatchId"),
    stage: Optional[ChargeStage] = Query(None),
    reason: Optional[ChargeReason] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
    sort_by: ChargeSortField = Query(ChargeSortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
) -> Page[ChargeGroupResponse]:
    rows, total = await ChargeService(db).list_groups(
        order_id=order_id,
        dispatch_id=dispatch_id,
        stage=stage,
        reason=reason,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[ChargeGroupResponse].build(
        [ChargeGroupResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.post(
    "",
    response_model=ChargeGroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create charge group",
)
async def create_group(
    request: ChargeGroupCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ChargeGroupResponse:
    group = await ChargeService(db).create_group(request, actor)
    return ChargeGroupResponse.model_validate(group)


@router.get(
    "/groups/{group_id}",
    response_model=ChargeGroupResponse,
    summary="Get charge group with its lines",
)
async def get_group(group_id: UUID, actor: CurrentActor, db: DatabaseSession) -> ChargeGroupResponse:
    group = await ChargeService(db).get_group(group_id)
    return ChargeGroupResponse.model_validate(group)


@router.patch(
    "/groups/{group_id}",
    response_model=ChargeGroupResponse,
    summary="Update charge group",
    description="Patch stage, reason or description, or toggle the lock with isLocked",
)
async def update_group(
    group_id: UUID,
    request: ChargeGroupUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ChargeGroupResponse:
    group = await ChargeService(db).update_group(group_id, request, actor)
    return ChargeGroupResponse.model_validate(group)


@router.delete(
    "/groups/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete charge group",
)
async def delete_group(group_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await ChargeService(db).delete_group(group_id, actor)


@router.get(
    "/lines",
    response_model=Page[ChargeLineResponse],
    summary="List charge lines",
)
async def list_lines(
    actor: CurrentActor,
    db: DatabaseSession,
    group_id: Optional[UUID] = Query(None, alias="groupId"),
    side: Optional[ChargeSide] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
    sort_by: ChargeSortField = Query(ChargeSortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
) -> Page[ChargeLineResponse]:
    rows, total = await ChargeService(db).list_lines(
        group_id=group_id,
        side=side,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[ChargeLineResponse].build(
        [ChargeLineResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.post(
    "/lines",
    response_model=ChargeLineResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add charge line",
    description="Tax defaults from the rate, which defaults to the configured rate",
)
async def create_line(
    request: ChargeLineCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ChargeLineResponse:
    line = await ChargeService(db).create_line(request, actor)
    return ChargeLineResponse.model_validate(line)


@router.get(
    "/lines/{line_id}",
    response_model=ChargeLineResponse,
    summary="Get charge line",
)
async def get_line(line_id: UUID, actor: CurrentActor, db: DatabaseSession) -> ChargeLineResponse:
    line = await ChargeService(db).get_line(line_id)
    return ChargeLineResponse.model_validate(line)


@router.patch(
    "/lines/{line_id}",
    response_model=ChargeLineResponse,
    summary="Update charge line",
)
async def update_line(
    line_id: UUID,
    request: ChargeLineUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ChargeLineResponse:
    line = await ChargeService(db).update_line(line_id, request, actor)
    return ChargeLineResponse.model_validate(line)


@router.delete(
    "/lines/{line_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete charge line",
)
async def delete_line(line_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await ChargeService(db).delete_line(line_id, actor)
