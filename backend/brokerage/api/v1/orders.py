"""
Order lifecycle API endpoints.

Registration, listing, status transitions, allow-listed field patches,
bulk actions, dispatch acceptance, the broker order board, recent cargo,
payload pre-validation and per-order charge summaries. Domain
errors propagate to the application exception handlers, which choose the
HTTP status from the error kind.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.api.v1.dispatches import dispatch_detail
from brokerage.core.logging import get_logger
from brokerage.schemas.audit import ChangeLogResponse
from brokerage.schemas.common import BatchResultResponse, Page
from brokerage.schemas.dispatch import (
    AcceptDispatchesRequest,
    AcceptDispatchesResponse,
    CreateDispatchRequest,
    DispatchDetailResponse,
    DispatchResponse,
    OrderBoardItem,
)
from brokerage.schemas.orders import (
    ChargeSummaryRequest,
    OrderBatchRequest,
    OrderChargeSummary,
    OrderCreateRequest,
    OrderFieldsUpdateRequest,
    OrderResponse,
    OrderStatusUpdateRequest,
    OrderValidationResponse,
    RecentCargoResponse,
    StatusChangeResponse,
)
from brokerage.services.audit.enums import EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.charges.enums import SortOrder
from brokerage.services.charges.service import ChargeService
from brokerage.services.dispatch.service import DispatchService
from brokerage.services.orders.enums import (
    OrderBoardSortField,
    OrderFlowStatus,
    VehicleType,
    VehicleWeight,
)
from brokerage.services.orders.service import OrderService

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register order",
    description="Register a shipper order at 운송요청 with company, contact and address snapshots",
)
async def create_order(
    request: OrderCreateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> OrderResponse:
    order = await OrderService(db).create_order(request, actor)
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=Page[OrderResponse],
    summary="List orders",
)
async def list_orders(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    flow_status: Optional[OrderFlowStatus] = Query(None, alias="flowStatus"),
    is_canceled: Optional[bool] = Query(None, alias="isCanceled"),
    pickup_from: Optional[date] = Query(None, alias="pickupFrom"),
    pickup_to: Optional[date] = Query(None, alias="pickupTo"),
    keyword: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[OrderResponse]:
    rows, total = await OrderService(db).list_orders(
        company_id=company_id,
        flow_status=flow_status,
        is_canceled=is_canceled,
        pickup_from=pickup_from,
        pickup_to=pickup_to,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )
    return Page[OrderResponse].build(
        [OrderResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.post(
    "/batch",
    response_model=BatchResultResponse,
    summary="Bulk order action",
    description="Cancel, soft-delete or change the status of several orders",
)
async def batch_orders(
    request: OrderBatchRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> BatchResultResponse:
    logger.info(
        "Order batch requested",
        action=request.action.value,
        mode=request.mode.value,
        order_count=len(request.order_ids),
        actor_id=str(actor.id),
    )
    result = await OrderService(db).batch(
        request.order_ids,
        request.action,
        actor,
        flow_status=request.flow_status,
        mode=request.mode,
        reason=request.reason,
    )
    return BatchResultResponse(
        **result.to_dict(),
        message=f"{len(result.processed)} processed, {len(result.failed)} failed",
    )


@router.post(
    "/accept-dispatches",
    response_model=AcceptDispatchesResponse,
    summary="Accept orders for dispatch",
    description="Create pending dispatches for several orders on behalf of the actor's broker company",
)
async def accept_dispatches(
    request: AcceptDispatchesRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> AcceptDispatchesResponse:
    summary, result = await DispatchService(db).accept_dispatches(
        request.order_ids,
        actor,
        agreed_freight_cost=request.agreed_freight_cost,
        assigned_vehicle_type=request.assigned_vehicle_type,
        assigned_vehicle_weight=request.assigned_vehicle_weight,
        broker_memo=request.broker_memo,
        mode=request.mode,
    )
    batch = result.to_dict()
    return AcceptDispatchesResponse(
        updated_orders=summary["updated_orders"],
        inserted_dispatches=summary["inserted_dispatches"],
        failed=batch["failed"],
        errors=batch["errors"],
    )


@router.post(
    "/charge-summary",
    response_model=list[OrderChargeSummary],
    summary="Charge summaries for several orders",
)
async def charge_summaries(
    request: ChargeSummaryRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> list[OrderChargeSummary]:
    summaries = await ChargeService(db).get_order_charge_summary(request.order_ids)
    return [OrderChargeSummary.model_validate(summary) for summary in summaries]


@router.post(
    "/validate",
    response_model=OrderValidationResponse,
    summary="Validate order payload",
    description="Run the registration checks without creating the order",
)
async def validate_order(
    request: OrderCreateRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> OrderValidationResponse:
    payload = await OrderService(db).validate_order(request, actor)
    return OrderValidationResponse(message="화물 데이터가 유효합니다.", data=payload)


@router.get(
    "/recent",
    response_model=list[RecentCargoResponse],
    summary="Recently registered cargo",
    description="Distinct cargo and vehicle combinations from a company's latest open orders",
)
async def recent_cargos(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: UUID = Query(..., alias="companyId"),
    limit: int = Query(5, ge=1, le=20),
) -> list[RecentCargoResponse]:
    cargos = await OrderService(db).recent_cargos(company_id, limit=limit)
    return [RecentCargoResponse.model_validate(cargo) for cargo in cargos]


@router.get(
    "/with-dispatch",
    response_model=Page[OrderBoardItem],
    summary="Broker order board",
    description="Orders joined with their dispatch and charge totals",
)
async def list_orders_with_dispatch(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    flow_status: Optional[OrderFlowStatus] = Query(None, alias="flowStatus"),
    vehicle_type: Optional[VehicleType] = Query(None, alias="vehicleType"),
    vehicle_weight: Optional[VehicleWeight] = Query(None, alias="vehicleWeight"),
    pickup_region: Optional[str] = Query(None, alias="pickupRegion", max_length=100),
    delivery_region: Optional[str] = Query(None, alias="deliveryRegion", max_length=100),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    keyword: Optional[str] = Query(None, max_length=100),
    has_dispatch: Optional[bool] = Query(None, alias="hasDispatch"),
    sort_by: OrderBoardSortField = Query(OrderBoardSortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[OrderBoardItem]:
    rows, total = await OrderService(db).list_with_dispatch(
        company_id=company_id,
        flow_status=flow_status,
        vehicle_type=vehicle_type,
        vehicle_weight=vehicle_weight,
        pickup_region=pickup_region,
        delivery_region=delivery_region,
        pickup_from=start_date,
        pickup_to=end_date,
        keyword=keyword,
        has_dispatch=has_dispatch,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    summaries = {}
    if rows:
        charges = await ChargeService(db).get_order_charge_summary([row.id for row in rows])
        summaries = {summary["order_id"]: summary for summary in charges}

    items = [
        OrderBoardItem(
            order=OrderResponse.model_validate(row),
            dispatch=DispatchResponse.model_validate(row.dispatch) if row.dispatch else None,
            charge=OrderChargeSummary.model_validate(summaries[row.id]),
        )
        for row in rows
    ]
    return Page[OrderBoardItem].build(items, total, page, page_size)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(order_id: UUID, actor: CurrentActor, db: DatabaseSession) -> OrderResponse:
    order = await OrderService(db).get_order(order_id)
    return OrderResponse.model_validate(order)


@router.put(
    "/{order_id}/status",
    response_model=StatusChangeResponse,
    summary="Change order status",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> StatusChangeResponse:
    result = await OrderService(db).update_status(
        order_id, request.flow_status, actor, reason=request.reason
    )
    return StatusChangeResponse.model_validate(result)


@router.patch(
    "/{order_id}/fields",
    response_model=OrderResponse,
    summary="Patch order fields",
    description="Apply an allow-listed camelCase field patch; unknown keys are rejected",
)
async def update_order_fields(
    order_id: UUID,
    request: OrderFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> OrderResponse:
    order = await OrderService(db).update_fields(
        order_id, request.fields, actor, reason=request.reason
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/dispatch",
    response_model=DispatchDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Dispatch order",
    description="Assign a driver and vehicle; the order and dispatch move to 배차완료",
)
async def create_dispatch(
    order_id: UUID,
    request: CreateDispatchRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> DispatchDetailResponse:
    dispatch = await DispatchService(db).create_dispatch(order_id, request, actor)
    return await dispatch_detail(db, dispatch)


@router.get(
    "/{order_id}/charge-summary",
    response_model=OrderChargeSummary,
    summary="Charge summary for one order",
)
async def charge_summary(
    order_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> OrderChargeSummary:
    await OrderService(db).get_order(order_id)
    summaries = await ChargeService(db).get_order_charge_summary([order_id])
    return OrderChargeSummary.model_validate(summaries[0])


@router.get(
    "/{order_id}/change-logs",
    response_model=Page[ChangeLogResponse],
    summary="Order change history",
)
async def order_change_logs(
    order_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[ChangeLogResponse]:
    rows, total = await ChangeLogService(db).list_changes(
        EntityType.ORDER, order_id, page=page, page_size=page_size
    )
    return Page[ChangeLogResponse].build(
        [ChangeLogResponse.model_validate(row) for row in rows], total, page, page_size
    )
