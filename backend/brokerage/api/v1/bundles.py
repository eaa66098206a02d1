"""
Settlement bundle API endpoints.

Routes are scoped by ``kind`` (sales or purchase). Every item or
adjustment change recomputes the bundle totals before responding.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.core.logging import get_logger
from brokerage.schemas.bundles import (
    AdjustmentCreate,
    AdjustmentResponse,
    AdjustmentUpdate,
    BundleCreate,
    BundleFieldsUpdateRequest,
    BundleOrderRow,
    BundleResponse,
    ItemAdjustmentResponse,
)
from brokerage.schemas.common import Page
from brokerage.services.settlement.bundles import BundleService
from brokerage.services.settlement.enums import BundleKind, BundleStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/bundles/{kind}", tags=["bundles"])


@router.post(
    "",
    response_model=BundleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create settlement bundle",
    description="Bundle draft invoices for a company; the invoices move to issued",
)
async def create_bundle(
    kind: BundleKind,
    request: BundleCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> BundleResponse:
    bundle = await BundleService(db, kind).create_bundle(request, actor)
    return BundleResponse.model_validate(bundle)


@router.get(
    "",
    response_model=Page[BundleResponse],
    summary="List settlement bundles",
)
async def list_bundles(
    kind: BundleKind,
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    bundle_status: Optional[BundleStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[BundleResponse]:
    rows, total = await BundleService(db, kind).list_bundles(
        company_id=company_id, status=bundle_status, page=page, page_size=page_size
    )
    return Page[BundleResponse].build(
        [BundleResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get(
    "/{bundle_id}",
    response_model=BundleResponse,
    summary="Get settlement bundle",
)
async def get_bundle(
    kind: BundleKind, bundle_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> BundleResponse:
    bundle = await BundleService(db, kind).get_bundle(bundle_id)
    return BundleResponse.model_validate(bundle)


@router.patch(
    "/{bundle_id}/fields",
    response_model=BundleResponse,
    summary="Patch settlement bundle fields",
)
async def update_bundle_fields(
    kind: BundleKind,
    bundle_id: UUID,
    request: BundleFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> BundleResponse:
    bundle = await BundleService(db, kind).update_bundle_fields(bundle_id, request.fields, actor)
    return BundleResponse.model_validate(bundle)


@router.delete(
    "/{bundle_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete settlement bundle",
    description="Release the bundled invoices back to draft",
)
async def delete_bundle(
    kind: BundleKind, bundle_id: UUID, actor: WriterActor, db: DatabaseSession
) -> None:
    await BundleService(db, kind).delete_bundle(bundle_id, actor)


@router.get(
    "/{bundle_id}/orders",
    response_model=list[BundleOrderRow],
    summary="Bundled orders",
)
async def list_bundle_orders(
    kind: BundleKind, bundle_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> list[BundleOrderRow]:
    rows = await BundleService(db, kind).list_bundle_orders(bundle_id)
    return [BundleOrderRow.model_validate(row) for row in rows]


# Bundle adjustments


@router.get(
    "/{bundle_id}/adjustments",
    response_model=list[AdjustmentResponse],
    summary="List bundle adjustments",
)
async def list_bundle_adjustments(
    kind: BundleKind, bundle_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> list[AdjustmentResponse]:
    rows = await BundleService(db, kind).list_bundle_adjustments(bundle_id)
    return [AdjustmentResponse.model_validate(row) for row in rows]


@router.post(
    "/{bundle_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add bundle adjustment",
)
async def add_bundle_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    request: AdjustmentCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> AdjustmentResponse:
    adjustment = await BundleService(db, kind).add_bundle_adjustment(bundle_id, request, actor)
    return AdjustmentResponse.model_validate(adjustment)


@router.patch(
    "/{bundle_id}/adjustments/{adjustment_id}",
    response_model=AdjustmentResponse,
    summary="Update bundle adjustment",
)
async def update_bundle_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    adjustment_id: UUID,
    request: AdjustmentUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> AdjustmentResponse:
    adjustment = await BundleService(db, kind).update_bundle_adjustment(
        bundle_id, adjustment_id, request, actor
    )
    return AdjustmentResponse.model_validate(adjustment)


@router.delete(
    "/{bundle_id}/adjustments/{adjustment_id}",
    response_model=BundleResponse,
    summary="Delete bundle adjustment",
)
async def delete_bundle_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    adjustment_id: UUID,
    actor: WriterActor,
    db: DatabaseSession,
) -> BundleResponse:
    bundle = await BundleService(db, kind).delete_bundle_adjustment(bundle_id, adjustment_id, actor)
    return BundleResponse.model_validate(bundle)


# Item adjustments


@router.get(
    "/{bundle_id}/items/{item_id}/adjustments",
    response_model=list[ItemAdjustmentResponse],
    summary="List item adjustments",
)
async def list_item_adjustments(
    kind: BundleKind,
    bundle_id: UUID,
    item_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> list[ItemAdjustmentResponse]:
    rows = await BundleService(db, kind).list_item_adjustments(bundle_id, item_id)
    return [ItemAdjustmentResponse.model_validate(row) for row in rows]


@router.post(
    "/{bundle_id}/items/{item_id}/adjustments",
    response_model=ItemAdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add item adjustment",
)
async def add_item_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    item_id: UUID,
    request: AdjustmentCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ItemAdjustmentResponse:
    adjustment = await BundleService(db, kind).add_item_adjustment(
        bundle_id, item_id, request, actor
    )
    return ItemAdjustmentResponse.model_validate(adjustment)


@router.patch(
    "/{bundle_id}/items/{item_id}/adjustments/{adjustment_id}",
    response_model=ItemAdjustmentResponse,
    summary="Update item adjustment",
)
async def update_item_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    item_id: UUID,
    adjustment_id: UUID,
    request: AdjustmentUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> ItemAdjustmentResponse:
    adjustment = await BundleService(db, kind).update_item_adjustment(
        bundle_id, item_id, adjustment_id, request, actor
    )
    return ItemAdjustmentResponse.model_validate(adjustment)


@router.delete(
    "/{bundle_id}/items/{item_id}/adjustments/{adjustment_id}",
    response_model=BundleResponse,
    summary="Delete item adjustment",
)
async def delete_item_adjustment(
    kind: BundleKind,
    bundle_id: UUID,
    item_id: UUID,
    adjustment_id: UUID,
    actor: WriterActor,
    db: DatabaseSession,
) -> BundleResponse:
    bundle = await BundleService(db, kind).delete_item_adjustment(
        bundle_id, item_id, adjustment_id, actor
    )
    return BundleResponse.model_validate(bundle)
