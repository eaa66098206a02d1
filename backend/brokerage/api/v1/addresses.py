"""
Address book API endpoints.

Deleting an address is a soft delete; orders keep their address snapshots.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.database.models.address import AddressType
from brokerage.schemas.audit import ChangeLogResponse
from brokerage.schemas.common import BatchResultResponse, Page
from brokerage.schemas.entities import (
    AddressBatchRequest,
    AddressCreate,
    AddressResponse,
    EntityFieldsUpdateRequest,
    RecentAddressResponse,
)
from brokerage.services.audit.enums import EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.entities.service import AddressService
from brokerage.services.orders.enums import RecentAddressKind
from brokerage.services.orders.service import OrderService

router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.post(
    "",
    response_model=AddressResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register address",
)
async def create_address(
    request: AddressCreate, actor: WriterActor, db: DatabaseSession
) -> AddressResponse:
    address = await AddressService(db).create(request, actor)
    return AddressResponse.model_validate(address)


@router.get(
    "",
    response_model=Page[AddressResponse],
    summary="List addresses",
    description="A load or drop type filter also returns addresses usable for either",
)
async def list_addresses(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    address_type: Optional[AddressType] = Query(None, alias="type"),
    keyword: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[AddressResponse]:
    rows, total = await AddressService(db).list_addresses(
        company_id=company_id,
        address_type=address_type,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )
    return Page[AddressResponse].build(
        [AddressResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get(
    "/frequent",
    response_model=Page[AddressResponse],
    summary="Frequently used addresses",
)
async def list_frequent_addresses(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[AddressResponse]:
    rows, total = await AddressService(db).list_frequent(
        company_id=company_id, page=page, page_size=page_size
    )
    return Page[AddressResponse].build(
        [AddressResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get(
    "/recent",
    response_model=list[RecentAddressResponse],
    summary="Recently used addresses",
    description="Pickup or delivery locations from the actor's company's latest open orders",
)
async def list_recent_addresses(
    actor: CurrentActor,
    db: DatabaseSession,
    kind: RecentAddressKind = Query(..., alias="type"),
    limit: int = Query(10, ge=1, le=20),
) -> list[RecentAddressResponse]:
    addresses = await OrderService(db).recent_addresses(actor, kind, limit=limit)
    return [RecentAddressResponse.model_validate(address) for address in addresses]


@router.post(
    "/batch",
    response_model=BatchResultResponse,
    summary="Bulk address action",
    description="Soft-delete several addresses or set or clear their frequent flag",
)
async def batch_addresses(
    request: AddressBatchRequest, actor: WriterActor, db: DatabaseSession
) -> BatchResultResponse:
    result = await AddressService(db).batch(
        request.address_ids, request.action, actor, mode=request.mode
    )
    return BatchResultResponse(
        **result.to_dict(),
        message=f"{len(result.processed)} processed, {len(result.failed)} failed",
    )


@router.get("/{address_id}", response_model=AddressResponse, summary="Get address")
async def get_address(
    address_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> AddressResponse:
    address = await AddressService(db).get(address_id)
    return AddressResponse.model_validate(address)


@router.patch(
    "/{address_id}/fields",
    response_model=AddressResponse,
    summary="Patch address fields",
)
async def update_address_fields(
    address_id: UUID,
    request: EntityFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> AddressResponse:
    address = await AddressService(db).update_fields(
        address_id, request.fields, actor, reason=request.reason
    )
    return AddressResponse.model_validate(address)


@router.delete(
    "/{address_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete address",
)
async def delete_address(address_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await AddressService(db).delete(address_id, actor)


@router.get(
    "/{address_id}/change-logs",
    response_model=Page[ChangeLogResponse],
    summary="Address change history",
)
async def address_change_logs(
    address_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[ChangeLogResponse]:
    rows, total = await ChangeLogService(db).list_changes(
        EntityType.ADDRESS, address_id, page=page, page_size=page_size
    )
    return Page[ChangeLogResponse].build(
        [ChangeLogResponse.model_validate(row) for row in rows], total, page, page_size
    )
