"""
Driver API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.schemas.common import Page
from brokerage.schemas.entities import (
    DriverCreate,
    DriverResponse,
    EntityFieldsUpdateRequest,
)
from brokerage.services.entities.service import DriverService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register driver",
)
async def create_driver(
    request: DriverCreate, actor: WriterActor, db: DatabaseSession
) -> DriverResponse:
    driver = await DriverService(db).create(request, actor)
    return DriverResponse.model_validate(driver)


@router.get(
    "",
    response_model=Page[DriverResponse],
    summary="List drivers",
)
async def list_drivers(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    keyword: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[DriverResponse]:
    rows, total = await DriverService(db).list_drivers(
        company_id=company_id,
        is_active=is_active,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )
    return Page[DriverResponse].build(
        [DriverResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get("/{driver_id}", response_model=DriverResponse, summary="Get driver")
async def get_driver(driver_id: UUID, actor: CurrentActor, db: DatabaseSession) -> DriverResponse:
    driver = await DriverService(db).get(driver_id)
    return DriverResponse.model_validate(driver)


@router.patch("/{driver_id}/fields", response_model=DriverResponse, summary="Patch driver fields")
async def update_driver_fields(
    driver_id: UUID,
    request: EntityFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> DriverResponse:
    driver = await DriverService(db).update_fields(
        driver_id, request.fields, actor, reason=request.reason
    )
    return DriverResponse.model_validate(driver)


@router.delete("/{driver_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete driver")
async def delete_driver(driver_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await DriverService(db).delete(driver_id, actor)
