"""
Company API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.core.actor import AccessLevel
from brokerage.core.logging import get_logger
from brokerage.database.models.company import CompanyStatus, CompanyType
from brokerage.database.models.user import UserStatus
from brokerage.schemas.audit import ChangeLogResponse
from brokerage.schemas.common import BatchResultResponse, Page
from brokerage.schemas.entities import (
    CompanyBatchStatusRequest,
    CompanyCreate,
    CompanyResponse,
    CompanyStatusUpdate,
    EntityFieldsUpdateRequest,
    UserResponse,
)
from brokerage.services.audit.enums import EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.entities.service import CompanyService, UserService

logger = get_logger(__name__)

router = APIRouter(prefix="/companies", tags=["companies"])


@router.post(
    "",
    response_model=CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register company",
)
async def create_company(
    request: CompanyCreate, actor: WriterActor, db: DatabaseSession
) -> CompanyResponse:
    company = await CompanyService(db).create(request, actor)
    return CompanyResponse.model_validate(company)


@router.get(
    "",
    response_model=Page[CompanyResponse],
    summary="List companies",
)
async def list_companies(
    actor: CurrentActor,
    db: DatabaseSession,
    company_type: Optional[CompanyType] = Query(None, alias="type"),
    company_status: Optional[CompanyStatus] = Query(None, alias="status"),
    keyword: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[CompanyResponse]:
    rows, total = await CompanyService(db).list_companies(
        company_type=company_type,
        status=company_status,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )
    return Page[CompanyResponse].build(
        [CompanyResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.post(
    "/batch-status",
    response_model=BatchResultResponse,
    summary="Change the status of several companies",
)
async def batch_update_status(
    request: CompanyBatchStatusRequest, actor: WriterActor, db: DatabaseSession
) -> BatchResultResponse:
    result = await CompanyService(db).batch_update_status(
        request.company_ids, request.status, actor, mode=request.mode, reason=request.reason
    )
    return BatchResultResponse(
        **result.to_dict(),
        message=f"{len(result.processed)} processed, {len(result.failed)} failed",
    )


@router.get(
    "/{company_id}",
    response_model=CompanyResponse,
    summary="Get company",
)
async def get_company(
    company_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> CompanyResponse:
    company = await CompanyService(db).get(company_id)
    return CompanyResponse.model_validate(company)


@router.get(
    "/{company_id}/users",
    response_model=Page[UserResponse],
    summary="Users of a company",
)
async def list_company_users(
    company_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    access_level: Optional[AccessLevel] = Query(None, alias="systemAccessLevel"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=200, alias="pageSize"),
) -> Page[UserResponse]:
    rows, total = await UserService(db).list_company_users(
        company_id,
        status=user_status,
        access_level=access_level,
        page=page,
        page_size=page_size,
    )
    return Page[UserResponse].build(
        [UserResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.patch(
    "/{company_id}/fields",
    response_model=CompanyResponse,
    summary="Patch company fields",
)
async def update_company_fields(
    company_id: UUID,
    request: EntityFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> CompanyResponse:
    company = await CompanyService(db).update_fields(
        company_id, request.fields, actor, reason=request.reason
    )
    return CompanyResponse.model_validate(company)


@router.patch(
    "/{company_id}/status",
    response_model=CompanyResponse,
    summary="Change company status",
)
async def update_company_status(
    company_id: UUID,
    request: CompanyStatusUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> CompanyResponse:
    company = await CompanyService(db).update_status(
        company_id, request.status, actor, reason=request.reason
    )
    return CompanyResponse.model_validate(company)


@router.delete(
    "/{company_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete company",
)
async def delete_company(company_id: UUID, actor: WriterActor, db: DatabaseSession) -> None:
    await CompanyService(db).delete(company_id, actor)


@router.get(
    "/{company_id}/change-logs",
    response_model=Page[ChangeLogResponse],
    summary="Company change history",
)
async def company_change_logs(
    company_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[ChangeLogResponse]:
    rows, total = await ChangeLogService(db).list_changes(
        EntityType.COMPANY, company_id, page=page, page_size=page_size
    )
    return Page[ChangeLogResponse].build(
        [ChangeLogResponse.model_validate(row) for row in rows], total, page, page_size
    )
