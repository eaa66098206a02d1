"""
User API endpoints.

Account creation, status changes and deletion are limited to admins.
Password hashes never appear in responses.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor, require_access
from brokerage.core.actor import AccessLevel, Actor
from brokerage.core.logging import get_logger
from brokerage.database.models.user import UserStatus
from brokerage.schemas.audit import ChangeLogResponse
from brokerage.schemas.common import Page
from brokerage.schemas.entities import (
    EntityFieldsUpdateRequest,
    UserCreate,
    UserResponse,
    UserStatusResponse,
    UserStatusUpdate,
)
from brokerage.services.audit.enums import EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.entities.service import UserService

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

AdminActor = Annotated[
    Actor,
    Depends(
        require_access(
            AccessLevel.PLATFORM_ADMIN,
            AccessLevel.BROKER_ADMIN,
            AccessLevel.SHIPPER_ADMIN,
        )
    ),
]


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
)
async def create_user(request: UserCreate, actor: AdminActor, db: DatabaseSession) -> UserResponse:
    user = await UserService(db).create(request, actor)
    return UserResponse.model_validate(user)


@router.get(
    "",
    response_model=Page[UserResponse],
    summary="List users",
)
async def list_users(
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    keyword: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[UserResponse]:
    rows, total = await UserService(db).list_users(
        company_id=company_id,
        status=user_status,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )
    return Page[UserResponse].build(
        [UserResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user",
)
async def get_user(user_id: UUID, actor: CurrentActor, db: DatabaseSession) -> UserResponse:
    user = await UserService(db).get(user_id)
    return UserResponse.model_validate(user)


@router.patch(
    "/{user_id}/fields",
    response_model=UserResponse,
    summary="Patch user fields",
)
async def update_user_fields(
    user_id: UUID,
    request: EntityFieldsUpdateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> UserResponse:
    user = await UserService(db).update_fields(user_id, request.fields, actor, reason=request.reason)
    return UserResponse.model_validate(user)


@router.patch(
    "/{user_id}/status",
    response_model=UserStatusResponse,
    summary="Change user status",
    description="An unchanged status is not an error; the response says nothing changed",
)
async def update_user_status(
    user_id: UUID,
    request: UserStatusUpdate,
    actor: AdminActor,
    db: DatabaseSession,
) -> UserStatusResponse:
    user, changed = await UserService(db).update_status(
        user_id, request.status, actor, reason=request.reason
    )
    return UserStatusResponse(
        user=UserResponse.model_validate(user),
        changed=changed,
        message="사용자 상태가 변경되었습니다" if changed else "변경된 내용이 없습니다",
    )


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
)
async def delete_user(user_id: UUID, actor: AdminActor, db: DatabaseSession) -> None:
    await UserService(db).delete(user_id, actor)


@router.get(
    "/{user_id}/change-logs",
    response_model=Page[ChangeLogResponse],
    summary="User change history",
)
async def user_change_logs(
    user_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[ChangeLogResponse]:
    rows, total = await ChangeLogService(db).list_changes(
        EntityType.USER, user_id, page=page, page_size=page_size
    )
    return Page[ChangeLogResponse].build(
        [ChangeLogResponse.model_validate(row) for row in rows], total, page, page_size
    )
