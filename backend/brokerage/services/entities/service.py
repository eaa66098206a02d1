"""
Company, user, driver and address services.

Every mutation goes through an allow-listed patch and is recorded in the
change log in the same transaction. Password hashes never leave the user
service: they are excluded from change log payloads and responses.
"""

import uuid
from typing import Any, Generic, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import AccessLevel, Actor
from brokerage.core.errors import check_allowed_fields
from brokerage.core.logging import get_logger
from brokerage.core.security import hash_password
from brokerage.database.models.address import Address, AddressType
from brokerage.database.models.company import Company, CompanyStatus, CompanyType
from brokerage.database.models.driver import Driver
from brokerage.database.models.user import User, UserStatus
from brokerage.schemas.entities import (
    AddressCreate,
    AddressFieldsPatch,
    CompanyCreate,
    CompanyFieldsPatch,
    DriverCreate,
    DriverFieldsPatch,
    UserCreate,
    UserFieldsPatch,
)
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.batch import BatchMode, BatchResult, run_batch
from brokerage.services.entities.enums import AddressBatchAction
from brokerage.services.entities.repository import (
    AddressRepository,
    CompanyRepository,
    DriverRepository,
    DuplicateEntityError,
    EntityRepository,
    ModelT,
    UserRepository,
)

logger = get_logger(__name__)

COMPANY_FIELD_ALLOWLIST = frozenset(
    {
        "name",
        "businessNumber",
        "ceoName",
        "type",
        "status",
        "addressLine",
        "phone",
        "email",
        "fax",
        "bankCode",
        "bankAccount",
        "bankAccountHolder",
        "memo",
    }
)

USER_FIELD_ALLOWLIST = frozenset(
    {"name", "phone", "companyId", "systemAccessLevel", "department", "position"}
)

DRIVER_FIELD_ALLOWLIST = frozenset(
    {
        "name",
        "phone",
        "vehicleNumber",
        "vehicleType",
        "vehicleWeight",
        "businessNumber",
        "companyId",
        "affiliation",
        "isActive",
        "bankCode",
        "bankAccount",
        "bankAccountHolder",
        "memo",
    }
)

ADDRESS_FIELD_ALLOWLIST = frozenset(
    {
        "name",
        "type",
        "roadAddress",
        "jibunAddress",
        "detailAddress",
        "postalCode",
        "contactName",
        "contactPhone",
        "extra",
        "memo",
        "isFrequent",
    }
)

_HIDDEN_COLUMNS = {"password_hash"}


def entity_data(entity: Any) -> dict[str, Any]:
    """Change log payload of an entity with hidden columns removed."""
    return {to_camel(key): value for key, value in entity.to_dict(exclude=_HIDDEN_COLUMNS).items()}


def diff_values(entity: Any, values: dict[str, Any]) -> dict[str, tuple[Any, Any]]:
    """Attributes whose value would actually change."""
    return {
        key: (getattr(entity, key), value)
        for key, value in values.items()
        if getattr(entity, key) != value
    }


class EntityService(Generic[ModelT]):
    """
    Shared create/read/patch/delete flow for the reference entities.

    Subclasses name the repository, change log entity type, allow-list and
    patch schema.
    """

    entity_type: EntityType
    repository_class: type[EntityRepository]
    allowlist: frozenset[str]
    patch_schema: type[BaseModel]

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = self.repository_class(session)
        self.change_logs = ChangeLogService(session)

    @property
    def entity_name(self) -> str:
        return self.repository.entity_name

    async def _create(self, entity: ModelT, actor: Actor) -> ModelT:
        entity.stamp_created(actor)
        await self.repository.add(entity)
        await self.change_logs.log_change(
            self.entity_type,
            entity.id,
            actor,
            ChangeType.CREATE,
            new_data=entity_data(entity),
        )
        logger.info(
            "Entity created",
            entity=self.entity_name,
            entity_id=str(entity.id),
            actor_id=str(actor.id),
        )
        return entity

    async def get(self, entity_id: uuid.UUID) -> ModelT:
        return await self.repository.get_or_raise(entity_id)

    async def _list(
        self, conditions: list[Any], page: int, page_size: int
    ) -> tuple[list[ModelT], int]:
        return await self.repository.list_rows(conditions, page=page, page_size=page_size)

    async def _apply(
        self,
        entity: ModelT,
        values: dict[str, Any],
        actor: Actor,
        change_type: ChangeType,
        reason: Optional[str],
    ) -> dict[str, tuple[Any, Any]]:
        changed = diff_values(entity, values)
        if not changed:
            logger.debug("Patch changed nothing", entity=self.entity_name, entity_id=str(entity.id))
            return changed

        for key, (_, value) in changed.items():
            setattr(entity, key, value)
        entity.stamp_updated(actor)
        await self.repository.flush()

        await self.change_logs.log_change(
            self.entity_type,
            entity.id,
            actor,
            change_type,
            old_data={to_camel(key): old for key, (old, _) in changed.items()},
            new_data={to_camel(key): new for key, (_, new) in changed.items()},
            reason=reason,
        )
        logger.info(
            "Entity updated",
            entity=self.entity_name,
            entity_id=str(entity.id),
            fields=sorted(changed),
            actor_id=str(actor.id),
        )
        return changed

    async def update_fields(
        self,
        entity_id: uuid.UUID,
        fields: dict[str, Any],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> ModelT:
        """
        Raises:
            InvalidFieldsError: If the patch contains keys outside the allow-list
            EntityNotFoundError: If the entity does not exist
            DuplicateEntityError: If a unique column collides
        """
        check_allowed_fields(fields, self.allowlist, entity=self.entity_name)
        values = self.patch_schema.model_validate(fields).model_dump(exclude_unset=True)
        entity = await self.repository.get_or_raise(entity_id)
        await self._apply(entity, values, actor, ChangeType.UPDATE, reason)
        return entity

    async def delete(self, entity_id: uuid.UUID, actor: Actor) -> None:
        entity = await self.repository.get_or_raise(entity_id)
        old_data = entity_data(entity)
        await self.repository.delete(entity)
        await self.change_logs.log_change(
            self.entity_type, entity_id, actor, ChangeType.DELETE, old_data=old_data
        )
        logger.info(
            "Entity deleted", entity=self.entity_name, entity_id=str(entity_id), actor_id=str(actor.id)
        )


class CompanyService(EntityService[Company]):
    entity_type = EntityType.COMPANY
    repository_class = CompanyRepository
    allowlist = COMPANY_FIELD_ALLOWLIST
    patch_schema = CompanyFieldsPatch

    async def create(self, payload: CompanyCreate, actor: Actor) -> Company:
        return await self._create(Company(**payload.model_dump()), actor)

    async def list_companies(
        self,
        company_type: Optional[CompanyType] = None,
        status: Optional[CompanyStatus] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Company], int]:
        conditions = []
        if company_type:
            conditions.append(Company.type == company_type)
        if status:
            conditions.append(Company.status == status)
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(Company.name.ilike(pattern) | Company.business_number.ilike(pattern))
        return await self._list(conditions, page, page_size)

    async def update_status(
        self,
        company_id: uuid.UUID,
        status: CompanyStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Company:
        company = await self.repository.get_or_raise(company_id)
        await self._apply(
            company,
            {"status": status},
            actor,
            ChangeType.STATUS_CHANGE,
            reason or f"상태 변경: {company.status.value} → {status.value}",
        )
        return company

    async def batch_update_status(
        self,
        company_ids: list[uuid.UUID],
        status: CompanyStatus,
        actor: Actor,
        mode: BatchMode = BatchMode.BEST_EFFORT,
        reason: Optional[str] = None,
    ) -> BatchResult:
        async def apply(company_id: uuid.UUID) -> None:
            await self.update_status(company_id, status, actor, reason)

        return await run_batch(
            self.session, company_ids, apply, mode, operation="companies.update_status"
        )


class UserService(EntityService[User]):
    entity_type = EntityType.USER
    repository_class = UserRepository
    allowlist = USER_FIELD_ALLOWLIST
    patch_schema = UserFieldsPatch

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.companies = CompanyRepository(session)

    async def create(self, payload: UserCreate, actor: Actor) -> User:
        """
        Raises:
            DuplicateEntityError: If the email is taken
            EntityNotFoundError: If the company does not exist
        """
        if await self.repository.get_by_email(payload.email) is not None:
            raise DuplicateEntityError(
                "User already exists",
                details={"email": payload.email},
            )
        if payload.company_id is not None:
            await self.companies.get_or_raise(payload.company_id)

        user = User(
            **payload.model_dump(exclude={"password"}),
            password_hash=hash_password(payload.password),
        )
        return await self._create(user, actor)

    async def list_users(
        self,
        company_id: Optional[uuid.UUID] = None,
        status: Optional[UserStatus] = None,
        access_level: Optional[AccessLevel] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[User], int]:
        conditions = []
        if company_id:
            conditions.append(User.company_id == company_id)
        if status:
            conditions.append(User.status == status)
        if access_level:
            conditions.append(User.access_level == access_level)
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(User.name.ilike(pattern) | User.email.ilike(pattern))
        return await self._list(conditions, page, page_size)

    async def list_company_users(
        self,
        company_id: uuid.UUID,
        status: Optional[UserStatus] = None,
        access_level: Optional[AccessLevel] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[User], int]:
        """
        Raises:
            EntityNotFoundError: If the company does not exist
        """
        await self.companies.get_or_raise(company_id)
        return await self.list_users(
            company_id=company_id,
            status=status,
            access_level=access_level,
            page=page,
            page_size=page_size,
        )

    async def update_fields(
        self,
        entity_id: uuid.UUID,
        fields: dict[str, Any],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> User:
        company_id = fields.get("companyId")
        if company_id is not None:
            await self.companies.get_or_raise(uuid.UUID(str(company_id)))
        return await super().update_fields(entity_id, fields, actor, reason)

    async def update_status(
        self,
        user_id: uuid.UUID,
        status: UserStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> tuple[User, bool]:
        """
        Returns:
            Tuple of (user, whether the status changed)
        """
        user = await self.repository.get_or_raise(user_id)
        changed = await self._apply(
            user,
            {"status": status},
            actor,
            ChangeType.STATUS_CHANGE,
            reason or f"상태 변경: {user.status.value} → {status.value}",
        )
        return user, bool(changed)


class DriverService(EntityService[Driver]):
    entity_type = EntityType.DRIVER
    repository_class = DriverRepository
    allowlist = DRIVER_FIELD_ALLOWLIST
    patch_schema = DriverFieldsPatch

    async def create(self, payload: DriverCreate, actor: Actor) -> Driver:
        return await self._create(Driver(**payload.model_dump()), actor)

    async def list_drivers(
        self,
        company_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Driver], int]:
        conditions = []
        if company_id:
            conditions.append(Driver.company_id == company_id)
        if is_active is not None:
            conditions.append(Driver.is_active.is_(is_active))
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(
                Driver.name.ilike(pattern)
                | Driver.phone.ilike(pattern)
                | Driver.vehicle_number.ilike(pattern)
            )
        return await self._list(conditions, page, page_size)


class AddressService(EntityService[Address]):
    """Addresses are soft-deleted and disappear from every query."""

    entity_type = EntityType.ADDRESS
    repository_class = AddressRepository
    allowlist = ADDRESS_FIELD_ALLOWLIST
    patch_schema = AddressFieldsPatch

    async def create(self, payload: AddressCreate, actor: Actor) -> Address:
        return await self._create(Address(**payload.model_dump()), actor)

    async def list_addresses(
        self,
        company_id: Optional[uuid.UUID] = None,
        address_type: Optional[AddressType] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Address], int]:
        conditions = []
        if company_id:
            conditions.append(Address.company_id == company_id)
        if address_type:
            conditions.append(Address.type.in_([address_type, AddressType.ANY]))
        if keyword:
            pattern = f"%{keyword}%"
            conditions.append(Address.name.ilike(pattern) | Address.road_address.ilike(pattern))
        return await self._list(conditions, page, page_size)

    async def list_frequent(
        self, company_id: Optional[uuid.UUID] = None, page: int = 1, page_size: int = 20
    ) -> tuple[list[Address], int]:
        conditions = [Address.is_frequent.is_(True)]
        if company_id:
            conditions.append(Address.company_id == company_id)
        return await self._list(conditions, page, page_size)

    async def delete(self, entity_id: uuid.UUID, actor: Actor) -> None:
        address = await self.repository.get_or_raise(entity_id)
        address.soft_delete()
        address.stamp_updated(actor)
        await self.repository.flush()
        await self.change_logs.log_change(
            EntityType.ADDRESS,
            entity_id,
            actor,
            ChangeType.DELETE,
            old_data=entity_data(address),
        )
        logger.info("Address soft deleted", address_id=str(entity_id), actor_id=str(actor.id))

    async def set_frequent(
        self, address_id: uuid.UUID, is_frequent: bool, actor: Actor
    ) -> Address:
        address = await self.repository.get_or_raise(address_id)
        await self._apply(address, {"is_frequent": is_frequent}, actor, ChangeType.UPDATE, None)
        return address

    async def batch(
        self,
        address_ids: list[uuid.UUID],
        action: AddressBatchAction,
        actor: Actor,
        mode: BatchMode = BatchMode.BEST_EFFORT,
    ) -> BatchResult:
        """
        Soft-delete addresses or toggle their frequent flag.

        Unknown or already deleted ids fail with NOT_FOUND like any other item.
        """
        async def handle(address_id: uuid.UUID) -> None:
            if action is AddressBatchAction.DELETE:
                await self.delete(address_id, actor)
            else:
                await self.set_frequent(
                    address_id, action is AddressBatchAction.SET_FREQUENT, actor
                )

        result = await run_batch(
            self.session, address_ids, handle, mode, operation=f"addresses.{action.value}"
        )
        logger.info(
            "Address batch finished",
            action=action.value,
            mode=mode.value,
            processed=len(result.processed),
            failed=len(result.failed),
            actor_id=str(actor.id),
        )
        return result
