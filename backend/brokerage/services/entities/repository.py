"""
Repositories for companies, users, drivers and addresses.

All four share the same access pattern, so ``EntityRepository`` carries the
queries and each subclass names its model and adds its own lookups.
"""

import uuid
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ConflictError, InternalError, NotFoundError
from brokerage.core.logging import get_logger
from brokerage.database.base import Base
from brokerage.database.models.address import Address
from brokerage.database.models.company import Company
from brokerage.database.models.driver import Driver
from brokerage.database.models.user import User

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class EntityRepositoryError(InternalError):
    """Raised when an entity query fails."""

    pass


class EntityNotFoundError(NotFoundError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Any, **context: Any):
        super().__init__(
            f"{entity} not found",
            details={"entity": entity, "id": str(entity_id)},
            **context,
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEntityError(ConflictError):
    """Raised when a unique column already holds the value."""

    pass


class EntityRepository(Generic[ModelT]):
    """
    Generic async repository.

    Attributes:
        model: Mapped class handled by the repository
        entity_name: Name used in errors and logs
    """

    model: type[ModelT]
    entity_name: str = "Entity"

    def __init__(self, session: AsyncSession):
        self.session = session

    def _base_conditions(self) -> list[Any]:
        return []

    async def get_by_id(self, entity_id: uuid.UUID) -> Optional[ModelT]:
        try:
            logger.debug("Fetching entity", entity=self.entity_name, entity_id=str(entity_id))
            result = await self.session.execute(
                select(self.model).where(self.model.id == entity_id, *self._base_conditions())
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch entity",
                entity=self.entity_name,
                entity_id=str(entity_id),
                error=str(e),
            )
            raise EntityRepositoryError(
                f"Failed to fetch {self.entity_name.lower()}",
                entity_id=str(entity_id),
            ) from e

    async def get_or_raise(self, entity_id: uuid.UUID) -> ModelT:
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, entity_id)
        return entity

    async def get_many(self, entity_ids: Sequence[uuid.UUID]) -> list[ModelT]:
        if not entity_ids:
            return []
        try:
            result = await self.session.execute(
                select(self.model).where(self.model.id.in_(entity_ids), *self._base_conditions())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to fetch entities", entity=self.entity_name, error=str(e))
            raise EntityRepositoryError(f"Failed to fetch {self.entity_name.lower()}s") from e

    async def add(self, entity: ModelT) -> ModelT:
        try:
            self.session.add(entity)
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Entity insert violated a constraint", entity=self.entity_name)
            raise DuplicateEntityError(
                f"{self.entity_name} already exists",
                entity=self.entity_name,
            ) from e
        except SQLAlchemyError as e:
            logger.error("Failed to insert entity", entity=self.entity_name, error=str(e))
            raise EntityRepositoryError(f"Failed to create {self.entity_name.lower()}") from e
        logger.info("Entity inserted", entity=self.entity_name, entity_id=str(entity.id))
        return entity

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Entity update violated a constraint", entity=self.entity_name)
            raise DuplicateEntityError(
                f"{self.entity_name} conflicts with an existing record",
                entity=self.entity_name,
            ) from e
        except SQLAlchemyError as e:
            logger.error("Failed to flush entity", entity=self.entity_name, error=str(e))
            raise EntityRepositoryError(f"Failed to update {self.entity_name.lower()}") from e

    async def delete(self, entity: ModelT) -> None:
        try:
            await self.session.delete(entity)
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"{self.entity_name} is still referenced and cannot be deleted",
                entity=self.entity_name,
            ) from e
        except SQLAlchemyError as e:
            logger.error("Failed to delete entity", entity=self.entity_name, error=str(e))
            raise EntityRepositoryError(f"Failed to delete {self.entity_name.lower()}") from e

    async def list_rows(
        self,
        conditions: Sequence[Any] = (),
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ModelT], int]:
        """
        List rows matching ``conditions``, newest first.

        Returns:
            Tuple of (rows, total count)
        """
        where = [*self._base_conditions(), *conditions]
        try:
            total = await self.session.scalar(
                select(func.count()).select_from(self.model).where(*where)
            )
            result = await self.session.execute(
                select(self.model)
                .where(*where)
                .order_by(self.model.created_at.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list entities", entity=self.entity_name, error=str(e))
            raise EntityRepositoryError(f"Failed to list {self.entity_name.lower()}s") from e
        return rows, total or 0


class CompanyRepository(EntityRepository[Company]):
    model = Company
    entity_name = "Company"


class UserRepository(EntityRepository[User]):
    model = User
    entity_name = "User"

    async def get_by_email(self, email: str) -> Optional[User]:
        try:
            result = await self.session.execute(
                select(User).where(func.lower(User.email) == email.lower())
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch user by email", error=str(e))
            raise EntityRepositoryError("Failed to fetch user") from e


class DriverRepository(EntityRepository[Driver]):
    model = Driver
    entity_name = "Driver"


class AddressRepository(EntityRepository[Address]):
    """Soft-deleted addresses are invisible to every query."""

    model = Address
    entity_name = "Address"

    def _base_conditions(self) -> list[Any]:
        return [Address.deleted_at.is_(None)]
