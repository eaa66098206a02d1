"""
Change log service.

Every mutation of an audited entity appends one ``ChangeLog`` row carrying
the actor, the change type, the old and new data and an optional reason.
Sensitive keys are redacted before the row is written.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.errors import InternalError
from brokerage.core.logging import get_logger
from brokerage.database.models.change_log import ChangeLog
from brokerage.services.audit.enums import ChangeType, EntityType

logger = get_logger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_KEY_PARTS = ("password", "secret", "token")


class ChangeLogError(InternalError):
    """Raised when a change log row cannot be written or read."""

    pass


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def redact(data: Any) -> Any:
    """Replace values under sensitive keys, recursing into dicts and lists."""
    if isinstance(data, dict):
        return {
            key: REDACTED if is_sensitive_key(str(key)) else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data


def _prepare(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if data is None:
        return None
    return redact(to_jsonable_python(data))


class ChangeLogService:
    """
    Appends and reads change log rows.

    Attributes:
        session: Async database session shared with the calling service
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_change(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        actor: Actor,
        change_type: ChangeType,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> ChangeLog:
        """
        Insert one change log row in the caller's transaction.

        Raises:
            ChangeLogError: If the insert fails
        """
        entry = ChangeLog(
            entity_type=entity_type,
            entity_id=entity_id,
            changed_by=actor.id,
            changed_by_name=actor.name,
            changed_by_email=actor.email,
            changed_by_access_level=actor.access_level,
            change_type=change_type,
            old_data=_prepare(old_data),
            new_data=_prepare(new_data),
            reason=reason,
        )

        try:
            self.session.add(entry)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to write change log",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                change_type=change_type.value,
                error=str(e),
            )
            raise ChangeLogError(
                "Failed to write change log",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
            ) from e

        logger.info(
            "Change logged",
            entity_type=entity_type.value,
            entity_id=str(entity_id),
            change_type=change_type.value,
            changed_by=str(actor.id),
        )
        return entry

    async def log_change_quietly(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        actor: Actor,
        change_type: ChangeType,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> Optional[ChangeLog]:
        """
        Like ``log_change`` but a failure is logged and discarded.

        The insert runs in a savepoint so a failed write leaves the caller's
        transaction usable.
        """
        try:
            async with self.session.begin_nested():
                return await self.log_change(
                    entity_type,
                    entity_id,
                    actor,
                    change_type,
                    old_data=old_data,
                    new_data=new_data,
                    reason=reason,
                )
        except (ChangeLogError, SQLAlchemyError) as e:
            logger.warning(
                "Change log write skipped",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                change_type=change_type.value,
                error=str(e),
            )
            return None

    async def list_changes(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ChangeLog], int]:
        """
        Page through the changes of one entity, newest first.

        Returns:
            Tuple of (rows, total count)
        """
        conditions = (
            ChangeLog.entity_type == entity_type,
            ChangeLog.entity_id == entity_id,
        )
        try:
            total = await self.session.scalar(
                select(func.count()).select_from(ChangeLog).where(*conditions)
            )
            result = await self.session.execute(
                select(ChangeLog)
                .where(*conditions)
                .order_by(ChangeLog.changed_at.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list change logs",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                error=str(e),
            )
            raise ChangeLogError("Failed to list change logs") from e

        rows = list(result.scalars().all())
        logger.debug(
            "Change logs listed",
            entity_type=entity_type.value,
            entity_id=str(entity_id),
            count=len(rows),
        )
        return rows, total or 0
