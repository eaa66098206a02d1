"""
Batch execution with an explicit atomicity mode.

``ALL_OR_NOTHING`` runs every item inside one savepoint: the first failure
rolls back the whole batch and is raised. ``BEST_EFFORT`` gives each item its
own savepoint so a failure only discards that item, and the outcome of each
item is reported in a ``BatchResult``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import DomainError, ErrorKind
from brokerage.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BatchMode(str, Enum):
    ALL_OR_NOTHING = "all_or_nothing"
    BEST_EFFORT = "best_effort"


@dataclass
class BatchResult:
    """Per-item outcome of a batch."""

    processed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def record_failure(self, item_id: Any, kind: ErrorKind, error: str) -> None:
        self.failed.append(str(item_id))
        self.errors.append({"id": str(item_id), "kind": kind, "error": error})

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": list(self.processed),
            "failed": list(self.failed),
            "errors": [
                {**error, "kind": error["kind"].value} for error in self.errors
            ],
        }


async def run_batch(
    session: AsyncSession,
    ids: Iterable[UUID],
    handler: Callable[[UUID], Awaitable[T]],
    mode: BatchMode,
    operation: str,
) -> BatchResult:
    """
    Apply ``handler`` to every id under the given atomicity mode.

    Args:
        session: Session the handler writes through
        ids: Item ids in processing order
        handler: Coroutine function applied to a single id
        mode: Atomicity mode
        operation: Name used in logs

    Returns:
        BatchResult listing processed and failed ids

    Raises:
        DomainError: In ALL_OR_NOTHING mode, the first item failure
    """
    ids = list(ids)
    result = BatchResult()

    logger.info(
        "Running batch",
        operation=operation,
        mode=mode.value,
        item_count=len(ids),
    )

    if mode is BatchMode.ALL_OR_NOTHING:
        async with session.begin_nested():
            for item_id in ids:
                await handler(item_id)
                result.processed.append(str(item_id))
        logger.info("Batch committed", operation=operation, processed=len(ids))
        return result

    for item_id in ids:
        try:
            async with session.begin_nested():
                await handler(item_id)
        except DomainError as e:
            logger.warning(
                "Batch item failed",
                operation=operation,
                item_id=str(item_id),
                kind=e.kind.value,
                error=e.message,
            )
            result.record_failure(item_id, e.kind, e.message)
        except SQLAlchemyError as e:
            logger.error(
                "Batch item failed - database error",
                operation=operation,
                item_id=str(item_id),
                error=str(e),
            )
            result.record_failure(item_id, ErrorKind.INTERNAL, "Database error")
        else:
            result.processed.append(str(item_id))

    logger.info(
        "Batch finished",
        operation=operation,
        processed=len(result.processed),
        failed=len(result.failed),
    )
    return result
