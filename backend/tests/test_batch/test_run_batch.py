"""
Tests for batch execution modes.
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from brokerage.core.errors import ConflictError, ErrorKind, NotFoundError
from brokerage.services.batch import BatchMode, BatchResult, run_batch


def failing_on(*bad_ids: uuid.UUID, error: Exception):
    calls: list[uuid.UUID] = []

    async def handler(item_id: uuid.UUID) -> None:
        calls.append(item_id)
        if item_id in bad_ids:
            raise error

    return handler, calls


class TestBestEffort:
    async def test_records_each_outcome(self, mock_session: AsyncMock):
        ids = [uuid.uuid4() for _ in range(3)]
        handler, calls = failing_on(ids[1], error=ConflictError("Order already dispatched"))

        result = await run_batch(mock_session, ids, handler, BatchMode.BEST_EFFORT, "test")

        assert calls == ids
        assert result.processed == [str(ids[0]), str(ids[2])]
        assert result.failed == [str(ids[1])]
        assert result.errors == [
            {"id": str(ids[1]), "kind": ErrorKind.CONFLICT, "error": "Order already dispatched"}
        ]
        assert mock_session.begin_nested.call_count == 3

    async def test_database_error_reported_as_internal(self, mock_session: AsyncMock):
        item_id = uuid.uuid4()
        handler, _ = failing_on(
            item_id, error=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )

        result = await run_batch(mock_session, [item_id], handler, BatchMode.BEST_EFFORT, "test")

        assert result.has_failures
        assert result.errors[0]["kind"] is ErrorKind.INTERNAL
        assert result.errors[0]["error"] == "Database error"

    async def test_unexpected_error_propagates(self, mock_session: AsyncMock):
        item_id = uuid.uuid4()
        handler, _ = failing_on(item_id, error=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await run_batch(mock_session, [item_id], handler, BatchMode.BEST_EFFORT, "test")


class TestAllOrNothing:
    async def test_all_processed_in_one_savepoint(self, mock_session: AsyncMock):
        ids = [uuid.uuid4(), uuid.uuid4()]
        handler, calls = failing_on(error=ConflictError("unused"))

        result = await run_batch(mock_session, ids, handler, BatchMode.ALL_OR_NOTHING, "test")

        assert calls == ids
        assert result.processed == [str(i) for i in ids]
        mock_session.begin_nested.assert_called_once()

    async def test_first_failure_stops_batch(self, mock_session: AsyncMock):
        ids = [uuid.uuid4() for _ in range(3)]
        handler, calls = failing_on(ids[1], error=NotFoundError("Order not found"))

        with pytest.raises(NotFoundError):
            await run_batch(mock_session, ids, handler, BatchMode.ALL_OR_NOTHING, "test")

        assert calls == ids[:2]


def test_result_serialization():
    result = BatchResult(processed=["a"])
    result.record_failure("b", ErrorKind.NOT_FOUND, "Order not found")

    assert result.to_dict() == {
        "processed": ["a"],
        "failed": ["b"],
        "errors": [{"id": "b", "kind": "not_found", "error": "Order not found"}],
    }
