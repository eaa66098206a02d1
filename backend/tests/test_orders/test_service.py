"""
Test suite for OrderService business logic.

Repositories and the change log writer are replaced with mocks so that the
tests exercise snapshotting, status rules, the field allow-list and batch
atomicity without a database.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import ValidationError as PydanticValidationError

from brokerage.core.actor import Actor
from brokerage.core.config import Settings
from brokerage.core.errors import InvalidFieldsError, NotFoundError, ValidationError
from brokerage.database.models.company import CompanyType
from brokerage.database.models.order import Order
from brokerage.schemas.orders import OrderCreateRequest
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.batch import BatchMode
from brokerage.services.entities.repository import EntityNotFoundError
from brokerage.services.orders.enums import OrderBatchAction, OrderFlowStatus, RecentAddressKind
from brokerage.services.orders.repository import OrderNotFoundError
from brokerage.services.orders.service import OrderService
from brokerage.services.orders.state_machine import OrderCanceledError


# ============================================================================
# Test Fixtures
# ============================================================================


def make_order(**overrides: Any) -> Order:
    values = {
        "id": uuid.uuid4(),
        "company_id": uuid.uuid4(),
        "flow_status": OrderFlowStatus.REQUESTED,
        "is_canceled": False,
        "cargo_name": "철강 코일",
    }
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def company() -> Mock:
    company = Mock()
    company.id = uuid.uuid4()
    company.name = "한빛물산"
    company.business_number = "123-45-67890"
    company.ceo_name = "박대표"
    company.type = CompanyType.SHIPPER
    company.phone = "02-000-0000"
    company.address_line = "서울시 중구"
    return company


def build_service(session: AsyncMock, settings: Settings | None = None) -> OrderService:
    """OrderService whose collaborators are AsyncMocks."""
    service = OrderService(session, settings=settings or Settings())
    service.repository = AsyncMock()
    service.companies = AsyncMock()
    service.addresses = AsyncMock()
    service.change_logs = AsyncMock()
    return service


@pytest.fixture
def order_service(mock_session: AsyncMock) -> OrderService:
    return build_service(mock_session)


# ============================================================================
# Creation
# ============================================================================


class TestCreateOrder:
    async def test_creates_requested_order_with_snapshots(
        self, order_service: OrderService, actor: Actor, company: Mock
    ):
        order_service.companies.get_or_raise.return_value = company
        order_service.repository.add.side_effect = lambda order: order
        payload = OrderCreateRequest(cargo_name="철강 코일", price_amount=Decimal("350000"))

        order = await order_service.create_order(payload, actor)

        order_service.companies.get_or_raise.assert_awaited_once_with(actor.company_id)
        assert order.flow_status is OrderFlowStatus.REQUESTED
        assert order.is_canceled is False
        assert order.estimated_price_amount == Decimal("350000")
        assert order.company_snapshot["name"] == "한빛물산"
        assert order.company_snapshot["type"] == "shipper"
        assert order.contact_user_id == actor.id
        assert order.contact_snapshot["email"] == actor.email
        assert order.created_by == actor.id
        assert order.created_by_snapshot == actor.to_snapshot()

        args = order_service.change_logs.log_change.await_args
        assert args.args[0] is EntityType.ORDER
        assert args.args[3] is ChangeType.CREATE

    async def test_explicit_company_wins(
        self, order_service: OrderService, actor: Actor, company: Mock
    ):
        order_service.companies.get_or_raise.return_value = company
        payload = OrderCreateRequest(company_id=company.id, cargo_name="목재")

        await order_service.create_order(payload, actor)

        order_service.companies.get_or_raise.assert_awaited_once_with(company.id)

    async def test_requires_company(self, order_service: OrderService, viewer_actor: Actor):
        payload = OrderCreateRequest(cargo_name="목재")

        with pytest.raises(ValidationError, match="companyId is required"):
            await order_service.create_order(payload, viewer_actor)

        order_service.repository.add.assert_not_awaited()

    def test_delivery_before_pickup_rejected(self):
        with pytest.raises(PydanticValidationError, match="deliveryDate cannot be before pickupDate"):
            OrderCreateRequest(
                cargo_name="목재",
                pickup_date="2025-03-10",
                delivery_date="2025-03-09",
            )


class TestValidateOrder:
    async def test_fills_company_without_writing(
        self, order_service: OrderService, actor: Actor, company: Mock
    ):
        company.id = actor.company_id
        order_service.companies.get_or_raise.return_value = company
        pickup_id = uuid.uuid4()
        payload = OrderCreateRequest(cargo_name="목재", pickup_address_id=pickup_id)

        validated = await order_service.validate_order(payload, actor)

        assert validated.company_id == actor.company_id
        assert validated.cargo_name == "목재"
        order_service.addresses.get_or_raise.assert_awaited_once_with(pickup_id)
        order_service.repository.add.assert_not_awaited()
        order_service.change_logs.log_change.assert_not_awaited()

    async def test_unknown_address(
        self, order_service: OrderService, actor: Actor, company: Mock
    ):
        order_service.companies.get_or_raise.return_value = company
        address_id = uuid.uuid4()
        order_service.addresses.get_or_raise.side_effect = EntityNotFoundError(
            "Address", address_id
        )
        payload = OrderCreateRequest(cargo_name="목재", delivery_address_id=address_id)

        with pytest.raises(EntityNotFoundError):
            await order_service.validate_order(payload, actor)


class TestBoardAndRecent:
    async def test_board_rejects_inverted_range(self, order_service: OrderService):
        with pytest.raises(ValidationError) as exc_info:
            await order_service.list_with_dispatch(
                pickup_from=date(2025, 3, 10), pickup_to=date(2025, 3, 1)
            )

        assert exc_info.value.details == {"startDate": "2025-03-10", "endDate": "2025-03-01"}
        order_service.repository.list_with_dispatch.assert_not_awaited()

    async def test_board_passes_filters(self, order_service: OrderService):
        order_service.repository.list_with_dispatch.return_value = ([], 0)

        await order_service.list_with_dispatch(has_dispatch=True, keyword="평택")

        kwargs = order_service.repository.list_with_dispatch.await_args.kwargs
        assert kwargs["has_dispatch"] is True
        assert kwargs["keyword"] == "평택"

    async def test_recent_addresses_need_company(
        self, order_service: OrderService, viewer_actor: Actor
    ):
        with pytest.raises(ValidationError):
            await order_service.recent_addresses(viewer_actor, RecentAddressKind.PICKUP)

        order_service.repository.recent_orders.assert_not_awaited()

    async def test_recent_addresses_scan_company_orders(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order(
            pickup_address_snapshot={"id": str(uuid.uuid4()), "name": "평택 센터", "roadAddress": "경기 평택시 1"}
        )
        order_service.repository.recent_orders.return_value = [order]

        addresses = await order_service.recent_addresses(actor, RecentAddressKind.PICKUP)

        company_id, column = order_service.repository.recent_orders.await_args.args
        assert company_id == actor.company_id
        assert column is Order.pickup_address_snapshot
        assert addresses[0]["order_id"] == order.id


# ============================================================================
# Status changes
# ============================================================================


class TestUpdateStatus:
    async def test_moves_order_and_logs_reason(self, order_service: OrderService, actor: Actor):
        order = make_order()
        order_service.repository.get_or_raise.return_value = order

        result = await order_service.update_status(
            order.id, OrderFlowStatus.DISPATCH_WAIT, actor
        )

        assert result == {
            "order_id": order.id,
            "previous_status": OrderFlowStatus.REQUESTED,
            "current_status": OrderFlowStatus.DISPATCH_WAIT,
        }
        assert order.updated_by == actor.id
        kwargs = order_service.change_logs.log_change.await_args.kwargs
        assert kwargs["reason"] == "상태 변경: 운송요청 → 배차대기"
        assert kwargs["old_data"]["flow_status"] == "운송요청"
        assert kwargs["new_data"]["flow_status"] == "배차대기"

    async def test_backward_move_allowed_by_default(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order(flow_status=OrderFlowStatus.IN_TRANSIT)
        order_service.repository.get_or_raise.return_value = order

        await order_service.update_status(order.id, OrderFlowStatus.LOADED, actor)

        assert order.flow_status is OrderFlowStatus.LOADED

    async def test_backward_move_rejected_when_enforced(
        self, mock_session: AsyncMock, actor: Actor
    ):
        service = build_service(mock_session, Settings(enforce_forward_status=True))
        order = make_order(flow_status=OrderFlowStatus.IN_TRANSIT)
        service.repository.get_or_raise.return_value = order

        with pytest.raises(ValidationError):
            await service.update_status(order.id, OrderFlowStatus.LOADED, actor)

        assert order.flow_status is OrderFlowStatus.IN_TRANSIT

    async def test_canceled_order_rejected(self, order_service: OrderService, actor: Actor):
        order = make_order(is_canceled=True)
        order_service.repository.get_or_raise.return_value = order

        with pytest.raises(OrderCanceledError):
            await order_service.update_status(order.id, OrderFlowStatus.DISPATCH_WAIT, actor)

        order_service.change_logs.log_change.assert_not_awaited()

    async def test_missing_order(self, order_service: OrderService, actor: Actor):
        order_id = uuid.uuid4()
        order_service.repository.get_or_raise.side_effect = OrderNotFoundError(order_id)

        with pytest.raises(NotFoundError):
            await order_service.update_status(order_id, OrderFlowStatus.DISPATCH_WAIT, actor)


# ============================================================================
# Field patches
# ============================================================================


class TestUpdateFields:
    async def test_rejects_fields_outside_allow_list(
        self, order_service: OrderService, actor: Actor
    ):
        with pytest.raises(InvalidFieldsError) as exc_info:
            await order_service.update_fields(
                uuid.uuid4(), {"memo": "x", "companyId": str(uuid.uuid4())}, actor
            )

        assert exc_info.value.fields == ["companyId"]
        order_service.repository.get_or_raise.assert_not_awaited()

    async def test_applies_patch_without_change_log(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order()
        order_service.repository.get_or_raise.return_value = order

        await order_service.update_fields(
            order.id, {"priceAmount": 420000, "memo": "지게차 필요"}, actor
        )

        assert order.estimated_price_amount == Decimal("420000")
        assert order.memo == "지게차 필요"
        assert order.updated_by == actor.id
        order_service.change_logs.log_change.assert_not_awaited()

    async def test_logs_patch_when_enabled(self, mock_session: AsyncMock, actor: Actor):
        service = build_service(mock_session, Settings(audit_order_field_updates=True))
        order = make_order()
        service.repository.get_or_raise.return_value = order

        await service.update_fields(order.id, {"cargoName": "알루미늄"}, actor, reason="품목 정정")

        kwargs = service.change_logs.log_change.await_args.kwargs
        assert kwargs["reason"] == "품목 정정"
        assert kwargs["new_data"]["cargo_name"] == "알루미늄"

    async def test_new_address_refreshes_snapshot(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order()
        order_service.repository.get_or_raise.return_value = order
        address = Mock()
        address.id = uuid.uuid4()
        address.name = "평택 물류센터"
        address.type = None
        address.road_address = "경기 평택시 포승읍 1"
        address.jibun_address = None
        address.detail_address = "B동"
        address.postal_code = "17953"
        address.contact_name = "최과장"
        address.contact_phone = "010-0000-0000"
        order_service.addresses.get_or_raise.return_value = address

        await order_service.update_fields(order.id, {"pickupAddressId": str(address.id)}, actor)

        assert order.pickup_address_id == address.id
        assert order.pickup_address_snapshot["roadAddress"] == "경기 평택시 포승읍 1"

    async def test_canceled_order_status_patch_rejected(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order(is_canceled=True)
        order_service.repository.get_or_raise.return_value = order

        with pytest.raises(OrderCanceledError):
            await order_service.update_fields(order.id, {"flowStatus": "배차대기"}, actor)

    async def test_canceled_flag_cannot_be_cleared(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order(is_canceled=True)
        order_service.repository.get_or_raise.return_value = order

        with pytest.raises(OrderCanceledError):
            await order_service.update_fields(order.id, {"isCanceled": False}, actor)

        assert order.is_canceled is True
        with pytest.raises(OrderCanceledError):
            await order_service.update_status(order.id, OrderFlowStatus.DISPATCH_WAIT, actor)
        assert order.flow_status is OrderFlowStatus.REQUESTED


# ============================================================================
# Batch actions
# ============================================================================


class TestBatch:
    async def test_missing_ids_rejected_before_any_change(
        self, order_service: OrderService, actor: Actor
    ):
        missing = uuid.uuid4()
        order_service.repository.find_missing_ids.return_value = [missing]

        with pytest.raises(NotFoundError) as exc_info:
            await order_service.batch([uuid.uuid4(), missing], OrderBatchAction.CANCEL, actor)

        assert exc_info.value.details == {"orderIds": [str(missing)]}
        order_service.repository.get_or_raise.assert_not_awaited()

    async def test_update_status_requires_status(self, order_service: OrderService, actor: Actor):
        with pytest.raises(ValidationError):
            await order_service.batch([uuid.uuid4()], OrderBatchAction.UPDATE_STATUS, actor)

    async def test_best_effort_reports_failures(
        self, order_service: OrderService, actor: Actor
    ):
        open_order = make_order()
        canceled_order = make_order(is_canceled=True)
        orders = {open_order.id: open_order, canceled_order.id: canceled_order}
        order_service.repository.find_missing_ids.return_value = []
        order_service.repository.get_or_raise.side_effect = lambda order_id: orders[order_id]

        result = await order_service.batch(
            [open_order.id, canceled_order.id],
            OrderBatchAction.CANCEL,
            actor,
            mode=BatchMode.BEST_EFFORT,
        )

        assert result.processed == [str(open_order.id)]
        assert result.failed == [str(canceled_order.id)]
        assert open_order.is_canceled is True
        assert order_service.change_logs.log_change.await_args.args[3] is ChangeType.CANCEL

    async def test_all_or_nothing_raises_first_failure(
        self, order_service: OrderService, actor: Actor
    ):
        canceled_order = make_order(is_canceled=True)
        order_service.repository.find_missing_ids.return_value = []
        order_service.repository.get_or_raise.return_value = canceled_order

        with pytest.raises(OrderCanceledError):
            await order_service.batch(
                [canceled_order.id],
                OrderBatchAction.DELETE,
                actor,
                mode=BatchMode.ALL_OR_NOTHING,
            )

    async def test_batch_status_update_uses_update_status_type(
        self, order_service: OrderService, actor: Actor
    ):
        order = make_order()
        order_service.repository.find_missing_ids.return_value = []
        order_service.repository.get_or_raise.return_value = order

        result = await order_service.batch(
            [order.id],
            OrderBatchAction.UPDATE_STATUS,
            actor,
            flow_status=OrderFlowStatus.DISPATCH_WAIT,
        )

        assert result.processed == [str(order.id)]
        assert order.flow_status is OrderFlowStatus.DISPATCH_WAIT
        assert order_service.change_logs.log_change.await_args.args[3] is ChangeType.UPDATE_STATUS
