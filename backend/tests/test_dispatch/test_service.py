"""
Test suite for DispatchService.

Covers acceptance, driver assignment, the allow-listed dispatch patch with
its status mirroring onto the order, closing and deletion.
"""

import uuid
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from brokerage.core.actor import Actor
from brokerage.core.errors import ConflictError, ErrorKind, InvalidFieldsError, ValidationError
from brokerage.database.models.company import CompanyType
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.database.models.order import Order
from brokerage.schemas.dispatch import CreateDispatchRequest
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.batch import BatchMode
from brokerage.services.dispatch.repository import (
    DispatchClosedError,
    DispatchConflictError,
    DispatchNotFoundError,
)
from brokerage.services.dispatch.service import DispatchService, describe_dispatch_change
from brokerage.services.orders.enums import OrderFlowStatus, VehicleType, VehicleWeight
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
        "cargo_name": "합판",
    }
    values.update(overrides)
    return Order(**values)


def make_dispatch(order: Order, **overrides: Any) -> OrderDispatch:
    values = {
        "id": uuid.uuid4(),
        "order_id": order.id,
        "broker_company_id": uuid.uuid4(),
        "broker_flow_status": OrderFlowStatus.DISPATCH_DONE,
        "broker_memo": "오전 상차",
        "agreed_freight_cost": Decimal("300000"),
        "is_closed": False,
    }
    values.update(overrides)
    return OrderDispatch(**values)


@pytest.fixture
def broker_company() -> Mock:
    company = Mock()
    company.id = uuid.uuid4()
    company.name = "빠른운송"
    company.business_number = "222-33-44444"
    company.ceo_name = "정대표"
    company.type = CompanyType.BROKER
    company.phone = None
    company.address_line = None
    return company


@pytest.fixture
def driver() -> Mock:
    driver = Mock()
    driver.id = uuid.uuid4()
    driver.name = "한기사"
    driver.phone = "010-1234-5678"
    driver.vehicle_number = "경기12가3456"
    driver.vehicle_type = VehicleType.WING_BODY
    driver.vehicle_weight = VehicleWeight.T5
    driver.business_number = None
    return driver


@pytest.fixture
def dispatch_service(mock_session: AsyncMock) -> DispatchService:
    """DispatchService with mocked repositories and change log writer."""
    service = DispatchService(mock_session)
    service.repository = AsyncMock()
    service.orders = AsyncMock()
    service.companies = AsyncMock()
    service.users = AsyncMock()
    service.drivers = AsyncMock()
    service.change_logs = AsyncMock()
    return service


# ============================================================================
# Change descriptions
# ============================================================================


class TestDescribeDispatchChange:
    def test_status_only_change(self):
        changed = {
            "broker_flow_status": (OrderFlowStatus.DISPATCH_DONE, OrderFlowStatus.LOAD_WAIT)
        }

        assert describe_dispatch_change(changed) == "상태 변경: 배차완료 → 상차대기"

    def test_status_from_unset(self):
        changed = {"broker_flow_status": (None, OrderFlowStatus.DISPATCH_WAIT)}

        assert describe_dispatch_change(changed) == "상태 변경: - → 배차대기"

    def test_other_fields_listed_in_camel_case(self):
        changed = {
            "assigned_vehicle_number": ("A", "B"),
            "broker_flow_status": (OrderFlowStatus.DISPATCH_DONE, OrderFlowStatus.LOADED),
        }

        assert (
            describe_dispatch_change(changed)
            == "배차 정보 변경: assignedVehicleNumber, brokerFlowStatus"
        )

    def test_explicit_reason_wins(self):
        assert describe_dispatch_change({"broker_memo": ("a", "b")}, "기사 요청") == "기사 요청"


# ============================================================================
# Acceptance
# ============================================================================


class TestAcceptDispatches:
    async def test_accepts_orders_for_actor_company(
        self, dispatch_service: DispatchService, actor: Actor, broker_company: Mock
    ):
        order = make_order()
        dispatch_service.companies.get_or_raise.return_value = broker_company
        dispatch_service.users.get_by_id.return_value = None
        dispatch_service.orders.get_or_raise.return_value = order
        dispatch_service.repository.get_by_order_id.return_value = None

        summary, result = await dispatch_service.accept_dispatches([order.id], actor)

        assert summary["updated_orders"] == [str(order.id)]
        assert len(summary["inserted_dispatches"]) == 1
        assert result.failed == []
        assert order.flow_status is OrderFlowStatus.DISPATCH_WAIT

        dispatch = dispatch_service.repository.add.await_args.args[0]
        assert dispatch.broker_company_id == broker_company.id
        assert dispatch.broker_manager_snapshot == actor.to_snapshot()
        assert dispatch.broker_flow_status is OrderFlowStatus.DISPATCH_WAIT
        assert dispatch_service.change_logs.log_change.await_args.kwargs["reason"] == "배차 수락"

    async def test_requires_company(self, dispatch_service: DispatchService, viewer_actor: Actor):
        with pytest.raises(ValidationError):
            await dispatch_service.accept_dispatches([uuid.uuid4()], viewer_actor)

    async def test_best_effort_skips_dispatched_orders(
        self, dispatch_service: DispatchService, actor: Actor, broker_company: Mock
    ):
        fresh = make_order()
        taken = make_order()
        orders = {fresh.id: fresh, taken.id: taken}
        dispatch_service.companies.get_or_raise.return_value = broker_company
        dispatch_service.users.get_by_id.return_value = None
        dispatch_service.orders.get_or_raise.side_effect = lambda order_id: orders[order_id]
        dispatch_service.repository.get_by_order_id.side_effect = (
            lambda order_id: make_dispatch(taken) if order_id == taken.id else None
        )

        summary, result = await dispatch_service.accept_dispatches(
            [fresh.id, taken.id], actor, mode=BatchMode.BEST_EFFORT
        )

        assert summary["updated_orders"] == [str(fresh.id)]
        assert result.failed == [str(taken.id)]
        assert result.errors[0]["kind"] is ErrorKind.CONFLICT

    async def test_conflict_aborts_whole_batch_by_default(
        self,
        dispatch_service: DispatchService,
        actor: Actor,
        broker_company: Mock,
        mock_session: AsyncMock,
    ):
        fresh = make_order()
        taken = make_order()
        orders = {fresh.id: fresh, taken.id: taken}
        savepoints = []

        def begin_nested():
            savepoint = AsyncMock()
            savepoint.__aexit__.return_value = False
            savepoints.append(savepoint)
            return savepoint

        mock_session.begin_nested.side_effect = begin_nested
        dispatch_service.companies.get_or_raise.return_value = broker_company
        dispatch_service.users.get_by_id.return_value = None
        dispatch_service.orders.get_or_raise.side_effect = lambda order_id: orders[order_id]
        dispatch_service.repository.get_by_order_id.side_effect = (
            lambda order_id: make_dispatch(taken) if order_id == taken.id else None
        )

        with pytest.raises(DispatchConflictError):
            await dispatch_service.accept_dispatches([fresh.id, taken.id], actor)

        assert len(savepoints) == 1
        exc_type = savepoints[0].__aexit__.await_args.args[0]
        assert exc_type is DispatchConflictError
        # Only the first insert ran, inside the savepoint that rolled back
        assert dispatch_service.repository.add.await_count == 1
        assert taken.flow_status is OrderFlowStatus.REQUESTED


# ============================================================================
# Driver assignment
# ============================================================================


class TestCreateDispatch:
    @pytest.fixture
    def payload(self, broker_company: Mock, driver: Mock) -> CreateDispatchRequest:
        return CreateDispatchRequest(
            broker_company_id=broker_company.id,
            assigned_driver_id=driver.id,
            assigned_vehicle_number="경기12가3456",
            assigned_vehicle_type=VehicleType.WING_BODY,
            assigned_vehicle_weight=VehicleWeight.T5,
            agreed_freight_cost=Decimal("280000"),
        )

    async def test_assigns_driver(
        self,
        dispatch_service: DispatchService,
        actor: Actor,
        broker_company: Mock,
        driver: Mock,
        payload: CreateDispatchRequest,
    ):
        order = make_order(flow_status=OrderFlowStatus.DISPATCH_WAIT)
        dispatch_service.orders.get_or_raise.return_value = order
        dispatch_service.repository.get_by_order_id.return_value = None
        dispatch_service.drivers.get_or_raise.return_value = driver
        dispatch_service.companies.get_or_raise.return_value = broker_company

        dispatch = await dispatch_service.create_dispatch(order.id, payload, actor)

        assert order.flow_status is OrderFlowStatus.DISPATCH_DONE
        assert dispatch.broker_flow_status is OrderFlowStatus.DISPATCH_DONE
        assert dispatch.assigned_driver_phone == "010-1234-5678"
        assert dispatch.assigned_driver_snapshot["vehicleType"] == "윙바디"
        assert dispatch.broker_company_snapshot["name"] == "빠른운송"
        dispatch_service.repository.add.assert_awaited_once_with(dispatch)

        args = dispatch_service.change_logs.log_change.await_args
        assert args.args[0] is EntityType.ORDER
        assert args.args[3] is ChangeType.UPDATE_DISPATCH
        assert args.kwargs["reason"] == "배차 등록"
        assert args.kwargs["old_data"] == {"flowStatus": "배차대기"}

    async def test_canceled_order_rejected(
        self, dispatch_service: DispatchService, actor: Actor, payload: CreateDispatchRequest
    ):
        order = make_order(is_canceled=True)
        dispatch_service.orders.get_or_raise.return_value = order

        with pytest.raises(ConflictError, match="취소된 주문은 배차할 수 없습니다"):
            await dispatch_service.create_dispatch(order.id, payload, actor)

        dispatch_service.repository.add.assert_not_awaited()

    async def test_already_dispatched_rejected(
        self, dispatch_service: DispatchService, actor: Actor, payload: CreateDispatchRequest
    ):
        order = make_order()
        dispatch_service.orders.get_or_raise.return_value = order
        dispatch_service.repository.get_by_order_id.return_value = make_dispatch(order)

        with pytest.raises(DispatchConflictError) as exc_info:
            await dispatch_service.create_dispatch(order.id, payload, actor)

        assert exc_info.value.kind.status_code == 409
        assert exc_info.value.details == {"orderId": str(order.id)}


# ============================================================================
# Field patches
# ============================================================================


class TestUpdateDispatchFields:
    async def test_unknown_field_rejected(self, dispatch_service: DispatchService, actor: Actor):
        with pytest.raises(InvalidFieldsError) as exc_info:
            await dispatch_service.update_dispatch_fields(
                uuid.uuid4(), {"isClosed": True}, actor
            )

        assert exc_info.value.fields == ["isClosed"]

    async def test_unchanged_patch_is_not_logged(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        order = make_order()
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_or_raise.return_value = dispatch

        result = await dispatch_service.update_dispatch_fields(
            dispatch.id, {"brokerMemo": "오전 상차"}, actor
        )

        assert result is dispatch
        dispatch_service.orders.get_or_raise.assert_not_awaited()
        dispatch_service.repository.flush.assert_not_awaited()
        dispatch_service.change_logs.log_change.assert_not_awaited()

    async def test_status_change_mirrors_to_order(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        order = make_order(flow_status=OrderFlowStatus.DISPATCH_DONE)
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_or_raise.return_value = dispatch
        dispatch_service.orders.get_or_raise.return_value = order

        await dispatch_service.update_dispatch_fields(
            dispatch.id, {"brokerFlowStatus": "상차대기"}, actor
        )

        assert dispatch.broker_flow_status is OrderFlowStatus.LOAD_WAIT
        assert order.flow_status is OrderFlowStatus.LOAD_WAIT
        kwargs = dispatch_service.change_logs.log_change.await_args.kwargs
        assert kwargs["reason"] == "상태 변경: 배차완료 → 상차대기"
        assert kwargs["old_data"] == {"brokerFlowStatus": "배차완료"}
        assert kwargs["new_data"] == {"brokerFlowStatus": "상차대기"}

    async def test_only_changed_fields_are_logged(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        order = make_order()
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_or_raise.return_value = dispatch
        dispatch_service.orders.get_or_raise.return_value = order

        await dispatch_service.update_dispatch_fields(
            dispatch.id,
            {"brokerMemo": "오전 상차", "agreedFreightCost": 320000},
            actor,
        )

        kwargs = dispatch_service.change_logs.log_change.await_args.kwargs
        assert kwargs["new_data"] == {"agreedFreightCost": "320000"}
        assert kwargs["reason"] == "배차 정보 변경: agreedFreightCost"
        assert order.flow_status is OrderFlowStatus.REQUESTED

    async def test_canceled_order_status_change_rejected(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        order = make_order(is_canceled=True, flow_status=OrderFlowStatus.DISPATCH_DONE)
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_or_raise.return_value = dispatch
        dispatch_service.orders.get_or_raise.return_value = order

        with pytest.raises(OrderCanceledError):
            await dispatch_service.update_dispatch_fields(
                dispatch.id, {"brokerFlowStatus": "운송중"}, actor
            )

        assert dispatch.broker_flow_status is OrderFlowStatus.DISPATCH_DONE
        dispatch_service.change_logs.log_change.assert_not_awaited()

    async def test_new_driver_refreshes_snapshot(
        self, dispatch_service: DispatchService, actor: Actor, driver: Mock
    ):
        order = make_order()
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_or_raise.return_value = dispatch
        dispatch_service.orders.get_or_raise.return_value = order
        dispatch_service.drivers.get_or_raise.return_value = driver

        await dispatch_service.update_dispatch_fields(
            dispatch.id, {"assignedDriverId": str(driver.id)}, actor
        )

        assert dispatch.assigned_driver_id == driver.id
        assert dispatch.assigned_driver_phone == driver.phone
        assert dispatch.assigned_driver_snapshot["name"] == "한기사"


# ============================================================================
# Close and delete
# ============================================================================


class TestCloseAndDelete:
    async def test_close_refreshes_when_newly_closed(
        self, dispatch_service: DispatchService, actor: Actor, mock_session: AsyncMock
    ):
        dispatch = make_dispatch(make_order(), is_closed=True)
        dispatch_service.repository.close.return_value = True
        dispatch_service.repository.get_or_raise.return_value = dispatch

        result, closed_now = await dispatch_service.close_dispatch(dispatch.id, actor)

        assert result is dispatch
        assert closed_now is True
        mock_session.refresh.assert_awaited_once_with(dispatch)

    async def test_close_is_idempotent(
        self, dispatch_service: DispatchService, actor: Actor, mock_session: AsyncMock
    ):
        dispatch = make_dispatch(make_order(), is_closed=True)
        dispatch_service.repository.close.return_value = False
        dispatch_service.repository.get_or_raise.return_value = dispatch

        _, closed_now = await dispatch_service.close_dispatch(dispatch.id, actor)

        assert closed_now is False
        mock_session.refresh.assert_not_awaited()

    async def test_delete_missing_dispatch(self, dispatch_service: DispatchService, actor: Actor):
        dispatch_service.repository.get_by_id.return_value = None

        with pytest.raises(DispatchNotFoundError):
            await dispatch_service.delete_dispatch(uuid.uuid4(), actor)

    async def test_delete_closed_dispatch_rejected(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        dispatch = make_dispatch(make_order(), is_closed=True)
        dispatch_service.repository.get_by_id.return_value = dispatch

        with pytest.raises(DispatchClosedError) as exc_info:
            await dispatch_service.delete_dispatch(dispatch.id, actor)

        assert exc_info.value.kind is ErrorKind.CONFLICT
        dispatch_service.repository.delete.assert_not_awaited()

    async def test_delete_logs_against_order(
        self, dispatch_service: DispatchService, actor: Actor
    ):
        order = make_order()
        dispatch = make_dispatch(order)
        dispatch_service.repository.get_by_id.return_value = dispatch

        await dispatch_service.delete_dispatch(dispatch.id, actor)

        dispatch_service.repository.delete.assert_awaited_once_with(dispatch)
        args = dispatch_service.change_logs.log_change.await_args
        assert args.args[1] == order.id
        assert args.kwargs["reason"] == "배차 삭제"
