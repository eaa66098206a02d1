"""
Integration tests for the order API endpoints.

OrderService is patched at the router so the tests cover request parsing,
camelCase serialization and error mapping without a database.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from httpx import AsyncClient

from brokerage.core.actor import Actor
from brokerage.core.errors import ErrorKind, InvalidFieldsError
from brokerage.database.models.order import Order
from brokerage.services.batch import BatchMode, BatchResult
from brokerage.services.orders.enums import OrderBatchAction, OrderFlowStatus
from brokerage.services.orders.state_machine import OrderCanceledError

ORDERS = "/api/v1/orders"


def make_order(**overrides: Any) -> Order:
    values = {
        "id": uuid.uuid4(),
        "company_id": uuid.uuid4(),
        "flow_status": OrderFlowStatus.REQUESTED,
        "is_canceled": False,
        "cargo_name": "철강 코일",
        "pickup_date": date(2025, 1, 10),
        "estimated_price_amount": Decimal("350000"),
    }
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def order_service():
    with patch("brokerage.api.v1.orders.OrderService") as service_cls:
        yield service_cls.return_value


class TestCreateOrder:
    async def test_create_returns_201(
        self, async_client: AsyncClient, order_service, actor: Actor
    ):
        order = make_order(company_id=actor.company_id)
        order_service.create_order = AsyncMock(return_value=order)

        response = await async_client.post(
            ORDERS,
            json={"cargoName": "철강 코일", "pickupDate": "2025-01-10", "priceAmount": 350000},
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["id"] == str(order.id)
        assert data["flowStatus"] == "운송요청"
        assert data["priceAmount"] == "350000"
        request, passed_actor = order_service.create_order.await_args.args
        assert request.price_amount == Decimal("350000")
        assert passed_actor == actor

    async def test_delivery_before_pickup(self, async_client: AsyncClient, order_service):
        response = await async_client.post(
            ORDERS,
            json={
                "cargoName": "철강 코일",
                "pickupDate": "2025-01-10",
                "deliveryDate": "2025-01-09",
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_bad_time_format(self, async_client: AsyncClient, order_service):
        response = await async_client.post(
            ORDERS, json={"cargoName": "철강 코일", "pickupTime": "25:99"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestListOrders:
    async def test_filters_passed_through(self, async_client: AsyncClient, order_service):
        order_service.list_orders = AsyncMock(return_value=([make_order()], 41))

        response = await async_client.get(
            ORDERS,
            params={"flowStatus": "배차대기", "isCanceled": "false", "page": 2, "pageSize": 20},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 41
        assert data["totalPages"] == 3
        assert len(data["items"]) == 1
        kwargs = order_service.list_orders.await_args.kwargs
        assert kwargs["flow_status"] is OrderFlowStatus.DISPATCH_WAIT
        assert kwargs["is_canceled"] is False
        assert kwargs["page"] == 2

    async def test_unknown_status_rejected(self, async_client: AsyncClient, order_service):
        response = await async_client.get(ORDERS, params={"flowStatus": "분실"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestStatusChange:
    async def test_status_change(self, async_client: AsyncClient, order_service):
        order_id = uuid.uuid4()
        order_service.update_status = AsyncMock(
            return_value={
                "order_id": order_id,
                "previous_status": OrderFlowStatus.REQUESTED,
                "current_status": OrderFlowStatus.DISPATCH_WAIT,
            }
        )

        response = await async_client.put(
            f"{ORDERS}/{order_id}/status", json={"flowStatus": "배차대기", "reason": "확인"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "orderId": str(order_id),
            "previousStatus": "운송요청",
            "currentStatus": "배차대기",
        }
        assert order_service.update_status.await_args.kwargs == {"reason": "확인"}

    async def test_canceled_order_rejected(self, async_client: AsyncClient, order_service):
        order_id = uuid.uuid4()
        order_service.update_status = AsyncMock(
            side_effect=OrderCanceledError(
                "취소된 주문은 상태를 변경할 수 없습니다",
                OrderFlowStatus.REQUESTED,
                OrderFlowStatus.DISPATCH_WAIT,
            )
        )

        response = await async_client.put(
            f"{ORDERS}/{order_id}/status", json={"flowStatus": "배차대기"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["details"] == {
            "currentStatus": "운송요청",
            "requestedStatus": "배차대기",
        }


class TestFieldPatch:
    async def test_invalid_fields_listed(self, async_client: AsyncClient, order_service):
        order_service.update_fields = AsyncMock(
            side_effect=InvalidFieldsError(["companyId", "createdBy"])
        )

        response = await async_client.patch(
            f"{ORDERS}/{uuid.uuid4()}/fields",
            json={"fields": {"companyId": "x", "createdBy": "y"}},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["details"] == {"fields": ["companyId", "createdBy"]}

    async def test_patch_applied(self, async_client: AsyncClient, order_service):
        order = make_order(cargo_name="알루미늄 판재")
        order_service.update_fields = AsyncMock(return_value=order)

        response = await async_client.patch(
            f"{ORDERS}/{order.id}/fields",
            json={"fields": {"cargoName": "알루미늄 판재"}, "reason": "품목 정정"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["cargoName"] == "알루미늄 판재"
        args = order_service.update_fields.await_args
        assert args.args[1] == {"cargoName": "알루미늄 판재"}
        assert args.kwargs == {"reason": "품목 정정"}


class TestBatch:
    async def test_batch_reports_outcome(self, async_client: AsyncClient, order_service):
        ok_id, bad_id = uuid.uuid4(), uuid.uuid4()
        result = BatchResult(processed=[str(ok_id)])
        result.record_failure(bad_id, ErrorKind.CONFLICT, "취소된 주문입니다")
        order_service.batch = AsyncMock(return_value=result)

        response = await async_client.post(
            f"{ORDERS}/batch",
            json={"orderIds": [str(ok_id), str(bad_id), str(ok_id)], "action": "cancel"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["processed"] == [str(ok_id)]
        assert data["failed"] == [str(bad_id)]
        assert data["errors"][0]["kind"] == "conflict"
        assert data["message"] == "1 processed, 1 failed"
        ids, action, _ = order_service.batch.await_args.args
        assert ids == [ok_id, bad_id]
        assert action is OrderBatchAction.CANCEL
        assert order_service.batch.await_args.kwargs["mode"] is BatchMode.BEST_EFFORT

    async def test_update_status_requires_status(self, async_client: AsyncClient, order_service):
        response = await async_client.post(
            f"{ORDERS}/batch",
            json={"orderIds": [str(uuid.uuid4())], "action": "updateStatus"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_empty_id_list(self, async_client: AsyncClient, order_service):
        response = await async_client.post(
            f"{ORDERS}/batch", json={"orderIds": [], "action": "delete"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestValidate:
    async def test_validated_payload_echoed(
        self, async_client: AsyncClient, order_service, actor: Actor
    ):
        order_service.validate_order = AsyncMock(
            side_effect=lambda payload, _actor: payload.model_copy(
                update={"company_id": actor.company_id}
            )
        )

        response = await async_client.post(
            f"{ORDERS}/validate", json={"cargoName": "목재", "pickupDate": "2025-01-10"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["message"] == "화물 데이터가 유효합니다."
        assert data["data"]["companyId"] == str(actor.company_id)
        assert data["data"]["cargoName"] == "목재"


class TestRecentCargo:
    async def test_company_required(self, async_client: AsyncClient, order_service):
        response = await async_client.get(f"{ORDERS}/recent")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_recent_cargo(self, async_client: AsyncClient, order_service):
        company_id = uuid.uuid4()
        order_id = uuid.uuid4()
        order_service.recent_cargos = AsyncMock(
            return_value=[
                {
                    "order_id": order_id,
                    "cargo_name": "합판",
                    "requested_vehicle_weight": None,
                    "requested_vehicle_type": None,
                    "memo": None,
                    "updated_at": "2025-03-01T09:00:00Z",
                }
            ]
        )

        response = await async_client.get(
            f"{ORDERS}/recent", params={"companyId": str(company_id), "limit": 3}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()[0]["orderId"] == str(order_id)
        order_service.recent_cargos.assert_awaited_once_with(company_id, limit=3)


class TestOrderBoard:
    @pytest.fixture
    def charge_service(self):
        with patch("brokerage.api.v1.orders.ChargeService") as service_cls:
            yield service_cls.return_value

    async def test_board_without_dispatch(
        self, async_client: AsyncClient, order_service, charge_service
    ):
        order = make_order()
        order_service.list_with_dispatch = AsyncMock(return_value=([order], 1))
        charge_service.get_order_charge_summary = AsyncMock(
            return_value=[
                {
                    "order_id": order.id,
                    "total_amount": Decimal("0"),
                    "sales_amount": Decimal("0"),
                    "purchase_amount": Decimal("0"),
                    "profit": Decimal("0"),
                    "groups": [],
                }
            ]
        )

        response = await async_client.get(
            f"{ORDERS}/with-dispatch", params={"hasDispatch": "false", "sortBy": "pickupDate"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["order"]["id"] == str(order.id)
        assert item["dispatch"] is None
        assert item["charge"]["totalAmount"] == "0"
        kwargs = order_service.list_with_dispatch.await_args.kwargs
        assert kwargs["has_dispatch"] is False
        charge_service.get_order_charge_summary.assert_awaited_once_with([order.id])

    async def test_empty_board_skips_charges(
        self, async_client: AsyncClient, order_service, charge_service
    ):
        order_service.list_with_dispatch = AsyncMock(return_value=([], 0))
        charge_service.get_order_charge_summary = AsyncMock()

        response = await async_client.get(f"{ORDERS}/with-dispatch")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["items"] == []
        charge_service.get_order_charge_summary.assert_not_awaited()
