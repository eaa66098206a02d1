"""
Integration tests for the address and company endpoints.

Services are patched at the routers; the tests cover query parsing,
request validation and error mapping.
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from httpx import AsyncClient

from brokerage.core.actor import AccessLevel, Actor
from brokerage.core.errors import ErrorKind
from brokerage.database.models.address import AddressType
from brokerage.database.models.user import UserStatus
from brokerage.services.batch import BatchMode, BatchResult
from brokerage.services.entities.enums import AddressBatchAction
from brokerage.services.entities.repository import EntityNotFoundError
from brokerage.services.orders.enums import RecentAddressKind

ADDRESSES = "/api/v1/addresses"
COMPANIES = "/api/v1/companies"


@pytest.fixture
def address_service():
    with patch("brokerage.api.v1.addresses.AddressService") as service_cls:
        yield service_cls.return_value


@pytest.fixture
def user_service():
    with patch("brokerage.api.v1.companies.UserService") as service_cls:
        yield service_cls.return_value


class TestAddressBatch:
    async def test_duplicates_collapsed(self, async_client: AsyncClient, address_service):
        kept, missing = uuid.uuid4(), uuid.uuid4()
        result = BatchResult(processed=[str(kept)])
        result.record_failure(missing, ErrorKind.NOT_FOUND, "Address not found")
        address_service.batch = AsyncMock(return_value=result)

        response = await async_client.post(
            f"{ADDRESSES}/batch",
            json={
                "addressIds": [str(kept), str(kept), str(missing)],
                "action": "setFrequent",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["processed"] == [str(kept)]
        assert data["errors"][0]["kind"] == "not_found"
        assert data["message"] == "1 processed, 1 failed"
        ids, action, _actor = address_service.batch.await_args.args
        assert ids == [kept, missing]
        assert action is AddressBatchAction.SET_FREQUENT
        assert address_service.batch.await_args.kwargs["mode"] is BatchMode.BEST_EFFORT

    async def test_unknown_action(self, async_client: AsyncClient, address_service):
        response = await async_client.post(
            f"{ADDRESSES}/batch",
            json={"addressIds": [str(uuid.uuid4())], "action": "archive"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestRecentAddresses:
    async def test_delivery_locations(self, async_client: AsyncClient, actor: Actor):
        order_id = uuid.uuid4()
        with patch("brokerage.api.v1.addresses.OrderService") as service_cls:
            service = service_cls.return_value
            service.recent_addresses = AsyncMock(
                return_value=[
                    {
                        "order_id": order_id,
                        "address_id": None,
                        "type": AddressType.DROP,
                        "name": "장소명 없음",
                        "road_address": "부산 강서구 녹산로 2",
                        "contact_name": "최과장",
                        "contact_phone": "010-0000-0000",
                        "updated_at": "2025-03-01T09:00:00Z",
                    }
                ]
            )

            response = await async_client.get(
                f"{ADDRESSES}/recent", params={"type": "delivery", "limit": 5}
            )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data[0]["orderId"] == str(order_id)
        assert data[0]["roadAddress"] == "부산 강서구 녹산로 2"
        assert data[0]["type"] == "drop"
        service.recent_addresses.assert_awaited_once_with(
            actor, RecentAddressKind.DELIVERY, limit=5
        )

    async def test_type_required(self, async_client: AsyncClient):
        response = await async_client.get(f"{ADDRESSES}/recent")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestCompanyUsers:
    async def test_filters_passed_through(self, async_client: AsyncClient, user_service):
        company_id = uuid.uuid4()
        user_service.list_company_users = AsyncMock(return_value=([], 0))

        response = await async_client.get(
            f"{COMPANIES}/{company_id}/users",
            params={"status": "active", "systemAccessLevel": "broker_member"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total"] == 0
        user_service.list_company_users.assert_awaited_once_with(
            company_id,
            status=UserStatus.ACTIVE,
            access_level=AccessLevel.BROKER_MEMBER,
            page=1,
            page_size=10,
        )

    async def test_unknown_company(self, async_client: AsyncClient, user_service):
        company_id = uuid.uuid4()
        user_service.list_company_users = AsyncMock(
            side_effect=EntityNotFoundError("Company", company_id)
        )

        response = await async_client.get(f"{COMPANIES}/{company_id}/users")

        assert response.status_code == status.HTTP_404_NOT_FOUND
