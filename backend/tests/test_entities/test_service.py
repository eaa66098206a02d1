"""
Test suite for the company, user and address services.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from brokerage.core.actor import AccessLevel, Actor
from brokerage.core.errors import ErrorKind, InvalidFieldsError
from brokerage.core.security import verify_password
from brokerage.database.models.address import Address, AddressType
from brokerage.database.models.company import Company, CompanyStatus, CompanyType
from brokerage.database.models.user import User, UserStatus
from brokerage.schemas.entities import UserCreate
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.batch import BatchMode
from brokerage.services.entities.enums import AddressBatchAction
from brokerage.services.entities.repository import DuplicateEntityError, EntityNotFoundError
from brokerage.services.entities.service import (
    AddressService,
    CompanyService,
    UserService,
    entity_data,
)


def make_company(**overrides) -> Company:
    values = {
        "id": uuid.uuid4(),
        "name": "한빛물산",
        "business_number": "123-45-67890",
        "type": CompanyType.SHIPPER,
        "status": CompanyStatus.ACTIVE,
    }
    values.update(overrides)
    return Company(**values)


def make_user(**overrides) -> User:
    values = {
        "id": uuid.uuid4(),
        "email": "kim@example.com",
        "password_hash": "$2b$12$hash",
        "name": "김주선",
        "status": UserStatus.ACTIVE,
    }
    values.update(overrides)
    return User(**values)


def with_mocks(service):
    service.repository = AsyncMock()
    service.change_logs = AsyncMock()
    if hasattr(service, "companies"):
        service.companies = AsyncMock()
    return service


@pytest.fixture
def company_service(mock_session: AsyncMock) -> CompanyService:
    return with_mocks(CompanyService(mock_session))


@pytest.fixture
def user_service(mock_session: AsyncMock) -> UserService:
    return with_mocks(UserService(mock_session))


# ============================================================================
# Companies
# ============================================================================


class TestCompanyService:
    async def test_update_status_logs_transition(
        self, company_service: CompanyService, actor: Actor
    ):
        company = make_company()
        company_service.repository.get_or_raise.return_value = company

        result = await company_service.update_status(company.id, CompanyStatus.INACTIVE, actor)

        assert result.status is CompanyStatus.INACTIVE
        assert result.updated_by == actor.id
        company_service.repository.flush.assert_awaited_once()
        args = company_service.change_logs.log_change.await_args
        assert args.args[:4] == (EntityType.COMPANY, company.id, actor, ChangeType.STATUS_CHANGE)
        assert args.kwargs["old_data"] == {"status": CompanyStatus.ACTIVE}
        assert args.kwargs["new_data"] == {"status": CompanyStatus.INACTIVE}
        assert args.kwargs["reason"] == "상태 변경: active → inactive"

    async def test_unchanged_patch_not_logged(
        self, company_service: CompanyService, actor: Actor
    ):
        company = make_company()
        company_service.repository.get_or_raise.return_value = company

        await company_service.update_fields(company.id, {"name": "한빛물산"}, actor)

        company_service.repository.flush.assert_not_awaited()
        company_service.change_logs.log_change.assert_not_awaited()

    async def test_update_fields_uses_camel_case_log_keys(
        self, company_service: CompanyService, actor: Actor
    ):
        company = make_company()
        company_service.repository.get_or_raise.return_value = company

        await company_service.update_fields(
            company.id, {"ceoName": "박대표", "bankCode": "004"}, actor, reason="정보 수정"
        )

        assert company.ceo_name == "박대표"
        kwargs = company_service.change_logs.log_change.await_args.kwargs
        assert kwargs["new_data"] == {"ceoName": "박대표", "bankCode": "004"}
        assert kwargs["old_data"] == {"ceoName": None, "bankCode": None}
        assert kwargs["reason"] == "정보 수정"

    async def test_update_fields_rejects_unknown_keys(
        self, company_service: CompanyService, actor: Actor
    ):
        with pytest.raises(InvalidFieldsError) as exc_info:
            await company_service.update_fields(
                uuid.uuid4(), {"name": "x", "createdBy": "y"}, actor
            )

        assert exc_info.value.fields == ["createdBy"]
        company_service.repository.get_or_raise.assert_not_awaited()

    async def test_batch_update_status_best_effort(
        self, company_service: CompanyService, actor: Actor
    ):
        company = make_company()
        missing_id = uuid.uuid4()

        async def lookup(company_id):
            if company_id == company.id:
                return company
            raise EntityNotFoundError("Company", company_id)

        company_service.repository.get_or_raise.side_effect = lookup

        result = await company_service.batch_update_status(
            [company.id, missing_id], CompanyStatus.INACTIVE, actor, BatchMode.BEST_EFFORT
        )

        assert result.processed == [str(company.id)]
        assert result.failed == [str(missing_id)]
        assert result.errors[0]["kind"] is ErrorKind.NOT_FOUND
        assert company.status is CompanyStatus.INACTIVE


# ============================================================================
# Users
# ============================================================================


class TestUserService:
    async def test_create_hashes_password(
        self, user_service: UserService, admin_actor: Actor
    ):
        company_id = uuid.uuid4()
        user_service.repository.get_by_email.return_value = None
        payload = UserCreate(
            email="new@example.com",
            password="secret123",
            name="이신규",
            company_id=company_id,
            systemAccessLevel="broker_member",
        )

        user = await user_service.create(payload, admin_actor)

        user_service.companies.get_or_raise.assert_awaited_once_with(company_id)
        user_service.repository.add.assert_awaited_once_with(user)
        assert user.password_hash != "secret123"
        assert verify_password("secret123", user.password_hash)
        assert user.created_by == admin_actor.id
        new_data = user_service.change_logs.log_change.await_args.kwargs["new_data"]
        assert "passwordHash" not in new_data
        assert new_data["email"] == "new@example.com"

    async def test_create_duplicate_email(self, user_service: UserService, admin_actor: Actor):
        user_service.repository.get_by_email.return_value = make_user()
        payload = UserCreate(email="kim@example.com", password="secret123", name="김중복")

        with pytest.raises(DuplicateEntityError):
            await user_service.create(payload, admin_actor)

        user_service.repository.add.assert_not_awaited()

    async def test_update_status_reports_change(
        self, user_service: UserService, admin_actor: Actor
    ):
        user = make_user()
        user_service.repository.get_or_raise.return_value = user

        updated, changed = await user_service.update_status(
            user.id, UserStatus.LOCKED, admin_actor
        )

        assert changed is True
        assert updated.status is UserStatus.LOCKED
        reason = user_service.change_logs.log_change.await_args.kwargs["reason"]
        assert reason == "상태 변경: active → locked"

    async def test_update_status_same_value(
        self, user_service: UserService, admin_actor: Actor
    ):
        user = make_user()
        user_service.repository.get_or_raise.return_value = user

        _, changed = await user_service.update_status(user.id, UserStatus.ACTIVE, admin_actor)

        assert changed is False
        user_service.change_logs.log_change.assert_not_awaited()

    async def test_update_fields_checks_company(
        self, user_service: UserService, admin_actor: Actor
    ):
        user = make_user()
        company_id = uuid.uuid4()
        user_service.repository.get_or_raise.return_value = user

        await user_service.update_fields(user.id, {"companyId": str(company_id)}, admin_actor)

        user_service.companies.get_or_raise.assert_awaited_once_with(company_id)
        assert user.company_id == company_id

    def test_entity_data_hides_password_hash(self):
        data = entity_data(make_user())

        assert "passwordHash" not in data
        assert "password_hash" not in data
        assert data["email"] == "kim@example.com"
        assert data["status"] == "active"


# ============================================================================
# Addresses
# ============================================================================


class TestAddressService:
    async def test_delete_is_soft(self, mock_session: AsyncMock, actor: Actor):
        service = with_mocks(AddressService(mock_session))
        address = Address(
            id=uuid.uuid4(),
            name="평택 물류센터",
            type=AddressType.LOAD,
            road_address="경기도 평택시 포승읍 1",
            is_frequent=True,
        )
        service.repository.get_or_raise.return_value = address

        await service.delete(address.id, actor)

        assert address.is_deleted
        assert address.updated_by == actor.id
        service.repository.flush.assert_awaited_once()
        service.repository.delete.assert_not_awaited()
        args = service.change_logs.log_change.await_args
        assert args.args[:4] == (EntityType.ADDRESS, address.id, actor, ChangeType.DELETE)
        assert args.kwargs["old_data"]["name"] == "평택 물류센터"

    async def test_batch_set_frequent_best_effort(self, mock_session: AsyncMock, actor: Actor):
        service = with_mocks(AddressService(mock_session))
        address = Address(
            id=uuid.uuid4(),
            name="인천 공장",
            type=AddressType.DROP,
            road_address="인천 서구 가좌로 1",
            is_frequent=False,
        )
        missing_id = uuid.uuid4()

        async def get_or_raise(address_id):
            if address_id == missing_id:
                raise EntityNotFoundError("Address", address_id)
            return address

        service.repository.get_or_raise.side_effect = get_or_raise

        result = await service.batch(
            [address.id, missing_id], AddressBatchAction.SET_FREQUENT, actor
        )

        assert address.is_frequent is True
        assert result.processed == [str(address.id)]
        assert result.failed == [str(missing_id)]
        assert result.errors[0]["kind"] is ErrorKind.NOT_FOUND
        args = service.change_logs.log_change.await_args
        assert args.args[3] is ChangeType.UPDATE
        assert args.kwargs["new_data"] == {"isFrequent": True}

    async def test_batch_delete_all_or_nothing(self, mock_session: AsyncMock, actor: Actor):
        service = with_mocks(AddressService(mock_session))
        service.repository.get_or_raise.side_effect = EntityNotFoundError("Address", "x")

        with pytest.raises(EntityNotFoundError):
            await service.batch(
                [uuid.uuid4(), uuid.uuid4()],
                AddressBatchAction.DELETE,
                actor,
                mode=BatchMode.ALL_OR_NOTHING,
            )

        mock_session.begin_nested.assert_called_once()
        service.change_logs.log_change.assert_not_awaited()


class TestCompanyUsers:
    async def test_unknown_company(self, user_service: UserService):
        company_id = uuid.uuid4()
        user_service.companies.get_or_raise.side_effect = EntityNotFoundError(
            "Company", company_id
        )

        with pytest.raises(EntityNotFoundError):
            await user_service.list_company_users(company_id)

        user_service.repository.list_rows.assert_not_awaited()

    async def test_filters_by_company(self, user_service: UserService):
        company_id = uuid.uuid4()
        user_service.repository.list_rows.return_value = ([make_user()], 1)

        rows, total = await user_service.list_company_users(
            company_id, status=UserStatus.ACTIVE, access_level=AccessLevel.SHIPPER_MEMBER
        )

        assert total == 1
        conditions = user_service.repository.list_rows.await_args.args[0]
        assert len(conditions) == 3
        assert user_service.repository.list_rows.await_args.kwargs == {"page": 1, "page_size": 10}
