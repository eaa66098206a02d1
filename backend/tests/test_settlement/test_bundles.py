"""
Test suite for BundleService.

Invoices are mocks; bundles, items and adjustments are real mapped objects
held in memory so that total recomputation runs as in production.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from brokerage.core.actor import Actor
from brokerage.core.errors import ConflictError, NotFoundError, ValidationError
from brokerage.database.models.bundle import BundleItem, SettlementBundle
from brokerage.database.models.company import CompanyType
from brokerage.schemas.bundles import AdjustmentCreate, BundleCreate
from brokerage.services.entities.repository import EntityNotFoundError
from brokerage.services.settlement.bundles import BundleService
from brokerage.services.settlement.enums import (
    AdjustmentType,
    BundleKind,
    BundleStatus,
    InvoiceStatus,
)


# ============================================================================
# Test Fixtures
# ============================================================================


def make_invoice(subtotal: str, tax: str, status: InvoiceStatus = InvoiceStatus.DRAFT) -> Mock:
    invoice = Mock()
    invoice.id = uuid.uuid4()
    invoice.subtotal_amount = Decimal(subtotal)
    invoice.tax_amount = Decimal(tax)
    invoice.status = status
    invoice.is_draft = status is InvoiceStatus.DRAFT
    return invoice


@pytest.fixture
def shipper_company() -> Mock:
    company = Mock()
    company.id = uuid.uuid4()
    company.name = "한빛물산"
    company.business_number = None
    company.ceo_name = None
    company.type = CompanyType.SHIPPER
    company.phone = None
    company.address_line = None
    company.bank_code = "004"
    company.bank_account = "123-456"
    company.bank_account_holder = "한빛물산"
    return company


@pytest.fixture
def bundle_service(mock_session: AsyncMock) -> BundleService:
    """Sales-side BundleService with mocked repositories."""
    service = BundleService(mock_session, BundleKind.SALES)
    service.repository = AsyncMock()
    service.invoices = AsyncMock()
    service.companies = AsyncMock()
    service.users = AsyncMock()
    service.drivers = AsyncMock()
    return service


@pytest.fixture
def bundle() -> SettlementBundle:
    item = BundleItem(
        id=uuid.uuid4(),
        order_sale_id=uuid.uuid4(),
        base_amount=Decimal("200000"),
        base_tax_amount=Decimal("20000"),
        adjustments=[],
    )
    return SettlementBundle(
        id=uuid.uuid4(),
        kind=BundleKind.SALES,
        company_id=uuid.uuid4(),
        status=BundleStatus.DRAFT,
        items=[item],
        adjustments=[],
        total_amount=Decimal("200000"),
        total_tax_amount=Decimal("20000"),
        total_amount_with_tax=Decimal("220000"),
    )


# ============================================================================
# Bundle creation
# ============================================================================


class TestCreateBundle:
    async def test_bundles_draft_invoices(
        self, bundle_service: BundleService, actor: Actor, shipper_company: Mock
    ):
        first = make_invoice("300000", "30000")
        second = make_invoice("100000", "10000")
        bundle_service.companies.get_or_raise.return_value = shipper_company
        bundle_service.invoices.get_many.return_value = [first, second]
        bundle_service.repository.bundled_invoice_ids.return_value = []
        payload = BundleCreate(
            invoice_ids=[first.id, second.id],
            company_id=shipper_company.id,
            adjustments=[
                AdjustmentCreate(type=AdjustmentType.DISCOUNT, amount=Decimal("20000"))
            ],
        )

        bundle = await bundle_service.create_bundle(payload, actor)

        assert bundle.status is BundleStatus.DRAFT
        assert bundle.manager_id == actor.id
        assert bundle.bank_account == "123-456"
        assert [item.order_sale_id for item in bundle.items] == [first.id, second.id]
        assert bundle.total_amount == Decimal("380000")
        assert bundle.total_tax_amount == Decimal("40000")
        assert bundle.total_amount_with_tax == Decimal("420000")
        assert first.status is InvoiceStatus.ISSUED
        assert second.status is InvoiceStatus.ISSUED
        bundle_service.repository.add.assert_awaited_once_with(bundle)

    async def test_missing_invoice(
        self, bundle_service: BundleService, actor: Actor, shipper_company: Mock
    ):
        found = make_invoice("1000", "100")
        missing_id = uuid.uuid4()
        bundle_service.companies.get_or_raise.return_value = shipper_company
        bundle_service.invoices.get_many.return_value = [found]
        payload = BundleCreate(invoice_ids=[found.id, missing_id], company_id=shipper_company.id)

        with pytest.raises(NotFoundError) as exc_info:
            await bundle_service.create_bundle(payload, actor)

        assert exc_info.value.details == {"invoiceIds": [str(missing_id)]}

    async def test_issued_invoice_conflicts(
        self, bundle_service: BundleService, actor: Actor, shipper_company: Mock
    ):
        issued = make_invoice("1000", "100", InvoiceStatus.ISSUED)
        bundle_service.companies.get_or_raise.return_value = shipper_company
        bundle_service.invoices.get_many.return_value = [issued]
        bundle_service.repository.bundled_invoice_ids.return_value = []
        payload = BundleCreate(invoice_ids=[issued.id], company_id=shipper_company.id)

        with pytest.raises(ConflictError):
            await bundle_service.create_bundle(payload, actor)

        bundle_service.repository.add.assert_not_awaited()


# ============================================================================
# Adjustments
# ============================================================================


class TestAdjustments:
    async def test_bundle_surcharge_updates_totals(
        self, bundle_service: BundleService, actor: Actor, bundle: SettlementBundle
    ):
        bundle_service.repository.get_or_raise.return_value = bundle
        payload = AdjustmentCreate(
            type=AdjustmentType.SURCHARGE,
            amount=Decimal("15000"),
            tax_amount=Decimal("1500"),
        )

        adjustment = await bundle_service.add_bundle_adjustment(bundle.id, payload, actor)

        assert adjustment.bundle_id == bundle.id
        assert bundle.total_amount == Decimal("215000")
        assert bundle.total_tax_amount == Decimal("21500")
        assert bundle.total_amount_with_tax == Decimal("236500")
        bundle_service.repository.flush.assert_awaited_once()

    async def test_item_discount_then_removal(
        self, bundle_service: BundleService, actor: Actor, bundle: SettlementBundle
    ):
        bundle_service.repository.get_or_raise.return_value = bundle
        item = bundle.items[0]
        payload = AdjustmentCreate(type=AdjustmentType.DISCOUNT, amount=Decimal("50000"))

        adjustment = await bundle_service.add_item_adjustment(bundle.id, item.id, payload, actor)
        assert bundle.total_amount_with_tax == Decimal("170000")

        adjustment.id = uuid.uuid4()
        await bundle_service.delete_item_adjustment(bundle.id, item.id, adjustment.id, actor)
        assert bundle.total_amount_with_tax == Decimal("220000")

    async def test_unknown_item(
        self, bundle_service: BundleService, actor: Actor, bundle: SettlementBundle
    ):
        bundle_service.repository.get_or_raise.return_value = bundle
        payload = AdjustmentCreate(type=AdjustmentType.DISCOUNT, amount=Decimal("1"))

        with pytest.raises(EntityNotFoundError):
            await bundle_service.add_item_adjustment(bundle.id, uuid.uuid4(), payload, actor)


# ============================================================================
# Deletion
# ============================================================================


class TestDeleteBundle:
    async def test_releases_invoices_to_draft(
        self, bundle_service: BundleService, actor: Actor, bundle: SettlementBundle
    ):
        invoice = make_invoice("200000", "20000", InvoiceStatus.ISSUED)
        bundle_service.repository.get_or_raise.return_value = bundle
        bundle_service.invoices.get_many.return_value = [invoice]

        await bundle_service.delete_bundle(bundle.id, actor)

        bundle_service.invoices.get_many.assert_awaited_once_with([bundle.items[0].order_sale_id])
        assert invoice.status is InvoiceStatus.DRAFT
        bundle_service.repository.delete.assert_awaited_once_with(bundle)

    async def test_empty_bundle_rejected(
        self, bundle_service: BundleService, actor: Actor, bundle: SettlementBundle
    ):
        bundle.items = []
        bundle_service.repository.get_or_raise.return_value = bundle

        with pytest.raises(ValidationError):
            await bundle_service.delete_bundle(bundle.id, actor)
