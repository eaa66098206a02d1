"""
Settlement bundles.

A bundle collects invoices of one side for one company. Each invoice becomes
an item whose base amount and tax are copied from the invoice, and bundling
moves the invoice to ``issued``. Bundle totals are recomputed from the items
and every adjustment whenever an adjustment changes.
"""

import uuid
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.errors import ConflictError, NotFoundError, ValidationError, check_allowed_fields
from brokerage.core.logging import get_logger
from brokerage.database.models.bundle import (
    BundleAdjustment,
    BundleItem,
    ItemAdjustment,
    SettlementBundle,
)
from brokerage.schemas.bundles import (
    AdjustmentCreate,
    AdjustmentUpdate,
    BundleCreate,
    BundleFieldsPatch,
)
from brokerage.schemas.snapshots import CompanySnapshot, DriverSnapshot, UserSnapshot
from brokerage.services.charges.calculations import ZERO
from brokerage.services.entities.repository import (
    CompanyRepository,
    DriverRepository,
    EntityNotFoundError,
    UserRepository,
)
from brokerage.services.settlement.enums import BundleKind, BundleStatus, InvoiceStatus
from brokerage.services.settlement.repository import BundleRepository, invoice_repository

logger = get_logger(__name__)

BUNDLE_FIELD_ALLOWLIST = frozenset(
    {
        "companyId",
        "companySnapshot",
        "managerId",
        "managerSnapshot",
        "paymentMethod",
        "bankCode",
        "bankAccount",
        "bankAccountHolder",
        "settlementMemo",
        "periodType",
        "periodFrom",
        "periodTo",
        "invoiceIssuedAt",
        "depositRequestedAt",
        "depositReceivedAt",
        "settlementConfirmedAt",
        "settlementBatchId",
        "settledAt",
        "invoiceNo",
        "totalAmount",
        "totalTaxAmount",
        "totalAmountWithTax",
        "status",
    }
)


def compute_bundle_totals(
    items: Iterable[Any], bundle_adjustments: Iterable[Any]
) -> dict[str, Decimal]:
    """
    Bundle totals from items and adjustments.

    ``total_amount`` is the item bases plus every signed adjustment amount,
    ``total_tax_amount`` the item base taxes plus every signed adjustment
    tax. Discounts subtract, surcharges add.
    """
    amount = ZERO
    tax = ZERO
    for item in items:
        amount += Decimal(item.base_amount)
        tax += Decimal(item.base_tax_amount or 0)
        for adjustment in item.adjustments:
            amount += adjustment.delta
            tax += adjustment.tax_delta
    for adjustment in bundle_adjustments:
        amount += adjustment.delta
        tax += adjustment.tax_delta
    return {
        "total_amount": amount,
        "total_tax_amount": tax,
        "total_amount_with_tax": amount + tax,
    }


def _apply_totals(bundle: SettlementBundle) -> None:
    for key, value in compute_bundle_totals(bundle.items, bundle.adjustments).items():
        setattr(bundle, key, value)


def _find(collection: Iterable[Any], entity_id: uuid.UUID, entity: str) -> Any:
    for row in collection:
        if row.id == entity_id:
            return row
    raise EntityNotFoundError(entity, entity_id)


class BundleService:
    """
    Bundle operations for one ledger side.

    Attributes:
        kind: sales or purchase
        repository: Bundle repository scoped to ``kind``
        invoices: Repository of the invoices this side bundles
    """

    def __init__(self, session: AsyncSession, kind: BundleKind):
        self.session = session
        self.kind = kind
        self.repository = BundleRepository(session, kind)
        self.invoices = invoice_repository(kind, session)
        self.companies = CompanyRepository(session)
        self.users = UserRepository(session)
        self.drivers = DriverRepository(session)

    def _item_for(self, invoice: Any) -> BundleItem:
        item = BundleItem(
            base_amount=invoice.subtotal_amount,
            base_tax_amount=invoice.tax_amount,
            adjustments=[],
        )
        if self.kind is BundleKind.SALES:
            item.order_sale_id = invoice.id
        else:
            item.order_purchase_id = invoice.id
        return item

    @staticmethod
    def _adjustment(model: type, payload: AdjustmentCreate, actor: Actor, **columns: Any) -> Any:
        adjustment = model(
            type=payload.type,
            amount=payload.amount,
            tax_amount=payload.tax_amount,
            description=payload.description,
            **columns,
        )
        adjustment.stamp_created(actor)
        return adjustment

    async def create_bundle(self, payload: BundleCreate, actor: Actor) -> SettlementBundle:
        """
        Bundle invoices for a company.

        Raises:
            EntityNotFoundError: If the company, manager or driver does not exist
            NotFoundError: If any invoice does not exist
            ConflictError: If an invoice is already bundled or not a draft
        """
        company = await self.companies.get_or_raise(payload.company_id)

        if payload.manager_id is not None:
            manager = await self.users.get_or_raise(payload.manager_id)
            manager_id, manager_snapshot = manager.id, UserSnapshot.from_entity(manager).to_json()
        else:
            manager_id, manager_snapshot = actor.id, actor.to_snapshot()

        driver_snapshot = None
        if payload.driver_id is not None:
            driver = await self.drivers.get_or_raise(payload.driver_id)
            driver_snapshot = DriverSnapshot.from_entity(driver).to_json()

        invoices = await self.invoices.get_many(payload.invoice_ids)
        found = {invoice.id for invoice in invoices}
        missing = [str(invoice_id) for invoice_id in payload.invoice_ids if invoice_id not in found]
        if missing:
            raise NotFoundError("정산 대상 전표를 찾을 수 없습니다", details={"invoiceIds": missing})

        bundled = await self.repository.bundled_invoice_ids(payload.invoice_ids)
        not_draft = [str(invoice.id) for invoice in invoices if not invoice.is_draft]
        if bundled or not_draft:
            raise ConflictError(
                "이미 정산 묶음에 포함된 전표가 있습니다",
                details={"invoiceIds": sorted({*map(str, bundled), *not_draft})},
            )

        bundle = SettlementBundle(
            kind=self.kind,
            company_id=company.id,
            company_snapshot=CompanySnapshot.from_entity(company).to_json(),
            manager_id=manager_id,
            manager_snapshot=manager_snapshot,
            driver_id=payload.driver_id,
            driver_snapshot=driver_snapshot,
            period_type=payload.period_type,
            period_from=payload.period_from,
            period_to=payload.period_to,
            payment_method=payload.payment_method,
            bank_code=company.bank_code,
            bank_account=company.bank_account,
            bank_account_holder=company.bank_account_holder,
            settlement_memo=payload.settlement_memo,
            status=BundleStatus.DRAFT,
            items=[],
            adjustments=[],
        )
        bundle.stamp_created(actor)

        for invoice in invoices:
            item = self._item_for(invoice)
            item.stamp_created(actor)
            bundle.items.append(item)
            invoice.status = InvoiceStatus.ISSUED
            invoice.stamp_updated(actor)

        for adjustment_payload in payload.adjustments:
            bundle.adjustments.append(self._adjustment(BundleAdjustment, adjustment_payload, actor))

        _apply_totals(bundle)
        await self.repository.add(bundle)

        logger.info(
            "Settlement bundle created",
            kind=self.kind.value,
            bundle_id=str(bundle.id),
            company_id=str(company.id),
            item_count=len(bundle.items),
            total_amount_with_tax=str(bundle.total_amount_with_tax),
            actor_id=str(actor.id),
        )
        return bundle

    async def get_bundle(self, bundle_id: uuid.UUID) -> SettlementBundle:
        return await self.repository.get_or_raise(bundle_id)

    async def list_bundles(
        self,
        company_id: Optional[uuid.UUID] = None,
        status: Optional[BundleStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[SettlementBundle], int]:
        conditions = []
        if company_id:
            conditions.append(SettlementBundle.company_id == company_id)
        if status:
            conditions.append(SettlementBundle.status == status)
        return await self.repository.list_rows(conditions, page=page, page_size=page_size)

    async def update_bundle_fields(
        self, bundle_id: uuid.UUID, fields: dict[str, Any], actor: Actor
    ) -> SettlementBundle:
        """
        Raises:
            InvalidFieldsError: If the patch contains keys outside the allow-list
            EntityNotFoundError: If the bundle does not exist
        """
        check_allowed_fields(fields, BUNDLE_FIELD_ALLOWLIST, bundle_id=str(bundle_id))
        values = BundleFieldsPatch.model_validate(fields).model_dump(exclude_unset=True)

        bundle = await self.repository.get_or_raise(bundle_id)
        for key, value in values.items():
            setattr(bundle, key, value)
        bundle.stamp_updated(actor)
        await self.repository.flush()

        logger.info(
            "Settlement bundle updated",
            kind=self.kind.value,
            bundle_id=str(bundle_id),
            fields=sorted(values),
            actor_id=str(actor.id),
        )
        return bundle

    async def delete_bundle(self, bundle_id: uuid.UUID, actor: Actor) -> None:
        """
        Delete a bundle and release its invoices back to draft.

        Raises:
            EntityNotFoundError: If the bundle does not exist
            ValidationError: If the bundle has no items
        """
        bundle = await self.repository.get_or_raise(bundle_id)
        if not bundle.items:
            raise ValidationError(
                "정산 묶음에 포함된 전표가 없습니다",
                details={"bundleId": str(bundle_id)},
            )

        invoice_ids = [item.invoice_id for item in bundle.items if item.invoice_id is not None]
        for invoice in await self.invoices.get_many(invoice_ids):
            invoice.status = InvoiceStatus.DRAFT
            invoice.stamp_updated(actor)

        await self.repository.delete(bundle)
        logger.info(
            "Settlement bundle deleted",
            kind=self.kind.value,
            bundle_id=str(bundle_id),
            released_invoices=len(invoice_ids),
            actor_id=str(actor.id),
        )

    # Bundle adjustments

    async def list_bundle_adjustments(self, bundle_id: uuid.UUID) -> list[BundleAdjustment]:
        bundle = await self.repository.get_or_raise(bundle_id)
        return sorted(bundle.adjustments, key=lambda row: row.created_at)

    async def add_bundle_adjustment(
        self, bundle_id: uuid.UUID, payload: AdjustmentCreate, actor: Actor
    ) -> BundleAdjustment:
        bundle = await self.repository.get_or_raise(bundle_id)
        adjustment = self._adjustment(BundleAdjustment, payload, actor, bundle_id=bundle.id)
        bundle.adjustments.append(adjustment)
        return await self._save_adjustment(bundle, adjustment, actor, "added")

    async def update_bundle_adjustment(
        self,
        bundle_id: uuid.UUID,
        adjustment_id: uuid.UUID,
        payload: AdjustmentUpdate,
        actor: Actor,
    ) -> BundleAdjustment:
        bundle = await self.repository.get_or_raise(bundle_id)
        adjustment = _find(bundle.adjustments, adjustment_id, "BundleAdjustment")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(adjustment, key, value)
        adjustment.stamp_updated(actor)
        return await self._save_adjustment(bundle, adjustment, actor, "updated")

    async def delete_bundle_adjustment(
        self, bundle_id: uuid.UUID, adjustment_id: uuid.UUID, actor: Actor
    ) -> SettlementBundle:
        bundle = await self.repository.get_or_raise(bundle_id)
        adjustment = _find(bundle.adjustments, adjustment_id, "BundleAdjustment")
        bundle.adjustments.remove(adjustment)
        await self._save_adjustment(bundle, adjustment, actor, "deleted")
        return bundle

    # Item adjustments

    async def _item(self, bundle: SettlementBundle, item_id: uuid.UUID) -> BundleItem:
        return _find(bundle.items, item_id, "BundleItem")

    async def list_item_adjustments(
        self, bundle_id: uuid.UUID, item_id: uuid.UUID
    ) -> list[ItemAdjustment]:
        bundle = await self.repository.get_or_raise(bundle_id)
        item = await self._item(bundle, item_id)
        return sorted(item.adjustments, key=lambda row: row.created_at)

    async def add_item_adjustment(
        self,
        bundle_id: uuid.UUID,
        item_id: uuid.UUID,
        payload: AdjustmentCreate,
        actor: Actor,
    ) -> ItemAdjustment:
        bundle = await self.repository.get_or_raise(bundle_id)
        item = await self._item(bundle, item_id)
        adjustment = self._adjustment(ItemAdjustment, payload, actor, bundle_item_id=item.id)
        item.adjustments.append(adjustment)
        return await self._save_adjustment(bundle, adjustment, actor, "added")

    async def update_item_adjustment(
        self,
        bundle_id: uuid.UUID,
        item_id: uuid.UUID,
        adjustment_id: uuid.UUID,
        payload: AdjustmentUpdate,
        actor: Actor,
    ) -> ItemAdjustment:
        bundle = await self.repository.get_or_raise(bundle_id)
        item = await self._item(bundle, item_id)
        adjustment = _find(item.adjustments, adjustment_id, "ItemAdjustment")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(adjustment, key, value)
        adjustment.stamp_updated(actor)
        return await self._save_adjustment(bundle, adjustment, actor, "updated")

    async def delete_item_adjustment(
        self,
        bundle_id: uuid.UUID,
        item_id: uuid.UUID,
        adjustment_id: uuid.UUID,
        actor: Actor,
    ) -> SettlementBundle:
        bundle = await self.repository.get_or_raise(bundle_id)
        item = await self._item(bundle, item_id)
        adjustment = _find(item.adjustments, adjustment_id, "ItemAdjustment")
        item.adjustments.remove(adjustment)
        await self._save_adjustment(bundle, adjustment, actor, "deleted")
        return bundle

    async def _save_adjustment(
        self, bundle: SettlementBundle, adjustment: Any, actor: Actor, action: str
    ) -> Any:
        _apply_totals(bundle)
        bundle.stamp_updated(actor)
        await self.repository.flush()
        logger.info(
            f"Adjustment {action}",
            kind=self.kind.value,
            bundle_id=str(bundle.id),
            adjustment_id=str(adjustment.id),
            adjustment_type=adjustment.type.value,
            total_amount_with_tax=str(bundle.total_amount_with_tax),
            actor_id=str(actor.id),
        )
        return adjustment

    # Orders

    async def list_bundle_orders(self, bundle_id: uuid.UUID) -> list[dict[str, Any]]:
        """One row per bundled cargo with its item adjustments."""
        await self.repository.get_or_raise(bundle_id)
        rows = await self.repository.order_rows(bundle_id)
        adjustments = await self.repository.item_adjustments([row.item_id for row in rows])

        grouped: dict[uuid.UUID, list[ItemAdjustment]] = {}
        for adjustment in adjustments:
            grouped.setdefault(adjustment.bundle_item_id, []).append(adjustment)

        return [{**row._asdict(), "adjustments": grouped.get(row.item_id, [])} for row in rows]
