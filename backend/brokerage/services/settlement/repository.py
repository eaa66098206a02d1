"""
Repositories for invoices and settlement bundles.

Invoices and bundles follow the generic entity access pattern; the extra
queries here are the joins that feed the waiting list and the bundle order
list.
"""

import uuid
from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from brokerage.core.logging import get_logger
from brokerage.database.models.bundle import (
    BundleAdjustment,
    BundleItem,
    ItemAdjustment,
    SettlementBundle,
)
from brokerage.database.models.company import Company
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.database.models.order import Order
from brokerage.database.models.settlement import OrderPurchase, OrderSale
from brokerage.services.entities.repository import EntityRepository, EntityRepositoryError
from brokerage.services.orders.enums import OrderFlowStatus
from brokerage.services.settlement.enums import BundleKind

logger = get_logger(__name__)


class SaleRepository(EntityRepository[OrderSale]):
    model = OrderSale
    entity_name = "OrderSale"


class PurchaseRepository(EntityRepository[OrderPurchase]):
    model = OrderPurchase
    entity_name = "OrderPurchase"


def invoice_repository(kind: BundleKind, session: Any) -> EntityRepository:
    """Repository for the invoice model settled by bundles of ``kind``."""
    if kind is BundleKind.SALES:
        return SaleRepository(session)
    return PurchaseRepository(session)


class BundleAdjustmentRepository(EntityRepository[BundleAdjustment]):
    model = BundleAdjustment
    entity_name = "BundleAdjustment"


class ItemAdjustmentRepository(EntityRepository[ItemAdjustment]):
    model = ItemAdjustment
    entity_name = "ItemAdjustment"


class BundleItemRepository(EntityRepository[BundleItem]):
    model = BundleItem
    entity_name = "BundleItem"


class BundleRepository(EntityRepository[SettlementBundle]):
    """Bundles are always read through their kind."""

    model = SettlementBundle
    entity_name = "SettlementBundle"

    def __init__(self, session: Any, kind: BundleKind):
        super().__init__(session)
        self.kind = kind

    def _base_conditions(self) -> list[Any]:
        return [SettlementBundle.kind == self.kind]

    async def bundled_invoice_ids(self, invoice_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
        """Ids among ``invoice_ids`` that already belong to some bundle."""
        column = (
            BundleItem.order_sale_id if self.kind is BundleKind.SALES else BundleItem.order_purchase_id
        )
        try:
            result = await self.session.execute(select(column).where(column.in_(invoice_ids)))
        except SQLAlchemyError as e:
            logger.error("Failed to check bundled invoices", error=str(e))
            raise EntityRepositoryError("Failed to check bundled invoices") from e
        return list(result.scalars().all())

    async def order_rows(self, bundle_id: uuid.UUID) -> list[Any]:
        """
        One row per item joined to its invoice, order and shipper company.

        Left joins keep items whose invoice or order has gone missing.
        """
        invoice = OrderSale if self.kind is BundleKind.SALES else OrderPurchase
        item_column = (
            BundleItem.order_sale_id if self.kind is BundleKind.SALES else BundleItem.order_purchase_id
        )
        try:
            result = await self.session.execute(
                select(
                    BundleItem.id.label("item_id"),
                    BundleItem.base_amount,
                    BundleItem.base_tax_amount,
                    invoice.id.label("invoice_id"),
                    invoice.status.label("invoice_status"),
                    Order.id.label("order_id"),
                    Order.cargo_name,
                    Order.flow_status,
                    Order.pickup_date,
                    Order.delivery_date,
                    Order.pickup_address_snapshot,
                    Order.delivery_address_snapshot,
                    Company.id.label("company_id"),
                    Company.name.label("company_name"),
                )
                .select_from(BundleItem)
                .outerjoin(invoice, invoice.id == item_column)
                .outerjoin(Order, Order.id == invoice.order_id)
                .outerjoin(Company, Company.id == Order.company_id)
                .where(BundleItem.bundle_id == bundle_id)
                .order_by(BundleItem.created_at)
            )
            return list(result.all())
        except SQLAlchemyError as e:
            logger.error("Failed to list bundle orders", bundle_id=str(bundle_id), error=str(e))
            raise EntityRepositoryError("Failed to list bundle orders") from e

    async def item_adjustments(self, item_ids: Sequence[uuid.UUID]) -> list[ItemAdjustment]:
        if not item_ids:
            return []
        try:
            result = await self.session.execute(
                select(ItemAdjustment)
                .where(ItemAdjustment.bundle_item_id.in_(item_ids))
                .order_by(ItemAdjustment.created_at)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list item adjustments", error=str(e))
            raise EntityRepositoryError("Failed to list item adjustments") from e


class WaitingSettlementRepository:
    """Completed, closed orders that carry an invoice of the given kind."""

    def __init__(self, session: Any):
        self.session = session

    async def list_waiting(
        self,
        kind: BundleKind,
        company_id: Optional[uuid.UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Any], int]:
        """
        Returns:
            Tuple of (rows, total count)
        """
        invoice = aliased(OrderSale if kind is BundleKind.SALES else OrderPurchase)
        payee_company = invoice.company_id if kind is BundleKind.PURCHASE else Order.company_id

        conditions = [
            Order.flow_status == OrderFlowStatus.COMPLETED,
            Order.is_canceled.is_(False),
            OrderDispatch.is_closed.is_(True),
        ]
        if company_id:
            conditions.append(payee_company == company_id)
        if start_date:
            conditions.append(Order.pickup_date >= start_date)
        if end_date:
            conditions.append(Order.pickup_date <= end_date)

        base = (
            select(Order.id)
            .join(OrderDispatch, OrderDispatch.order_id == Order.id)
            .join(invoice, invoice.order_id == Order.id)
            .outerjoin(Company, Company.id == payee_company)
            .where(and_(*conditions))
        )
        try:
            total = await self.session.scalar(select(func.count()).select_from(base.subquery()))
            result = await self.session.execute(
                select(
                    Order.id.label("order_id"),
                    OrderDispatch.id.label("dispatch_id"),
                    invoice.id.label("invoice_id"),
                    invoice.status.label("invoice_status"),
                    invoice.subtotal_amount.label("charge_amount"),
                    Company.id.label("company_id"),
                    Company.name.label("company_name"),
                    Order.cargo_name,
                    Order.flow_status,
                    Order.pickup_date,
                    Order.delivery_date,
                )
                .join(OrderDispatch, OrderDispatch.order_id == Order.id)
                .join(invoice, invoice.order_id == Order.id)
                .outerjoin(Company, Company.id == payee_company)
                .where(and_(*conditions))
                .order_by(Order.pickup_date.desc().nulls_last(), Order.created_at.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = list(result.all())
        except SQLAlchemyError as e:
            logger.error("Failed to list waiting settlements", kind=kind.value, error=str(e))
            raise EntityRepositoryError("Failed to list waiting settlements") from e
        return rows, total or 0
