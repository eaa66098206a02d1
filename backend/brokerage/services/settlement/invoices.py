"""
Sales and purchase invoices.

An invoice freezes its items and amounts into ``financial_snapshot`` when it
is created. Later edits may only move its status, dates, number and memo,
and only a draft can be deleted.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import ConflictError
from brokerage.core.logging import get_logger
from brokerage.database.models.settlement import OrderPurchase, OrderSale
from brokerage.schemas.settlement import (
    InvoiceItem,
    InvoiceUpdate,
    PurchaseInvoiceCreate,
    SalesInvoiceCreate,
    SettlementCreateRequest,
)
from brokerage.services.charges.calculations import ZERO, compute_tax
from brokerage.services.dispatch.repository import DispatchClosedError, DispatchRepository
from brokerage.services.entities.repository import CompanyRepository, DriverRepository
from brokerage.services.orders.repository import OrderRepository
from brokerage.services.settlement.enums import BundleKind, InvoiceStatus
from brokerage.services.settlement.repository import (
    PurchaseRepository,
    SaleRepository,
    invoice_repository,
)

logger = get_logger(__name__)


class InvoiceNotDraftError(ConflictError):
    def __init__(self, invoice_id: uuid.UUID, status: InvoiceStatus, **context: Any):
        super().__init__(
            "Only draft invoices can be deleted",
            details={"invoiceId": str(invoice_id), "status": status.value},
            **context,
        )


def build_financial_snapshot(
    items: Sequence[InvoiceItem], default_rate: Decimal
) -> dict[str, Any]:
    """
    Frozen item list and totals of an invoice.

    Item tax defaults to ``round(amount * rate / 100)``; an explicit
    ``taxAmount`` wins.
    """
    frozen = []
    subtotal = ZERO
    tax_total = ZERO
    for item in items:
        rate = item.tax_rate if item.tax_rate is not None else default_rate
        tax = item.tax_amount if item.tax_amount is not None else compute_tax(item.amount, rate)
        subtotal += item.amount
        tax_total += tax
        frozen.append(
            {
                "name": item.name,
                "amount": str(item.amount),
                "taxRate": str(rate),
                "taxAmount": str(tax),
                "memo": item.memo,
            }
        )
    return {
        "items": frozen,
        "subtotalAmount": str(subtotal),
        "taxAmount": str(tax_total),
        "totalAmount": str(subtotal + tax_total),
        "capturedAt": datetime.now(timezone.utc).isoformat(),
    }


def _apply_snapshot(invoice: Any, snapshot: dict[str, Any]) -> None:
    invoice.financial_snapshot = snapshot
    invoice.subtotal_amount = Decimal(snapshot["subtotalAmount"])
    invoice.tax_amount = Decimal(snapshot["taxAmount"])
    invoice.total_amount = Decimal(snapshot["totalAmount"])


class InvoiceService:
    """
    Invoice creation and maintenance for both ledger sides.

    Attributes:
        sales: OrderSale repository
        purchases: OrderPurchase repository
        default_tax_rate: Rate for items that carry none
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.default_tax_rate = self.settings.default_tax_rate
        self.sales = SaleRepository(session)
        self.purchases = PurchaseRepository(session)
        self.orders = OrderRepository(session)
        self.dispatches = DispatchRepository(session)
        self.companies = CompanyRepository(session)
        self.drivers = DriverRepository(session)

    async def _ensure_sales_open(self, order_id: uuid.UUID) -> None:
        dispatch = await self.dispatches.get_by_order_id(order_id)
        if dispatch is not None and dispatch.is_closed:
            raise DispatchClosedError(dispatch.id, order_id=str(order_id))

    async def create_sale(self, payload: SalesInvoiceCreate, actor: Actor) -> OrderSale:
        """
        Raises:
            OrderNotFoundError: If the order does not exist
            EntityNotFoundError: If the company does not exist
            DispatchClosedError: If the order's dispatch is closed
        """
        await self.orders.get_or_raise(payload.order_id)
        await self.companies.get_or_raise(payload.company_id)
        await self._ensure_sales_open(payload.order_id)

        sale = OrderSale(
            order_id=payload.order_id,
            company_id=payload.company_id,
            invoice_number=payload.invoice_number,
            status=InvoiceStatus.DRAFT,
            issue_date=payload.issue_date,
            due_date=payload.due_date,
            memo=payload.memo,
        )
        _apply_snapshot(sale, build_financial_snapshot(payload.items, self.default_tax_rate))
        sale.stamp_created(actor)
        await self.sales.add(sale)

        logger.info(
            "Sales invoice created",
            invoice_id=str(sale.id),
            order_id=str(sale.order_id),
            total_amount=str(sale.total_amount),
            actor_id=str(actor.id),
        )
        return sale

    async def create_purchase(self, payload: PurchaseInvoiceCreate, actor: Actor) -> OrderPurchase:
        """
        Raises:
            OrderNotFoundError: If the order does not exist
            EntityNotFoundError: If the company or driver does not exist
        """
        await self.orders.get_or_raise(payload.order_id)
        if payload.company_id is not None:
            await self.companies.get_or_raise(payload.company_id)
        if payload.driver_id is not None:
            await self.drivers.get_or_raise(payload.driver_id)

        purchase = OrderPurchase(
            order_id=payload.order_id,
            company_id=payload.company_id,
            driver_id=payload.driver_id,
            invoice_number=payload.invoice_number,
            status=InvoiceStatus.DRAFT,
            issue_date=payload.issue_date,
            due_date=payload.due_date,
            memo=payload.memo,
        )
        _apply_snapshot(purchase, build_financial_snapshot(payload.items, self.default_tax_rate))
        purchase.stamp_created(actor)
        await self.purchases.add(purchase)

        logger.info(
            "Purchase invoice created",
            invoice_id=str(purchase.id),
            order_id=str(purchase.order_id),
            total_amount=str(purchase.total_amount),
            actor_id=str(actor.id),
        )
        return purchase

    async def create_settlement(
        self, payload: SettlementCreateRequest, actor: Actor
    ) -> tuple[OrderSale, OrderPurchase]:
        """Create the sale and the purchase of one order in one transaction."""
        sale = await self.create_sale(
            SalesInvoiceCreate(order_id=payload.order_id, **payload.sales.model_dump()),
            actor,
        )
        purchase = await self.create_purchase(
            PurchaseInvoiceCreate(order_id=payload.order_id, **payload.purchase.model_dump()),
            actor,
        )
        return sale, purchase

    async def get_invoice(self, kind: BundleKind, invoice_id: uuid.UUID) -> Any:
        return await invoice_repository(kind, self.session).get_or_raise(invoice_id)

    async def list_invoices(
        self,
        kind: BundleKind,
        order_id: Optional[uuid.UUID] = None,
        company_id: Optional[uuid.UUID] = None,
        status: Optional[InvoiceStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Any], int]:
        repository = invoice_repository(kind, self.session)
        model = repository.model
        conditions = []
        if order_id:
            conditions.append(model.order_id == order_id)
        if company_id:
            conditions.append(model.company_id == company_id)
        if status:
            conditions.append(model.status == status)
        return await repository.list_rows(conditions, page=page, page_size=page_size)

    async def update_invoice(
        self, kind: BundleKind, invoice_id: uuid.UUID, payload: InvoiceUpdate, actor: Actor
    ) -> Any:
        repository = invoice_repository(kind, self.session)
        invoice = await repository.get_or_raise(invoice_id)
        values = payload.model_dump(exclude_unset=True)
        for key, value in values.items():
            setattr(invoice, key, value)
        invoice.stamp_updated(actor)
        await repository.flush()
        logger.info(
            "Invoice updated",
            kind=kind.value,
            invoice_id=str(invoice_id),
            fields=sorted(values),
            actor_id=str(actor.id),
        )
        return invoice

    async def delete_invoice(self, kind: BundleKind, invoice_id: uuid.UUID, actor: Actor) -> None:
        """
        Raises:
            EntityNotFoundError: If the invoice does not exist
            InvoiceNotDraftError: If the invoice has left draft
        """
        repository = invoice_repository(kind, self.session)
        invoice = await repository.get_or_raise(invoice_id)
        if not invoice.is_draft:
            raise InvoiceNotDraftError(invoice_id, invoice.status)
        await repository.delete(invoice)
        logger.info(
            "Invoice deleted", kind=kind.value, invoice_id=str(invoice_id), actor_id=str(actor.id)
        )
