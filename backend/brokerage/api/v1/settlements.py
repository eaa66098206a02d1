"""
Settlement invoice API endpoints.

``kind`` in the path selects the ledger side: ``sales`` for OrderSale
invoices billed to shippers, ``purchase`` for OrderPurchase invoices paid
to carriers or drivers.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from brokerage.api.deps import CurrentActor, DatabaseSession, WriterActor
from brokerage.core.logging import get_logger
from brokerage.schemas.common import Page
from brokerage.schemas.settlement import (
    InvoiceResponse,
    InvoiceUpdate,
    PurchaseInvoiceCreate,
    SalesInvoiceCreate,
    SettlementCreateRequest,
    SettlementCreateResponse,
    WaitingSettlementRow,
)
from brokerage.services.settlement.enums import BundleKind, InvoiceStatus
from brokerage.services.settlement.invoices import InvoiceService
from brokerage.services.settlement.waiting import WaitingSettlementService

logger = get_logger(__name__)

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post(
    "",
    response_model=SettlementCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create sale and purchase",
    description="Create the sale and the purchase invoice of one order in one transaction",
)
async def create_settlement(
    request: SettlementCreateRequest,
    actor: WriterActor,
    db: DatabaseSession,
) -> SettlementCreateResponse:
    sale, purchase = await InvoiceService(db).create_settlement(request, actor)
    return SettlementCreateResponse(
        sale=InvoiceResponse.model_validate(sale),
        purchase=InvoiceResponse.model_validate(purchase),
    )


@router.post(
    "/sales",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create sales invoice",
)
async def create_sale(
    request: SalesInvoiceCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> InvoiceResponse:
    sale = await InvoiceService(db).create_sale(request, actor)
    return InvoiceResponse.model_validate(sale)


@router.post(
    "/purchase",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create purchase invoice",
)
async def create_purchase(
    request: PurchaseInvoiceCreate,
    actor: WriterActor,
    db: DatabaseSession,
) -> InvoiceResponse:
    purchase = await InvoiceService(db).create_purchase(request, actor)
    return InvoiceResponse.model_validate(purchase)


@router.get(
    "/{kind}/waiting",
    response_model=Page[WaitingSettlementRow],
    summary="Orders waiting for settlement",
    description=(
        "Completed orders with a closed dispatch and an invoice on this side. "
        "dispatchAmount and profitAmount are projections"
    ),
)
async def list_waiting(
    kind: BundleKind,
    actor: CurrentActor,
    db: DatabaseSession,
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate", description="Inclusive"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=200, alias="pageSize"),
) -> Page[WaitingSettlementRow]:
    items, total = await WaitingSettlementService(db).list_waiting(
        kind,
        company_id=company_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return Page[WaitingSettlementRow].build(
        [WaitingSettlementRow.model_validate(item) for item in items], total, page, page_size
    )


@router.get(
    "/{kind}",
    response_model=Page[InvoiceResponse],
    summary="List invoices",
)
async def list_invoices(
    kind: BundleKind,
    actor: CurrentActor,
    db: DatabaseSession,
    order_id: Optional[UUID] = Query(None, alias="orderId"),
    company_id: Optional[UUID] = Query(None, alias="companyId"),
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
) -> Page[InvoiceResponse]:
    rows, total = await InvoiceService(db).list_invoices(
        kind,
        order_id=order_id,
        company_id=company_id,
        status=invoice_status,
        page=page,
        page_size=page_size,
    )
    return Page[InvoiceResponse].build(
        [InvoiceResponse.model_validate(row) for row in rows], total, page, page_size
    )


@router.get(
    "/{kind}/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
)
async def get_invoice(
    kind: BundleKind, invoice_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> InvoiceResponse:
    invoice = await InvoiceService(db).get_invoice(kind, invoice_id)
    return InvoiceResponse.model_validate(invoice)


@router.patch(
    "/{kind}/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
    description="Only status, invoice number, dates and memo can change",
)
async def update_invoice(
    kind: BundleKind,
    invoice_id: UUID,
    request: InvoiceUpdate,
    actor: WriterActor,
    db: DatabaseSession,
) -> InvoiceResponse:
    invoice = await InvoiceService(db).update_invoice(kind, invoice_id, request, actor)
    return InvoiceResponse.model_validate(invoice)


@router.delete(
    "/{kind}/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete draft invoice",
)
async def delete_invoice(
    kind: BundleKind, invoice_id: UUID, actor: WriterActor, db: DatabaseSession
) -> None:
    await InvoiceService(db).delete_invoice(kind, invoice_id, actor)
