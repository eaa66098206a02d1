"""
Tests for settlement arithmetic: invoice snapshots, invoice previews,
bundle totals and waiting-settlement margins.
"""

import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from brokerage.core.errors import NotFoundError
from brokerage.database.models.bundle import BundleAdjustment, ItemAdjustment
from brokerage.schemas.settlement import InvoiceItem
from brokerage.services.charges.enums import ChargeSide
from brokerage.services.settlement.bundles import compute_bundle_totals
from brokerage.services.settlement.enums import AdjustmentType, InvoiceStatus
from brokerage.services.settlement.invoices import build_financial_snapshot
from brokerage.services.settlement.summary import build_settlement_summary, invoice_number_for
from brokerage.services.settlement.waiting import project_margin


def line(side: ChargeSide, amount: str, tax_rate: str | None = None, memo: str | None = None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        side=side,
        amount=Decimal(amount),
        tax_rate=Decimal(tax_rate) if tax_rate is not None else None,
        memo=memo,
    )


class TestFinancialSnapshot:
    def test_totals_and_default_rate(self):
        items = [
            InvoiceItem(name="기본 운임", amount=Decimal("300000")),
            InvoiceItem(name="대기료", amount=Decimal("25000"), tax_rate=Decimal("0")),
        ]

        snapshot = build_financial_snapshot(items, Decimal("10"))

        assert snapshot["subtotalAmount"] == "325000"
        assert snapshot["taxAmount"] == "30000"
        assert snapshot["totalAmount"] == "355000"
        assert snapshot["items"][0] == {
            "name": "기본 운임",
            "amount": "300000",
            "taxRate": "10",
            "taxAmount": "30000",
            "memo": None,
        }
        assert "capturedAt" in snapshot

    def test_explicit_tax_amount_kept(self):
        items = [InvoiceItem(name="통행료", amount=Decimal("12345"), tax_amount=Decimal("1000"))]

        snapshot = build_financial_snapshot(items, Decimal("10"))

        assert snapshot["items"][0]["taxAmount"] == "1000"
        assert snapshot["totalAmount"] == "13345"


class TestSettlementSummary:
    def test_invoice_number(self):
        order_id = uuid.UUID("1234abcd-0000-0000-0000-000000000000")

        assert invoice_number_for(order_id) == "INV-1234abcd"

    def test_summary_for_sales_side(self):
        dispatch_id, order_id = uuid.uuid4(), uuid.uuid4()
        lines = [
            line(ChargeSide.SALES, "200000", memo="기본"),
            line(ChargeSide.SALES, "15005", tax_rate="10"),
            line(ChargeSide.PURCHASE, "180000"),
        ]

        summary = build_settlement_summary(
            dispatch_id,
            order_id,
            ChargeSide.SALES,
            lines,
            Decimal("10"),
            date(2025, 1, 15),
            30,
        )

        assert summary["status"] is InvoiceStatus.DRAFT
        assert summary["invoice_number"] == invoice_number_for(order_id)
        assert summary["due_date"] == date(2025, 2, 14)
        assert len(summary["items"]) == 2
        assert summary["subtotal"] == Decimal("215005")
        # 20000 + round(1500.5)
        assert summary["tax_amount"] == Decimal("21501")
        assert summary["total_amount"] == Decimal("236506")

    def test_no_lines_on_side(self):
        dispatch_id = uuid.uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            build_settlement_summary(
                dispatch_id,
                uuid.uuid4(),
                ChargeSide.PURCHASE,
                [line(ChargeSide.SALES, "1000")],
                Decimal("10"),
                date(2025, 1, 15),
                30,
            )

        assert exc_info.value.details == {"dispatchId": str(dispatch_id), "side": "purchase"}


class TestBundleTotals:
    def test_adjustments_signed_by_type(self):
        items = [
            SimpleNamespace(
                base_amount=Decimal("300000"),
                base_tax_amount=Decimal("30000"),
                adjustments=[
                    ItemAdjustment(
                        type=AdjustmentType.DISCOUNT,
                        amount=Decimal("10000"),
                        tax_amount=Decimal("1000"),
                    )
                ],
            ),
            SimpleNamespace(
                base_amount=Decimal("100000"),
                base_tax_amount=None,
                adjustments=[],
            ),
        ]
        bundle_adjustments = [
            BundleAdjustment(
                type=AdjustmentType.SURCHARGE,
                amount=Decimal("5000"),
                tax_amount=Decimal("500"),
            )
        ]

        totals = compute_bundle_totals(items, bundle_adjustments)

        assert totals == {
            "total_amount": Decimal("395000"),
            "total_tax_amount": Decimal("29500"),
            "total_amount_with_tax": Decimal("424500"),
        }

    def test_empty_bundle(self):
        assert compute_bundle_totals([], []) == {
            "total_amount": 0,
            "total_tax_amount": 0,
            "total_amount_with_tax": 0,
        }

    def test_adjustment_sign(self):
        assert AdjustmentType.DISCOUNT.sign == -1
        assert AdjustmentType.SURCHARGE.sign == 1


class TestProjectMargin:
    @pytest.mark.parametrize(
        "charge,ratio,expected",
        [
            ("100000", "0.9", ("90000", "10000")),
            ("12345", "0.9", ("11111", "1234")),
            ("0", "0.9", ("0", "0")),
        ],
    )
    def test_project_margin(self, charge, ratio, expected):
        dispatch_amount, profit = project_margin(Decimal(charge), Decimal(ratio))

        assert (dispatch_amount, profit) == (Decimal(expected[0]), Decimal(expected[1]))
