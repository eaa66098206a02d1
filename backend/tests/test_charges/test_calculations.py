"""
Tests for charge ledger arithmetic.
"""

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from brokerage.services.audit.enums import ChangeType
from brokerage.services.charges.calculations import (
    build_charge_summaries,
    compute_tax,
    format_won,
    resolve_line_tax,
    side_totals,
)
from brokerage.services.charges.enums import ChargeReason, ChargeSide, ChargeStage
from brokerage.services.charges.service import price_change_type


class TestTax:
    @pytest.mark.parametrize(
        "amount,rate,expected",
        [
            ("100000", "10", "10000"),
            ("15", "10", "2"),  # 1.5 rounds half-up
            ("14", "10", "1"),
            ("99999", "3.3", "3300"),
            ("0", "10", "0"),
        ],
    )
    def test_compute_tax_rounds_half_up(self, amount, rate, expected):
        assert compute_tax(Decimal(amount), Decimal(rate)) == Decimal(expected)

    def test_default_rate_used_when_missing(self):
        assert resolve_line_tax(Decimal("50000"), None, None, Decimal("10")) == (
            Decimal("10"),
            Decimal("5000"),
        )

    def test_explicit_tax_amount_wins(self):
        rate, tax = resolve_line_tax(Decimal("50000"), Decimal("10"), Decimal("4321"), Decimal("10"))

        assert rate == Decimal("10")
        assert tax == Decimal("4321")

    def test_zero_rate_means_no_tax(self):
        assert resolve_line_tax(Decimal("50000"), Decimal("0"), None, Decimal("10")) == (
            Decimal("0"),
            Decimal("0"),
        )


class TestTotals:
    def test_side_totals(self):
        lines = [
            SimpleNamespace(side=ChargeSide.SALES, amount=Decimal("300000")),
            SimpleNamespace(side=ChargeSide.SALES, amount=Decimal("20000")),
            SimpleNamespace(side=ChargeSide.PURCHASE, amount=Decimal("270000")),
        ]

        assert side_totals(lines) == {
            ChargeSide.SALES: Decimal("320000"),
            ChargeSide.PURCHASE: Decimal("270000"),
        }

    def test_side_totals_empty(self):
        assert side_totals([]) == {ChargeSide.SALES: 0, ChargeSide.PURCHASE: 0}

    def test_charge_summaries(self):
        with_charges = uuid.uuid4()
        without_charges = uuid.uuid4()
        rows = [
            SimpleNamespace(
                group_id=uuid.uuid4(),
                order_id=with_charges,
                stage=ChargeStage.ESTIMATE,
                reason=ChargeReason.BASE_FREIGHT,
                is_locked=False,
                sales_amount=Decimal("300000"),
                purchase_amount=Decimal("250000"),
            ),
            SimpleNamespace(
                group_id=uuid.uuid4(),
                order_id=with_charges,
                stage=ChargeStage.PROGRESS,
                reason=ChargeReason.EXTRA_WAIT,
                is_locked=True,
                sales_amount=Decimal("30000"),
                purchase_amount=None,
            ),
        ]

        first, second = build_charge_summaries([with_charges, without_charges], rows)

        assert first["order_id"] == with_charges
        assert first["sales_amount"] == Decimal("330000")
        assert first["purchase_amount"] == Decimal("250000")
        assert first["total_amount"] == Decimal("580000")
        assert first["profit"] == Decimal("80000")
        assert [g["is_locked"] for g in first["groups"]] == [False, True]
        assert first["groups"][1]["purchase_amount"] == Decimal("0")

        assert second["order_id"] == without_charges
        assert second["total_amount"] == 0
        assert second["profit"] == 0
        assert second["groups"] == []

    def test_format_won(self):
        assert format_won(Decimal("1234567")) == "1,234,567"
        assert format_won(Decimal("999.5")) == "1,000"


class TestPriceChangeType:
    @pytest.mark.parametrize(
        "after,expected",
        [
            ((110, 90), ChangeType.UPDATE_PRICE_SALES),
            ((100, 95), ChangeType.UPDATE_PRICE_PURCHASE),
            ((120, 95), ChangeType.UPDATE_PRICE),
            ((100, 90), None),
        ],
    )
    def test_change_type(self, after, expected):
        before = {ChargeSide.SALES: Decimal("100"), ChargeSide.PURCHASE: Decimal("90")}
        after = {ChargeSide.SALES: after[0], ChargeSide.PURCHASE: after[1]}

        assert price_change_type(before, after) is expected

    def test_side_labels(self):
        assert ChargeSide.SALES.label == "청구금"
        assert ChargeSide.PURCHASE.label == "배차금"
