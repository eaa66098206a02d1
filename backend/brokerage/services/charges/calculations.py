"""Charge ledger arithmetic.

Money is ``Decimal`` throughout. Tax is rounded half-up to whole won.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

from brokerage.services.charges.enums import ChargeSide

WON = Decimal("1")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_won(value: Decimal) -> Decimal:
    """Round to whole won, half-up."""
    return Decimal(value).quantize(WON, rounding=ROUND_HALF_UP)


def compute_tax(amount: Decimal, tax_rate: Decimal) -> Decimal:
    """``round(amount * tax_rate / 100)``.

    >>> compute_tax(Decimal("100000"), Decimal("10"))
    Decimal('10000')
    """
    return round_won(Decimal(amount) * Decimal(tax_rate) / HUNDRED)


def resolve_line_tax(
    amount: Decimal,
    tax_rate: Optional[Decimal],
    tax_amount: Optional[Decimal],
    default_rate: Decimal,
) -> tuple[Decimal, Decimal]:
    """Rate and tax amount to store for a new line.

    An explicit ``tax_amount`` always wins. A missing rate falls back to
    ``default_rate``.
    """
    rate = tax_rate if tax_rate is not None else default_rate
    if tax_amount is not None:
        return rate, tax_amount
    return rate, compute_tax(amount, rate)


def side_totals(lines: Iterable[Any]) -> dict[ChargeSide, Decimal]:
    """Sum of line amounts per side."""
    totals = {ChargeSide.SALES: ZERO, ChargeSide.PURCHASE: ZERO}
    for line in lines:
        totals[line.side] += Decimal(line.amount)
    return totals


def build_charge_summaries(
    order_ids: Iterable[UUID], group_rows: Iterable[Any]
) -> list[dict[str, Any]]:
    """Per-order totals from per-group aggregate rows.

    Each row carries ``group_id``, ``order_id``, ``stage``, ``reason``,
    ``is_locked``, ``sales_amount`` and ``purchase_amount``. Orders without
    any group get zero totals.
    """
    summaries: dict[UUID, dict[str, Any]] = {
        order_id: {
            "order_id": order_id,
            "total_amount": ZERO,
            "sales_amount": ZERO,
            "purchase_amount": ZERO,
            "profit": ZERO,
            "groups": [],
        }
        for order_id in order_ids
    }

    for row in group_rows:
        summary = summaries.get(row.order_id)
        if summary is None:
            continue
        sales = Decimal(row.sales_amount or 0)
        purchase = Decimal(row.purchase_amount or 0)
        summary["sales_amount"] += sales
        summary["purchase_amount"] += purchase
        summary["groups"].append(
            {
                "group_id": row.group_id,
                "stage": row.stage,
                "reason": row.reason,
                "is_locked": row.is_locked,
                "sales_amount": sales,
                "purchase_amount": purchase,
            }
        )

    for summary in summaries.values():
        summary["total_amount"] = summary["sales_amount"] + summary["purchase_amount"]
        summary["profit"] = summary["sales_amount"] - summary["purchase_amount"]

    return list(summaries.values())


def format_won(amount: Decimal) -> str:
    """``1234567`` -> ``1,234,567``."""
    return f"{round_won(amount):,}"
