"""Invoice and settlement bundle enums."""

from enum import Enum


class InvoiceStatus(str, Enum):
    """Status of an OrderSale or OrderPurchase.

    Amounts and the financial snapshot are frozen at creation; only the
    status, dates and memo move afterwards.
    """

    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELED = "canceled"
    VOID = "void"


class BundleStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELED = "canceled"


class BundleKind(str, Enum):
    """Which side of the ledger a bundle settles."""

    SALES = "sales"
    PURCHASE = "purchase"


class AdjustmentType(str, Enum):
    """Adjustments are entered as positive amounts; the type gives the sign."""

    DISCOUNT = "discount"
    SURCHARGE = "surcharge"

    @property
    def sign(self) -> int:
        return -1 if self is AdjustmentType.DISCOUNT else 1


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    ETC = "etc"


class PeriodType(str, Enum):
    """Which order date a bundle period filters on."""

    DEPARTURE = "departure"
    ARRIVAL = "arrival"
    ETC = "etc"
