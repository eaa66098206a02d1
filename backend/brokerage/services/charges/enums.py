"""Charge ledger classification enums."""

from enum import Enum


class ChargeStage(str, Enum):
    """Point in the order lifecycle a charge group belongs to."""

    ESTIMATE = "estimate"
    PROGRESS = "progress"
    COMPLETED = "completed"


class ChargeReason(str, Enum):
    """Why a charge group exists."""

    BASE_FREIGHT = "base_freight"
    EXTRA_WAIT = "extra_wait"
    NIGHT_FEE = "night_fee"
    TOLL = "toll"
    DISCOUNT = "discount"
    PENALTY = "penalty"
    ETC = "etc"


class ChargeSide(str, Enum):
    """Sales lines are billed to the shipper, purchase lines paid to the carrier."""

    SALES = "sales"
    PURCHASE = "purchase"

    @property
    def label(self) -> str:
        return "청구금" if self is ChargeSide.SALES else "배차금"


class ChargeSortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"

    @property
    def column_name(self) -> str:
        return "created_at" if self is ChargeSortField.CREATED_AT else "updated_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
