"""Dashboard query enums."""

from enum import Enum


class KpiPeriod(str, Enum):
    MONTH = "month"
    CUSTOM = "custom"


class BasisField(str, Enum):
    """Order date a KPI window is applied to."""

    PICKUP_DATE = "pickupDate"
    DELIVERY_DATE = "deliveryDate"

    @property
    def column_name(self) -> str:
        return "pickup_date" if self is BasisField.PICKUP_DATE else "delivery_date"
