"""Order flow status and cargo/pricing enums.

The flow status values are the Korean labels used on the wire and in the
database. Member names give them stable English identifiers in code.
"""

from enum import Enum
from typing import Optional


class OrderFlowStatus(str, Enum):
    """Shipper-side transport progress of an order.

    Ordered sequence:
    REQUESTED -> DISPATCH_WAIT -> DISPATCH_DONE -> LOAD_WAIT -> LOADED
    -> IN_TRANSIT -> UNLOADED -> COMPLETED

    Cancellation is the orthogonal ``is_canceled`` flag, not a status.
    """

    REQUESTED = "운송요청"
    DISPATCH_WAIT = "배차대기"
    DISPATCH_DONE = "배차완료"
    LOAD_WAIT = "상차대기"
    LOADED = "상차완료"
    IN_TRANSIT = "운송중"
    UNLOADED = "하차완료"
    COMPLETED = "운송완료"

    @classmethod
    def from_string(cls, value: str) -> "OrderFlowStatus":
        """Convert a label or member name to OrderFlowStatus.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value.upper()]
        except KeyError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid flow status: {value}. Valid values are: {valid_values}"
            ) from None

    @property
    def position(self) -> int:
        """Zero-based index of this status in the flow sequence."""
        return FLOW_SEQUENCE.index(self)

    def is_before(self, other: "OrderFlowStatus") -> bool:
        return self.position < other.position

    def next_status(self) -> Optional["OrderFlowStatus"]:
        """The status that follows this one, or None at the end."""
        index = self.position + 1
        return FLOW_SEQUENCE[index] if index < len(FLOW_SEQUENCE) else None

    @property
    def is_terminal(self) -> bool:
        return self is OrderFlowStatus.COMPLETED

    @property
    def is_dispatched(self) -> bool:
        """True once a carrier has been assigned."""
        return self.position >= OrderFlowStatus.DISPATCH_DONE.position


FLOW_SEQUENCE: tuple[OrderFlowStatus, ...] = tuple(OrderFlowStatus)


class VehicleType(str, Enum):
    """Requested or assigned truck body type."""

    CARGO = "카고"
    WING_BODY = "윙바디"
    BOX = "탑차"
    REFRIGERATED = "냉장"
    FROZEN = "냉동"
    TRAILER = "트레일러"


class VehicleWeight(str, Enum):
    """Truck tonnage class."""

    T1 = "1톤"
    T1_4 = "1.4톤"
    T2_5 = "2.5톤"
    T3_5 = "3.5톤"
    T5 = "5톤"
    T8 = "8톤"
    T11 = "11톤"
    T18 = "18톤"
    T25 = "25톤"


class VehicleConnection(str, Enum):
    """Channel through which a vehicle was sourced."""

    ALL_DAY = "24시"
    ONE_CALL = "원콜"
    HWAMULMAN = "화물맨"
    OTHER = "기타"


class PriceType(str, Enum):
    BASIC = "기본"
    CONTRACT = "계약"


class TaxType(str, Enum):
    EXEMPT = "비과세"
    TAXABLE = "과세"


class OrderBatchAction(str, Enum):
    """Bulk actions on a list of orders."""

    CANCEL = "cancel"
    DELETE = "delete"
    UPDATE_STATUS = "updateStatus"


class OrderBoardSortField(str, Enum):
    """Sort keys of the broker order board. ``dispatch.*`` keys sort by the joined dispatch."""

    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    PICKUP_DATE = "pickupDate"
    DISPATCH_UPDATED_AT = "dispatch.updatedAt"


class RecentAddressKind(str, Enum):
    """Which side of past orders the recent address list is built from."""

    PICKUP = "pickup"
    DELIVERY = "delivery"
