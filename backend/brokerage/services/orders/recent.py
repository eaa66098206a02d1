"""
Recently used cargo and addresses, derived from a company's past orders.

Both lists collapse repeats onto one entry, keep the most recently updated
order of each group and return the newest first.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Hashable, Iterable

from brokerage.database.models.address import AddressType
from brokerage.database.models.order import Order
from brokerage.services.orders.enums import RecentAddressKind

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

_SNAPSHOT_COLUMNS = {
    RecentAddressKind.PICKUP: "pickup_address_snapshot",
    RecentAddressKind.DELIVERY: "delivery_address_snapshot",
}

_ADDRESS_TYPES = {
    RecentAddressKind.PICKUP: AddressType.LOAD,
    RecentAddressKind.DELIVERY: AddressType.DROP,
}


def snapshot_column(kind: RecentAddressKind) -> str:
    return _SNAPSHOT_COLUMNS[kind]


def _recency(order: Order) -> datetime:
    return order.updated_at or order.created_at or _EPOCH


def latest_per_key(orders: Iterable[Order], key: Callable[[Order], Hashable]) -> list[Order]:
    """One order per key, the most recently updated one, newest first."""
    latest: dict[Hashable, Order] = {}
    for order in orders:
        k = key(order)
        current = latest.get(k)
        if current is None or _recency(order) > _recency(current):
            latest[k] = order
    return sorted(latest.values(), key=_recency, reverse=True)


def recent_cargos(orders: Iterable[Order], limit: int) -> list[dict[str, Any]]:
    """Distinct cargo name, vehicle weight and vehicle type combinations."""
    unique = latest_per_key(
        (order for order in orders if order.cargo_name),
        lambda o: (o.cargo_name, o.requested_vehicle_weight, o.requested_vehicle_type),
    )
    return [
        {
            "order_id": order.id,
            "cargo_name": order.cargo_name,
            "requested_vehicle_weight": order.requested_vehicle_weight,
            "requested_vehicle_type": order.requested_vehicle_type,
            "memo": order.memo,
            "updated_at": _recency(order),
        }
        for order in unique[:limit]
    ]


def recent_addresses(
    orders: Iterable[Order], kind: RecentAddressKind, limit: int
) -> list[dict[str, Any]]:
    """Distinct pickup or delivery locations keyed by road address and contact."""
    column = snapshot_column(kind)
    with_snapshot = [order for order in orders if getattr(order, column)]

    def address_key(order: Order) -> tuple:
        snapshot = getattr(order, column)
        return (
            snapshot.get("roadAddress"),
            snapshot.get("contactName"),
            snapshot.get("contactPhone"),
        )

    results = []
    for order in latest_per_key(with_snapshot, address_key)[:limit]:
        snapshot = getattr(order, column)
        results.append(
            {
                "order_id": order.id,
                "address_id": snapshot.get("id"),
                "type": _ADDRESS_TYPES[kind],
                "name": snapshot.get("name") or "장소명 없음",
                "road_address": snapshot.get("roadAddress") or "",
                "jibun_address": snapshot.get("jibunAddress"),
                "detail_address": snapshot.get("detailAddress"),
                "postal_code": snapshot.get("postalCode"),
                "contact_name": snapshot.get("contactName"),
                "contact_phone": snapshot.get("contactPhone"),
                "updated_at": _recency(order),
            }
        )
    return results
