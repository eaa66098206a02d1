"""
Tests for the recent cargo and address lists built from past orders.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from brokerage.database.models.address import AddressType
from brokerage.database.models.order import Order
from brokerage.services.orders.enums import (
    OrderFlowStatus,
    RecentAddressKind,
    VehicleType,
    VehicleWeight,
)
from brokerage.services.orders.recent import recent_addresses, recent_cargos

BASE = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_order(hours: int, **overrides: Any) -> Order:
    values = {
        "id": uuid.uuid4(),
        "company_id": uuid.uuid4(),
        "flow_status": OrderFlowStatus.REQUESTED,
        "is_canceled": False,
        "cargo_name": "철강 코일",
        "requested_vehicle_type": VehicleType.CARGO,
        "requested_vehicle_weight": VehicleWeight.T5,
        "created_at": BASE + timedelta(hours=hours),
        "updated_at": BASE + timedelta(hours=hours),
    }
    values.update(overrides)
    return Order(**values)


def snapshot(road: str, contact: str = "최과장", name: str = "평택 센터") -> dict:
    return {
        "id": str(uuid.uuid4()),
        "name": name,
        "roadAddress": road,
        "contactName": contact,
        "contactPhone": "010-0000-0000",
    }


class TestRecentCargos:
    def test_repeats_collapse_to_latest(self):
        older = make_order(1, memo="오전 상차")
        newer = make_order(5, memo="오후 상차")
        other = make_order(3, cargo_name="합판")

        cargos = recent_cargos([newer, other, older], limit=5)

        assert [c["order_id"] for c in cargos] == [newer.id, other.id]
        assert cargos[0]["memo"] == "오후 상차"

    def test_vehicle_is_part_of_the_key(self):
        five_ton = make_order(1)
        eleven_ton = make_order(2, requested_vehicle_weight=VehicleWeight.T11)

        assert len(recent_cargos([eleven_ton, five_ton], limit=5)) == 2

    def test_limit(self):
        orders = [make_order(i, cargo_name=f"화물 {i}") for i in range(8)]

        cargos = recent_cargos(orders, limit=3)

        assert [c["cargo_name"] for c in cargos] == ["화물 7", "화물 6", "화물 5"]


class TestRecentAddresses:
    def test_pickup_snapshots_deduplicated(self):
        first = make_order(1, pickup_address_snapshot=snapshot("경기 평택시 포승읍 1"))
        again = make_order(4, pickup_address_snapshot=snapshot("경기 평택시 포승읍 1"))
        other_contact = make_order(
            2, pickup_address_snapshot=snapshot("경기 평택시 포승읍 1", contact="이대리")
        )
        no_pickup = make_order(6)

        addresses = recent_addresses(
            [no_pickup, again, other_contact, first], RecentAddressKind.PICKUP, limit=10
        )

        assert [a["order_id"] for a in addresses] == [again.id, other_contact.id]
        assert addresses[0]["type"] is AddressType.LOAD
        assert addresses[0]["road_address"] == "경기 평택시 포승읍 1"

    def test_delivery_side(self):
        order = make_order(
            1,
            pickup_address_snapshot=snapshot("경기 평택시 포승읍 1"),
            delivery_address_snapshot=snapshot("부산 강서구 녹산로 2", name=""),
        )

        addresses = recent_addresses([order], RecentAddressKind.DELIVERY, limit=10)

        assert addresses[0]["type"] is AddressType.DROP
        assert addresses[0]["road_address"] == "부산 강서구 녹산로 2"
        assert addresses[0]["name"] == "장소명 없음"
