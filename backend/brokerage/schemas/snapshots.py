"""
Snapshot value types.

A snapshot is a frozen point-in-time copy of a related entity stored in a
JSONB column. Snapshots are written when the referencing action happens and
are never refreshed from the live row afterwards; later edits to a company,
user, driver or address do not change existing snapshots.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict

from brokerage.core.actor import Actor
from brokerage.schemas.common import CamelModel


class Snapshot(CamelModel):
    """Immutable base for snapshot types."""

    model_config = ConfigDict(frozen=True)

    def to_json(self) -> dict[str, Any]:
        """JSON form stored in snapshot columns."""
        return self.model_dump(mode="json", by_alias=True)


class ActorSnapshot(Snapshot):
    id: UUID
    name: str
    email: str
    access_level: str
    company_id: Optional[UUID] = None

    @classmethod
    def from_actor(cls, actor: Actor) -> "ActorSnapshot":
        return cls(
            id=actor.id,
            name=actor.name,
            email=actor.email,
            access_level=actor.access_level.value,
            company_id=actor.company_id,
        )


class CompanySnapshot(Snapshot):
    id: UUID
    name: str
    business_number: Optional[str] = None
    ceo_name: Optional[str] = None
    type: Optional[str] = None
    phone: Optional[str] = None
    address_line: Optional[str] = None

    @classmethod
    def from_entity(cls, company: Any) -> "CompanySnapshot":
        return cls(
            id=company.id,
            name=company.name,
            business_number=company.business_number,
            ceo_name=company.ceo_name,
            type=company.type.value if company.type is not None else None,
            phone=company.phone,
            address_line=company.address_line,
        )


class UserSnapshot(Snapshot):
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None

    @classmethod
    def from_entity(cls, user: Any) -> "UserSnapshot":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            department=user.department,
            position=user.position,
        )


class DriverSnapshot(Snapshot):
    id: UUID
    name: str
    phone: str
    vehicle_number: str
    vehicle_type: Optional[str] = None
    vehicle_weight: Optional[str] = None
    business_number: Optional[str] = None

    @classmethod
    def from_entity(cls, driver: Any) -> "DriverSnapshot":
        return cls(
            id=driver.id,
            name=driver.name,
            phone=driver.phone,
            vehicle_number=driver.vehicle_number,
            vehicle_type=driver.vehicle_type.value if driver.vehicle_type else None,
            vehicle_weight=driver.vehicle_weight.value if driver.vehicle_weight else None,
            business_number=driver.business_number,
        )


class AddressSnapshot(Snapshot):
    id: UUID
    name: str
    road_address: str
    jibun_address: Optional[str] = None
    detail_address: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None

    @classmethod
    def from_entity(cls, address: Any) -> "AddressSnapshot":
        return cls(
            id=address.id,
            name=address.name,
            road_address=address.road_address,
            jibun_address=address.jibun_address,
            detail_address=address.detail_address,
            postal_code=address.postal_code,
            contact_name=address.contact_name,
            contact_phone=address.contact_phone,
        )
