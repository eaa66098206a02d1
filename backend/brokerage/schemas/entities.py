"""
Company, user, driver and address schemas.
"""

import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import ConfigDict, EmailStr, Field, field_validator

from brokerage.core.actor import AccessLevel
from brokerage.database.models.address import AddressType
from brokerage.database.models.company import CompanyStatus, CompanyType
from brokerage.database.models.driver import DriverAffiliation
from brokerage.database.models.user import UserStatus
from brokerage.schemas.common import CamelModel
from brokerage.services.batch import BatchMode
from brokerage.services.entities.enums import AddressBatchAction
from brokerage.services.orders.enums import VehicleType, VehicleWeight

BUSINESS_NUMBER_PATTERN = re.compile(r"^\d{3}-?\d{2}-?\d{5}$")


def _normalize_business_number(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not BUSINESS_NUMBER_PATTERN.match(value):
        raise ValueError("businessNumber must look like 123-45-67890")
    digits = value.replace("-", "")
    return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}"


class EntityResponse(CamelModel):
    id: UUID
    created_by_snapshot: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Companies


class CompanyCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    business_number: str
    ceo_name: Optional[str] = Field(None, max_length=100)
    type: CompanyType
    status: CompanyStatus = CompanyStatus.ACTIVE
    address_line: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    fax: Optional[str] = Field(None, max_length=30)
    bank_code: Optional[str] = Field(None, max_length=10)
    bank_account: Optional[str] = Field(None, max_length=50)
    bank_account_holder: Optional[str] = Field(None, max_length=100)
    memo: Optional[str] = Field(None, max_length=1000)

    @field_validator("business_number")
    @classmethod
    def validate_business_number(cls, v: str) -> str:
        return _normalize_business_number(v)


class CompanyFieldsPatch(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    business_number: Optional[str] = None
    ceo_name: Optional[str] = Field(None, max_length=100)
    type: Optional[CompanyType] = None
    status: Optional[CompanyStatus] = None
    address_line: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    fax: Optional[str] = Field(None, max_length=30)
    bank_code: Optional[str] = Field(None, max_length=10)
    bank_account: Optional[str] = Field(None, max_length=50)
    bank_account_holder: Optional[str] = Field(None, max_length=100)
    memo: Optional[str] = Field(None, max_length=1000)

    @field_validator("business_number")
    @classmethod
    def validate_business_number(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_business_number(v)


class CompanyResponse(EntityResponse):
    name: str
    business_number: str
    ceo_name: Optional[str] = None
    type: CompanyType
    status: CompanyStatus
    address_line: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    fax: Optional[str] = None
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_account_holder: Optional[str] = None
    memo: Optional[str] = None


class CompanyStatusUpdate(CamelModel):
    status: CompanyStatus
    reason: Optional[str] = Field(None, max_length=500)


class CompanyBatchStatusRequest(CamelModel):
    company_ids: list[UUID] = Field(..., min_length=1)
    status: CompanyStatus
    mode: BatchMode = BatchMode.BEST_EFFORT
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("company_ids")
    @classmethod
    def deduplicate_ids(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))


# Users


class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    company_id: Optional[UUID] = None
    access_level: AccessLevel = Field(AccessLevel.GUEST, alias="systemAccessLevel")
    status: UserStatus = UserStatus.ACTIVE
    department: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        if not any(c.isalpha() for c in v) or not any(c.isdigit() for c in v):
            raise ValueError("Password must contain letters and digits")
        return v


class UserFieldsPatch(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    company_id: Optional[UUID] = None
    access_level: Optional[AccessLevel] = Field(None, alias="systemAccessLevel")
    department: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=100)


class UserResponse(EntityResponse):
    """Never carries the password hash."""

    email: str
    name: str
    phone: Optional[str] = None
    company_id: Optional[UUID] = None
    access_level: AccessLevel = Field(..., alias="systemAccessLevel")
    status: UserStatus
    department: Optional[str] = None
    position: Optional[str] = None
    last_login_at: Optional[datetime] = None


class UserStatusUpdate(CamelModel):
    status: UserStatus
    reason: Optional[str] = Field(None, max_length=500)


class UserStatusResponse(CamelModel):
    user: UserResponse
    changed: bool
    message: str


# Drivers


class DriverCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)
    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: Optional[VehicleType] = None
    vehicle_weight: Optional[VehicleWeight] = None
    business_number: Optional[str] = None
    company_id: Optional[UUID] = None
    affiliation: DriverAffiliation = DriverAffiliation.INDEPENDENT
    is_active: bool = True
    bank_code: Optional[str] = Field(None, max_length=10)
    bank_account: Optional[str] = Field(None, max_length=50)
    bank_account_holder: Optional[str] = Field(None, max_length=100)
    memo: Optional[str] = Field(None, max_length=1000)

    @field_validator("business_number")
    @classmethod
    def validate_business_number(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_business_number(v)


class DriverFieldsPatch(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=1, max_length=30)
    vehicle_number: Optional[str] = Field(None, min_length=1, max_length=20)
    vehicle_type: Optional[VehicleType] = None
    vehicle_weight: Optional[VehicleWeight] = None
    business_number: Optional[str] = None
    company_id: Optional[UUID] = None
    affiliation: Optional[DriverAffiliation] = None
    is_active: Optional[bool] = None
    bank_code: Optional[str] = Field(None, max_length=10)
    bank_account: Optional[str] = Field(None, max_length=50)
    bank_account_holder: Optional[str] = Field(None, max_length=100)
    memo: Optional[str] = Field(None, max_length=1000)

    @field_validator("business_number")
    @classmethod
    def validate_business_number(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_business_number(v)


class DriverResponse(EntityResponse):
    name: str
    phone: str
    vehicle_number: str
    vehicle_type: Optional[VehicleType] = None
    vehicle_weight: Optional[VehicleWeight] = None
    business_number: Optional[str] = None
    company_id: Optional[UUID] = None
    affiliation: DriverAffiliation
    is_active: bool
    bank_code: Optional[str] = None
    bank_account: Optional[str] = None
    bank_account_holder: Optional[str] = None
    memo: Optional[str] = None


# Addresses


class AddressCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: AddressType = AddressType.ANY
    road_address: str = Field(..., min_length=1, max_length=500)
    jibun_address: Optional[str] = Field(None, max_length=500)
    detail_address: Optional[str] = Field(None, max_length=500)
    postal_code: Optional[str] = Field(None, max_length=10)
    contact_name: Optional[str] = Field(None, max_length=100)
    contact_phone: Optional[str] = Field(None, max_length=30)
    extra: Optional[dict[str, Any]] = None
    memo: Optional[str] = Field(None, max_length=1000)
    is_frequent: bool = False
    company_id: Optional[UUID] = None


class AddressFieldsPatch(CamelModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[AddressType] = None
    road_address: Optional[str] = Field(None, min_length=1, max_length=500)
    jibun_address: Optional[str] = Field(None, max_length=500)
    detail_address: Optional[str] = Field(None, max_length=500)
    postal_code: Optional[str] = Field(None, max_length=10)
    contact_name: Optional[str] = Field(None, max_length=100)
    contact_phone: Optional[str] = Field(None, max_length=30)
    extra: Optional[dict[str, Any]] = None
    memo: Optional[str] = Field(None, max_length=1000)
    is_frequent: Optional[bool] = None


class AddressResponse(EntityResponse):
    name: str
    type: AddressType
    road_address: str
    jibun_address: Optional[str] = None
    detail_address: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    extra: Optional[dict[str, Any]] = None
    memo: Optional[str] = None
    is_frequent: bool
    company_id: Optional[UUID] = None


class EntityFieldsUpdateRequest(CamelModel):
    fields: dict[str, Any]
    reason: Optional[str] = Field(None, max_length=500)


class AddressBatchRequest(CamelModel):
    address_ids: list[UUID] = Field(..., min_length=1)
    action: AddressBatchAction
    mode: BatchMode = BatchMode.BEST_EFFORT

    @field_validator("address_ids")
    @classmethod
    def deduplicate_ids(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))


class RecentAddressResponse(CamelModel):
    """Location taken from the address snapshot of a recent order."""

    order_id: UUID
    address_id: Optional[UUID] = None
    type: AddressType
    name: str
    road_address: str
    jibun_address: Optional[str] = None
    detail_address: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    updated_at: datetime
