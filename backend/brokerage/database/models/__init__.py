"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation and relationship resolution.
"""

from brokerage.database.base import (
    Base,
    AuditedModel,
    TimestampMixin,
    UUIDMixin,
    SoftDeleteMixin,
    AuditMixin,
    create_table_args,
)
from brokerage.database.models.company import Company, CompanyStatus, CompanyType
from brokerage.database.models.user import User, UserStatus
from brokerage.database.models.driver import Driver, DriverAffiliation
from brokerage.database.models.address import Address, AddressType
from brokerage.database.models.order import Order
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.database.models.charge import ChargeGroup, ChargeLine
from brokerage.database.models.settlement import OrderPurchase, OrderSale
from brokerage.database.models.bundle import (
    BundleAdjustment,
    BundleItem,
    ItemAdjustment,
    SettlementBundle,
)
from brokerage.database.models.change_log import ChangeLog

__all__ = [
    "Base",
    "AuditedModel",
    "TimestampMixin",
    "UUIDMixin",
    "SoftDeleteMixin",
    "AuditMixin",
    "create_table_args",
    "Company",
    "CompanyStatus",
    "CompanyType",
    "User",
    "UserStatus",
    "Driver",
    "DriverAffiliation",
    "Address",
    "AddressType",
    "Order",
    "OrderDispatch",
    "ChargeGroup",
    "ChargeLine",
    "OrderSale",
    "OrderPurchase",
    "SettlementBundle",
    "BundleItem",
    "BundleAdjustment",
    "ItemAdjustment",
    "ChangeLog",
]
