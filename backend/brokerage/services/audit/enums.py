"""Change log classification enums."""

from enum import Enum


class EntityType(str, Enum):
    """Entities whose mutations are recorded in the change log."""

    ORDER = "order"
    COMPANY = "company"
    USER = "user"
    DRIVER = "driver"
    ADDRESS = "address"


class ChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    UPDATE_STATUS = "updateStatus"
    UPDATE_DISPATCH = "updateDispatch"
    UPDATE_PRICE = "updatePrice"
    UPDATE_PRICE_SALES = "updatePriceSales"
    UPDATE_PRICE_PURCHASE = "updatePricePurchase"
    STATUS_CHANGE = "statusChange"
    CANCEL = "cancel"
    DELETE = "delete"
