"""Reference entity enums."""

from enum import Enum


class AddressBatchAction(str, Enum):
    """Bulk actions on a list of saved addresses."""

    DELETE = "delete"
    SET_FREQUENT = "setFrequent"
    UNSET_FREQUENT = "unsetFrequent"
