"""Order flow status transition validation.

The flow sequence is ordered, but by default any status may follow any
other so that operators can correct a status backwards.
``enforce_forward`` turns on strict forward-only checking.
"""

from typing import Any

from brokerage.core.errors import ValidationError
from brokerage.core.logging import get_logger
from brokerage.services.orders.enums import FLOW_SEQUENCE, OrderFlowStatus

logger = get_logger(__name__)


class OrderStateError(ValidationError):
    """Raised when an order cannot move to the requested status."""

    def __init__(
        self,
        message: str,
        current_state: OrderFlowStatus,
        target_state: OrderFlowStatus,
        **context: Any,
    ):
        super().__init__(
            message,
            details={
                "currentStatus": current_state.value,
                "requestedStatus": target_state.value,
            },
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


class OrderCanceledError(OrderStateError):
    """Raised when a canceled order is asked to change."""

    pass


class OrderFlowStateMachine:
    """Validates flow status transitions of an order.

    Args:
        enforce_forward: Reject transitions to an earlier or equal position
    """

    def __init__(self, enforce_forward: bool = False):
        self.enforce_forward = enforce_forward

    def allowed_targets(
        self, current: OrderFlowStatus, is_canceled: bool = False
    ) -> list[OrderFlowStatus]:
        """Statuses the order may move to from ``current``."""
        if is_canceled:
            return []
        if self.enforce_forward:
            return [s for s in FLOW_SEQUENCE if current.is_before(s)]
        return [s for s in FLOW_SEQUENCE if s is not current]

    def validate_transition(
        self,
        current: OrderFlowStatus,
        target: OrderFlowStatus,
        is_canceled: bool = False,
        **context: Any,
    ) -> None:
        """Check that ``current -> target`` is allowed.

        Raises:
            OrderCanceledError: If the order is canceled
            OrderStateError: If the status is unchanged, or goes backwards
                while forward-only checking is on
        """
        if is_canceled:
            logger.warning(
                "Status change rejected for canceled order",
                current_status=current.value,
                target_status=target.value,
                **context,
            )
            raise OrderCanceledError(
                "Canceled orders cannot change status",
                current,
                target,
                **context,
            )

        if current is target:
            raise OrderStateError(
                f"Order is already in status {current.value}",
                current,
                target,
                **context,
            )

        if self.enforce_forward and not current.is_before(target):
            logger.warning(
                "Backward status change rejected",
                current_status=current.value,
                target_status=target.value,
                **context,
            )
            raise OrderStateError(
                f"Cannot move order from {current.value} back to {target.value}",
                current,
                target,
                **context,
            )
