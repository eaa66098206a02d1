"""
Dispatch service for the broker-side assignment of orders.

A dispatch links one order to a broker, a driver and a vehicle. Changes to
``broker_flow_status`` are mirrored onto the order's ``flow_status`` in the
same transaction, and every effective change is logged against the order.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.errors import ConflictError, ValidationError, check_allowed_fields
from brokerage.core.logging import get_logger
from brokerage.database.models.dispatch import OrderDispatch
from brokerage.database.models.order import Order
from brokerage.schemas.dispatch import CreateDispatchRequest, DispatchFieldsPatch
from brokerage.schemas.snapshots import CompanySnapshot, DriverSnapshot, UserSnapshot
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.batch import BatchMode, BatchResult, run_batch
from brokerage.services.dispatch.repository import (
    DispatchClosedError,
    DispatchConflictError,
    DispatchNotFoundError,
    DispatchRepository,
)
from brokerage.services.entities.repository import (
    CompanyRepository,
    DriverRepository,
    UserRepository,
)
from brokerage.services.orders.enums import OrderFlowStatus, VehicleType, VehicleWeight
from brokerage.services.orders.repository import OrderRepository
from brokerage.services.orders.state_machine import OrderCanceledError

logger = get_logger(__name__)

DISPATCH_FIELD_ALLOWLIST = frozenset(
    {
        "assignedDriverId",
        "assignedDriverSnapshot",
        "assignedDriverPhone",
        "assignedVehicleNumber",
        "assignedVehicleType",
        "assignedVehicleWeight",
        "assignedVehicleConnection",
        "agreedFreightCost",
        "brokerMemo",
        "brokerFlowStatus",
    }
)


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def describe_dispatch_change(
    changed: dict[str, tuple[Any, Any]], reason: Optional[str] = None
) -> str:
    """
    Change log reason for a dispatch patch.

    A pure status change reads ``상태 변경: A → B``; anything else lists the
    changed fields.
    """
    if reason:
        return reason
    if set(changed) == {"broker_flow_status"}:
        old, new = changed["broker_flow_status"]
        old_label = old.value if old is not None else "-"
        return f"상태 변경: {old_label} → {new.value}"
    return "배차 정보 변경: " + ", ".join(_to_camel(name) for name in changed)


def _serialize(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    return value


class DispatchService:
    """
    Dispatch lifecycle operations.

    Attributes:
        repository: Dispatch repository
        orders: Order repository
        change_logs: Change log writer sharing the session
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = DispatchRepository(session)
        self.orders = OrderRepository(session)
        self.companies = CompanyRepository(session)
        self.users = UserRepository(session)
        self.drivers = DriverRepository(session)
        self.change_logs = ChangeLogService(session)

    async def _ensure_dispatchable(self, order: Order) -> None:
        if order.is_canceled:
            raise ConflictError(
                "취소된 주문은 배차할 수 없습니다",
                details={"orderId": str(order.id)},
                order_id=str(order.id),
            )
        if await self.repository.get_by_order_id(order.id) is not None:
            raise DispatchConflictError(order.id)

    async def accept_dispatches(
        self,
        order_ids: list[uuid.UUID],
        actor: Actor,
        agreed_freight_cost: Optional[Decimal] = None,
        assigned_vehicle_type: Optional[VehicleType] = None,
        assigned_vehicle_weight: Optional[VehicleWeight] = None,
        broker_memo: Optional[str] = None,
        mode: BatchMode = BatchMode.ALL_OR_NOTHING,
    ) -> tuple[dict[str, list[str]], BatchResult]:
        """
        Accept several orders for the actor's broker company.

        Each order moves to 배차대기 and receives a new dispatch carrying
        snapshots of the broker company and manager.

        Returns:
            Tuple of ({updatedOrders, insertedDispatches}, batch result)

        Raises:
            ValidationError: If no ids are given or the actor has no company
            EntityNotFoundError: If the broker company does not exist
            DispatchConflictError: In ALL_OR_NOTHING mode, if an order is
                already dispatched
        """
        if not order_ids:
            raise ValidationError("orderIds must not be empty")
        if actor.company_id is None:
            raise ValidationError("Broker company is required to accept dispatches")

        company = await self.companies.get_or_raise(actor.company_id)
        company_snapshot = CompanySnapshot.from_entity(company).to_json()
        manager = await self.users.get_by_id(actor.id)
        manager_snapshot = (
            UserSnapshot.from_entity(manager).to_json() if manager else actor.to_snapshot()
        )

        updated_orders: list[str] = []
        inserted_dispatches: list[str] = []

        async def accept(order_id: uuid.UUID) -> None:
            order = await self.orders.get_or_raise(order_id)
            await self._ensure_dispatchable(order)

            previous = order.flow_status
            order.flow_status = OrderFlowStatus.DISPATCH_WAIT
            order.stamp_updated(actor)

            dispatch = OrderDispatch(
                order_id=order.id,
                broker_company_id=company.id,
                broker_company_snapshot=company_snapshot,
                broker_manager_id=actor.id,
                broker_manager_snapshot=manager_snapshot,
                agreed_freight_cost=agreed_freight_cost,
                assigned_vehicle_type=assigned_vehicle_type,
                assigned_vehicle_weight=assigned_vehicle_weight,
                broker_memo=broker_memo,
                broker_flow_status=OrderFlowStatus.DISPATCH_WAIT,
                is_closed=False,
            )
            dispatch.stamp_created(actor)
            await self.repository.add(dispatch)

            await self.change_logs.log_change(
                EntityType.ORDER,
                order.id,
                actor,
                ChangeType.UPDATE_DISPATCH,
                old_data={"flowStatus": previous.value},
                new_data={
                    "flowStatus": order.flow_status.value,
                    "dispatchId": str(dispatch.id),
                    "brokerCompanyId": str(company.id),
                },
                reason="배차 수락",
            )
            updated_orders.append(str(order.id))
            inserted_dispatches.append(str(dispatch.id))

        result = await run_batch(
            self.session,
            order_ids,
            accept,
            mode,
            operation="dispatches.accept",
        )

        # best-effort failures were rolled back to their savepoint
        kept = set(result.processed)
        summary = {
            "updated_orders": [order_id for order_id in updated_orders if order_id in kept],
            "inserted_dispatches": [
                dispatch_id
                for order_id, dispatch_id in zip(updated_orders, inserted_dispatches)
                if order_id in kept
            ],
        }

        logger.info(
            "Dispatches accepted",
            broker_company_id=str(company.id),
            accepted=len(summary["updated_orders"]),
            failed=len(result.failed),
            actor_id=str(actor.id),
        )
        return summary, result

    async def create_dispatch(
        self,
        order_id: uuid.UUID,
        payload: CreateDispatchRequest,
        actor: Actor,
    ) -> OrderDispatch:
        """
        Assign a driver and vehicle to an order.

        Both the order and the new dispatch move to 배차완료.

        Raises:
            OrderNotFoundError: If the order does not exist
            ConflictError: If the order is canceled or already dispatched
            EntityNotFoundError: If the driver, broker company or manager
                does not exist
        """
        order = await self.orders.get_or_raise(order_id)
        await self._ensure_dispatchable(order)

        driver = await self.drivers.get_or_raise(payload.assigned_driver_id)
        company = await self.companies.get_or_raise(payload.broker_company_id)
        manager_snapshot = None
        if payload.broker_manager_id is not None:
            manager = await self.users.get_or_raise(payload.broker_manager_id)
            manager_snapshot = UserSnapshot.from_entity(manager).to_json()

        dispatch = OrderDispatch(
            order_id=order.id,
            broker_company_id=company.id,
            broker_company_snapshot=CompanySnapshot.from_entity(company).to_json(),
            broker_manager_id=payload.broker_manager_id,
            broker_manager_snapshot=manager_snapshot,
            assigned_driver_id=driver.id,
            assigned_driver_snapshot=DriverSnapshot.from_entity(driver).to_json(),
            assigned_driver_phone=driver.phone,
            assigned_vehicle_number=payload.assigned_vehicle_number,
            assigned_vehicle_type=payload.assigned_vehicle_type,
            assigned_vehicle_weight=payload.assigned_vehicle_weight,
            assigned_vehicle_connection=payload.assigned_vehicle_connection,
            agreed_freight_cost=payload.agreed_freight_cost,
            broker_memo=payload.broker_memo,
            broker_flow_status=OrderFlowStatus.DISPATCH_DONE,
            is_closed=False,
        )
        dispatch.stamp_created(actor)

        previous = order.flow_status
        order.flow_status = OrderFlowStatus.DISPATCH_DONE
        order.stamp_updated(actor)
        await self.repository.add(dispatch)

        await self.change_logs.log_change(
            EntityType.ORDER,
            order.id,
            actor,
            ChangeType.UPDATE_DISPATCH,
            old_data={"flowStatus": previous.value},
            new_data={
                "flowStatus": order.flow_status.value,
                "dispatchId": str(dispatch.id),
                "assignedDriverId": str(driver.id),
                "assignedVehicleNumber": payload.assigned_vehicle_number,
            },
            reason="배차 등록",
        )

        logger.info(
            "Dispatch created",
            dispatch_id=str(dispatch.id),
            order_id=str(order.id),
            driver_id=str(driver.id),
            actor_id=str(actor.id),
        )
        return dispatch

    async def get_dispatch(self, dispatch_id: uuid.UUID) -> OrderDispatch:
        return await self.repository.get_or_raise(dispatch_id)

    async def update_dispatch_fields(
        self,
        dispatch_id: uuid.UUID,
        fields: dict[str, Any],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> OrderDispatch:
        """
        Apply an allow-listed dispatch patch.

        A new ``assignedDriverId`` refreshes the driver snapshot and phone.
        A new ``brokerFlowStatus`` is written to the order as well. Only the
        fields whose value actually changed are logged; nothing is logged
        when the patch changes nothing.

        Raises:
            InvalidFieldsError: If the patch contains keys outside the allow-list
            DispatchNotFoundError: If the dispatch does not exist
            EntityNotFoundError: If a new driver does not exist
            OrderCanceledError: If the status of a canceled order would change
        """
        check_allowed_fields(fields, DISPATCH_FIELD_ALLOWLIST, dispatch_id=str(dispatch_id))
        values = DispatchFieldsPatch.model_validate(fields).model_dump(exclude_unset=True)

        dispatch = await self.repository.get_or_raise(dispatch_id)

        new_driver_id = values.get("assigned_driver_id")
        if new_driver_id is not None and new_driver_id != dispatch.assigned_driver_id:
            driver = await self.drivers.get_or_raise(new_driver_id)
            values["assigned_driver_snapshot"] = DriverSnapshot.from_entity(driver).to_json()
            values.setdefault("assigned_driver_phone", driver.phone)

        changed = {
            key: (getattr(dispatch, key), value)
            for key, value in values.items()
            if getattr(dispatch, key) != value
        }
        if not changed:
            logger.debug("Dispatch patch changed nothing", dispatch_id=str(dispatch_id))
            return dispatch

        order = await self.orders.get_or_raise(dispatch.order_id)
        if "broker_flow_status" in changed:
            new_status = changed["broker_flow_status"][1]
            if order.is_canceled:
                raise OrderCanceledError(
                    "Canceled orders cannot change status",
                    order.flow_status,
                    new_status,
                    order_id=str(order.id),
                )
            order.flow_status = new_status
            order.stamp_updated(actor)

        for key, (_, value) in changed.items():
            setattr(dispatch, key, value)
        dispatch.stamp_updated(actor)
        await self.repository.flush()

        await self.change_logs.log_change(
            EntityType.ORDER,
            order.id,
            actor,
            ChangeType.UPDATE_DISPATCH,
            old_data={_to_camel(key): _serialize(old) for key, (old, _) in changed.items()},
            new_data={_to_camel(key): _serialize(new) for key, (_, new) in changed.items()},
            reason=describe_dispatch_change(changed, reason),
        )

        logger.info(
            "Dispatch fields updated",
            dispatch_id=str(dispatch_id),
            order_id=str(order.id),
            fields=sorted(changed),
            actor_id=str(actor.id),
        )
        return dispatch

    async def close_dispatch(
        self, dispatch_id: uuid.UUID, actor: Actor
    ) -> tuple[OrderDispatch, bool]:
        """
        Close a dispatch for settlement.

        Returns:
            Tuple of (dispatch, whether this call closed it)

        Raises:
            DispatchNotFoundError: If the dispatch does not exist
        """
        closed_now = await self.repository.close(dispatch_id)
        dispatch = await self.repository.get_or_raise(dispatch_id)
        if closed_now:
            await self.session.refresh(dispatch)
            logger.info("Dispatch closed", dispatch_id=str(dispatch_id), actor_id=str(actor.id))
        else:
            logger.info("Dispatch already closed", dispatch_id=str(dispatch_id))
        return dispatch, closed_now

    async def delete_dispatch(self, dispatch_id: uuid.UUID, actor: Actor) -> None:
        """
        Hard-delete a dispatch.

        Raises:
            DispatchNotFoundError: If the dispatch does not exist
            DispatchClosedError: If the dispatch is closed for settlement
        """
        dispatch = await self.repository.get_by_id(dispatch_id)
        if dispatch is None:
            raise DispatchNotFoundError(dispatch_id)
        if dispatch.is_closed:
            raise DispatchClosedError(dispatch_id)

        order_id = dispatch.order_id
        old_data = dispatch.to_dict()
        await self.repository.delete(dispatch)
        await self.change_logs.log_change(
            EntityType.ORDER,
            order_id,
            actor,
            ChangeType.UPDATE_DISPATCH,
            old_data=old_data,
            reason="배차 삭제",
        )
        logger.info(
            "Dispatch deleted",
            dispatch_id=str(dispatch_id),
            order_id=str(order_id),
            actor_id=str(actor.id),
        )
