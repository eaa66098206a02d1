"""
Order service for the shipper-side order lifecycle.

Implements order registration, listing, flow status changes, the
allow-listed field patch and batch actions. Every mutation stamps the actor
and, where the business process records it, appends a change log row in the
same transaction.
"""

import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.actor import Actor
from brokerage.core.config import Settings, get_settings
from brokerage.core.errors import NotFoundError, ValidationError, check_allowed_fields
from brokerage.core.logging import get_logger
from brokerage.database.models.company import Company
from brokerage.database.models.order import Order
from brokerage.schemas.orders import OrderCreateRequest, OrderFieldsPatch
from brokerage.schemas.snapshots import ActorSnapshot, AddressSnapshot, CompanySnapshot
from brokerage.services.audit.enums import ChangeType, EntityType
from brokerage.services.audit.service import ChangeLogService
from brokerage.services.batch import BatchMode, BatchResult, run_batch
from brokerage.services.charges.enums import SortOrder
from brokerage.services.entities.repository import AddressRepository, CompanyRepository
from brokerage.services.orders.enums import (
    OrderBatchAction,
    OrderBoardSortField,
    OrderFlowStatus,
    RecentAddressKind,
    VehicleType,
    VehicleWeight,
)
from brokerage.services.orders.recent import recent_addresses, recent_cargos, snapshot_column
from brokerage.services.orders.repository import OrderRepository
from brokerage.services.orders.state_machine import (
    OrderCanceledError,
    OrderFlowStateMachine,
)

logger = get_logger(__name__)

ORDER_FIELD_ALLOWLIST = frozenset(
    {
        "flowStatus",
        "cargoName",
        "cargoWeight",
        "cargoUnit",
        "cargoQuantity",
        "packagingType",
        "requestedVehicleType",
        "requestedVehicleWeight",
        "priceAmount",
        "priceType",
        "taxType",
        "pickupAddressId",
        "deliveryAddressId",
        "pickupAddressSnapshot",
        "deliveryAddressSnapshot",
        "pickupDate",
        "pickupTime",
        "deliveryDate",
        "deliveryTime",
        "isCanceled",
        "memo",
    }
)

# Patch attribute -> Order column where the names differ
ORDER_COLUMN_MAP = {"price_amount": "estimated_price_amount"}

_ADDRESS_SNAPSHOT_COLUMNS = {
    "pickup_address_id": "pickup_address_snapshot",
    "delivery_address_id": "delivery_address_snapshot",
}

_BATCH_CHANGE_TYPES = {
    OrderBatchAction.CANCEL: ChangeType.CANCEL,
    OrderBatchAction.DELETE: ChangeType.DELETE,
    OrderBatchAction.UPDATE_STATUS: ChangeType.UPDATE_STATUS,
}


class OrderService:
    """
    Order lifecycle operations.

    Attributes:
        repository: Order repository for data access
        state_machine: Flow status transition rules
        change_logs: Change log writer sharing the session
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = OrderRepository(session)
        self.companies = CompanyRepository(session)
        self.addresses = AddressRepository(session)
        self.change_logs = ChangeLogService(session)
        self.state_machine = OrderFlowStateMachine(
            enforce_forward=self.settings.enforce_forward_status
        )

    async def _address_snapshot(self, address_id: Optional[uuid.UUID]) -> Optional[dict[str, Any]]:
        if address_id is None:
            return None
        address = await self.addresses.get_or_raise(address_id)
        return AddressSnapshot.from_entity(address).to_json()

    async def _resolve_company(self, payload: OrderCreateRequest, actor: Actor) -> Company:
        company_id = payload.company_id or actor.company_id
        if company_id is None:
            raise ValidationError("companyId is required", actor_id=str(actor.id))
        return await self.companies.get_or_raise(company_id)

    async def validate_order(self, payload: OrderCreateRequest, actor: Actor) -> OrderCreateRequest:
        """
        Check an order payload without registering it.

        Resolves the shipper company and both addresses the way
        ``create_order`` does.

        Returns:
            The payload with ``company_id`` filled in

        Raises:
            ValidationError: If no shipper company can be determined
            EntityNotFoundError: If the company or an address does not exist
        """
        company = await self._resolve_company(payload, actor)
        for address_id in (payload.pickup_address_id, payload.delivery_address_id):
            if address_id is not None:
                await self.addresses.get_or_raise(address_id)
        logger.debug("Order payload validated", company_id=str(company.id), actor_id=str(actor.id))
        return payload.model_copy(update={"company_id": company.id})

    async def create_order(self, payload: OrderCreateRequest, actor: Actor) -> Order:
        """
        Register a new order at 운송요청.

        Raises:
            ValidationError: If no shipper company can be determined
            EntityNotFoundError: If the company or an address does not exist
        """
        company = await self._resolve_company(payload, actor)

        order = Order(
            company_id=company.id,
            company_snapshot=CompanySnapshot.from_entity(company).to_json(),
            contact_user_id=actor.id,
            contact_snapshot=ActorSnapshot.from_actor(actor).to_json(),
            flow_status=OrderFlowStatus.REQUESTED,
            is_canceled=False,
            cargo_name=payload.cargo_name,
            cargo_weight=payload.cargo_weight,
            cargo_unit=payload.cargo_unit,
            cargo_quantity=payload.cargo_quantity,
            packaging_type=payload.packaging_type,
            requested_vehicle_type=payload.requested_vehicle_type,
            requested_vehicle_weight=payload.requested_vehicle_weight,
            pickup_address_id=payload.pickup_address_id,
            pickup_address_snapshot=await self._address_snapshot(payload.pickup_address_id),
            pickup_date=payload.pickup_date,
            pickup_time=payload.pickup_time,
            delivery_address_id=payload.delivery_address_id,
            delivery_address_snapshot=await self._address_snapshot(payload.delivery_address_id),
            delivery_date=payload.delivery_date,
            delivery_time=payload.delivery_time,
            estimated_distance=payload.estimated_distance,
            estimated_price_amount=payload.price_amount,
            price_type=payload.price_type,
            tax_type=payload.tax_type,
            memo=payload.memo,
        )
        order.stamp_created(actor)

        await self.repository.add(order)
        await self.change_logs.log_change(
            EntityType.ORDER,
            order.id,
            actor,
            ChangeType.CREATE,
            new_data=order.to_dict(),
            reason="주문 등록",
        )

        logger.info(
            "Order created",
            order_id=str(order.id),
            company_id=str(company.id),
            actor_id=str(actor.id),
        )
        return order

    async def get_order(self, order_id: uuid.UUID) -> Order:
        return await self.repository.get_or_raise(order_id)

    async def list_orders(
        self,
        company_id: Optional[uuid.UUID] = None,
        flow_status: Optional[OrderFlowStatus] = None,
        is_canceled: Optional[bool] = None,
        pickup_from: Optional[date] = None,
        pickup_to: Optional[date] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        return await self.repository.list_orders(
            company_id=company_id,
            flow_status=flow_status,
            is_canceled=is_canceled,
            pickup_from=pickup_from,
            pickup_to=pickup_to,
            keyword=keyword,
            page=page,
            page_size=page_size,
        )

    async def list_with_dispatch(
        self,
        company_id: Optional[uuid.UUID] = None,
        flow_status: Optional[OrderFlowStatus] = None,
        vehicle_type: Optional[VehicleType] = None,
        vehicle_weight: Optional[VehicleWeight] = None,
        pickup_region: Optional[str] = None,
        delivery_region: Optional[str] = None,
        pickup_from: Optional[date] = None,
        pickup_to: Optional[date] = None,
        keyword: Optional[str] = None,
        has_dispatch: Optional[bool] = None,
        sort_by: OrderBoardSortField = OrderBoardSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Order], int]:
        """Broker board: orders with their dispatch, if any."""
        if pickup_from and pickup_to and pickup_to < pickup_from:
            raise ValidationError(
                "endDate cannot be before startDate",
                details={"startDate": pickup_from.isoformat(), "endDate": pickup_to.isoformat()},
            )
        return await self.repository.list_with_dispatch(
            company_id=company_id,
            flow_status=flow_status,
            vehicle_type=vehicle_type,
            vehicle_weight=vehicle_weight,
            pickup_region=pickup_region,
            delivery_region=delivery_region,
            pickup_from=pickup_from,
            pickup_to=pickup_to,
            keyword=keyword,
            has_dispatch=has_dispatch,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
        )

    async def recent_cargos(self, company_id: uuid.UUID, limit: int = 5) -> list[dict[str, Any]]:
        """Cargo a shipper registered recently, one entry per cargo and vehicle."""
        orders = await self.repository.recent_orders(company_id, Order.cargo_name)
        return recent_cargos(orders, limit)

    async def recent_addresses(
        self, actor: Actor, kind: RecentAddressKind, limit: int = 10
    ) -> list[dict[str, Any]]:
        """
        Pickup or delivery locations used in the actor's company's recent orders.

        Raises:
            ValidationError: If the actor belongs to no company
        """
        if actor.company_id is None:
            raise ValidationError(
                "사용자의 회사 정보를 찾을 수 없습니다", actor_id=str(actor.id)
            )
        column = getattr(Order, snapshot_column(kind))
        orders = await self.repository.recent_orders(actor.company_id, column)
        return recent_addresses(orders, kind, limit)

    async def _apply_status(
        self,
        order: Order,
        new_status: OrderFlowStatus,
        actor: Actor,
        reason: Optional[str],
        change_type: ChangeType = ChangeType.UPDATE_STATUS,
    ) -> OrderFlowStatus:
        previous = order.flow_status
        self.state_machine.validate_transition(
            previous,
            new_status,
            is_canceled=order.is_canceled,
            order_id=str(order.id),
        )

        old_data = order.to_dict()
        order.flow_status = new_status
        order.stamp_updated(actor)
        await self.repository.flush()

        await self.change_logs.log_change(
            EntityType.ORDER,
            order.id,
            actor,
            change_type,
            old_data=old_data,
            new_data=order.to_dict(),
            reason=reason or f"상태 변경: {previous.value} → {new_status.value}",
        )
        return previous

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderFlowStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Move an order to ``new_status``.

        Returns:
            Dict with orderId, previousStatus and currentStatus

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderStateError: If the order is canceled or already in the status
        """
        order = await self.repository.get_or_raise(order_id)
        previous = await self._apply_status(order, new_status, actor, reason)

        logger.info(
            "Order status updated",
            order_id=str(order_id),
            previous_status=previous.value,
            current_status=new_status.value,
            actor_id=str(actor.id),
        )
        return {
            "order_id": order.id,
            "previous_status": previous,
            "current_status": order.flow_status,
        }

    async def update_fields(
        self,
        order_id: uuid.UUID,
        fields: dict[str, Any],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Apply an allow-listed field patch.

        Changing an address id regenerates that address snapshot.

        Raises:
            InvalidFieldsError: If the patch contains keys outside the allow-list
            OrderNotFoundError: If the order does not exist
            OrderCanceledError: If a canceled order's flow status is patched
                or its cancel flag is cleared
        """
        check_allowed_fields(fields, ORDER_FIELD_ALLOWLIST, order_id=str(order_id))
        values = OrderFieldsPatch.model_validate(fields).model_dump(exclude_unset=True)

        order = await self.repository.get_or_raise(order_id)

        # Cancellation is terminal
        if order.is_canceled and values.get("is_canceled") is False:
            raise OrderCanceledError(
                "Canceled orders cannot be restored",
                order.flow_status,
                order.flow_status,
                order_id=str(order_id),
            )

        new_status = values.get("flow_status")
        if new_status is not None and new_status != order.flow_status and order.is_canceled:
            raise OrderCanceledError(
                "Canceled orders cannot change status",
                order.flow_status,
                new_status,
                order_id=str(order_id),
            )

        for id_field, snapshot_field in _ADDRESS_SNAPSHOT_COLUMNS.items():
            if id_field in values and values[id_field] != getattr(order, id_field):
                values[snapshot_field] = await self._address_snapshot(values[id_field])

        old_data = order.to_dict()
        for key, value in values.items():
            setattr(order, ORDER_COLUMN_MAP.get(key, key), value)
        order.stamp_updated(actor)
        await self.repository.flush()

        if self.settings.audit_order_field_updates:
            await self.change_logs.log_change(
                EntityType.ORDER,
                order.id,
                actor,
                ChangeType.UPDATE,
                old_data=old_data,
                new_data=order.to_dict(),
                reason=reason,
            )

        logger.info(
            "Order fields updated",
            order_id=str(order_id),
            fields=sorted(fields),
            actor_id=str(actor.id),
        )
        return order

    async def _cancel(
        self,
        order: Order,
        actor: Actor,
        change_type: ChangeType,
        reason: Optional[str],
    ) -> None:
        if order.is_canceled:
            raise OrderCanceledError(
                "Order is already canceled",
                order.flow_status,
                order.flow_status,
                order_id=str(order.id),
            )
        old_data = order.to_dict()
        order.is_canceled = True
        order.stamp_updated(actor)
        await self.repository.flush()
        await self.change_logs.log_change(
            EntityType.ORDER,
            order.id,
            actor,
            change_type,
            old_data=old_data,
            new_data=order.to_dict(),
            reason=reason or "주문 취소",
        )

    async def batch(
        self,
        order_ids: list[uuid.UUID],
        action: OrderBatchAction,
        actor: Actor,
        flow_status: Optional[OrderFlowStatus] = None,
        mode: BatchMode = BatchMode.BEST_EFFORT,
        reason: Optional[str] = None,
    ) -> BatchResult:
        """
        Apply ``action`` to every order.

        ``delete`` is a soft cancellation. Every id must exist before any
        order is touched.

        Raises:
            NotFoundError: If any id has no order
            ValidationError: If updateStatus is requested without a status
        """
        if not order_ids:
            raise ValidationError("orderIds must not be empty")
        if action == OrderBatchAction.UPDATE_STATUS and flow_status is None:
            raise ValidationError("flowStatus is required for updateStatus")

        missing = await self.repository.find_missing_ids(order_ids)
        if missing:
            raise NotFoundError(
                "주문을 찾을 수 없습니다",
                details={"orderIds": [str(order_id) for order_id in missing]},
            )

        change_type = _BATCH_CHANGE_TYPES[action]

        async def handle(order_id: uuid.UUID) -> None:
            order = await self.repository.get_or_raise(order_id)
            if action == OrderBatchAction.UPDATE_STATUS:
                await self._apply_status(order, flow_status, actor, reason, change_type)
            else:
                await self._cancel(order, actor, change_type, reason)

        result = await run_batch(
            self.session,
            order_ids,
            handle,
            mode,
            operation=f"orders.{action.value}",
        )

        logger.info(
            "Order batch finished",
            action=action.value,
            mode=mode.value,
            processed=len(result.processed),
            failed=len(result.failed),
            actor_id=str(actor.id),
        )
        return result
