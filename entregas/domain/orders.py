# SPDX-License-Identifier: Apache-2.0

"""
Order domain logic: pricing, the delivery status machine and driver assignment.

All functions are pure. They return new entities and leave persistence,
wallet credits and notification fan-out to the caller.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..models.entities import (
    Coupon,
    DeliveryConfig,
    Order,
    OrderItem,
    Profile,
    RejectionLog,
    StatusChange,
    UserContext,
    WalletTransaction
)
from ..models.enums import DeliveryMethod, OrderStatus, TransactionType, UserRole
from ..models.requests import CreateOrderRequest, OrderStatusRequest
from . import catalog, coupons, validation
from .results import ValidationResult, WorkflowResult

# Promised delivery window counted from driver assignment
DELIVERY_WINDOW = timedelta(minutes=60)

ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING.value: frozenset([OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value]),
    OrderStatus.CONFIRMED.value: frozenset([OrderStatus.DRIVER_ASSIGNED.value, OrderStatus.CANCELLED.value]),
    OrderStatus.DRIVER_ASSIGNED.value: frozenset([OrderStatus.PICKED_UP.value, OrderStatus.CANCELLED.value]),
    OrderStatus.PICKED_UP.value: frozenset([OrderStatus.OUT_FOR_DELIVERY.value]),
    OrderStatus.OUT_FOR_DELIVERY.value: frozenset([OrderStatus.DELIVERED.value]),
    OrderStatus.DELIVERED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}

DRIVER_STATUSES = frozenset([
    OrderStatus.PICKED_UP.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
])

STATUS_LABELS: Dict[str, str] = {
    OrderStatus.PENDING.value: "Pendente",
    OrderStatus.CONFIRMED.value: "Confirmado",
    OrderStatus.DRIVER_ASSIGNED.value: "Motorista Atribuído",
    OrderStatus.PICKED_UP.value: "Coletado",
    OrderStatus.OUT_FOR_DELIVERY.value: "Em Rota",
    OrderStatus.DELIVERED.value: "Entregue",
    OrderStatus.CANCELLED.value: "Cancelado",
}

_STATUS_MESSAGES: Dict[str, str] = {
    OrderStatus.CONFIRMED.value: "Seu pedido foi confirmado e aguarda um motorista.",
    OrderStatus.DRIVER_ASSIGNED.value: "Um motorista aceitou seu pedido.",
    OrderStatus.PICKED_UP.value: "Seu pedido foi coletado pelo motorista.",
    OrderStatus.OUT_FOR_DELIVERY.value: "Seu pedido saiu para entrega.",
    OrderStatus.DELIVERED.value: "Seu pedido foi entregue. Avalie a entrega!",
    OrderStatus.CANCELLED.value: "Seu pedido foi cancelado.",
}


def _value(enum_or_str):
    return getattr(enum_or_str, 'value', enum_or_str)


def can_transition(current: str, new_status: str) -> bool:
    return _value(new_status) in ORDER_TRANSITIONS.get(_value(current), frozenset())


def next_statuses(status: Optional[str]) -> List[str]:
    """Statuses reachable from ``status``; empty for terminal or unknown ones."""
    return sorted(ORDER_TRANSITIONS.get(_value(status), frozenset()))


def status_label(status: str) -> str:
    return STATUS_LABELS.get(_value(status), _value(status))


def calculate_delivery_fee(
    config: Optional[DeliveryConfig],
    distance_km: Optional[float],
    method: str = DeliveryMethod.DELIVERY.value
) -> Tuple[Optional[float], Optional[str]]:
    """
    Price a delivery for a region.

    Args:
        config: Regional pricing, may be None for pickup orders
        distance_km: Route distance
        method: ``delivery`` or ``pickup``

    Returns:
        Tuple of (fee, error_message); fee is None when the order cannot be
        delivered with this configuration
    """
    if _value(method) == DeliveryMethod.PICKUP.value:
        return 0.0, None

    if config is None:
        return None, "No delivery configuration for this region"
    if not config.is_active:
        return None, f"Delivery is not available for region '{config.region}'"

    distance = distance_km or 0.0
    if distance < 0:
        return None, "Distance cannot be negative"
    if distance > config.max_distance_km:
        return None, (
            f"Distance of {distance} km exceeds the {config.max_distance_km} km "
            f"limit for region '{config.region}'"
        )

    return round(config.base_fee + config.per_km_fee * distance, 2), None


def validate_order_request(request: CreateOrderRequest) -> ValidationResult:
    """Delivery orders need a full address; pickup orders need nothing else."""
    errors: List[str] = []
    if _value(request.delivery_method) == DeliveryMethod.DELIVERY.value:
        if not request.region:
            errors.append("Region is required for delivery orders")
        check = validation.validate_address_fields(
            request.delivery_address,
            request.delivery_city,
            request.delivery_state,
            request.delivery_cep
        )
        errors.extend(check.errors)
    return ValidationResult.from_errors(errors)


def build_order(
    request: CreateOrderRequest,
    client_id: str,
    items: List[OrderItem],
    config: Optional[DeliveryConfig] = None,
    pickup_address: Optional[str] = None,
    role: str = UserRole.CLIENT.value,
    coupon: Optional[Coupon] = None
) -> WorkflowResult:
    """
    Create a pending order from a client request.

    Args:
        request: Checkout request
        client_id: Buyer profile ID
        items: Lines already priced from the catalog
        config: Regional pricing, None for pickup orders
        pickup_address: Store address for pickup orders
        role: Buyer role; wholesale accounts get the wholesale discount
        coupon: Coupon already checked by the caller

    Subtotal is the sum of line totals and the fee comes from the regional
    configuration. The wholesale discount applies to the subtotal, then the
    coupon to what remains. Total is subtotal plus fee minus both discounts.
    """
    check = validate_order_request(request)
    if not check.is_valid:
        return WorkflowResult.fail("Invalid order", check.errors)

    method = _value(request.delivery_method)
    fee, error = calculate_delivery_fee(config, request.distance_km, method)
    if error:
        return WorkflowResult.fail(error)

    subtotal = round(sum(item.line_total for item in items), 2)
    wholesale = catalog.wholesale_discount(subtotal, role)
    coupon_discount = coupons.calculate_discount(coupon, round(subtotal - wholesale, 2)) if coupon else 0.0
    discount = round(wholesale + coupon_discount, 2)
    is_delivery = method == DeliveryMethod.DELIVERY.value

    order = Order(
        client_id=client_id,
        items=items,
        subtotal=subtotal,
        delivery_fee=fee,
        wholesale_discount=wholesale,
        coupon_discount=coupon_discount,
        discount=discount,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
        total=round(subtotal + fee - discount, 2),
        delivery_method=method,
        delivery_address=request.delivery_address if is_delivery else None,
        delivery_cep=validation.format_cep(request.delivery_cep) if is_delivery and request.delivery_cep else None,
        delivery_city=request.delivery_city if is_delivery else None,
        delivery_state=request.delivery_state.upper() if is_delivery and request.delivery_state else None,
        delivery_latitude=request.delivery_latitude,
        delivery_longitude=request.delivery_longitude,
        pickup_address=pickup_address if not is_delivery else None,
        region=request.region,
        distance_km=request.distance_km,
        notes=request.notes,
        status_history=[StatusChange(status=OrderStatus.PENDING, changed_by=client_id)],
        created_by=client_id,
        updated_by=client_id
    )
    return WorkflowResult.ok(order)


def _check_actor(order: Order, new_status: str, actor: UserContext) -> Optional[str]:
    """Return an error message when ``actor`` may not move the order to ``new_status``."""
    role = actor.role

    if new_status == OrderStatus.CONFIRMED.value:
        if not actor.has_permission("order:confirm"):
            return "Only administrators can confirm orders"
        return None

    if new_status == OrderStatus.CANCELLED.value:
        if actor.has_permission("order:cancel_any"):
            return None
        if actor.has_permission("order:cancel_own") and order.client_id == actor.user_id:
            if order.status != OrderStatus.PENDING.value:
                return "Orders can only be cancelled by the client while pending"
            return None
        return "You are not allowed to cancel this order"

    if new_status == OrderStatus.DRIVER_ASSIGNED.value:
        return "Drivers are assigned by accepting the order"

    if new_status in DRIVER_STATUSES:
        if role != UserRole.DRIVER.value or not actor.has_permission("order:update_status"):
            return "Only the assigned driver can update delivery progress"
        if order.driver_id != actor.user_id:
            return "Order is assigned to another driver"
        return None

    return f"Unsupported status '{new_status}'"


def transition_order(
    order: Order,
    new_status: str,
    actor: UserContext,
    details: Optional[OrderStatusRequest] = None,
    reason: Optional[str] = None
) -> WorkflowResult:
    """
    Move an order through the status machine.

    Args:
        order: Current order
        new_status: Target status
        actor: Caller performing the change
        details: Driver proof and notes for progress updates
        reason: Cancellation reason

    Returns:
        WorkflowResult with the updated order
    """
    new_status = _value(new_status)

    if order.is_deleted():
        return WorkflowResult.fail("Order not found")

    if not can_transition(order.status, new_status):
        return WorkflowResult.fail(
            f"Cannot change order from '{order.status}' to '{new_status}'"
        )

    actor_error = _check_actor(order, new_status, actor)
    if actor_error:
        return WorkflowResult.fail(actor_error)

    now = datetime.utcnow()
    update: Dict[str, object] = {"status": new_status}
    note = reason

    if details is not None:
        for field_name in ("driver_notes", "issue_reported"):
            value = getattr(details, field_name)
            if value:
                update[field_name] = value
        if new_status == OrderStatus.PICKED_UP.value and details.pickup_photo_url:
            update["pickup_photo_url"] = details.pickup_photo_url
        if new_status == OrderStatus.DELIVERED.value:
            if details.delivery_photo_url:
                update["delivery_photo_url"] = details.delivery_photo_url
            if details.signature_data:
                update["signature_data"] = details.signature_data
        note = note or details.issue_reported

    if new_status == OrderStatus.DELIVERED.value:
        update["delivered_at"] = now
        if order.estimated_delivery_at is not None:
            update["delivered_on_time"] = now <= order.estimated_delivery_at

    if new_status == OrderStatus.CANCELLED.value:
        update["cancellation_reason"] = reason

    history = list(order.status_history)
    history.append(StatusChange(status=new_status, changed_by=actor.user_id, changed_at=now, note=note))
    update["status_history"] = history

    updated = order.model_copy(update=update)
    updated.update_timestamp(actor.user_id)
    return WorkflowResult.ok(updated)


def assign_driver(order: Order, driver: Profile) -> WorkflowResult:
    """
    Assign a confirmed, unassigned order to the accepting driver.

    The promised delivery time starts counting at assignment.
    """
    if not driver.is_active_driver():
        return WorkflowResult.fail("Only approved drivers can accept orders")
    if order.status != OrderStatus.CONFIRMED.value:
        return WorkflowResult.fail("Only confirmed orders can be accepted")
    if order.driver_id is not None:
        return WorkflowResult.fail("Order already has a driver")

    now = datetime.utcnow()
    history = list(order.status_history)
    history.append(StatusChange(status=OrderStatus.DRIVER_ASSIGNED, changed_by=driver.id, changed_at=now))

    updated = order.model_copy(update={
        "driver_id": driver.id,
        "status": OrderStatus.DRIVER_ASSIGNED.value,
        "status_history": history,
        "estimated_delivery_at": order.estimated_delivery_at or now + DELIVERY_WINDOW
    })
    updated.update_timestamp(driver.id)
    return WorkflowResult.ok(updated)


def reject_order(order: Order, driver: Profile, reason: Optional[str] = None) -> WorkflowResult:
    """Record a driver declining an available order; the order itself is untouched."""
    if not driver.is_active_driver():
        return WorkflowResult.fail("Only approved drivers can reject orders")
    if order.status != OrderStatus.CONFIRMED.value or order.driver_id is not None:
        return WorkflowResult.fail("Only available orders can be rejected")

    log = RejectionLog(
        driver_id=driver.id,
        order_id=order.id,
        reason=reason.strip() if reason else None,
        created_by=driver.id,
        updated_by=driver.id
    )
    return WorkflowResult.ok(log)


def delivery_credit(order: Order) -> Optional[WalletTransaction]:
    """Wallet credit owed to the driver of a delivered order, if any."""
    if order.status != OrderStatus.DELIVERED.value or not order.driver_id:
        return None
    if order.delivery_fee <= 0:
        return None
    return WalletTransaction(
        driver_id=order.driver_id,
        order_id=order.id,
        type=TransactionType.CREDIT,
        amount=order.delivery_fee,
        description=f"Entrega do pedido #{order.id[-6:]}",
        created_by=order.driver_id,
        updated_by=order.driver_id
    )


def build_status_notification(order: Order, status: Optional[str] = None) -> Dict[str, str]:
    """Portuguese title and message telling the client about a status change."""
    status = _value(status or order.status)
    short_id = order.id[-6:]
    return {
        "title": f"Pedido #{short_id}: {status_label(status)}",
        "message": _STATUS_MESSAGES.get(status, f"Status atualizado para {status_label(status)}."),
    }
