# SPDX-License-Identifier: Apache-2.0

"""
Order endpoints.

This module implements the order lifecycle API: placing orders priced from
the catalog, admin confirmation, driver acceptance and rejection, delivery
progress with proof, and cancellation. Every status change notifies the
client, and the driver when one is involved.

Status changes are conditional writes on the status read at the start of
the request. When another request moved the order first the write matches
nothing and the caller gets 409 before any wallet, stats or stock change.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from bson import ObjectId
import logging
from typing import Any, Dict, List, Optional

from ..domain import catalog
from ..domain import coupons as coupon_domain
from ..domain import orders as order_domain
from ..domain import ranking
from ..models.base import from_document
from ..models.entities import Coupon, DeliveryConfig, Order, OrderItem, Product, Profile, RejectionLog, UserContext
from ..models.enums import NotificationType, OrderStatus
from ..models.requests import (
    CreateOrderRequest,
    CancelOrderRequest,
    RejectOrderRequest,
    OrderStatusRequest,
    OrderPath
)
from ..services.mongodb import (
    COUPONS,
    DELIVERY_CONFIGS,
    ORDERS,
    PRODUCTS,
    PROFILES,
    REJECTION_LOGS,
    WALLET_TRANSACTIONS
)
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body, parse_model
from ..middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    ValidationException
)
from ..utils.context import (
    count_coupon_redemptions,
    current_profile,
    find_entity,
    load_driver_stats,
    load_entity,
    save_driver_stats,
    store_new,
    store_transition
)
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

orders_tag = Tag(name="Orders", description="Order lifecycle and delivery progress")
orders_bp = APIBlueprint(
    'orders',
    __name__,
    url_prefix='/api/orders',
    abp_tags=[orders_tag]
)

STALE_ORDER = "Order was changed by another request"


def _order_response(order: Order, user_context: UserContext) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        order.to_public_dict(), "order", user_context.permissions, user_context.user_id
    )


def _load_order(order_id: str) -> Order:
    return load_entity(ORDERS, order_id, Order, "Order")


def _save_transition(order: Order, updated: Order, user_id: str, span) -> None:
    """Write ``updated`` only if ``order`` still has the status we read."""
    if not store_transition(ORDERS, updated, {"status": order.status}, user_id):
        span.set_attribute("order.transition_result", "lost_race")
        raise ConflictException(STALE_ORDER)


def _require_active_driver(user_context: UserContext) -> Profile:
    """Reload the caller's profile; approval may have changed since login."""
    profile = current_profile(user_context)
    if not profile.is_active_driver():
        raise AuthorizationException("Only approved drivers can take orders")
    return profile


def _can_view(order: Order, user_context: UserContext) -> bool:
    if user_context.has_permission("order:read_all"):
        return True
    if user_context.has_permission("order:read_own") and order.client_id == user_context.user_id:
        return True
    if user_context.has_permission("order:read_assigned") and order.driver_id == user_context.user_id:
        return True
    # Drivers may open an offer before accepting it
    return (
        user_context.has_permission("order:accept")
        and order.status == OrderStatus.CONFIRMED.value
        and order.driver_id is None
    )


def _optional_body(model_class):
    body = request.get_json(silent=True)
    return parse_model(model_class, body if isinstance(body, dict) else {})


def _load_products(product_ids: List[str]) -> Dict[str, Product]:
    mongodb_service = current_app.mongodb_service
    products = {}
    for product_id in product_ids:
        document = mongodb_service.find_one(PRODUCTS, product_id)
        if document is not None:
            products[product_id] = from_document(Product, document)
    return products


def _resolve_coupon(code: str, client_id: str, subtotal: float) -> Coupon:
    """Load and check a coupon for this buyer and discounted subtotal."""
    coupon = find_entity(COUPONS, {"code": coupon_domain.normalize_code(code)}, Coupon)
    redemptions = count_coupon_redemptions(coupon.id, client_id) if coupon is not None else 0
    check = coupon_domain.check_coupon(coupon, subtotal, redemptions)
    if not check.is_valid:
        raise ValidationException("Coupon cannot be applied", check.errors)
    return coupon


def _release_stock(items: List[OrderItem], user_id: str) -> None:
    for item in items:
        current_app.mongodb_service.increment(
            PRODUCTS, {"_id": ObjectId(item.product_id)}, {"stock": item.quantity}, user_id
        )


def _reserve_stock(items: List[OrderItem], user_id: str) -> None:
    """
    Take each line's quantity out of stock, all or nothing.

    Raises:
        ConflictException: A product sold out since it was read
    """
    reserved: List[OrderItem] = []
    for item in items:
        matched = current_app.mongodb_service.increment(
            PRODUCTS,
            {"_id": ObjectId(item.product_id), "isActive": True, "stock": {"$gte": item.quantity}},
            {"stock": -item.quantity},
            user_id
        )
        if matched == 0:
            _release_stock(reserved, user_id)
            raise ConflictException(f"'{item.name}' is out of stock")
        reserved.append(item)


def _redeem_coupon(coupon: Coupon, user_id: str) -> bool:
    filters: Dict[str, Any] = {"_id": ObjectId(coupon.id), "isActive": True}
    if coupon.usage_limit is not None:
        filters["usageCount"] = {"$lt": coupon.usage_limit}
    return current_app.mongodb_service.increment(COUPONS, filters, {"usageCount": 1}, user_id) > 0


def _return_reservations(order: Order, user_id: str) -> None:
    """Put a cancelled order's units back in stock and free its coupon use."""
    _release_stock(order.items, user_id)
    if order.coupon_id:
        current_app.mongodb_service.increment(
            COUPONS, {"_id": ObjectId(order.coupon_id), "usageCount": {"$gt": 0}}, {"usageCount": -1}, user_id
        )


def _notify_status(order: Order, status: str, notify_driver: bool = False) -> None:
    """Tell the client, and optionally the driver, about a status change."""
    content = order_domain.build_status_notification(order, status)
    notification_type = (
        NotificationType.DELIVERY.value
        if status == OrderStatus.DELIVERED.value
        else NotificationType.ORDER_UPDATE.value
    )
    data = {"order_id": order.id, "status": status}

    current_app.notifier.notify(order.client_id, content["title"], content["message"], notification_type, data)

    if notify_driver and order.driver_id:
        current_app.notifier.notify(
            order.driver_id,
            content["title"],
            f"O pedido #{order.id[-6:]} foi atualizado para {order_domain.status_label(status)}.",
            notification_type,
            data
        )


@orders_bp.post('')
@require_jwt
@require_permission("order:create")
@validate_body(CreateOrderRequest)
def create_order(user_context: UserContext, order_request: CreateOrderRequest):
    """
    Place an order.

    Items are priced from the catalog and their units reserved. Delivery
    orders are priced with the regional configuration; pickup orders carry
    the store address and no fee. Wholesale accounts get the wholesale
    discount and a coupon code, when sent, applies to what remains.
    """
    with tracer.start_as_current_span(
        "orders.create",
        attributes={"user.id": user_context.user_id, "order.items_count": len(order_request.items)}
    ) as span:
        quantities = catalog.merge_quantities(order_request.items)
        priced = catalog.price_items(quantities, _load_products(list(quantities)))
        if not priced.success:
            span.set_status(Status(StatusCode.ERROR, priced.error_message))
            raise ValidationException(priced.error_message, priced.validation_errors)
        items: List[OrderItem] = priced.entity

        coupon: Optional[Coupon] = None
        if order_request.coupon_code:
            subtotal = round(sum(item.line_total for item in items), 2)
            discounted = round(subtotal - catalog.wholesale_discount(subtotal, user_context.role), 2)
            coupon = _resolve_coupon(order_request.coupon_code, user_context.user_id, discounted)

        config = None
        if order_request.region:
            config = find_entity(DELIVERY_CONFIGS, {"region": order_request.region}, DeliveryConfig)

        result = order_domain.build_order(
            order_request,
            user_context.user_id,
            items,
            config,
            pickup_address=current_app.config.get('PICKUP_ADDRESS'),
            role=user_context.role,
            coupon=coupon
        )
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ValidationException(result.error_message, result.validation_errors)

        order: Order = result.entity
        _reserve_stock(order.items, user_context.user_id)
        if coupon is not None and not _redeem_coupon(coupon, user_context.user_id):
            _release_stock(order.items, user_context.user_id)
            raise ConflictException("Coupon usage limit reached")

        store_new(ORDERS, order, user_context.user_id)

        span.set_attributes({"order.id": order.id, "order.total": order.total})
        logger.info(
            "Order created",
            extra={
                "order_id": order.id,
                "client_id": user_context.user_id,
                "total": order.total,
                "discount": order.discount,
                "coupon_code": order.coupon_code,
                "delivery_method": order.delivery_method
            }
        )

        return jsonify(_order_response(order, user_context)), 201


@orders_bp.get('')
@require_jwt
def list_orders(user_context: UserContext):
    """
    Orders visible to the caller, newest first.

    Admins see every order, drivers the ones assigned to them and clients
    their own. ``status`` narrows the list.
    """
    with tracer.start_as_current_span("orders.list", attributes={"user.id": user_context.user_id}) as span:
        pagination = RequestParser.get_pagination_params()
        query = RequestParser.get_filter_params(allowed_filters=["status"])

        if user_context.has_permission("order:read_all"):
            filters: Dict[str, Any] = {}
        elif user_context.has_permission("order:read_assigned"):
            filters = {"driverId": user_context.user_id}
        elif user_context.has_permission("order:read_own"):
            filters = {"clientId": user_context.user_id}
        else:
            raise AuthorizationException("Missing required permission: order:read_own")

        status = query.get("status")
        if status:
            if status not in order_domain.ORDER_TRANSITIONS:
                raise ValidationException(f"Unknown status '{status}'")
            filters["status"] = status

        result = current_app.mongodb_service.paginate(
            ORDERS,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters=filters
        )
        span.set_attribute("orders.total", result.total)

        items = [from_document(Order, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "order",
            result.total,
            result.page,
            result.page_size,
            "/api/orders",
            user_context.permissions,
            user_context.user_id,
            query
        )
        return jsonify(response), 200


@orders_bp.get('/available')
@require_jwt
@require_permission("order:accept")
def list_available_orders(user_context: UserContext):
    """Confirmed orders without a driver, minus the ones this driver rejected."""
    with tracer.start_as_current_span("orders.available", attributes={"user.id": user_context.user_id}) as span:
        _require_active_driver(user_context)
        mongodb_service = current_app.mongodb_service

        rejected_ids = {
            doc.get("orderId")
            for doc in mongodb_service.find(REJECTION_LOGS, {"driverId": user_context.user_id})
        }
        documents = mongodb_service.find(
            ORDERS,
            {"status": OrderStatus.CONFIRMED.value, "driverId": None},
            sort_by="createdAt",
            sort_order=1
        )
        orders: List[Order] = [
            from_document(Order, doc) for doc in documents if doc["id"] not in rejected_ids
        ]
        span.set_attribute("orders.available", len(orders))

        response = current_app.hal_formatter.format_collection(
            [order.to_public_dict() for order in orders],
            "order",
            len(orders),
            1,
            max(len(orders), 1),
            "/api/orders/available",
            user_context.permissions,
            user_context.user_id
        )
        return jsonify(response), 200


@orders_bp.get('/<order_id>')
@require_jwt
def get_order(user_context: UserContext, path: OrderPath):
    with tracer.start_as_current_span("orders.get", attributes={"order.id": path.order_id}):
        order = _load_order(path.order_id)
        if not _can_view(order, user_context):
            raise AuthorizationException("You cannot access this order")
        return jsonify(_order_response(order, user_context)), 200


@orders_bp.post('/<order_id>/confirm')
@require_jwt
@require_permission("order:confirm")
def confirm_order(user_context: UserContext, path: OrderPath):
    """Admin confirmation; the order becomes available to drivers."""
    with tracer.start_as_current_span("orders.confirm", attributes={"order.id": path.order_id}) as span:
        order = _load_order(path.order_id)

        result = order_domain.transition_order(order, OrderStatus.CONFIRMED.value, user_context)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        confirmed = result.entity
        _save_transition(order, confirmed, user_context.user_id, span)
        logger.info("Order confirmed", extra={"order_id": order.id, "admin_id": user_context.user_id})

        _notify_status(confirmed, OrderStatus.CONFIRMED.value)
        return jsonify(_order_response(confirmed, user_context)), 200


@orders_bp.post('/<order_id>/cancel')
@require_jwt
def cancel_order(user_context: UserContext, path: OrderPath):
    """
    Cancel an order.

    Clients cancel their own orders while pending; admins cancel any order
    the status machine still allows. Reserved units go back to stock and
    the coupon use, if any, is released.
    """
    with tracer.start_as_current_span("orders.cancel", attributes={"order.id": path.order_id}) as span:
        cancel_request = _optional_body(CancelOrderRequest)
        order = _load_order(path.order_id)

        is_owner = order.client_id == user_context.user_id
        if not (
            user_context.has_permission("order:cancel_any")
            or (user_context.has_permission("order:cancel_own") and is_owner)
        ):
            raise AuthorizationException("You are not allowed to cancel this order")

        result = order_domain.transition_order(
            order, OrderStatus.CANCELLED.value, user_context, reason=cancel_request.reason
        )
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        cancelled = result.entity
        _save_transition(order, cancelled, user_context.user_id, span)
        _return_reservations(cancelled, user_context.user_id)

        if cancelled.driver_id:
            save_driver_stats(
                ranking.record_cancellation(load_driver_stats(cancelled.driver_id)),
                user_context.user_id
            )

        logger.info(
            "Order cancelled",
            extra={"order_id": order.id, "user_id": user_context.user_id, "reason": cancel_request.reason}
        )

        _notify_status(cancelled, OrderStatus.CANCELLED.value, notify_driver=True)
        return jsonify(_order_response(cancelled, user_context)), 200


@orders_bp.post('/<order_id>/accept')
@require_jwt
@require_permission("order:accept")
def accept_order(user_context: UserContext, path: OrderPath):
    """
    Assign the order to the calling driver.

    The write only matches an order that is still confirmed and unassigned,
    so two drivers accepting at once cannot both win.
    """
    with tracer.start_as_current_span(
        "orders.accept",
        attributes={"order.id": path.order_id, "user.id": user_context.user_id}
    ) as span:
        driver = _require_active_driver(user_context)
        order = _load_order(path.order_id)

        result = order_domain.assign_driver(order, driver)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        assigned = result.entity
        expected = {"status": OrderStatus.CONFIRMED.value, "driverId": None}
        if not store_transition(ORDERS, assigned, expected, user_context.user_id):
            span.set_attribute("order.accept_result", "lost_race")
            raise ConflictException("Order was already accepted by another driver")

        save_driver_stats(ranking.record_acceptance(load_driver_stats(driver.id)), driver.id)

        logger.info("Order accepted", extra={"order_id": order.id, "driver_id": driver.id})

        _notify_status(assigned, OrderStatus.DRIVER_ASSIGNED.value)
        return jsonify(_order_response(assigned, user_context)), 200


@orders_bp.post('/<order_id>/reject')
@require_jwt
@require_permission("order:reject")
def reject_order(user_context: UserContext, path: OrderPath):
    """Decline an available order; it stays open for other drivers."""
    with tracer.start_as_current_span(
        "orders.reject",
        attributes={"order.id": path.order_id, "user.id": user_context.user_id}
    ) as span:
        reject_request = _optional_body(RejectOrderRequest)
        driver = _require_active_driver(user_context)
        order = _load_order(path.order_id)

        mongodb_service = current_app.mongodb_service
        if mongodb_service.find_one_by(REJECTION_LOGS, {"driverId": driver.id, "orderId": order.id}):
            raise ConflictException("Order was already rejected")

        result = order_domain.reject_order(order, driver, reject_request.reason)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        rejection: RejectionLog = result.entity
        store_new(REJECTION_LOGS, rejection, driver.id)
        mongodb_service.update(
            PROFILES, driver.id, {"rejectionCount": driver.rejection_count + 1}, driver.id
        )
        save_driver_stats(ranking.record_rejection(load_driver_stats(driver.id)), driver.id)

        logger.info(
            "Order rejected by driver",
            extra={"order_id": order.id, "driver_id": driver.id, "reason": rejection.reason}
        )

        link_builder = current_app.hal_formatter.builder.link_builder
        response = rejection.to_public_dict()
        response["_links"] = {
            "order": link_builder.build_link(f"/api/orders/{order.id}", title="Rejected order").model_dump(),
            "available": link_builder.build_link("/api/orders/available", title="Available orders").model_dump()
        }
        return jsonify(response), 201


@orders_bp.post('/<order_id>/status')
@require_jwt
@require_permission("order:update_status")
@validate_body(OrderStatusRequest)
def update_order_status(user_context: UserContext, status_request: OrderStatusRequest, path: OrderPath):
    """
    Driver progress update: picked up, out for delivery, delivered.

    Delivering credits the fee to the driver's wallet and updates the
    driver's completion and punctuality stats.
    """
    with tracer.start_as_current_span(
        "orders.update_status",
        attributes={"order.id": path.order_id, "order.new_status": str(status_request.status)}
    ) as span:
        _require_active_driver(user_context)
        order = _load_order(path.order_id)
        if order.driver_id != user_context.user_id:
            raise AuthorizationException("Order is assigned to another driver")

        new_status = getattr(status_request.status, 'value', status_request.status)
        result = order_domain.transition_order(order, new_status, user_context, details=status_request)
        if not result.success:
            span.set_status(Status(StatusCode.ERROR, result.error_message))
            raise ConflictException(result.error_message)

        updated: Order = result.entity
        _save_transition(order, updated, user_context.user_id, span)

        if new_status == OrderStatus.DELIVERED.value:
            credit = order_domain.delivery_credit(updated)
            if credit is not None:
                store_new(WALLET_TRANSACTIONS, credit, user_context.user_id)
            save_driver_stats(
                ranking.record_completion(
                    load_driver_stats(user_context.user_id),
                    updated.delivery_fee,
                    updated.delivered_on_time
                ),
                user_context.user_id
            )
            span.set_attribute("order.delivered_on_time", str(updated.delivered_on_time))

        logger.info(
            "Order status updated",
            extra={"order_id": order.id, "driver_id": user_context.user_id, "status": new_status}
        )

        _notify_status(updated, new_status)
        return jsonify(_order_response(updated, user_context)), 200
