# SPDX-License-Identifier: Apache-2.0

"""
Tests for order pricing, the delivery status machine and driver assignment.
"""

import pytest
from datetime import datetime, timedelta

from entregas.domain import orders as order_domain
from entregas.domain.authorization import permissions_for_role
from entregas.models.entities import Coupon, DeliveryConfig, OrderItem, UserContext
from entregas.models.enums import OrderStatus, TransactionType, UserRole
from entregas.models.requests import CreateOrderRequest, OrderStatusRequest


def context_for(profile) -> UserContext:
    return UserContext(
        user_id=profile.id,
        role=profile.role,
        is_approved=profile.is_approved,
        permissions=permissions_for_role(profile.role)
    )


def order_request(**overrides) -> CreateOrderRequest:
    data = {
        "items": [
            {"product_id": "agua-20l", "quantity": 2},
            {"product_id": "gas-p13", "quantity": 1},
        ],
        "delivery_address": "Rua das Flores, 123",
        "delivery_cep": "01310100",
        "delivery_city": "São Paulo",
        "delivery_state": "sp",
        "region": "centro",
        "distance_km": 4.0,
    }
    data.update(overrides)
    return CreateOrderRequest.model_validate(data)


# Lines as priced from the catalog
LINES = [
    OrderItem(product_id="agua-20l", name="Água 20L", price=12.5, quantity=2),
    OrderItem(product_id="gas-p13", name="Gás P13", price=110.0, quantity=1),
]


class TestTransitions:
    """The status machine itself."""

    def test_forward_path(self):
        path = [
            OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.DRIVER_ASSIGNED,
            OrderStatus.PICKED_UP, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED
        ]
        for current, upcoming in zip(path, path[1:]):
            assert order_domain.can_transition(current.value, upcoming.value)

    def test_no_skipping_steps(self):
        assert not order_domain.can_transition("pending", "driver_assigned")
        assert not order_domain.can_transition("confirmed", "delivered")
        assert not order_domain.can_transition("picked_up", "delivered")

    def test_cancellation_only_before_pickup(self):
        assert order_domain.can_transition("pending", "cancelled")
        assert order_domain.can_transition("driver_assigned", "cancelled")
        assert not order_domain.can_transition("picked_up", "cancelled")
        assert not order_domain.can_transition("out_for_delivery", "cancelled")

    def test_terminal_statuses(self):
        assert order_domain.next_statuses("delivered") == []
        assert order_domain.next_statuses("cancelled") == []
        assert order_domain.next_statuses("unknown") == []
        assert order_domain.next_statuses(None) == []

    def test_status_labels(self):
        assert order_domain.status_label("out_for_delivery") == "Em Rota"
        assert order_domain.status_label(OrderStatus.DELIVERED) == "Entregue"
        assert order_domain.status_label("mystery") == "mystery"


class TestDeliveryFee:
    """Regional pricing."""

    def test_fee_is_base_plus_distance(self, delivery_config):
        fee, error = order_domain.calculate_delivery_fee(delivery_config, 4.0)

        assert error is None
        assert fee == 11.0

    def test_max_distance_is_inclusive(self, delivery_config):
        fee, error = order_domain.calculate_delivery_fee(delivery_config, 10.0)

        assert error is None
        assert fee == 20.0

    def test_beyond_max_distance(self, delivery_config):
        fee, error = order_domain.calculate_delivery_fee(delivery_config, 10.5)

        assert fee is None
        assert "exceeds" in error

    def test_missing_or_inactive_config(self, delivery_config):
        assert order_domain.calculate_delivery_fee(None, 2.0)[0] is None

        inactive = delivery_config.model_copy(update={"is_active": False})
        fee, error = order_domain.calculate_delivery_fee(inactive, 2.0)
        assert fee is None
        assert "not available" in error

    def test_pickup_is_free(self):
        assert order_domain.calculate_delivery_fee(None, None, "pickup") == (0.0, None)


class TestBuildOrder:

    def test_totals(self, delivery_config):
        result = order_domain.build_order(order_request(), "client-1", LINES, delivery_config)

        assert result.success
        order = result.entity
        assert order.subtotal == 135.0
        assert order.delivery_fee == 11.0
        assert order.discount == 0.0
        assert order.total == 146.0
        assert order.status == OrderStatus.PENDING.value
        assert order.delivery_cep == "01310-100"
        assert order.delivery_state == "SP"
        assert len(order.status_history) == 1

    def test_wholesale_discount(self, delivery_config):
        result = order_domain.build_order(
            order_request(), "loja-1", LINES, delivery_config, role=UserRole.WHOLESALE.value
        )

        order = result.entity
        assert order.wholesale_discount == 20.25
        assert order.total == 125.75

    def test_coupon_applies_after_wholesale_discount(self, delivery_config):
        coupon = Coupon(code="AGUA20", discount_type="percentage", discount_value=20)

        result = order_domain.build_order(
            order_request(), "loja-1", LINES, delivery_config, role=UserRole.WHOLESALE.value, coupon=coupon
        )

        order = result.entity
        assert order.coupon_discount == 22.95
        assert order.discount == 43.2
        assert order.coupon_code == "AGUA20"
        assert order.coupon_id == coupon.id
        assert order.total == 102.8

    def test_fixed_coupon_never_exceeds_subtotal(self):
        coupon = Coupon(code="TUDO", discount_type="fixed", discount_value=500)
        request = order_request(
            delivery_method="pickup",
            delivery_address=None,
            delivery_cep=None,
            delivery_city=None,
            delivery_state=None,
            region=None
        )

        result = order_domain.build_order(request, "client-1", LINES, coupon=coupon)

        assert result.entity.coupon_discount == 135.0
        assert result.entity.total == 0.0

    def test_pickup_order_uses_store_address(self):
        request = order_request(
            delivery_method="pickup",
            delivery_address=None,
            delivery_cep=None,
            delivery_city=None,
            delivery_state=None,
            region=None
        )
        result = order_domain.build_order(request, "client-1", LINES, pickup_address="Rua do Depósito, 100")

        assert result.success
        assert result.entity.delivery_fee == 0.0
        assert result.entity.pickup_address == "Rua do Depósito, 100"
        assert result.entity.delivery_address is None

    def test_delivery_needs_address(self, delivery_config):
        result = order_domain.build_order(order_request(delivery_cep="123"), "client-1", LINES, delivery_config)

        assert not result.success
        assert "Invalid CEP. Expected 00000-000 or 00000000" in result.validation_errors

    def test_out_of_range_distance(self, delivery_config):
        result = order_domain.build_order(order_request(distance_km=25.0), "client-1", LINES, delivery_config)

        assert not result.success
        assert "exceeds" in result.error_message

    def test_client_prices_are_not_accepted(self):
        request = CreateOrderRequest.model_validate({
            "items": [{"product_id": "agua-20l", "name": "Água", "price": 0.01, "quantity": 1}],
            "delivery_method": "pickup"
        })

        assert not hasattr(request.items[0], "price")


class TestTransitionOrder:

    def test_admin_confirms(self, order_factory, client_profile, admin_profile):
        order = order_factory(client_profile.id)
        result = order_domain.transition_order(order, "confirmed", context_for(admin_profile))

        assert result.success
        assert result.entity.status == "confirmed"
        assert result.entity.status_history[-1].changed_by == admin_profile.id
        assert order.status == "pending"

    def test_client_cannot_confirm(self, order_factory, client_profile):
        order = order_factory(client_profile.id)
        result = order_domain.transition_order(order, "confirmed", context_for(client_profile))

        assert not result.success
        assert result.error_message == "Only administrators can confirm orders"

    def test_client_cancels_own_pending_order(self, order_factory, client_profile):
        order = order_factory(client_profile.id)
        result = order_domain.transition_order(order, "cancelled", context_for(client_profile), reason="Mudei de ideia")

        assert result.success
        assert result.entity.cancellation_reason == "Mudei de ideia"
        assert result.entity.status_history[-1].note == "Mudei de ideia"

    def test_client_cannot_cancel_confirmed_order(self, order_factory, client_profile):
        order = order_factory(client_profile.id, status="confirmed")
        result = order_domain.transition_order(order, "cancelled", context_for(client_profile))

        assert not result.success
        assert "while pending" in result.error_message

    def test_admin_cancels_assigned_order(self, order_factory, client_profile, admin_profile, driver_profile):
        order = order_factory(client_profile.id, status="driver_assigned", driver_id=driver_profile.id)
        result = order_domain.transition_order(order, "cancelled", context_for(admin_profile))

        assert result.success

    def test_invalid_transition(self, order_factory, client_profile, admin_profile):
        order = order_factory(client_profile.id, status="delivered")
        result = order_domain.transition_order(order, "cancelled", context_for(admin_profile))

        assert not result.success
        assert "Cannot change order" in result.error_message

    def test_driver_progress_requires_assignment(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="driver_assigned", driver_id="other-driver")
        result = order_domain.transition_order(order, "picked_up", context_for(driver_profile))

        assert not result.success
        assert result.error_message == "Order is assigned to another driver"

    def test_pickup_stores_proof(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="driver_assigned", driver_id=driver_profile.id)
        details = OrderStatusRequest(status="picked_up", pickup_photo_url="https://cdn.example.com/p.jpg")
        result = order_domain.transition_order(order, "picked_up", context_for(driver_profile), details=details)

        assert result.success
        assert result.entity.pickup_photo_url == "https://cdn.example.com/p.jpg"

    def test_delivery_on_time(self, order_factory, client_profile, driver_profile):
        order = order_factory(
            client_profile.id,
            status="out_for_delivery",
            driver_id=driver_profile.id,
            estimated_delivery_at=datetime.utcnow() + timedelta(minutes=30)
        )
        details = OrderStatusRequest(status="delivered", signature_data="data:image/png;base64,AAA")
        result = order_domain.transition_order(order, "delivered", context_for(driver_profile), details=details)

        assert result.success
        assert result.entity.delivered_at is not None
        assert result.entity.delivered_on_time is True
        assert result.entity.signature_data == "data:image/png;base64,AAA"

    def test_late_delivery(self, order_factory, client_profile, driver_profile):
        order = order_factory(
            client_profile.id,
            status="out_for_delivery",
            driver_id=driver_profile.id,
            estimated_delivery_at=datetime.utcnow() - timedelta(minutes=5)
        )
        result = order_domain.transition_order(order, "delivered", context_for(driver_profile))

        assert result.entity.delivered_on_time is False

    def test_assignment_only_through_accept(self, order_factory, client_profile, admin_profile):
        order = order_factory(client_profile.id, status="confirmed")
        result = order_domain.transition_order(order, "driver_assigned", context_for(admin_profile))

        assert not result.success


class TestAssignment:

    def test_assign_sets_driver_and_estimate(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="confirmed")
        before = datetime.utcnow()
        result = order_domain.assign_driver(order, driver_profile)

        assert result.success
        assigned = result.entity
        assert assigned.driver_id == driver_profile.id
        assert assigned.status == OrderStatus.DRIVER_ASSIGNED.value
        assert assigned.estimated_delivery_at >= before + order_domain.DELIVERY_WINDOW

    def test_pending_driver_cannot_accept(self, order_factory, client_profile, pending_driver_profile):
        order = order_factory(client_profile.id, status="confirmed")
        result = order_domain.assign_driver(order, pending_driver_profile)

        assert not result.success

    def test_taken_order(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="confirmed", driver_id="someone-else")
        result = order_domain.assign_driver(order, driver_profile)

        assert not result.success
        assert result.error_message == "Order already has a driver"

    def test_reject_creates_log(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="confirmed")
        result = order_domain.reject_order(order, driver_profile, "  Muito longe  ")

        assert result.success
        assert result.entity.order_id == order.id
        assert result.entity.reason == "Muito longe"

    def test_reject_unavailable_order(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="pending")
        assert not order_domain.reject_order(order, driver_profile).success


class TestDeliveryCredit:

    def test_credit_for_delivered_order(self, order_factory, client_profile, driver_profile):
        order = order_factory(client_profile.id, status="delivered", driver_id=driver_profile.id, delivery_fee=12.0)
        credit = order_domain.delivery_credit(order)

        assert credit.type == TransactionType.CREDIT.value
        assert credit.amount == 12.0
        assert credit.driver_id == driver_profile.id
        assert credit.order_id == order.id

    def test_no_credit_without_fee_or_delivery(self, order_factory, client_profile, driver_profile):
        free = order_factory(client_profile.id, status="delivered", driver_id=driver_profile.id, delivery_fee=0.0)
        open_order = order_factory(client_profile.id, status="picked_up", driver_id=driver_profile.id)

        assert order_domain.delivery_credit(free) is None
        assert order_domain.delivery_credit(open_order) is None

    def test_status_notification_text(self, order_factory, client_profile):
        order = order_factory(client_profile.id, status="confirmed")
        content = order_domain.build_status_notification(order)

        assert content["title"] == f"Pedido #{order.id[-6:]}: Confirmado"
        assert "confirmado" in content["message"]
