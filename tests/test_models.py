# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for entity validation and MongoDB document conversion.
"""

import pytest
from bson import ObjectId
from pydantic import ValidationError

from entregas.models.base import from_document, to_document
from entregas.models.entities import Order, OrderItem, Profile, UserContext, WithdrawalRequest
from entregas.models.requests import CreateOrderRequest, LoginRequest, RegisterRequest


class TestDocumentConversion:
    """Entities are stored camelCase and read back snake_case."""

    def test_to_document(self, order_factory):
        order = order_factory("client-1", driver_id="driver-1")
        document = to_document(order)

        assert isinstance(document["_id"], ObjectId)
        assert str(document["_id"]) == order.id
        assert "id" not in document
        assert document["clientId"] == "client-1"
        assert document["deliveryFee"] == 10.0
        assert document["items"][0]["productId"] == "agua-20l"
        assert document["statusHistory"][0]["changedBy"] == "client-1"

    def test_round_trip_with_raw_id(self, order_factory):
        order = order_factory("client-1")
        restored = from_document(Order, to_document(order))

        assert restored.id == order.id
        assert restored.items == order.items
        assert restored.status == "pending"

    def test_accepts_string_id(self):
        object_id = ObjectId()
        document = {
            "id": str(object_id),
            "email": "x@example.com",
            "passwordHash": "hash",
            "fullName": "Xavier Alves",
            "role": "client"
        }
        profile = from_document(Profile, document)

        assert profile.id == str(object_id)
        assert profile.full_name == "Xavier Alves"


class TestProfile:

    def test_email_lowercased(self):
        profile = Profile(email="Maria@Example.COM", password_hash="x", full_name="Maria Silva", role="client")
        assert profile.email == "maria@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            Profile(email="maria", password_hash="x", full_name="Maria Silva", role="client")

    def test_approved_profile_cannot_be_blocked(self):
        with pytest.raises(ValidationError, match="Approved profiles cannot be blocked"):
            Profile(
                email="m@example.com",
                password_hash="x",
                full_name="Maria Silva",
                role="client",
                is_approved=True,
                is_blocked=True
            )

    def test_public_dict_hides_password(self):
        profile = Profile(email="m@example.com", password_hash="secret", full_name="Maria Silva", role="driver")
        public = profile.to_public_dict()

        assert "password_hash" not in public
        assert public["status"] == "pending"
        assert public["full_name"] == "Maria Silva"


class TestOrder:

    def test_total_must_match(self):
        with pytest.raises(ValidationError, match="subtotal plus delivery fee"):
            Order(
                client_id="client-1",
                items=[OrderItem(product_id="p1", name="Gás 13kg", price=100.0, quantity=1)],
                subtotal=100.0,
                delivery_fee=8.0,
                total=100.0
            )

    def test_pickup_has_no_fee(self):
        with pytest.raises(ValidationError, match="Pickup orders have no delivery fee"):
            Order(
                client_id="client-1",
                items=[OrderItem(product_id="p1", name="Gás 13kg", price=100.0, quantity=1)],
                subtotal=100.0,
                delivery_fee=8.0,
                total=108.0,
                delivery_method="pickup"
            )

    def test_line_total(self):
        assert OrderItem(product_id="p1", name="Água", price=3.33, quantity=3).line_total == 9.99

    def test_terminal(self, order_factory):
        assert order_factory("c", status="delivered").is_terminal()
        assert order_factory("c", status="cancelled").is_terminal()
        assert not order_factory("c", status="picked_up").is_terminal()


class TestWithdrawalRequest:

    def test_rejection_needs_reason(self):
        with pytest.raises(ValidationError, match="Rejection reason is required"):
            WithdrawalRequest(driver_id="d", amount=20.0, payment_method="pix", status="rejected")

    def test_amount_positive(self):
        with pytest.raises(ValidationError):
            WithdrawalRequest(driver_id="d", amount=0, payment_method="pix")


class TestRequests:

    @pytest.mark.parametrize("password", ["curta1A", "semnumeroA", "SEMMINUSCULA1", "semmaiuscula1"])
    def test_weak_passwords(self, password):
        with pytest.raises(ValidationError):
            RegisterRequest(email="a@example.com", password=password, full_name="Ana Lima")

    def test_register_defaults_to_client(self):
        request = RegisterRequest(email="A@Example.com", password="Senha123", full_name="Ana Lima")

        assert request.role == "client"
        assert request.email == "a@example.com"

    def test_login_email_format(self):
        with pytest.raises(ValidationError):
            LoginRequest(email="not-an-email", password="x")

    def test_order_needs_items(self):
        with pytest.raises(ValidationError):
            CreateOrderRequest(items=[])


def test_user_context_permissions():
    context = UserContext(user_id="u1", role="admin", permissions=["a:read", "b:write"])

    assert context.is_admin
    assert context.has_permission("a:read")
    assert context.has_any_permission(["x", "b:write"])
    assert not context.has_all_permissions(["a:read", "c:delete"])
