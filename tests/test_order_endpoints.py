# SPDX-License-Identifier: Apache-2.0

"""
Tests for the order lifecycle endpoints.
"""

from datetime import datetime, timedelta

import pytest

from entregas.models.entities import Coupon, Product
from entregas.services.mongodb import (
    COUPONS,
    DELIVERY_CONFIGS,
    DRIVER_STATS,
    NOTIFICATIONS,
    ORDERS,
    PRODUCTS,
    PROFILES,
    REJECTION_LOGS,
    WALLET_TRANSACTIONS
)

from .conftest import stored


def created_in(mongodb_service, collection):
    """Documents passed to ``create`` for one collection."""
    return [c.args[1] for c in mongodb_service.create.call_args_list if c.args[0] == collection]


def increments_on(mongodb_service, collection):
    """(filters, amounts) of every ``increment`` call on one collection."""
    return [(c.args[1], c.args[2]) for c in mongodb_service.increment.call_args_list if c.args[0] == collection]


@pytest.fixture
def order_body(gas_product, water_product):
    """Order request for one gas cylinder and two water jugs (subtotal 135.00)."""
    def _body(**overrides):
        body = {
            "items": [
                {"product_id": gas_product.id, "quantity": 1},
                {"product_id": water_product.id, "quantity": 2}
            ],
            "delivery_method": "delivery",
            "delivery_address": "Rua das Flores, 123",
            "delivery_cep": "01310100",
            "delivery_city": "São Paulo",
            "delivery_state": "SP",
            "region": "centro",
            "distance_km": 4.0
        }
        body.update(overrides)
        return body
    return _body


@pytest.fixture
def with_config(mongodb_service, delivery_config):
    def find_one_by(collection, filters, include_deleted=False):
        if collection == DELIVERY_CONFIGS and filters.get("region") == delivery_config.region:
            return stored(delivery_config)
        return None
    mongodb_service.find_one_by.side_effect = find_one_by
    return delivery_config


@pytest.fixture
def coupon(mongodb_service, delivery_config):
    """AGUA10 coupon (10% off) found by code; the region lookup keeps working."""
    coupon = Coupon(code="AGUA10", discount_type="percentage", discount_value=10, usage_limit=100, usage_count=3)

    def find_one_by(collection, filters, include_deleted=False):
        if collection == COUPONS and filters.get("code") == coupon.code:
            return stored(coupon)
        if collection == DELIVERY_CONFIGS and filters.get("region") == delivery_config.region:
            return stored(delivery_config)
        return None
    mongodb_service.find_one_by.side_effect = find_one_by
    return coupon


class TestCreateOrder:

    def test_delivery_order(self, client, headers_for, client_profile, mongodb_service, with_config, order_body):
        response = client.post('/api/orders', json=order_body(), headers=headers_for(client_profile))

        assert response.status_code == 201
        data = response.get_json()
        assert data["subtotal"] == 135.0
        assert data["delivery_fee"] == 11.0
        assert data["discount"] == 0.0
        assert data["total"] == 146.0
        assert data["status"] == "pending"
        assert data["delivery_cep"] == "01310-100"
        assert "cancel" in data["_links"]

        [document] = created_in(mongodb_service, ORDERS)
        assert document["clientId"] == client_profile.id

    def test_prices_come_from_catalog(self, client, headers_for, client_profile, with_config, order_body, gas_product):
        body = order_body(items=[{"product_id": gas_product.id, "quantity": 1, "price": 0.01, "name": "Grátis"}])

        response = client.post('/api/orders', json=body, headers=headers_for(client_profile))

        assert response.status_code == 201
        [item] = response.get_json()["items"]
        assert item["price"] == 110.0
        assert item["name"] == "Botijão de gás 13kg"

    def test_reserves_stock(
        self, client, headers_for, client_profile, mongodb_service, with_config, order_body, gas_product, water_product
    ):
        client.post('/api/orders', json=order_body(), headers=headers_for(client_profile))

        reservations = increments_on(mongodb_service, PRODUCTS)
        assert [amounts for _, amounts in reservations] == [{"stock": -1}, {"stock": -2}]
        filters, _ = reservations[1]
        assert str(filters["_id"]) == water_product.id
        assert filters["stock"] == {"$gte": 2}

    def test_unknown_product(self, client, headers_for, client_profile, with_config, order_body):
        body = order_body(items=[{"product_id": "64b0000000000000000000ff", "quantity": 1}])

        response = client.post('/api/orders', json=body, headers=headers_for(client_profile))

        assert response.status_code == 400
        assert response.get_json()["detail"] == "Some items cannot be ordered"

    def test_inactive_product(self, client, headers_for, client_profile, with_config, order_body, store_document):
        retired = Product(name="Gás P45", category="Gás", price=420.0, stock=3, is_active=False)
        store_document(PRODUCTS, retired)

        response = client.post(
            '/api/orders',
            json=order_body(items=[{"product_id": retired.id, "quantity": 1}]),
            headers=headers_for(client_profile)
        )

        assert response.status_code == 400

    def test_not_enough_stock(self, client, headers_for, client_profile, with_config, order_body, gas_product):
        body = order_body(items=[{"product_id": gas_product.id, "quantity": 21}])

        response = client.post('/api/orders', json=body, headers=headers_for(client_profile))

        assert response.status_code == 400
        assert response.get_json()["detail"] == "Some items cannot be ordered"

    def test_sold_out_meanwhile(self, client, headers_for, client_profile, mongodb_service, with_config, order_body):
        # Gas reserved, water sold out between read and write
        mongodb_service.increment.side_effect = [1, 0, 1]

        response = client.post('/api/orders', json=order_body(), headers=headers_for(client_profile))

        assert response.status_code == 409
        assert response.get_json()["detail"] == "'Água mineral 20L' is out of stock"
        assert increments_on(mongodb_service, PRODUCTS)[-1][1] == {"stock": 1}
        assert created_in(mongodb_service, ORDERS) == []

    def test_wholesale_discount(self, client, headers_for, wholesale_profile, with_config, order_body):
        response = client.post('/api/orders', json=order_body(), headers=headers_for(wholesale_profile))

        assert response.status_code == 201
        data = response.get_json()
        assert data["wholesale_discount"] == 20.25
        assert data["total"] == 125.75

    def test_coupon_applied(self, client, headers_for, client_profile, mongodb_service, coupon, order_body):
        response = client.post(
            '/api/orders', json=order_body(coupon_code="agua10"), headers=headers_for(client_profile)
        )

        assert response.status_code == 201
        data = response.get_json()
        assert data["coupon_code"] == "AGUA10"
        assert data["coupon_discount"] == 13.5
        assert data["total"] == 132.5
        [(filters, amounts)] = increments_on(mongodb_service, COUPONS)
        assert filters["usageCount"] == {"$lt": 100}
        assert amounts == {"usageCount": 1}

    def test_unknown_coupon(self, client, headers_for, client_profile, with_config, order_body):
        response = client.post(
            '/api/orders', json=order_body(coupon_code="NADA"), headers=headers_for(client_profile)
        )

        assert response.status_code == 400
        assert response.get_json()["detail"] == "Coupon cannot be applied"

    def test_coupon_already_used(self, client, headers_for, client_profile, mongodb_service, coupon, order_body):
        mongodb_service.count.return_value = 1

        response = client.post(
            '/api/orders', json=order_body(coupon_code="AGUA10"), headers=headers_for(client_profile)
        )

        assert response.status_code == 400

    def test_coupon_exhausted_meanwhile(self, client, headers_for, client_profile, mongodb_service, coupon, order_body):
        def increment(collection, filters, amounts, user_id):
            return 0 if collection == COUPONS else 1
        mongodb_service.increment.side_effect = increment

        response = client.post(
            '/api/orders', json=order_body(coupon_code="AGUA10"), headers=headers_for(client_profile)
        )

        assert response.status_code == 409
        assert response.get_json()["detail"] == "Coupon usage limit reached"
        released = [amounts for _, amounts in increments_on(mongodb_service, PRODUCTS)][-2:]
        assert released == [{"stock": 1}, {"stock": 2}]
        assert created_in(mongodb_service, ORDERS) == []

    def test_pickup_order(self, client, headers_for, client_profile, order_body):
        body = order_body(delivery_method="pickup", region=None, delivery_address=None, delivery_cep=None)

        response = client.post('/api/orders', json=body, headers=headers_for(client_profile))

        assert response.status_code == 201
        data = response.get_json()
        assert data["delivery_fee"] == 0.0
        assert data["pickup_address"] == "Rua do Depósito, 100 - São Paulo/SP"

    def test_unknown_region(self, client, headers_for, client_profile, with_config, order_body):
        response = client.post('/api/orders', json=order_body(region="norte"), headers=headers_for(client_profile))

        assert response.status_code == 400
        assert response.get_json()["detail"] == "No delivery configuration for this region"

    def test_too_far(self, client, headers_for, client_profile, with_config, order_body):
        response = client.post('/api/orders', json=order_body(distance_km=25), headers=headers_for(client_profile))

        assert response.status_code == 400
        assert "exceeds" in response.get_json()["detail"]

    def test_drivers_cannot_order(self, client, headers_for, driver_profile, order_body):
        response = client.post('/api/orders', json=order_body(), headers=headers_for(driver_profile))
        assert response.status_code == 403

    def test_needs_items(self, client, headers_for, client_profile, order_body):
        response = client.post('/api/orders', json=order_body(items=[]), headers=headers_for(client_profile))
        assert response.status_code == 400


class TestReadOrders:

    def test_client_list_is_scoped(self, client, headers_for, client_profile, mongodb_service):
        response = client.get('/api/orders?status=pending&page=2', headers=headers_for(client_profile))

        assert response.status_code == 200
        kwargs = mongodb_service.paginate.call_args.kwargs
        assert kwargs["filters"] == {"clientId": client_profile.id, "status": "pending"}
        assert kwargs["page"] == 2

    def test_driver_list_is_scoped(self, client, headers_for, driver_profile, mongodb_service):
        client.get('/api/orders', headers=headers_for(driver_profile))
        assert mongodb_service.paginate.call_args.kwargs["filters"] == {"driverId": driver_profile.id}

    def test_admin_sees_all(self, client, headers_for, admin_profile, mongodb_service):
        client.get('/api/orders', headers=headers_for(admin_profile))
        assert mongodb_service.paginate.call_args.kwargs["filters"] == {}

    def test_unknown_status_filter(self, client, headers_for, admin_profile):
        response = client.get('/api/orders?status=lost', headers=headers_for(admin_profile))
        assert response.status_code == 400

    def test_get_own_order(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory(client_profile.id)
        store_document(ORDERS, order)

        response = client.get(f'/api/orders/{order.id}', headers=headers_for(client_profile))

        assert response.status_code == 200
        assert response.get_json()["id"] == order.id

    def test_other_clients_order(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory("someone-else")
        store_document(ORDERS, order)

        response = client.get(f'/api/orders/{order.id}', headers=headers_for(client_profile))

        assert response.status_code == 403

    def test_driver_sees_open_offer(self, client, headers_for, driver_profile, order_factory, store_document):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)

        response = client.get(f'/api/orders/{order.id}', headers=headers_for(driver_profile))

        assert response.status_code == 200
        assert "accept" in response.get_json()["_links"]

    def test_missing_order(self, client, headers_for, admin_profile):
        response = client.get('/api/orders/64b000000000000000000000', headers=headers_for(admin_profile))
        assert response.status_code == 404


class TestAvailableOrders:

    def test_excludes_rejected(self, client, headers_for, driver_profile, mongodb_service, order_factory):
        open_order = order_factory("client-1", status="confirmed")
        rejected = order_factory("client-2", status="confirmed")

        def find(collection, filters=None, **kwargs):
            if collection == REJECTION_LOGS:
                return [{"orderId": rejected.id, "driverId": driver_profile.id}]
            return [stored(open_order), stored(rejected)]
        mongodb_service.find.side_effect = find

        response = client.get('/api/orders/available', headers=headers_for(driver_profile))

        assert response.status_code == 200
        items = response.get_json()["_embedded"]["items"]
        assert [item["id"] for item in items] == [open_order.id]

    def test_pending_driver_is_refused(self, client, headers_for, pending_driver_profile):
        response = client.get('/api/orders/available', headers=headers_for(pending_driver_profile))
        assert response.status_code == 403


class TestConfirmAndCancel:

    def test_admin_confirms(self, client, headers_for, admin_profile, order_factory, store_document, mongodb_service):
        order = order_factory("client-1")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/confirm', headers=headers_for(admin_profile))

        assert response.status_code == 200
        assert response.get_json()["status"] == "confirmed"
        collection, filters, updates, _ = mongodb_service.update_many.call_args.args
        assert collection == ORDERS
        assert str(filters["_id"]) == order.id
        assert filters["status"] == "pending"
        assert updates["status"] == "confirmed"
        [notification] = created_in(mongodb_service, NOTIFICATIONS)
        assert notification["userId"] == "client-1"

    def test_confirm_twice(self, client, headers_for, admin_profile, order_factory, store_document):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/confirm', headers=headers_for(admin_profile))

        assert response.status_code == 409

    def test_confirm_lost_race(
        self, client, headers_for, admin_profile, order_factory, store_document, mongodb_service
    ):
        order = order_factory("client-1")
        store_document(ORDERS, order)
        mongodb_service.update_many.return_value = 0

        response = client.post(f'/api/orders/{order.id}/confirm', headers=headers_for(admin_profile))

        assert response.status_code == 409
        assert response.get_json()["detail"] == "Order was changed by another request"
        assert created_in(mongodb_service, NOTIFICATIONS) == []


    def test_client_confirm_forbidden(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory(client_profile.id)
        store_document(ORDERS, order)

        assert client.post(f'/api/orders/{order.id}/confirm', headers=headers_for(client_profile)).status_code == 403

    def test_client_cancels_pending(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory(client_profile.id)
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/cancel',
            json={"reason": "Pedi errado"},
            headers=headers_for(client_profile)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Pedi errado"

    def test_cancel_returns_stock_and_coupon(
        self, client, headers_for, client_profile, order_factory, store_document, mongodb_service
    ):
        order = order_factory(
            client_profile.id,
            coupon_id="64b0000000000000000000c1",
            coupon_code="AGUA10",
            coupon_discount=3.0,
            discount=3.0,
            total=37.0
        )
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/cancel', headers=headers_for(client_profile))

        assert response.status_code == 200
        [(stock_filters, stock)] = increments_on(mongodb_service, PRODUCTS)
        assert str(stock_filters["_id"]) == order.items[0].product_id
        assert stock == {"stock": 2}
        [(coupon_filters, usage)] = increments_on(mongodb_service, COUPONS)
        assert str(coupon_filters["_id"]) == "64b0000000000000000000c1"
        assert usage == {"usageCount": -1}

    def test_cancel_lost_race(self, client, headers_for, client_profile, order_factory, store_document, mongodb_service):
        order = order_factory(client_profile.id)
        store_document(ORDERS, order)
        mongodb_service.update_many.return_value = 0

        response = client.post(f'/api/orders/{order.id}/cancel', headers=headers_for(client_profile))

        assert response.status_code == 409
        assert increments_on(mongodb_service, PRODUCTS) == []


    def test_client_cannot_cancel_confirmed(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory(client_profile.id, status="confirmed")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/cancel', headers=headers_for(client_profile))

        assert response.status_code == 409

    def test_client_cannot_cancel_others(self, client, headers_for, client_profile, order_factory, store_document):
        order = order_factory("someone-else")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/cancel', headers=headers_for(client_profile))

        assert response.status_code == 403

    def test_admin_cancel_counts_for_driver(
        self, client, headers_for, admin_profile, order_factory, store_document, mongodb_service, redis_service
    ):
        order = order_factory("client-1", status="driver_assigned", driver_id="driver-9")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/cancel', headers=headers_for(admin_profile))

        assert response.status_code == 200
        [stats] = created_in(mongodb_service, DRIVER_STATS)
        assert stats["cancelledDeliveries"] == 1
        redis_service.invalidate_driver_stats.assert_called_with("driver-9")
        recipients = {doc["userId"] for doc in created_in(mongodb_service, NOTIFICATIONS)}
        assert recipients == {"client-1", "driver-9"}


class TestAcceptAndReject:

    def test_accept(self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/accept', headers=headers_for(driver_profile))

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "driver_assigned"
        assert data["driver_id"] == driver_profile.id
        assert data["estimated_delivery_at"] is not None

        collection, filters, updates, _ = mongodb_service.update_many.call_args.args
        assert collection == ORDERS
        assert filters["status"] == "confirmed"
        assert filters["driverId"] is None
        assert updates["driverId"] == driver_profile.id
        [stats] = created_in(mongodb_service, DRIVER_STATS)
        assert stats["totalAccepted"] == 1

    def test_lost_race(self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)
        mongodb_service.update_many.return_value = 0

        response = client.post(f'/api/orders/{order.id}/accept', headers=headers_for(driver_profile))

        assert response.status_code == 409
        assert response.get_json()["detail"] == "Order was already accepted by another driver"

    def test_pending_driver_cannot_accept(self, client, headers_for, pending_driver_profile, order_factory, store_document):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)

        response = client.post(f'/api/orders/{order.id}/accept', headers=headers_for(pending_driver_profile))

        assert response.status_code == 403

    def test_reject(self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/reject',
            json={"reason": "Muito longe"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 201
        data = response.get_json()
        assert data["reason"] == "Muito longe"
        assert data["_links"]["available"]["href"].endswith("/api/orders/available")
        [log] = created_in(mongodb_service, REJECTION_LOGS)
        assert log["orderId"] == order.id
        mongodb_service.update.assert_any_call(PROFILES, driver_profile.id, {"rejectionCount": 1}, driver_profile.id)

    def test_reject_twice(self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service):
        order = order_factory("client-1", status="confirmed")
        store_document(ORDERS, order)
        mongodb_service.find_one_by.return_value = {"id": "log-1", "orderId": order.id}

        response = client.post(f'/api/orders/{order.id}/reject', headers=headers_for(driver_profile))

        assert response.status_code == 409


class TestDeliveryProgress:

    def test_pickup_with_photo(self, client, headers_for, driver_profile, order_factory, store_document):
        order = order_factory("client-1", status="driver_assigned", driver_id=driver_profile.id)
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "picked_up", "pickup_photo_url": "https://cdn.example.com/p.jpg"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 200
        assert response.get_json()["pickup_photo_url"] == "https://cdn.example.com/p.jpg"

    def test_cannot_skip_steps(self, client, headers_for, driver_profile, order_factory, store_document):
        order = order_factory("client-1", status="driver_assigned", driver_id=driver_profile.id)
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "delivered"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 409

    def test_other_driver(self, client, headers_for, driver_profile, order_factory, store_document):
        order = order_factory("client-1", status="picked_up", driver_id="driver-2")
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "out_for_delivery"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 403

    def test_delivery_credits_wallet(self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service):
        order = order_factory(
            "client-1",
            status="out_for_delivery",
            driver_id=driver_profile.id,
            delivery_fee=12.0,
            estimated_delivery_at=datetime.utcnow() + timedelta(minutes=20)
        )
        store_document(ORDERS, order)

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "delivered", "signature_data": "data:image/png;base64,AAAA"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "delivered"
        assert data["delivered_on_time"] is True
        assert "rate" not in data["_links"]

        [credit] = created_in(mongodb_service, WALLET_TRANSACTIONS)
        assert credit["type"] == "credit"
        assert credit["amount"] == 12.0
        assert credit["orderId"] == order.id
        [stats] = created_in(mongodb_service, DRIVER_STATS)
        assert stats["completedDeliveries"] == 1
        assert stats["onTimeDeliveries"] == 1
        [notification] = created_in(mongodb_service, NOTIFICATIONS)
        assert notification["type"] == "delivery"

    def test_delivery_lost_race(
        self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service
    ):
        order = order_factory("client-1", status="out_for_delivery", driver_id=driver_profile.id)
        store_document(ORDERS, order)
        mongodb_service.update_many.return_value = 0

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "delivered", "signature_data": "data:image/png;base64,AAAA"},
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 409
        assert created_in(mongodb_service, WALLET_TRANSACTIONS) == []
        assert created_in(mongodb_service, DRIVER_STATS) == []

    def test_blocked_driver_cannot_update(
        self, client, headers_for, driver_profile, order_factory, store_document, mongodb_service
    ):
        order = order_factory("client-1", status="driver_assigned", driver_id=driver_profile.id)
        store_document(ORDERS, order)
        headers = headers_for(driver_profile)
        store_document(PROFILES, driver_profile.model_copy(update={"is_approved": False, "is_blocked": True}))

        response = client.post(
            f'/api/orders/{order.id}/status',
            json={"status": "picked_up"},
            headers=headers
        )

        assert response.status_code == 403
        mongodb_service.update_many.assert_not_called()
