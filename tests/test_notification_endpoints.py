# SPDX-License-Identifier: Apache-2.0

"""
Tests for the notification center and push subscription endpoints.
"""

import pytest

from entregas.models.entities import Notification, PushSubscription
from entregas.services.mongodb import NOTIFICATIONS, PUSH_SUBSCRIPTIONS, PaginationResult

from .conftest import stored


@pytest.fixture
def notification(store_document, client_profile):
    item = Notification(
        user_id=client_profile.id,
        title="Pedido confirmado",
        message="Seu pedido foi confirmado.",
        type="order",
        data={"order_id": "507f1f77bcf86cd799439011"}
    )
    store_document(NOTIFICATIONS, item)
    return item


class TestListNotifications:

    def test_lists_own_notifications(self, client, headers_for, client_profile, mongodb_service, notification):
        mongodb_service.paginate.return_value = PaginationResult([stored(notification)], 1, 1, 20)
        mongodb_service.count.return_value = 12

        response = client.get('/api/notifications', headers=headers_for(client_profile))

        assert response.status_code == 200
        data = response.get_json()
        assert data["unread_count"] == 12
        assert data["badge"] == "9+"
        [item] = data["_embedded"]["items"]
        assert "mark_read" in item["_links"]
        assert item["_links"]["order"]["href"].endswith("/api/orders/507f1f77bcf86cd799439011")
        assert mongodb_service.paginate.call_args.kwargs["filters"] == {"userId": client_profile.id}

    def test_unread_only(self, client, headers_for, client_profile, mongodb_service):
        client.get('/api/notifications?unread_only=true', headers=headers_for(client_profile))

        assert mongodb_service.paginate.call_args.kwargs["filters"] == {
            "userId": client_profile.id,
            "isRead": False
        }

    def test_unread_count_from_cache(self, client, headers_for, client_profile, mongodb_service, redis_service):
        redis_service.get_cached_unread_count.return_value = 3

        response = client.get('/api/notifications', headers=headers_for(client_profile))

        data = response.get_json()
        assert data["unread_count"] == 3
        assert data["badge"] == "3"
        mongodb_service.count.assert_not_called()
        redis_service.cache_unread_count.assert_not_called()

    def test_unread_count_cached_after_counting(self, client, headers_for, client_profile, redis_service):
        client.get('/api/notifications', headers=headers_for(client_profile))

        redis_service.cache_unread_count.assert_called_once_with(client_profile.id, 0)

    def test_requires_authentication(self, client):
        response = client.get('/api/notifications')

        assert response.status_code == 401


class TestMarkRead:

    def test_mark_read(self, client, headers_for, client_profile, notification, mongodb_service, redis_service):
        response = client.post(
            f'/api/notifications/{notification.id}/read',
            headers=headers_for(client_profile)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["is_read"] is True
        assert data["read_at"] is not None
        assert "mark_read" not in data["_links"]
        mongodb_service.update.assert_called_once()
        redis_service.invalidate_unread_count.assert_called_once_with(client_profile.id)

    def test_already_read_is_not_stored_again(
        self, client, headers_for, client_profile, store_document, mongodb_service
    ):
        read = Notification(user_id=client_profile.id, title="Oi", message="Olá", is_read=True)
        store_document(NOTIFICATIONS, read)

        response = client.post(f'/api/notifications/{read.id}/read', headers=headers_for(client_profile))

        assert response.status_code == 200
        mongodb_service.update.assert_not_called()

    def test_other_users_notification_is_hidden(self, client, headers_for, driver_profile, notification):
        response = client.post(
            f'/api/notifications/{notification.id}/read',
            headers=headers_for(driver_profile)
        )

        assert response.status_code == 404

    def test_mark_all_read(self, client, headers_for, client_profile, mongodb_service, redis_service):
        mongodb_service.update_many.return_value = 4

        response = client.post('/api/notifications/read-all', headers=headers_for(client_profile))

        assert response.status_code == 200
        assert response.get_json() == {"updated": 4, "unread_count": 0, "badge": ""}
        args = mongodb_service.update_many.call_args.args
        assert args[0] == NOTIFICATIONS
        assert args[1] == {"userId": client_profile.id, "isRead": False}
        assert args[2]["isRead"] is True
        redis_service.invalidate_unread_count.assert_called_once_with(client_profile.id)


class TestPushSubscriptions:

    def test_new_subscription(self, client, headers_for, driver_profile, mongodb_service):
        headers = headers_for(driver_profile)
        headers['User-Agent'] = 'Mozilla/5.0 (Linux; Android 14; Pixel 8)'

        response = client.post('/api/notifications/subscriptions', json={"token": "fcm-token-1"}, headers=headers)

        assert response.status_code == 201
        data = response.get_json()
        assert data["device_type"] == "android"
        assert data["user_role"] == "driver"
        assert "token" not in data

        document = mongodb_service.create.call_args.args[1]
        assert mongodb_service.create.call_args.args[0] == PUSH_SUBSCRIPTIONS
        assert document["token"] == "fcm-token-1"
        assert document["permissionGranted"] is True

    def test_existing_token_is_refreshed(self, client, headers_for, client_profile, mongodb_service):
        existing = PushSubscription(
            user_id=client_profile.id,
            token="web-token",
            user_role="client",
            permission_granted=True
        )
        mongodb_service.find_one_by.return_value = stored(existing)

        response = client.post(
            '/api/notifications/subscriptions',
            json={"token": "web-token", "permission_granted": False},
            headers=headers_for(client_profile)
        )

        assert response.status_code == 200
        assert response.get_json()["permission_granted"] is False
        mongodb_service.create.assert_not_called()
        assert mongodb_service.update.call_args.args[1] == existing.id

    def test_token_is_required(self, client, headers_for, client_profile):
        response = client.post('/api/notifications/subscriptions', json={}, headers=headers_for(client_profile))

        assert response.status_code == 400
