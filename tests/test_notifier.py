# SPDX-License-Identifier: Apache-2.0

"""
Tests for notification fan-out.
"""

import pytest
from pymongo.errors import PyMongoError

from entregas.models.entities import PushSubscription
from entregas.services.amqp import PublishResult
from entregas.services.mongodb import NOTIFICATIONS, PUSH_SUBSCRIPTIONS
from entregas.services.notifier import NotificationDispatcher
from .conftest import stored


@pytest.fixture
def dispatcher(mongodb_service, redis_service, amqp_service):
    return NotificationDispatcher(mongodb_service, redis_service, amqp_service)


class TestNotify:

    def test_stores_and_invalidates_badge(self, dispatcher, mongodb_service, redis_service, amqp_service):
        notification = dispatcher.notify("user-1", "Pedido confirmado", "Aguardando motorista", "order_update")

        assert notification.user_id == "user-1"
        collection, document, user_id = mongodb_service.create.call_args[0]
        assert collection == NOTIFICATIONS
        assert document["title"] == "Pedido confirmado"
        assert document["isRead"] is False
        redis_service.invalidate_unread_count.assert_called_once_with("user-1")
        mongodb_service.find.assert_called_once_with(
            PUSH_SUBSCRIPTIONS, {"userId": "user-1", "permissionGranted": True}
        )
        amqp_service.publish_push.assert_not_called()

    def test_pushes_to_each_device(self, dispatcher, mongodb_service, amqp_service):
        mongodb_service.find.return_value = [
            stored(PushSubscription(user_id="user-1", token="tok-a", device_type="android", user_role="driver")),
            stored(PushSubscription(user_id="user-1", token="tok-b", device_type="web", user_role="driver")),
        ]

        notification = dispatcher.notify("user-1", "Novo pedido", "Há um pedido disponível")

        assert amqp_service.publish_push.call_count == 2
        first = amqp_service.publish_push.call_args_list[0]
        assert first.args == (notification, "driver")
        assert first.kwargs["subscription"].token == "tok-a"
        assert first.kwargs["max_retries"] == 0

    def test_push_failure_is_not_raised(self, dispatcher, mongodb_service, amqp_service):
        mongodb_service.find.return_value = [
            stored(PushSubscription(user_id="user-1", token="tok-a", user_role="client"))
        ]
        amqp_service.publish_push.return_value = PublishResult(
            success=False, correlation_id="c", exchange="push.notifications", routing_key="push.client.user-1",
            error="broker down"
        )

        assert dispatcher.notify("user-1", "Olá", "Mensagem") is not None

    def test_storage_failure_returns_none(self, dispatcher, mongodb_service, amqp_service):
        mongodb_service.create.side_effect = PyMongoError("write failed")

        assert dispatcher.notify("user-1", "Olá", "Mensagem") is None
        amqp_service.publish_push.assert_not_called()

    def test_subscription_lookup_failure(self, dispatcher, mongodb_service, amqp_service):
        mongodb_service.find.side_effect = PyMongoError("read failed")

        assert dispatcher.notify("user-1", "Olá", "Mensagem") is not None
        amqp_service.publish_push.assert_not_called()
