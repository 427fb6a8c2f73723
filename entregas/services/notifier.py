# SPDX-License-Identifier: Apache-2.0

"""
Notification fan-out: stores the in-app notification and publishes one push
message per registered device.

Delivery problems are logged and never propagate to the request that caused
the notification.
"""

import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from pymongo.errors import PyMongoError

from ..domain.notifications import build_notification
from ..models.base import from_document, to_document
from ..models.entities import Notification, PushSubscription
from ..models.enums import NotificationType
from .amqp import AMQPService, PublishResult
from .mongodb import MongoDBService, NOTIFICATIONS, PUSH_SUBSCRIPTIONS
from .redis import RedisService

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Creates notifications and hands them to the push worker."""

    def __init__(self, mongodb_service: MongoDBService, redis_service: RedisService, amqp_service: AMQPService):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.amqp_service = amqp_service

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = NotificationType.SYSTEM.value,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Notify a user in-app and through every push subscription they granted.

        Returns:
            The stored notification, or None when it could not be stored
        """
        with tracer.start_as_current_span("notifier.notify") as span:
            span.set_attributes({
                "notification.user_id": user_id,
                "notification.type": notification_type
            })

            notification = build_notification(user_id, title, message, notification_type, data)

            try:
                self.mongodb_service.create(NOTIFICATIONS, to_document(notification), user_id)
            except PyMongoError as e:
                logger.error(
                    "Failed to store notification",
                    extra={"user_id": user_id, "type": notification_type, "error": str(e)}
                )
                span.set_attribute("notification.stored", False)
                return None

            span.set_attribute("notification.stored", True)
            self.redis_service.invalidate_unread_count(user_id)

            results = self.push(notification)
            span.set_attribute("notification.push_count", len(results))
            return notification

    def push(self, notification: Notification) -> List[PublishResult]:
        """Publish ``notification`` to each device of its recipient."""
        try:
            documents = self.mongodb_service.find(
                PUSH_SUBSCRIPTIONS,
                {"userId": notification.user_id, "permissionGranted": True}
            )
        except PyMongoError as e:
            logger.error(
                "Failed to load push subscriptions",
                extra={"user_id": notification.user_id, "error": str(e)}
            )
            return []

        results = []
        for document in documents:
            subscription = from_document(PushSubscription, document)
            result = self.amqp_service.publish_push(
                notification,
                subscription.user_role,
                subscription=subscription,
                max_retries=0
            )
            if not result.success:
                logger.warning(
                    "Push message not published",
                    extra={
                        "notification_id": notification.id,
                        "user_id": notification.user_id,
                        "device_type": subscription.device_type,
                        "error": result.error
                    }
                )
            results.append(result)
        return results
