# SPDX-License-Identifier: Apache-2.0

"""
Notification center helpers and push message payloads.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from ..models.entities import Notification, PushSubscription
from ..models.enums import DeviceType, NotificationType


def build_notification(
    user_id: str,
    title: str,
    message: str,
    notification_type: str = NotificationType.SYSTEM.value,
    data: Optional[Dict[str, Any]] = None
) -> Notification:
    return Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        data=data or {},
        created_by=user_id,
        updated_by=user_id
    )


def mark_read(notification: Notification, user_id: str) -> Notification:
    """Return the notification marked as read; already read ones are returned as is."""
    if notification.is_read:
        return notification
    updated = notification.model_copy(update={"is_read": True, "read_at": datetime.utcnow()})
    updated.update_timestamp(user_id)
    return updated


def unread_badge(count: int) -> str:
    """Badge text for the bell icon: empty at zero, ``9+`` above nine."""
    if count <= 0:
        return ""
    if count > 9:
        return "9+"
    return str(count)


def detect_device_type(user_agent: Optional[str]) -> str:
    agent = (user_agent or "").lower()
    if "android" in agent:
        return DeviceType.ANDROID.value
    if "iphone" in agent or "ipad" in agent or "ipod" in agent:
        return DeviceType.IOS.value
    return DeviceType.WEB.value


def build_push_message(notification: Notification, subscription: Optional[PushSubscription] = None) -> Dict[str, Any]:
    """
    Payload consumed by the push worker.

    The worker resolves device tokens by user; ``token`` is included when the
    caller already knows the target subscription.
    """
    message = {
        "notification_id": notification.id,
        "user_id": notification.user_id,
        "title": notification.title,
        "body": notification.message,
        "type": notification.type,
        "data": {key: str(value) for key, value in notification.data.items()},
        "created_at": notification.created_at.isoformat(),
    }
    if subscription is not None:
        message["token"] = subscription.token
        message["device_type"] = subscription.device_type
    return message
