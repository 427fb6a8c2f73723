# SPDX-License-Identifier: Apache-2.0

"""
Notification center endpoints and push token registration.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from datetime import datetime

from ..domain import notifications as notification_domain
from ..models.base import from_document
from ..models.entities import Notification, PushSubscription, UserContext
from ..models.requests import NotificationPath, PushSubscriptionRequest
from ..services.mongodb import NOTIFICATIONS, PUSH_SUBSCRIPTIONS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import NotFoundException
from ..utils.context import find_entity, load_entity, store_changes, store_new
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

notifications_tag = Tag(name="Notifications", description="In-app notifications and push devices")
notifications_bp = APIBlueprint(
    'notifications',
    __name__,
    url_prefix='/api/notifications',
    abp_tags=[notifications_tag]
)


def unread_count(user_id: str) -> int:
    """Unread notifications for the bell badge, cached briefly in Redis."""
    redis_service = current_app.redis_service
    cached = redis_service.get_cached_unread_count(user_id)
    if cached is not None:
        return cached

    count = current_app.mongodb_service.count(NOTIFICATIONS, {"userId": user_id, "isRead": False})
    redis_service.cache_unread_count(user_id, count)
    return count


@notifications_bp.get('')
@require_jwt
@require_permission("notification:read_own")
def list_notifications(user_context: UserContext):
    """
    The caller's notifications, newest first.

    ``unread_only=true`` hides read ones. The response carries the unread
    count and the badge text shown on the bell icon.
    """
    with tracer.start_as_current_span("notifications.list", attributes={"user.id": user_context.user_id}) as span:
        pagination = RequestParser.get_pagination_params()
        query = RequestParser.get_filter_params(allowed_filters=["unread_only"], type_conversions={"unread_only": bool})

        filters = {"userId": user_context.user_id}
        if query.get("unread_only"):
            filters["isRead"] = False

        result = current_app.mongodb_service.paginate(
            NOTIFICATIONS,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters=filters
        )
        count = unread_count(user_context.user_id)
        span.set_attribute("notifications.unread", count)

        items = [from_document(Notification, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "notification",
            result.total,
            result.page,
            result.page_size,
            "/api/notifications",
            user_context.permissions,
            user_context.user_id,
            query
        )
        response["unread_count"] = count
        response["badge"] = notification_domain.unread_badge(count)
        return jsonify(response), 200


@notifications_bp.post('/<notification_id>/read')
@require_jwt
@require_permission("notification:read_own")
def mark_notification_read(user_context: UserContext, path: NotificationPath):
    notification_id = path.notification_id
    with tracer.start_as_current_span("notifications.mark_read", attributes={"notification.id": notification_id}):
        notification = load_entity(NOTIFICATIONS, notification_id, Notification, "Notification")
        if notification.user_id != user_context.user_id:
            # Other users' notifications are invisible, not forbidden
            raise NotFoundException(f"Notification '{notification_id}' not found")

        updated = notification_domain.mark_read(notification, user_context.user_id)
        if updated is not notification:
            store_changes(NOTIFICATIONS, updated, user_context.user_id)
            current_app.redis_service.invalidate_unread_count(user_context.user_id)

        response = current_app.hal_formatter.format_resource(
            updated.to_public_dict(), "notification", user_context.permissions, user_context.user_id
        )
        return jsonify(response), 200


@notifications_bp.post('/read-all')
@require_jwt
@require_permission("notification:read_own")
def mark_all_read(user_context: UserContext):
    with tracer.start_as_current_span("notifications.mark_all_read", attributes={"user.id": user_context.user_id}):
        updated = current_app.mongodb_service.update_many(
            NOTIFICATIONS,
            {"userId": user_context.user_id, "isRead": False},
            {"isRead": True, "readAt": datetime.utcnow()},
            user_context.user_id
        )
        current_app.redis_service.invalidate_unread_count(user_context.user_id)

        logger.info("Notifications marked as read", extra={"user_id": user_context.user_id, "count": updated})
        return jsonify({"updated": updated, "unread_count": 0, "badge": ""}), 200


@notifications_bp.post('/subscriptions')
@require_jwt
@validate_body(PushSubscriptionRequest)
def register_subscription(user_context: UserContext, subscription_request: PushSubscriptionRequest):
    """
    Register or refresh a device push token.

    The same token registered twice updates the existing subscription. The
    device type is detected from the User-Agent header.
    """
    with tracer.start_as_current_span("notifications.subscribe", attributes={"user.id": user_context.user_id}) as span:
        user_agent = request.headers.get('User-Agent', '')
        device_type = notification_domain.detect_device_type(user_agent)
        span.set_attribute("subscription.device_type", device_type)

        existing = find_entity(
            PUSH_SUBSCRIPTIONS,
            {"userId": user_context.user_id, "token": subscription_request.token},
            PushSubscription
        )

        if existing is not None:
            subscription = existing.model_copy(update={
                "permission_granted": subscription_request.permission_granted,
                "device_type": device_type,
                "user_role": user_context.role,
                "user_agent": user_agent
            })
            subscription.update_timestamp(user_context.user_id)
            store_changes(PUSH_SUBSCRIPTIONS, subscription, user_context.user_id)
            status_code = 200
        else:
            subscription = PushSubscription(
                user_id=user_context.user_id,
                token=subscription_request.token,
                permission_granted=subscription_request.permission_granted,
                device_type=device_type,
                user_role=user_context.role,
                user_agent=user_agent,
                created_by=user_context.user_id,
                updated_by=user_context.user_id
            )
            store_new(PUSH_SUBSCRIPTIONS, subscription, user_context.user_id)
            status_code = 201

        logger.info(
            "Push subscription registered",
            extra={
                "user_id": user_context.user_id,
                "device_type": device_type,
                "permission_granted": subscription.permission_granted
            }
        )

        data = subscription.to_public_dict()
        data.pop("token", None)
        return jsonify(data), status_code
