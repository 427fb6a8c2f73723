# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.

Affordances tell each portal what it may do next: an admin sees ``confirm``
on a pending order, the assigned driver sees the next delivery step, the
client sees ``rate`` once the order is delivered.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode
import math

from ..models.enums import OrderStatus, UserRole, WithdrawalStatus
from ..models.responses import HalLink
from ..domain.orders import DRIVER_STATUSES, next_statuses, status_label


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.replace('_', ' ').title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int, page_size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'page_size': page_size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build self/first/prev/next/last links for a collection page."""
        params = {k: v for k, v in (query_params or {}).items() if v is not None}
        links = {'self': self._page_link(base_path, params, current_page, page_size, "Current page")}

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on permissions and state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_order_affordances(
        self,
        order: Dict[str, Any],
        user_permissions: List[str],
        current_user_id: str
    ) -> Dict[str, HalLink]:
        """Build conditional affordance links for orders."""
        order_id = order['id']
        status = order.get('status')
        base_path = f"/api/orders/{order_id}"
        is_client = order.get('client_id') == current_user_id
        is_driver = order.get('driver_id') == current_user_id

        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/orders")
        }

        if status == OrderStatus.PENDING.value and "order:confirm" in user_permissions:
            links['confirm'] = self.link_builder.build_action_link(base_path, "confirm", title="Confirm order")

        can_cancel_any = "order:cancel_any" in user_permissions
        can_cancel_own = (
            "order:cancel_own" in user_permissions
            and is_client
            and status == OrderStatus.PENDING.value
        )
        cancellable = OrderStatus.CANCELLED.value in next_statuses(status)
        if cancellable and (can_cancel_any or can_cancel_own):
            links['cancel'] = self.link_builder.build_action_link(base_path, "cancel", title="Cancel order")

        if (
            status == OrderStatus.CONFIRMED.value
            and not order.get('driver_id')
            and "order:accept" in user_permissions
        ):
            links['accept'] = self.link_builder.build_action_link(base_path, "accept", title="Accept order")
            links['reject'] = self.link_builder.build_action_link(base_path, "reject", title="Reject order")

        if is_driver and "order:update_status" in user_permissions:
            for upcoming in next_statuses(status):
                if upcoming in DRIVER_STATUSES:
                    links['update_status'] = self.link_builder.build_action_link(
                        base_path, "status", title=f"Mark as {status_label(upcoming)}"
                    )

        if status == OrderStatus.DELIVERED.value and is_client and "rating:create" in user_permissions:
            links['rate'] = self.link_builder.build_link(
                "/api/ratings",
                method="POST",
                content_type="application/json",
                title="Rate delivery"
            )

        return links

    def build_profile_affordances(
        self,
        profile: Dict[str, Any],
        user_permissions: List[str],
        current_user_id: str
    ) -> Dict[str, HalLink]:
        """Build conditional affordance links for profiles."""
        profile_id = profile['id']
        is_self = profile_id == current_user_id
        base_path = f"/api/profiles/{profile_id}"

        links = {'self': self.link_builder.build_self_link("/api/profiles/me" if is_self else base_path)}

        if is_self and "profile:update_own" in user_permissions:
            links['edit'] = self.link_builder.build_link(
                "/api/profiles/me",
                method="PATCH",
                content_type="application/json",
                title="Edit profile"
            )

        if "profile:read_all" in user_permissions:
            links['collection'] = self.link_builder.build_collection_link("/api/profiles")

        if not is_self and profile.get('role') != UserRole.ADMIN.value:
            if "profile:approve" in user_permissions and not profile.get('is_approved'):
                links['approve'] = self.link_builder.build_action_link(base_path, "approve", title="Approve profile")
            if "profile:block" in user_permissions:
                if profile.get('is_blocked'):
                    links['unblock'] = self.link_builder.build_action_link(base_path, "unblock", title="Unblock profile")
                else:
                    links['block'] = self.link_builder.build_action_link(base_path, "block", title="Block profile")

        if profile.get('role') == UserRole.DRIVER.value:
            if is_self and "driver:stats_own" in user_permissions:
                links['stats'] = self.link_builder.build_link("/api/drivers/me/stats", title="Driver statistics")
                links['wallet'] = self.link_builder.build_link("/api/drivers/me/wallet", title="Wallet")
            elif "driver:stats_any" in user_permissions:
                links['stats'] = self.link_builder.build_link(
                    f"/api/drivers/{profile_id}/stats", title="Driver statistics"
                )

        return links

    def build_withdrawal_affordances(
        self,
        withdrawal: Dict[str, Any],
        user_permissions: List[str]
    ) -> Dict[str, HalLink]:
        """Build conditional affordance links for withdrawal requests."""
        base_path = f"/api/withdrawals/{withdrawal['id']}"
        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/withdrawals")
        }

        if withdrawal.get('status') == WithdrawalStatus.PENDING.value and "withdrawal:review" in user_permissions:
            links['approve'] = self.link_builder.build_action_link(base_path, "approve", title="Approve withdrawal")
            links['reject'] = self.link_builder.build_action_link(base_path, "reject", title="Reject withdrawal")

        return links

    def build_notification_affordances(self, notification: Dict[str, Any]) -> Dict[str, HalLink]:
        """Build affordance links for the caller's own notifications."""
        base_path = f"/api/notifications/{notification['id']}"
        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/notifications")
        }

        if not notification.get('is_read'):
            links['mark_read'] = self.link_builder.build_action_link(base_path, "read", title="Mark as read")

        order_id = (notification.get('data') or {}).get('order_id')
        if order_id:
            links['order'] = self.link_builder.build_link(f"/api/orders/{order_id}", title="Related order")

        return links


class HalResponseBuilder:
    """Main HAL response builder with comprehensive formatting capabilities."""

    # Collection paths of resources without custom affordances
    GENERIC_PATHS = {
        "rating": "/api/ratings",
        "delivery_config": "/api/shipping/configs",
        "transaction": "/api/drivers/me/wallet",
    }

    def __init__(self, base_url: str, problem_base_url: str = "https://api.entregas.app/problems"):
        self.base_url = base_url.rstrip('/')
        self.problem_base_url = problem_base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def build_resource_response(
        self,
        data: Dict[str, Any],
        resource_type: str,
        user_permissions: List[str],
        current_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build a HAL resource response with appropriate affordance links."""
        response = dict(data)

        if resource_type == "order":
            links = self.affordance_builder.build_order_affordances(data, user_permissions, current_user_id or "")
        elif resource_type == "profile":
            links = self.affordance_builder.build_profile_affordances(data, user_permissions, current_user_id or "")
        elif resource_type == "withdrawal":
            links = self.affordance_builder.build_withdrawal_affordances(data, user_permissions)
        elif resource_type == "notification":
            links = self.affordance_builder.build_notification_affordances(data)
        else:
            collection_path = self.GENERIC_PATHS.get(resource_type, f"/api/{resource_type}s")
            links = {
                'self': self.link_builder.build_self_link(f"{collection_path}/{data.get('id', '')}"),
                'collection': self.link_builder.build_collection_link(collection_path)
            }

        response['_links'] = {rel: link.model_dump() for rel, link in links.items()}
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = math.ceil(total / page_size) if page_size > 0 else 1

        pagination_links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )

        return {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': total_pages,
            '_links': {rel: link.model_dump() for rel, link in pagination_links.items()},
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{self.problem_base_url}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )
        elif error_type == "authentication-required":
            links['login'] = self.link_builder.build_link(
                "/api/auth/login",
                method="POST",
                content_type="application/json",
                title="Login"
            )
        elif error_type == "insufficient-permissions":
            links['me'] = self.link_builder.build_link(
                "/api/auth/me",
                title="Current user and permissions"
            )

        error_response['_links'] = {rel: link.model_dump() for rel, link in links.items()}
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_resource(
        self,
        data: Dict[str, Any],
        resource_type: str,
        user_permissions: List[str],
        current_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.builder.build_resource_response(data, resource_type, user_permissions, current_user_id)

    def format_collection(
        self,
        items: List[Dict[str, Any]],
        resource_type: str,
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        user_permissions: List[str],
        current_user_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a page of resources, each carrying its own affordances."""
        formatted = [
            self.format_resource(item, resource_type, user_permissions, current_user_id)
            for item in items
        ]
        return self.builder.build_collection_response(
            formatted,
            total,
            page,
            page_size,
            collection_path,
            filters
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error",
            "Validation Error",
            400,
            detail,
            instance,
            validation_errors
        )

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "authentication-required",
            "Authentication Required",
            401,
            detail,
            instance
        )

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "insufficient-permissions",
            "Insufficient Permissions",
            403,
            detail,
            instance
        )

    def format_not_found_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "resource-not-found",
            "Resource Not Found",
            404,
            detail,
            instance
        )

    def format_conflict_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "resource-conflict",
            "Resource Conflict",
            409,
            detail,
            instance
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.builder.build_error_response(
            "internal-server-error",
            "Internal Server Error",
            500,
            detail,
            instance
        )


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
