# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

This module provides Flask middleware for validating JWT tokens, checking
the revocation blocklist, and building the user context that protected
routes receive as their first argument.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from ..models.entities import UserContext
from ..services.auth import TokenValidationError
from .error_handler import AuthenticationException, AuthorizationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and user context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '').strip()

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Returns:
            True if token is blocked or the blocklist cannot be checked
        """
        try:
            token_id = self.auth_service.extract_token_id(token)
            return self.redis_service.is_token_blocked(token_id)
        except Exception as e:
            logger.error(f"Error checking token blocklist: {str(e)}")
            # Fail closed
            return True

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """
        Build user context from validated token payload and request information.

        Args:
            token_payload: Decoded JWT payload
            request_info: Request metadata (IP, user agent, etc.)

        Returns:
            UserContext object for request processing
        """
        return UserContext(
            user_id=token_payload["sub"],
            role=token_payload["role"],
            email=token_payload.get("email"),
            name=token_payload.get("name"),
            is_approved=token_payload.get("is_approved", False),
            permissions=token_payload.get("permissions", []),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent"),
            session_id=request_info.get("session_id")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID'),
            "request_id": request.headers.get('X-Request-ID')
        }


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    The wrapped route is called with the UserContext as first argument.

    Raises:
        AuthenticationException: Missing, revoked or invalid token
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.validate_request") as span:
                span.set_attribute("auth.operation", "validate_request")

                token = auth_middleware.extract_token_from_request()
                if not token:
                    span.set_attribute("auth.result", "missing_token")
                    logger.warning("Authentication failed: missing token")
                    raise AuthenticationException("Missing authorization token")

                if auth_middleware.is_token_blocked(token):
                    span.set_attribute("auth.result", "token_blocked")
                    logger.warning("Authentication failed: token is blocked")
                    raise AuthenticationException("Token has been revoked")

                try:
                    token_payload = auth_middleware.auth_service.validate_token(token, "access")
                    user_context = auth_middleware.build_user_context(
                        token_payload, auth_middleware.get_request_info()
                    )
                except (TokenValidationError, KeyError, ValueError) as e:
                    span.set_attribute("auth.result", "invalid_token")
                    logger.warning(f"Authentication failed: {str(e)}")
                    raise AuthenticationException(f"Invalid token: {str(e)}")

                g.user_context = user_context

                span.set_attributes({
                    "auth.result": "success",
                    "user.id": user_context.user_id,
                    "user.role": user_context.role
                })

                logger.debug(
                    "Authentication successful",
                    extra={
                        "user_id": user_context.user_id,
                        "role": user_context.role,
                        "ip_address": user_context.ip_address
                    }
                )

            return f(user_context, *args, **kwargs)

        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """Require authentication using the middleware attached to the current app."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware = current_app.auth_middleware
        return require_auth(auth_middleware)(f)(*args, **kwargs)
    return decorated_function


def require_permission(permission: str) -> Callable:
    """
    Decorator to require a specific permission for Flask routes.

    Must be applied below ``require_jwt`` so it receives the user context.

    Raises:
        AuthorizationException: The user lacks ``permission``
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(user_context: UserContext, *args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.check_permission") as span:
                span.set_attributes({
                    "auth.operation": "check_permission",
                    "auth.required_permission": permission,
                    "user.id": user_context.user_id,
                    "user.role": user_context.role
                })

                if not user_context.has_permission(permission):
                    span.set_attribute("auth.permission_result", "denied")
                    logger.warning(
                        f"Authorization failed: missing permission '{permission}'",
                        extra={
                            "user_id": user_context.user_id,
                            "role": user_context.role,
                            "required_permission": permission
                        }
                    )
                    raise AuthorizationException(f"Missing required permission: {permission}")

                span.set_attribute("auth.permission_result", "granted")

            return f(user_context, *args, **kwargs)

        return decorated_function
    return decorator
