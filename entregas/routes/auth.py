# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authentication endpoints for sign-up, login, logout, and token refresh.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain import profiles as profile_domain
from ..domain.authorization import permissions_for_role
from ..models.base import from_document
from ..models.entities import Profile, UserContext
from ..models.requests import RegisterRequest, LoginRequest, RefreshTokenRequest
from ..models.responses import AuthTokenResponse
from ..services.auth import AuthenticationError, TokenValidationError
from ..services.mongodb import PROFILES
from ..middleware.auth import require_jwt
from ..middleware.validation import validate_body
from ..middleware.error_handler import (
    AuthenticationException,
    AuthorizationException,
    ConflictException,
    ValidationException
)
from ..utils.context import current_profile, store_new

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

auth_tag = Tag(name="Authentication", description="Sign-up, login and token lifecycle")
auth_bp = APIBlueprint('auth', __name__, url_prefix='/api/auth', abp_tags=[auth_tag])


def _session_response(profile: Profile, tokens: Dict[str, Any]) -> Dict[str, Any]:
    """Token pair plus the public profile and its links."""
    hal_formatter = current_app.hal_formatter
    link_builder = hal_formatter.builder.link_builder
    permissions = permissions_for_role(profile.role)
    response = AuthTokenResponse(
        **tokens,
        user=hal_formatter.format_resource(profile.to_public_dict(), "profile", permissions, profile.id),
        permissions=permissions
    ).model_dump()
    response["_links"] = {
        "self": link_builder.build_link("/api/auth/me", title="Current user").model_dump(),
        "refresh": link_builder.build_link(
            "/api/auth/refresh", method="POST", content_type="application/json", title="Refresh token"
        ).model_dump(),
        "logout": link_builder.build_link("/api/auth/logout", method="POST", title="Logout").model_dump()
    }
    return response


def _load_profile_for_refresh(user_id: str) -> Optional[Profile]:
    document = current_app.mongodb_service.find_one(PROFILES, user_id)
    if document is None:
        return None
    profile = from_document(Profile, document)
    if profile.is_blocked:
        return None
    return profile


@auth_bp.post('/register')
@validate_body(RegisterRequest)
def register(register_request: RegisterRequest):
    """
    Create an account from one of the self-service portals.

    Clients can use the platform right away; drivers and wholesale accounts
    wait for admin approval but receive a session to follow their status.
    """
    with tracer.start_as_current_span(
        "auth.register",
        attributes={"operation": "register", "user.role": str(register_request.role)}
    ) as span:
        check = profile_domain.validate_registration(register_request)
        if not check.is_valid:
            span.set_status(Status(StatusCode.ERROR, "Invalid registration"))
            raise ValidationException("Invalid registration data", check.errors)

        mongodb_service = current_app.mongodb_service
        auth_service = current_app.auth_service

        existing = mongodb_service.find_one_by(PROFILES, {"email": register_request.email}, include_deleted=True)
        if existing:
            span.set_status(Status(StatusCode.ERROR, "Email already registered"))
            raise ConflictException("Email is already registered")

        profile = profile_domain.build_profile(
            register_request,
            auth_service.hash_password(register_request.password)
        )

        try:
            store_new(PROFILES, profile, profile.id)
        except ValueError:
            # Unique index caught a concurrent sign-up with the same email
            raise ConflictException("Email is already registered")

        tokens = auth_service.generate_tokens(profile)

        span.set_attributes({"user.id": profile.id, "profile.status": profile.status})
        logger.info(
            "Profile registered",
            extra={"user_id": profile.id, "role": profile.role, "status": profile.status}
        )

        return jsonify(_session_response(profile, tokens)), 201


@auth_bp.post('/login')
@validate_body(LoginRequest)
def login(login_request: LoginRequest):
    """
    Authenticate user and return JWT tokens.

    Blocked accounts are refused with 403 so the portal can tell them apart
    from wrong credentials.
    """
    with tracer.start_as_current_span(
        "auth.login",
        attributes={"operation": "login", "ip_address": request.remote_addr or ""}
    ) as span:
        mongodb_service = current_app.mongodb_service
        auth_service = current_app.auth_service

        document = mongodb_service.find_one_by(PROFILES, {"email": login_request.email})
        profile = from_document(Profile, document) if document else None

        if profile is None or not auth_service.verify_password(login_request.password, profile.password_hash):
            span.set_attribute("auth.result", "invalid_credentials")
            logger.warning("Login failed: invalid credentials", extra={"ip_address": request.remote_addr})
            raise AuthenticationException("Invalid email or password")

        allowed = profile_domain.check_login_allowed(profile)
        if not allowed.is_valid:
            span.set_attribute("auth.result", "blocked")
            logger.warning("Login refused", extra={"user_id": profile.id, "reason": allowed.errors[0]})
            raise AuthorizationException(allowed.errors[0])

        now = datetime.utcnow()
        mongodb_service.update(PROFILES, profile.id, {"lastLogin": now}, profile.id)
        profile = profile.model_copy(update={"last_login": now})

        try:
            tokens = auth_service.generate_tokens(profile)
        except AuthenticationError as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise

        span.set_attributes({"auth.result": "success", "user.id": profile.id})
        logger.info("User logged in", extra={"user_id": profile.id, "role": profile.role})

        return jsonify(_session_response(profile, tokens)), 200


@auth_bp.post('/refresh')
@validate_body(RefreshTokenRequest)
def refresh(refresh_request: RefreshTokenRequest):
    """Issue a new access token from a refresh token that was not revoked."""
    with tracer.start_as_current_span("auth.refresh", attributes={"operation": "refresh"}) as span:
        auth_service = current_app.auth_service
        redis_service = current_app.redis_service

        try:
            token_id = auth_service.extract_token_id(refresh_request.refresh_token)
        except TokenValidationError as e:
            raise AuthenticationException(str(e))

        if redis_service.is_token_blocked(token_id):
            span.set_attribute("auth.result", "revoked")
            raise AuthenticationException("Token has been revoked")

        try:
            result = auth_service.refresh_access_token(refresh_request.refresh_token, _load_profile_for_refresh)
        except (TokenValidationError, AuthenticationError) as e:
            span.set_attribute("auth.result", "failed")
            raise AuthenticationException(str(e))

        span.set_attribute("auth.result", "success")
        return jsonify(result), 200


@auth_bp.post('/logout')
@require_jwt
def logout(user_context: UserContext):
    """
    Revoke the current access token and, when sent, the refresh token.
    """
    with tracer.start_as_current_span(
        "auth.logout",
        attributes={"operation": "logout", "user.id": user_context.user_id}
    ):
        auth_service = current_app.auth_service
        redis_service = current_app.redis_service

        payload = user_context.token_payload or {}
        redis_service.block_token(
            auth_service.extract_token_id(current_app.auth_middleware.extract_token_from_request()),
            max(auth_service.token_ttl_seconds(payload), 1)
        )

        body = request.get_json(silent=True) or {}
        refresh_token = body.get("refresh_token") if isinstance(body, dict) else None
        if refresh_token:
            try:
                refresh_payload = auth_service.validate_token(refresh_token, "refresh")
            except TokenValidationError:
                refresh_payload = None
            if refresh_payload and refresh_payload.get("sub") == user_context.user_id:
                redis_service.block_token(
                    auth_service.extract_token_id(refresh_token),
                    max(auth_service.token_ttl_seconds(refresh_payload), 1)
                )

        logger.info("User logged out", extra={"user_id": user_context.user_id})
        return jsonify({"message": "Logged out"}), 200


@auth_bp.get('/me')
@require_jwt
def me(user_context: UserContext):
    """Current profile with the permissions carried by the token."""
    with tracer.start_as_current_span(
        "auth.me",
        attributes={"operation": "me", "user.id": user_context.user_id}
    ):
        profile = current_profile(user_context)
        response = current_app.hal_formatter.format_resource(
            profile.to_public_dict(), "profile", user_context.permissions, user_context.user_id
        )
        response["permissions"] = user_context.permissions
        return jsonify(response), 200
