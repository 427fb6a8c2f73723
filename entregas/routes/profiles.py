# SPDX-License-Identifier: Apache-2.0

"""
Profile endpoints: self-service edits and the admin approval screens.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..domain import profiles as profile_domain
from ..models.base import from_document
from ..models.entities import Profile, UserContext
from ..models.enums import NotificationType, ProfileStatus, UserRole
from ..models.requests import ProfilePath, UpdateProfileRequest
from ..services.mongodb import PROFILES
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import ConflictException, ValidationException
from ..utils.context import current_profile, load_entity, store_changes
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

profiles_tag = Tag(name="Profiles", description="Account data and admin review")
profiles_bp = APIBlueprint('profiles', __name__, url_prefix='/api/profiles', abp_tags=[profiles_tag])

STATUS_FILTERS: Dict[str, Dict[str, Any]] = {
    ProfileStatus.PENDING.value: {"isApproved": False, "isBlocked": False},
    ProfileStatus.APPROVED.value: {"isApproved": True},
    ProfileStatus.BLOCKED.value: {"isBlocked": True},
}

_REVIEW_MESSAGES = {
    "approve": ("Cadastro aprovado", "Seu cadastro foi aprovado. Você já pode usar a plataforma."),
    "block": ("Conta bloqueada", "Sua conta foi bloqueada. Entre em contato com o suporte."),
    "unblock": ("Conta desbloqueada", "Sua conta foi desbloqueada e aguarda nova aprovação."),
}


def _profile_response(profile: Profile, user_context: UserContext) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        profile.to_public_dict(), "profile", user_context.permissions, user_context.user_id
    )


@profiles_bp.get('/me')
@require_jwt
@require_permission("profile:read_own")
def get_own_profile(user_context: UserContext):
    with tracer.start_as_current_span("profiles.get_own", attributes={"user.id": user_context.user_id}):
        return jsonify(_profile_response(current_profile(user_context), user_context)), 200


@profiles_bp.patch('/me')
@require_jwt
@require_permission("profile:update_own")
@validate_body(UpdateProfileRequest)
def update_own_profile(user_context: UserContext, update_request: UpdateProfileRequest):
    """Apply a partial edit; formatted values are stored."""
    with tracer.start_as_current_span("profiles.update_own", attributes={"user.id": user_context.user_id}):
        profile = current_profile(user_context)

        result = profile_domain.apply_profile_update(profile, update_request, user_context.user_id)
        if not result.success:
            raise ValidationException(result.error_message, result.validation_errors)

        store_changes(PROFILES, result.entity, user_context.user_id)
        logger.info(
            "Profile updated",
            extra={
                "user_id": user_context.user_id,
                "fields": sorted(update_request.model_dump(exclude_unset=True, exclude_none=True))
            }
        )
        return jsonify(_profile_response(result.entity, user_context)), 200


@profiles_bp.get('')
@require_jwt
@require_permission("profile:read_all")
def list_profiles(user_context: UserContext):
    """
    Paginated profile list for admins.

    Query parameters ``role`` and ``status`` (pending, approved, blocked)
    narrow the list.
    """
    with tracer.start_as_current_span("profiles.list", attributes={"user.id": user_context.user_id}) as span:
        pagination = RequestParser.get_pagination_params()
        query = RequestParser.get_filter_params(allowed_filters=["role", "status"])

        filters: Dict[str, Any] = {}
        role = query.get("role")
        if role:
            if role not in [r.value for r in UserRole]:
                raise ValidationException(f"Unknown role '{role}'")
            filters["role"] = role

        status = query.get("status")
        if status:
            if status not in STATUS_FILTERS:
                raise ValidationException(f"Unknown status '{status}'")
            filters.update(STATUS_FILTERS[status])

        result = current_app.mongodb_service.paginate(
            PROFILES,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters=filters
        )
        span.set_attribute("profiles.total", result.total)

        items = [from_document(Profile, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "profile",
            result.total,
            result.page,
            result.page_size,
            "/api/profiles",
            user_context.permissions,
            user_context.user_id,
            query
        )
        return jsonify(response), 200


@profiles_bp.get('/drivers')
@require_jwt
@require_permission("profile:read_all")
def list_drivers(user_context: UserContext):
    """Drivers split into the pending, approved and blocked tabs."""
    with tracer.start_as_current_span("profiles.drivers", attributes={"user.id": user_context.user_id}):
        documents = current_app.mongodb_service.find(PROFILES, {"role": UserRole.DRIVER.value})
        groups = profile_domain.classify_drivers(from_document(Profile, doc) for doc in documents)

        response = {
            status: [_profile_response(profile, user_context) for profile in profiles]
            for status, profiles in groups.items()
        }
        response["counts"] = {status: len(profiles) for status, profiles in groups.items()}
        return jsonify(response), 200


@profiles_bp.get('/<profile_id>')
@require_jwt
@require_permission("profile:read_all")
def get_profile(user_context: UserContext, path: ProfilePath):
    profile_id = path.profile_id
    with tracer.start_as_current_span("profiles.get", attributes={"profile.id": profile_id}):
        profile = load_entity(PROFILES, profile_id, Profile, "Profile")
        return jsonify(_profile_response(profile, user_context)), 200


def _review(user_context: UserContext, profile_id: str, action: str):
    """Run an admin review action and tell the profile owner about it."""
    operations = {
        "approve": profile_domain.approve_profile,
        "block": profile_domain.block_profile,
        "unblock": profile_domain.unblock_profile,
    }

    with tracer.start_as_current_span(
        f"profiles.{action}",
        attributes={"profile.id": profile_id, "user.id": user_context.user_id}
    ) as span:
        profile = load_entity(PROFILES, profile_id, Profile, "Profile")

        result = operations[action](profile, user_context.user_id)
        if not result.success:
            span.set_attribute("review.result", "rejected")
            raise ConflictException(result.error_message)

        updated = result.entity
        store_changes(PROFILES, updated, user_context.user_id)
        span.set_attribute("profile.status", updated.status)

        logger.info(
            f"Profile {action} by admin",
            extra={"profile_id": profile_id, "admin_id": user_context.user_id, "status": updated.status}
        )

        title, message = _REVIEW_MESSAGES[action]
        current_app.notifier.notify(
            updated.id,
            title,
            message,
            NotificationType.SYSTEM.value,
            {"profile_status": updated.status}
        )

        return jsonify(_profile_response(updated, user_context)), 200


@profiles_bp.post('/<profile_id>/approve')
@require_jwt
@require_permission("profile:approve")
def approve_profile(user_context: UserContext, path: ProfilePath):
    return _review(user_context, path.profile_id, "approve")


@profiles_bp.post('/<profile_id>/block')
@require_jwt
@require_permission("profile:block")
def block_profile(user_context: UserContext, path: ProfilePath):
    return _review(user_context, path.profile_id, "block")


@profiles_bp.post('/<profile_id>/unblock')
@require_jwt
@require_permission("profile:block")
def unblock_profile(user_context: UserContext, path: ProfilePath):
    return _review(user_context, path.profile_id, "unblock")
