# SPDX-License-Identifier: Apache-2.0

"""
Promotion endpoints. Admins publish announcements; each portal reads the
ones aimed at its role.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..domain import coupons as promotion_domain
from ..models.base import from_document
from ..models.entities import Promotion, UserContext
from ..models.requests import PromotionPath, PromotionRequest, UpdatePromotionRequest
from ..services.mongodb import PROMOTIONS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import ValidationException
from ..utils.context import load_entity, store_changes, store_new

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

promotions_tag = Tag(name="Promotions", description="Announcements for each portal")
promotions_bp = APIBlueprint('promotions', __name__, url_prefix='/api/promotions', abp_tags=[promotions_tag])


def _collection(promotions, path: str, user_context: UserContext):
    items = [promotion.to_public_dict() for promotion in promotions]
    return current_app.hal_formatter.format_collection(
        items,
        "promotion",
        len(items),
        1,
        max(len(items), 1),
        path,
        user_context.permissions,
        user_context.user_id
    )


@promotions_bp.get('/current')
@require_jwt
@require_permission("promotion:read")
def current_promotions(user_context: UserContext):
    """Active promotions in their validity window for the caller's role."""
    with tracer.start_as_current_span("promotions.current", attributes={"user.role": str(user_context.role)}):
        documents = current_app.mongodb_service.find(PROMOTIONS, {"isActive": True}, sort_by="validUntil", sort_order=1)
        promotions = promotion_domain.promotions_for_role(
            (from_document(Promotion, doc) for doc in documents), user_context.role
        )
        return jsonify(_collection(promotions, "/api/promotions/current", user_context)), 200


@promotions_bp.get('')
@require_jwt
@require_permission("promotion:manage")
def list_promotions(user_context: UserContext):
    with tracer.start_as_current_span("promotions.list"):
        promotions = [from_document(Promotion, doc) for doc in current_app.mongodb_service.find(PROMOTIONS)]
        return jsonify(_collection(promotions, "/api/promotions", user_context)), 200


@promotions_bp.post('')
@require_jwt
@require_permission("promotion:manage")
@validate_body(PromotionRequest)
def create_promotion(user_context: UserContext, promotion_request: PromotionRequest):
    with tracer.start_as_current_span("promotions.create", attributes={"user.id": user_context.user_id}):
        result = promotion_domain.build_promotion(promotion_request, user_context.user_id)
        if not result.success:
            raise ValidationException(result.error_message, result.validation_errors)
        promotion: Promotion = result.entity

        store_new(PROMOTIONS, promotion, user_context.user_id)
        logger.info("Promotion created", extra={"promotion_id": promotion.id, "admin_id": user_context.user_id})
        return jsonify(current_app.hal_formatter.format_resource(
            promotion.to_public_dict(), "promotion", user_context.permissions, user_context.user_id
        )), 201


@promotions_bp.patch('/<promotion_id>')
@require_jwt
@require_permission("promotion:manage")
@validate_body(UpdatePromotionRequest)
def update_promotion(user_context: UserContext, update_request: UpdatePromotionRequest, path: PromotionPath):
    with tracer.start_as_current_span("promotions.update", attributes={"promotion.id": path.promotion_id}):
        changes = update_request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationException("No changes provided")

        promotion = load_entity(PROMOTIONS, path.promotion_id, Promotion, "Promotion")
        try:
            updated = Promotion.model_validate({**promotion.model_dump(), **changes})
        except ValueError as e:
            raise ValidationException("Invalid promotion", [str(e)])
        updated.update_timestamp(user_context.user_id)
        store_changes(PROMOTIONS, updated, user_context.user_id)

        return jsonify(current_app.hal_formatter.format_resource(
            updated.to_public_dict(), "promotion", user_context.permissions, user_context.user_id
        )), 200


@promotions_bp.delete('/<promotion_id>')
@require_jwt
@require_permission("promotion:manage")
def deactivate_promotion(user_context: UserContext, path: PromotionPath):
    with tracer.start_as_current_span("promotions.deactivate", attributes={"promotion.id": path.promotion_id}):
        promotion = load_entity(PROMOTIONS, path.promotion_id, Promotion, "Promotion")
        updated = promotion.model_copy(update={"is_active": False})
        updated.update_timestamp(user_context.user_id)
        store_changes(PROMOTIONS, updated, user_context.user_id)

        logger.info("Promotion deactivated", extra={"promotion_id": promotion.id, "admin_id": user_context.user_id})
        return '', 204
