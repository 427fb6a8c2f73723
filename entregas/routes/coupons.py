# SPDX-License-Identifier: Apache-2.0

"""
Coupon endpoints: admin management and checkout preview.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..domain import catalog
from ..domain import coupons as coupon_domain
from ..models.base import from_document
from ..models.entities import Coupon, UserContext
from ..models.requests import CouponPath, CouponPreviewRequest, CouponRequest, UpdateCouponRequest
from ..services.mongodb import COUPONS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import ConflictException, ValidationException
from ..utils.context import count_coupon_redemptions, find_entity, load_entity, store_changes, store_new

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

coupons_tag = Tag(name="Coupons", description="Discount codes redeemed at checkout")
coupons_bp = APIBlueprint('coupons', __name__, url_prefix='/api/coupons', abp_tags=[coupons_tag])


def _coupon_response(coupon: Coupon, user_context: UserContext) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        coupon_domain.coupon_summary(coupon), "coupon", user_context.permissions, user_context.user_id
    )


@coupons_bp.get('')
@require_jwt
@require_permission("coupon:manage")
def list_coupons(user_context: UserContext):
    with tracer.start_as_current_span("coupons.list"):
        coupons = [from_document(Coupon, doc) for doc in current_app.mongodb_service.find(COUPONS)]
        items = [coupon_domain.coupon_summary(coupon) for coupon in coupons]
        response = current_app.hal_formatter.format_collection(
            items,
            "coupon",
            len(items),
            1,
            max(len(items), 1),
            "/api/coupons",
            user_context.permissions,
            user_context.user_id
        )
        return jsonify(response), 200


@coupons_bp.post('')
@require_jwt
@require_permission("coupon:manage")
@validate_body(CouponRequest)
def create_coupon(user_context: UserContext, coupon_request: CouponRequest):
    """Create a coupon. A random eight character code is used when none is sent."""
    with tracer.start_as_current_span("coupons.create", attributes={"user.id": user_context.user_id}):
        result = coupon_domain.build_coupon(coupon_request, user_context.user_id)
        if not result.success:
            raise ValidationException(result.error_message, result.validation_errors)
        coupon: Coupon = result.entity

        if find_entity(COUPONS, {"code": coupon.code}, Coupon):
            raise ConflictException(f"Coupon '{coupon.code}' already exists")
        try:
            store_new(COUPONS, coupon, user_context.user_id)
        except ValueError:
            raise ConflictException(f"Coupon '{coupon.code}' already exists")

        logger.info("Coupon created", extra={"coupon_code": coupon.code, "admin_id": user_context.user_id})
        return jsonify(_coupon_response(coupon, user_context)), 201


@coupons_bp.post('/validate')
@require_jwt
@require_permission("coupon:apply")
@validate_body(CouponPreviewRequest)
def preview_coupon(user_context: UserContext, preview_request: CouponPreviewRequest):
    """
    Check a code against the cart before checkout.

    The coupon applies after the wholesale discount, as it does when the
    order is placed. Invalid coupons answer 200 with ``valid`` false so the
    cart can show the reasons inline.
    """
    with tracer.start_as_current_span("coupons.validate", attributes={"user.id": user_context.user_id}) as span:
        code = coupon_domain.normalize_code(preview_request.code)
        coupon = find_entity(COUPONS, {"code": code}, Coupon)
        subtotal = round(
            preview_request.subtotal - catalog.wholesale_discount(preview_request.subtotal, user_context.role), 2
        )
        redemptions = count_coupon_redemptions(coupon.id, user_context.user_id) if coupon else 0

        check = coupon_domain.check_coupon(coupon, subtotal, redemptions)
        span.set_attribute("coupon.valid", check.is_valid)
        if not check.is_valid:
            return jsonify({"valid": False, "code": code, "discount": 0.0, "errors": check.errors}), 200

        return jsonify({
            "valid": True,
            "code": code,
            "discount": coupon_domain.calculate_discount(coupon, subtotal),
            "description": coupon.description,
            "errors": []
        }), 200


@coupons_bp.patch('/<coupon_id>')
@require_jwt
@require_permission("coupon:manage")
@validate_body(UpdateCouponRequest)
def update_coupon(user_context: UserContext, update_request: UpdateCouponRequest, path: CouponPath):
    with tracer.start_as_current_span("coupons.update", attributes={"coupon.id": path.coupon_id}):
        changes = update_request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationException("No changes provided")

        coupon = load_entity(COUPONS, path.coupon_id, Coupon, "Coupon")
        try:
            updated = Coupon.model_validate({**coupon.model_dump(), **changes})
        except ValueError as e:
            raise ValidationException("Invalid coupon", [str(e)])
        updated.update_timestamp(user_context.user_id)
        store_changes(COUPONS, updated, user_context.user_id)

        logger.info(
            "Coupon updated",
            extra={"coupon_code": updated.code, "fields": sorted(changes), "admin_id": user_context.user_id}
        )
        return jsonify(_coupon_response(updated, user_context)), 200


@coupons_bp.delete('/<coupon_id>')
@require_jwt
@require_permission("coupon:manage")
def delete_coupon(user_context: UserContext, path: CouponPath):
    """Soft delete; orders keep the code they were placed with."""
    with tracer.start_as_current_span("coupons.delete", attributes={"coupon.id": path.coupon_id}):
        coupon = load_entity(COUPONS, path.coupon_id, Coupon, "Coupon")
        current_app.mongodb_service.soft_delete(COUPONS, coupon.id, user_context.user_id)
        logger.info("Coupon deleted", extra={"coupon_code": coupon.code, "admin_id": user_context.user_id})
        return '', 204
