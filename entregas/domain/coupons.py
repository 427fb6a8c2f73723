# SPDX-License-Identifier: Apache-2.0

"""
Coupon and promotion rules.

A coupon reduces the item subtotal of one order. Percentage coupons may be
capped by ``max_discount``; no coupon ever takes the subtotal below zero.
Promotions are announcements shown to one portal role or to all of them.
"""

import secrets
import string
from datetime import datetime
from typing import Iterable, List, Optional

from ..models.entities import Coupon, Promotion
from ..models.enums import DiscountType
from ..models.requests import CouponRequest, PromotionRequest
from .results import ValidationResult, WorkflowResult

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def _value(enum_or_str):
    return getattr(enum_or_str, 'value', enum_or_str)


def generate_coupon_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def calculate_discount(coupon: Coupon, subtotal: float) -> float:
    """Amount taken off ``subtotal``, rounded to cents."""
    if _value(coupon.discount_type) == DiscountType.PERCENTAGE.value:
        amount = subtotal * coupon.discount_value / 100
        if coupon.max_discount is not None:
            amount = min(amount, coupon.max_discount)
    else:
        amount = coupon.discount_value
    return round(min(amount, subtotal), 2)


def check_coupon(
    coupon: Optional[Coupon],
    subtotal: float,
    user_redemptions: int = 0,
    now: Optional[datetime] = None
) -> ValidationResult:
    """
    Decide whether a coupon can be redeemed on an order.

    Args:
        coupon: Stored coupon, None when the code is unknown
        subtotal: Order subtotal the coupon applies to
        user_redemptions: Orders this user already placed with the coupon
        now: Reference time, defaults to the current UTC time
    """
    if coupon is None or coupon.is_deleted():
        return ValidationResult.from_errors(["Coupon not found"])

    now = now or datetime.utcnow()
    errors: List[str] = []

    if not coupon.is_active:
        errors.append("Coupon is not active")
    if now < coupon.valid_from:
        errors.append("Coupon is not valid yet")
    if coupon.valid_until is not None and now > coupon.valid_until:
        errors.append("Coupon has expired")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        errors.append("Coupon usage limit reached")
    if user_redemptions >= coupon.user_limit:
        errors.append("You have already used this coupon")
    if subtotal < coupon.min_order_value:
        errors.append(f"Minimum order value for this coupon is R$ {coupon.min_order_value:.2f}")

    return ValidationResult.from_errors(errors)


def build_coupon(request: CouponRequest, admin_id: str, now: Optional[datetime] = None) -> WorkflowResult:
    """New coupon from an admin request; ``code`` is generated when missing."""
    data = request.model_dump(exclude_none=True)
    data["code"] = normalize_code(request.code) if request.code else generate_coupon_code()
    data.setdefault("valid_from", now or datetime.utcnow())
    try:
        coupon = Coupon(**data, created_by=admin_id, updated_by=admin_id)
    except ValueError as e:
        return WorkflowResult.fail("Invalid coupon", [str(e)])
    return WorkflowResult.ok(coupon)


def coupon_summary(coupon: Coupon, now: Optional[datetime] = None) -> dict:
    data = coupon.to_public_dict()
    now = now or datetime.utcnow()
    data["is_expired"] = coupon.valid_until is not None and now > coupon.valid_until
    return data


def build_promotion(request: PromotionRequest, admin_id: str, now: Optional[datetime] = None) -> WorkflowResult:
    data = request.model_dump(exclude_none=True)
    data.setdefault("valid_from", now or datetime.utcnow())
    try:
        promotion = Promotion(**data, created_by=admin_id, updated_by=admin_id)
    except ValueError as e:
        return WorkflowResult.fail("Invalid promotion", [str(e)])
    return WorkflowResult.ok(promotion)


def is_current(promotion: Promotion, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return (
        promotion.is_active
        and not promotion.is_deleted()
        and promotion.valid_from <= now <= promotion.valid_until
    )


def promotions_for_role(
    promotions: Iterable[Promotion],
    role: str,
    now: Optional[datetime] = None
) -> List[Promotion]:
    """Current promotions aimed at ``role`` or at everyone."""
    role = _value(role)
    return [
        promotion for promotion in promotions
        if is_current(promotion, now) and promotion.target_role in (None, role)
    ]
