# SPDX-License-Identifier: Apache-2.0

"""
Tests for coupon discounts, redemption rules and promotion targeting.
"""

from datetime import datetime, timedelta

import pytest

from entregas.domain import coupons
from entregas.models.entities import Coupon, Promotion
from entregas.models.requests import CouponRequest

NOW = datetime(2026, 3, 10, 12, 0)


def coupon(**overrides):
    fields = dict(
        code="agua20",
        discount_type="percentage",
        discount_value=20,
        valid_from=NOW - timedelta(days=1),
        valid_until=NOW + timedelta(days=30)
    )
    fields.update(overrides)
    return Coupon(**fields)


class TestDiscount:

    def test_percentage(self):
        assert coupons.calculate_discount(coupon(), 114.75) == 22.95

    def test_percentage_is_capped(self):
        assert coupons.calculate_discount(coupon(max_discount=10.0), 114.75) == 10.0

    def test_fixed_never_exceeds_subtotal(self):
        assert coupons.calculate_discount(coupon(discount_type="fixed", discount_value=50), 30.0) == 30.0


class TestCheckCoupon:

    def test_valid(self):
        assert coupons.check_coupon(coupon(), 100.0, now=NOW).is_valid

    def test_unknown(self):
        assert coupons.check_coupon(None, 100.0).errors == ["Coupon not found"]

    @pytest.mark.parametrize("overrides,redemptions,subtotal,error", [
        ({"is_active": False}, 0, 100.0, "Coupon is not active"),
        ({"valid_from": NOW + timedelta(days=1)}, 0, 100.0, "Coupon is not valid yet"),
        ({"valid_from": NOW - timedelta(days=9), "valid_until": NOW - timedelta(days=1)}, 0, 100.0,
         "Coupon has expired"),
        ({"usage_limit": 5, "usage_count": 5}, 0, 100.0, "Coupon usage limit reached"),
        ({}, 1, 100.0, "You have already used this coupon"),
        ({"min_order_value": 150.0}, 0, 100.0, "Minimum order value for this coupon is R$ 150.00"),
    ])
    def test_rejections(self, overrides, redemptions, subtotal, error):
        result = coupons.check_coupon(coupon(**overrides), subtotal, redemptions, now=NOW)

        assert not result.is_valid
        assert result.errors == [error]


class TestBuildCoupon:

    def test_code_is_normalized(self):
        result = coupons.build_coupon(CouponRequest(code=" gas10 ", discount_value=10), "admin-1", now=NOW)

        assert result.success
        assert result.entity.code == "GAS10"
        assert result.entity.valid_from == NOW

    def test_code_is_generated(self):
        result = coupons.build_coupon(CouponRequest(discount_type="fixed", discount_value=5), "admin-1")

        assert len(result.entity.code) == coupons.CODE_LENGTH
        assert result.entity.code.isalnum()

    def test_percentage_over_100_fails(self):
        result = coupons.build_coupon(CouponRequest(code="DEMAIS", discount_value=120), "admin-1")

        assert not result.success
        assert result.error_message == "Invalid coupon"

    def test_summary_marks_expired(self):
        expired = coupon(valid_from=NOW - timedelta(days=9), valid_until=NOW - timedelta(days=1))

        assert coupons.coupon_summary(expired, now=NOW)["is_expired"] is True


class TestPromotions:

    def promotion(self, **overrides):
        fields = dict(
            title="Gás com frete grátis",
            valid_from=NOW - timedelta(days=1),
            valid_until=NOW + timedelta(days=7)
        )
        fields.update(overrides)
        return Promotion(**fields)

    def test_targets_role_or_everyone(self):
        everyone = self.promotion()
        wholesale = self.promotion(target_role="wholesale")
        drivers = self.promotion(target_role="driver")

        assert coupons.promotions_for_role([everyone, wholesale, drivers], "wholesale", now=NOW) == [
            everyone, wholesale
        ]

    def test_inactive_and_past_are_hidden(self):
        inactive = self.promotion(is_active=False)
        past = self.promotion(valid_from=NOW - timedelta(days=9), valid_until=NOW - timedelta(days=2))

        assert coupons.promotions_for_role([inactive, past], "client", now=NOW) == []
