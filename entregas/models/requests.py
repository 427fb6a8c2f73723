# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

These models check shape and ranges only. Brazilian document, phone and CEP
rules live in ``entregas.domain`` so they can be reused outside HTTP.
"""

import re
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .enums import (
    UserRole,
    DocumentType,
    VehicleType,
    OrderStatus,
    DeliveryMethod,
    PaymentMethod,
    DiscountType
)
from .entities import EMAIL_PATTERN


def _check_email(v: str) -> str:
    if not re.match(EMAIL_PATTERN, v.lower()):
        raise ValueError('Invalid email format')
    return v.lower()


def _check_password(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not any(c.isupper() for c in v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not any(c.islower() for c in v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not any(c.isdigit() for c in v):
        raise ValueError('Password must contain at least one digit')
    return v


class RegisterRequest(BaseModel):
    """Request model for self sign-up from the client, wholesale and driver portals."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., min_length=8, description="User password")
    full_name: str = Field(..., description="Full name")
    role: UserRole = Field(default=UserRole.CLIENT, description="Portal role")
    phone: Optional[str] = Field(None, description="Phone with DDD")
    document: Optional[str] = Field(None, description="CPF or CNPJ, formatted or not")
    document_type: Optional[DocumentType] = Field(None, description="Document kind")
    company_name: Optional[str] = Field(None, max_length=200, description="Wholesale company name")
    address: Optional[str] = Field(None, description="Street address")
    city: Optional[str] = Field(None, description="City")
    state: Optional[str] = Field(None, description="UF code")
    cep: Optional[str] = Field(None, description="Postal code")
    cnh_number: Optional[str] = Field(None, description="Driver licence number")
    vehicle_type: Optional[VehicleType] = Field(None, description="Driver vehicle")
    vehicle_plate: Optional[str] = Field(None, description="Vehicle plate")
    work_policy_accepted: bool = Field(default=False, description="Driver work policy accepted")
    privacy_policy_accepted: bool = Field(default=False, description="Privacy policy accepted")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        return _check_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """Validate password strength."""
        return _check_password(v)


class LoginRequest(BaseModel):
    """Request model for user authentication."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., description="User password")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        return _check_email(v)


class RefreshTokenRequest(BaseModel):
    """Request model for token refresh."""

    refresh_token: str = Field(..., description="Refresh token")


class UpdateProfileRequest(BaseModel):
    """Fields a user may change on their own profile."""

    full_name: Optional[str] = Field(None, description="Full name")
    phone: Optional[str] = Field(None, description="Phone with DDD")
    company_name: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = Field(None)
    city: Optional[str] = Field(None)
    state: Optional[str] = Field(None)
    cep: Optional[str] = Field(None)
    vehicle_type: Optional[VehicleType] = Field(None)
    vehicle_plate: Optional[str] = Field(None)
    avatar_url: Optional[str] = Field(None)
    cnh_image_url: Optional[str] = Field(None)


class OrderItemRequest(BaseModel):
    """Item line of a new order; name and price come from the catalog."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=999)


class CreateOrderRequest(BaseModel):
    """Request model for placing an order."""

    items: List[OrderItemRequest] = Field(..., min_length=1, description="Ordered items")
    delivery_method: DeliveryMethod = Field(default=DeliveryMethod.DELIVERY)
    delivery_address: Optional[str] = Field(None, max_length=200)
    delivery_cep: Optional[str] = Field(None)
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_state: Optional[str] = Field(None)
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    region: Optional[str] = Field(None, description="Delivery region used for pricing")
    distance_km: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=500)
    coupon_code: Optional[str] = Field(None, max_length=30)


class OrderStatusRequest(BaseModel):
    """Driver progress update with optional delivery proof."""

    status: OrderStatus = Field(..., description="Next status")
    pickup_photo_url: Optional[str] = None
    delivery_photo_url: Optional[str] = None
    signature_data: Optional[str] = None
    driver_notes: Optional[str] = Field(None, max_length=500)
    issue_reported: Optional[str] = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    """Request model for cancelling an order."""

    reason: Optional[str] = Field(None, max_length=500)


class RejectOrderRequest(BaseModel):
    """Request model for a driver declining an order."""

    reason: Optional[str] = Field(None, max_length=500)


class CreateRatingRequest(BaseModel):
    """Request model for rating a delivered order."""

    order_id: str = Field(..., min_length=1)
    driver_rating: int = Field(..., description="Driver score 1-5")
    delivery_rating: int = Field(..., description="Delivery score 1-5")
    app_rating: int = Field(..., description="App score 1-5")
    comment: Optional[str] = Field(None)


class CreateWithdrawalRequest(BaseModel):
    """Request model for a driver payout."""

    amount: float = Field(..., description="Amount in BRL")
    payment_method: PaymentMethod = Field(..., description="pix or bank_transfer")
    pix_key: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    bank_agency: Optional[str] = None


class RejectWithdrawalRequest(BaseModel):
    """Request model for rejecting a payout."""

    reason: str = Field(..., min_length=1, max_length=500, description="Reason for rejection")


class PushSubscriptionRequest(BaseModel):
    """Request model for registering a push token."""

    token: str = Field(..., min_length=1, description="Push provider token")
    permission_granted: bool = Field(default=True)


class ShippingQuoteRequest(BaseModel):
    """Request model for a delivery fee quote."""

    region: str = Field(..., min_length=1)
    distance_km: float = Field(default=0.0, ge=0)
    delivery_method: DeliveryMethod = Field(default=DeliveryMethod.DELIVERY)


class DeliveryConfigRequest(BaseModel):
    """Request model for creating a regional delivery configuration."""

    region: str = Field(..., min_length=1, max_length=100)
    base_fee: float = Field(..., ge=0)
    per_km_fee: float = Field(..., ge=0)
    max_distance_km: float = Field(..., gt=0)
    is_active: bool = True


class UpdateDeliveryConfigRequest(BaseModel):
    """Request model for updating a regional delivery configuration."""

    base_fee: Optional[float] = Field(None, ge=0)
    per_km_fee: Optional[float] = Field(None, ge=0)
    max_distance_km: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None


class ProductRequest(BaseModel):
    """Request model for adding a catalog product."""

    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(default=0, ge=0)
    is_active: bool = True


class UpdateProductRequest(BaseModel):
    """Request model for changing a catalog product."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class CouponRequest(BaseModel):
    """Request model for creating a coupon; a code is generated when omitted."""

    code: Optional[str] = Field(None, min_length=3, max_length=30)
    description: Optional[str] = Field(None, max_length=200)
    discount_type: DiscountType = Field(default=DiscountType.PERCENTAGE)
    discount_value: float = Field(..., gt=0)
    min_order_value: float = Field(default=0.0, ge=0)
    max_discount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_limit: int = Field(default=1, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True


class UpdateCouponRequest(BaseModel):
    """Request model for changing a coupon. The code itself is fixed."""

    description: Optional[str] = Field(None, max_length=200)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, gt=0)
    min_order_value: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    user_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponPreviewRequest(BaseModel):
    """Request model for checking a coupon against a cart subtotal."""

    code: str = Field(..., min_length=1, max_length=30)
    subtotal: float = Field(..., ge=0)


class PromotionRequest(BaseModel):
    """Request model for creating a promotion."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    discount_amount: Optional[float] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    target_role: Optional[UserRole] = None
    is_active: bool = True


class UpdatePromotionRequest(BaseModel):
    """Request model for changing a promotion."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    discount_amount: Optional[float] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    target_role: Optional[UserRole] = None
    is_active: Optional[bool] = None


# URL path parameters

class OrderPath(BaseModel):
    order_id: str = Field(..., description="Order ID")


class ProfilePath(BaseModel):
    profile_id: str = Field(..., description="Profile ID")


class DriverPath(BaseModel):
    driver_id: str = Field(..., description="Driver profile ID")


class NotificationPath(BaseModel):
    notification_id: str = Field(..., description="Notification ID")


class WithdrawalPath(BaseModel):
    withdrawal_id: str = Field(..., description="Withdrawal request ID")


class DeliveryConfigPath(BaseModel):
    config_id: str = Field(..., description="Delivery configuration ID")


class CepPath(BaseModel):
    cep: str = Field(..., description="Postal code, formatted or not")


class ProductPath(BaseModel):
    product_id: str = Field(..., description="Product ID")


class CouponPath(BaseModel):
    coupon_id: str = Field(..., description="Coupon ID")


class PromotionPath(BaseModel):
    promotion_id: str = Field(..., description="Promotion ID")
