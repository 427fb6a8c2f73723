# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the delivery platform.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic.alias_generators import to_camel

from .base import BaseEntity
from .enums import (
    UserRole,
    DocumentType,
    ProfileStatus,
    VehicleType,
    OrderStatus,
    DeliveryMethod,
    TransactionType,
    PaymentMethod,
    WithdrawalStatus,
    NotificationType,
    DeviceType,
    DiscountType
)

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

embedded_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    use_enum_values=True,
    validate_default=True
)


class Profile(BaseEntity):
    """User profile for every portal (client, wholesale, driver, admin)."""

    email: str = Field(..., description="Login e-mail")
    password_hash: str = Field(..., description="bcrypt password hash")
    full_name: str = Field(..., min_length=3, max_length=100, description="Full name")
    role: UserRole = Field(..., description="Portal role")
    phone: Optional[str] = Field(None, description="Formatted phone number")
    document: Optional[str] = Field(None, description="Formatted CPF or CNPJ")
    document_type: Optional[DocumentType] = Field(None, description="Kind of document")
    company_name: Optional[str] = Field(None, max_length=200, description="Wholesale company name")
    address: Optional[str] = Field(None, min_length=5, max_length=200, description="Street address")
    city: Optional[str] = Field(None, min_length=2, max_length=100, description="City")
    state: Optional[str] = Field(None, min_length=2, max_length=2, description="UF code")
    cep: Optional[str] = Field(None, description="Formatted postal code")
    cnh_number: Optional[str] = Field(None, description="Driver licence number")
    cnh_image_url: Optional[str] = Field(None, description="Driver licence image")
    vehicle_type: Optional[VehicleType] = Field(None, description="Driver vehicle")
    vehicle_plate: Optional[str] = Field(None, description="Vehicle plate")
    avatar_url: Optional[str] = Field(None, description="Avatar image")
    is_approved: bool = Field(default=False, description="Approved by an admin")
    is_blocked: bool = Field(default=False, description="Blocked by an admin")
    rejection_count: int = Field(default=0, ge=0, description="Orders rejected by this driver")
    work_policy_accepted_at: Optional[datetime] = Field(None, description="Driver work policy acceptance")
    privacy_policy_accepted_at: Optional[datetime] = Field(None, description="Privacy policy acceptance")
    last_login: Optional[datetime] = Field(None, description="Last login timestamp")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if not re.match(EMAIL_PATTERN, v.lower()):
            raise ValueError('Invalid email format')
        return v.lower()

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        """Validate profile name."""
        if not v.strip():
            raise ValueError('Full name cannot be empty')
        return v.strip()

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        if v is None:
            return v
        return v.upper()

    @model_validator(mode='after')
    def validate_approval_state(self):
        """An approved profile can never be blocked."""
        if self.is_approved and self.is_blocked:
            raise ValueError('Approved profiles cannot be blocked')
        return self

    @property
    def status(self) -> str:
        """Derived approval status."""
        if self.is_blocked:
            return ProfileStatus.BLOCKED.value
        if self.is_approved:
            return ProfileStatus.APPROVED.value
        return ProfileStatus.PENDING.value

    def is_active_driver(self) -> bool:
        """Check if the profile may take deliveries."""
        return (
            self.role == UserRole.DRIVER
            and self.is_approved
            and not self.is_blocked
            and not self.is_deleted()
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Public representation without the password hash."""
        data = self.model_dump(mode='json', exclude={'password_hash'})
        data['status'] = self.status
        return data


class OrderItem(BaseModel):
    """Line item of an order."""

    model_config = embedded_config

    product_id: str = Field(..., description="Product identifier")
    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., ge=1, description="Quantity")

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)


class StatusChange(BaseModel):
    """Entry of an order's status history."""

    model_config = embedded_config

    status: OrderStatus
    changed_by: str
    changed_at: datetime = Field(default_factory=datetime.utcnow)
    note: Optional[str] = None


class Order(BaseEntity):
    """Client order and its delivery."""

    client_id: str = Field(..., description="Client profile ID")
    driver_id: Optional[str] = Field(None, description="Assigned driver profile ID")
    items: List[OrderItem] = Field(..., min_length=1, description="Ordered items")
    subtotal: float = Field(..., ge=0, description="Sum of item totals")
    delivery_fee: float = Field(default=0.0, ge=0, description="Delivery fee")
    wholesale_discount: float = Field(default=0.0, ge=0, description="Wholesale price reduction")
    coupon_discount: float = Field(default=0.0, ge=0, description="Coupon reduction")
    discount: float = Field(default=0.0, ge=0, description="Total reduction")
    coupon_id: Optional[str] = Field(None, description="Applied coupon ID")
    coupon_code: Optional[str] = Field(None, description="Applied coupon code")
    total: float = Field(..., ge=0, description="Subtotal plus delivery fee minus discount")
    delivery_method: DeliveryMethod = Field(default=DeliveryMethod.DELIVERY, description="Delivery or pickup")
    delivery_address: Optional[str] = Field(None, description="Delivery street address")
    delivery_cep: Optional[str] = Field(None, description="Delivery postal code")
    delivery_city: Optional[str] = Field(None, description="Delivery city")
    delivery_state: Optional[str] = Field(None, description="Delivery UF")
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, description="Store address for pickup")
    region: Optional[str] = Field(None, description="Delivery region used for pricing")
    distance_km: Optional[float] = Field(None, ge=0, description="Route distance")
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="Workflow status")
    status_history: List[StatusChange] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500, description="Client notes")
    driver_notes: Optional[str] = Field(None, max_length=500, description="Driver notes")
    issue_reported: Optional[str] = Field(None, max_length=500, description="Delivery issue")
    pickup_photo_url: Optional[str] = Field(None, description="Proof of pickup")
    delivery_photo_url: Optional[str] = Field(None, description="Proof of delivery")
    signature_data: Optional[str] = Field(None, description="Receiver signature (data URL)")
    estimated_delivery_at: Optional[datetime] = Field(None, description="Promised delivery time")
    delivered_at: Optional[datetime] = Field(None, description="Delivery timestamp")
    delivered_on_time: Optional[bool] = Field(None, description="Delivered before the estimate")
    cancellation_reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode='after')
    def validate_totals(self):
        """Total must equal subtotal plus delivery fee minus discount."""
        if abs(round(self.wholesale_discount + self.coupon_discount, 2) - self.discount) > 0.005:
            raise ValueError('Order discount must equal the wholesale and coupon discounts')
        if self.discount - self.subtotal > 0.005:
            raise ValueError('Order discount cannot exceed the subtotal')
        if abs(round(self.subtotal + self.delivery_fee - self.discount, 2) - self.total) > 0.005:
            raise ValueError('Order total must equal subtotal plus delivery fee minus discount')
        if self.delivery_method == DeliveryMethod.PICKUP and self.delivery_fee:
            raise ValueError('Pickup orders have no delivery fee')
        return self

    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class RejectionLog(BaseEntity):
    """Order declined by a driver."""

    driver_id: str = Field(..., description="Driver who rejected")
    order_id: str = Field(..., description="Rejected order")
    reason: Optional[str] = Field(None, max_length=500, description="Reason given by the driver")


class Rating(BaseEntity):
    """Client rating of a delivered order."""

    order_id: str
    client_id: str
    driver_id: str
    driver_rating: int = Field(..., ge=1, le=5)
    delivery_rating: int = Field(..., ge=1, le=5)
    app_rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class DriverStats(BaseEntity):
    """Aggregated driver performance counters."""

    driver_id: str
    total_deliveries: int = Field(default=0, ge=0)
    completed_deliveries: int = Field(default=0, ge=0)
    cancelled_deliveries: int = Field(default=0, ge=0)
    average_rating: float = Field(default=0.0, ge=0, le=5)
    rating_count: int = Field(default=0, ge=0)
    total_earnings: float = Field(default=0.0, ge=0)
    on_time_deliveries: int = Field(default=0, ge=0)
    late_deliveries: int = Field(default=0, ge=0)
    acceptance_rate: float = Field(default=0.0, ge=0, le=100)
    total_accepted: int = Field(default=0, ge=0)
    total_rejected: int = Field(default=0, ge=0)


class WalletTransaction(BaseEntity):
    """Driver wallet credit or debit."""

    driver_id: str
    order_id: Optional[str] = None
    withdrawal_id: Optional[str] = None
    type: TransactionType
    amount: float = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=200)


class WithdrawalRequest(BaseEntity):
    """Driver payout request reviewed by an admin."""

    driver_id: str
    amount: float = Field(..., gt=0)
    payment_method: PaymentMethod
    pix_key: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    bank_agency: Optional[str] = None
    status: WithdrawalStatus = Field(default=WithdrawalStatus.PENDING)
    rejection_reason: Optional[str] = Field(None, max_length=500)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_review_fields(self):
        if self.status == WithdrawalStatus.REJECTED and not self.rejection_reason:
            raise ValueError('Rejection reason is required when status is rejected')
        return self


class Notification(BaseEntity):
    """In-app notification shown in the notification center."""

    user_id: str
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    type: NotificationType = Field(default=NotificationType.SYSTEM)
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None


class PushSubscription(BaseEntity):
    """Device registered to receive push messages."""

    user_id: str
    token: str = Field(..., min_length=1)
    permission_granted: bool = True
    device_type: DeviceType = Field(default=DeviceType.WEB)
    user_role: UserRole
    user_agent: Optional[str] = None


class DeliveryConfig(BaseEntity):
    """Delivery pricing for a region."""

    region: str = Field(..., min_length=1, max_length=100)
    base_fee: float = Field(..., ge=0)
    per_km_fee: float = Field(..., ge=0)
    max_distance_km: float = Field(..., gt=0)
    is_active: bool = True


class Product(BaseEntity):
    """Catalog item. Orders are priced from ``price``, never from the client."""

    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    price: float = Field(..., ge=0, description="Retail unit price")
    stock: int = Field(default=0, ge=0, description="Units available")
    is_active: bool = True

    @field_validator('name', 'category')
    @classmethod
    def strip_text(cls, v):
        if not v.strip():
            raise ValueError('Value cannot be blank')
        return v.strip()


class Coupon(BaseEntity):
    """Discount code redeemed at checkout."""

    code: str = Field(..., min_length=3, max_length=30)
    description: Optional[str] = Field(None, max_length=200)
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    min_order_value: float = Field(default=0.0, ge=0)
    max_discount: Optional[float] = Field(None, gt=0, description="Cap for percentage coupons")
    usage_limit: Optional[int] = Field(None, ge=1, description="Redemptions across all users")
    usage_count: int = Field(default=0, ge=0)
    user_limit: int = Field(default=1, ge=1, description="Redemptions per user")
    valid_from: datetime = Field(default_factory=datetime.utcnow)
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()

    @model_validator(mode='after')
    def validate_rules(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError('Percentage discount cannot exceed 100')
        if self.valid_until is not None and self.valid_until <= self.valid_from:
            raise ValueError('Coupon must end after it starts')
        return self


class Promotion(BaseEntity):
    """Campaign announced to one portal role, or to everyone."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    discount_amount: Optional[float] = Field(None, gt=0)
    valid_from: datetime = Field(default_factory=datetime.utcnow)
    valid_until: datetime
    target_role: Optional[UserRole] = Field(None, description="None targets every role")
    is_active: bool = True

    @model_validator(mode='after')
    def validate_window(self):
        if self.valid_until <= self.valid_from:
            raise ValueError('Promotion must end after it starts')
        return self


class UserContext(BaseModel):
    """User context for request processing with authentication and authorization data."""

    user_id: str = Field(..., description="Authenticated profile ID")
    role: UserRole = Field(..., description="Profile role")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User display name")
    is_approved: bool = Field(default=False, description="Approval flag at token issue time")
    permissions: List[str] = Field(default_factory=list, description="User's effective permissions")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = ConfigDict(
        use_enum_values=True
    )

    def has_permission(self, permission: str) -> bool:
        """Check if user has a specific permission."""
        return permission in self.permissions

    def has_any_permission(self, permissions: List[str]) -> bool:
        """Check if user has any of the specified permissions."""
        return any(perm in self.permissions for perm in permissions)

    def has_all_permissions(self, permissions: List[str]) -> bool:
        """Check if user has all of the specified permissions."""
        return all(perm in self.permissions for perm in permissions)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
