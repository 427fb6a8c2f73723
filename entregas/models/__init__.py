# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the delivery platform.
"""

# Base models
from .base import BaseEntity, to_document, from_document

# Enumerations
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
    DriverRank
)

# Core entities
from .entities import (
    Profile,
    OrderItem,
    StatusChange,
    Order,
    RejectionLog,
    Rating,
    DriverStats,
    WalletTransaction,
    WithdrawalRequest,
    Notification,
    PushSubscription,
    DeliveryConfig,
    UserContext
)

# Request models
from .requests import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    UpdateProfileRequest,
    OrderItemRequest,
    CreateOrderRequest,
    OrderStatusRequest,
    CancelOrderRequest,
    RejectOrderRequest,
    CreateRatingRequest,
    CreateWithdrawalRequest,
    RejectWithdrawalRequest,
    PushSubscriptionRequest,
    ShippingQuoteRequest,
    DeliveryConfigRequest,
    UpdateDeliveryConfigRequest
)

# Response models
from .responses import (
    HalLink,
    AuthTokenResponse,
    RankProgress,
    DriverStatsResponse,
    WalletResponse
)

__all__ = [
    # Base models
    "BaseEntity",
    "to_document",
    "from_document",

    # Enumerations
    "UserRole",
    "DocumentType",
    "ProfileStatus",
    "VehicleType",
    "OrderStatus",
    "DeliveryMethod",
    "TransactionType",
    "PaymentMethod",
    "WithdrawalStatus",
    "NotificationType",
    "DeviceType",
    "DriverRank",

    # Core entities
    "Profile",
    "OrderItem",
    "StatusChange",
    "Order",
    "RejectionLog",
    "Rating",
    "DriverStats",
    "WalletTransaction",
    "WithdrawalRequest",
    "Notification",
    "PushSubscription",
    "DeliveryConfig",
    "UserContext",

    # Request models
    "RegisterRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "UpdateProfileRequest",
    "OrderItemRequest",
    "CreateOrderRequest",
    "OrderStatusRequest",
    "CancelOrderRequest",
    "RejectOrderRequest",
    "CreateRatingRequest",
    "CreateWithdrawalRequest",
    "RejectWithdrawalRequest",
    "PushSubscriptionRequest",
    "ShippingQuoteRequest",
    "DeliveryConfigRequest",
    "UpdateDeliveryConfigRequest",

    # Response models
    "HalLink",
    "AuthTokenResponse",
    "RankProgress",
    "DriverStatsResponse",
    "WalletResponse"
]
