# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the delivery platform.
"""

from enum import Enum


class UserRole(str, Enum):
    """Portal a profile belongs to."""
    CLIENT = "client"
    WHOLESALE = "wholesale"
    DRIVER = "driver"
    ADMIN = "admin"


class DocumentType(str, Enum):
    """Brazilian taxpayer document kinds."""
    CPF = "cpf"
    CNPJ = "cnpj"


class ProfileStatus(str, Enum):
    """Derived approval state of a profile."""
    PENDING = "pending"
    APPROVED = "approved"
    BLOCKED = "blocked"


class VehicleType(str, Enum):
    """Vehicles accepted for driver registration."""
    MOTORCYCLE = "motocicleta"
    BICYCLE = "bicicleta"
    CAR = "carro"
    VAN = "van"


class OrderStatus(str, Enum):
    """Order workflow status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DRIVER_ASSIGNED = "driver_assigned"
    PICKED_UP = "picked_up"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeliveryMethod(str, Enum):
    """How the order reaches the client."""
    DELIVERY = "delivery"
    PICKUP = "pickup"


class TransactionType(str, Enum):
    """Driver wallet movement direction."""
    CREDIT = "credit"
    DEBIT = "debit"


class PaymentMethod(str, Enum):
    """Withdrawal payout channel."""
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"


class WithdrawalStatus(str, Enum):
    """Withdrawal review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    """In-app notification categories."""
    ORDER_UPDATE = "order_update"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    RATING = "rating"
    PROMOTION = "promotion"
    SYSTEM = "system"


class DeviceType(str, Enum):
    """Push subscription device family."""
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"


class DriverRank(str, Enum):
    """Driver gamification tiers, lowest first."""
    INICIANTE = "Iniciante"
    BRONZE = "Bronze"
    PRATA = "Prata"
    OURO = "Ouro"
    PLATINA = "Platina"
    DIAMANTE = "Diamante"


class DiscountType(str, Enum):
    """How a coupon reduces the order subtotal."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"
