# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Entity loading and storing helpers for route handlers.

Routes work with pydantic entities; these helpers translate them to and from
the camelCase documents kept by MongoDBService.
"""

from bson import ObjectId
from flask import current_app
from typing import Any, Dict, Optional, Type, TypeVar
import logging

from ..models.base import BaseEntity, to_document, from_document
from ..models.entities import DriverStats, Profile, UserContext
from ..domain.ranking import new_driver_stats
from ..middleware.error_handler import NotFoundException
from ..models.enums import OrderStatus
from ..services.mongodb import DRIVER_STATS, ORDERS, PROFILES

logger = logging.getLogger(__name__)

E = TypeVar('E', bound=BaseEntity)


def load_entity(collection: str, entity_id: str, model_class: Type[E], label: str) -> E:
    """
    Load a live entity by ID.

    Raises:
        NotFoundException: Unknown, malformed or soft-deleted ID
    """
    document = current_app.mongodb_service.find_one(collection, entity_id)
    if document is None:
        raise NotFoundException(f"{label} '{entity_id}' not found")
    return from_document(model_class, document)


def find_entity(collection: str, filters: Dict[str, Any], model_class: Type[E]) -> Optional[E]:
    document = current_app.mongodb_service.find_one_by(collection, filters)
    return from_document(model_class, document) if document else None


def store_new(collection: str, entity: BaseEntity, user_id: str) -> str:
    """Insert a new entity and return its ID."""
    return current_app.mongodb_service.create(collection, to_document(entity), user_id)


def _changes(entity: BaseEntity) -> Dict[str, Any]:
    document = to_document(entity)
    document.pop("_id")
    # Creation metadata never changes after insert
    for key in ("createdAt", "createdBy"):
        document.pop(key, None)
    return document


def store_changes(collection: str, entity: BaseEntity, user_id: str) -> bool:
    """Persist every field of an existing entity."""
    return current_app.mongodb_service.update(collection, entity.id, _changes(entity), user_id)


def store_transition(collection: str, entity: BaseEntity, expected: Dict[str, Any], user_id: str) -> bool:
    """
    Persist ``entity`` only while the stored document still matches ``expected``.

    Returns False when another request changed the document first; nothing
    is written in that case.
    """
    document = _changes(entity)
    filters = {"_id": ObjectId(entity.id)}
    filters.update(expected)
    return current_app.mongodb_service.update_many(collection, filters, document, user_id) > 0


def current_profile(user_context: UserContext) -> Profile:
    """Profile of the authenticated caller."""
    return load_entity(PROFILES, user_context.user_id, Profile, "Profile")


def load_driver_stats(driver_id: str) -> DriverStats:
    """Stored stats for a driver, or a fresh zeroed record."""
    stats = find_entity(DRIVER_STATS, {"driverId": driver_id}, DriverStats)
    return stats or new_driver_stats(driver_id)


def save_driver_stats(stats: DriverStats, user_id: str) -> None:
    """Upsert driver stats and drop the cached dashboard copy."""
    existing = current_app.mongodb_service.find_one_by(DRIVER_STATS, {"driverId": stats.driver_id})
    if existing is None:
        store_new(DRIVER_STATS, stats, user_id)
    else:
        store_changes(DRIVER_STATS, stats.model_copy(update={"id": existing["id"]}), user_id)
    current_app.redis_service.invalidate_driver_stats(stats.driver_id)


def count_coupon_redemptions(coupon_id: str, client_id: str) -> int:
    """Orders the client placed with a coupon, cancelled ones excluded."""
    return current_app.mongodb_service.count(ORDERS, {
        "clientId": client_id,
        "couponId": coupon_id,
        "status": {"$ne": OrderStatus.CANCELLED.value}
    })
