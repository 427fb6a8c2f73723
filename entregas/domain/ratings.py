# SPDX-License-Identifier: Apache-2.0

"""
Rating rules for delivered orders.
"""

from typing import List

from ..models.entities import Order, Rating
from ..models.enums import OrderStatus
from ..models.requests import CreateRatingRequest
from .results import ValidationResult

SCORE_FIELDS = ("driver_rating", "delivery_rating", "app_rating")
MAX_COMMENT_LENGTH = 500


def _is_valid_score(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def validate_rating(request: CreateRatingRequest, order: Order, client_id: str) -> ValidationResult:
    """
    Check that ``client_id`` may rate ``order`` with the given scores.

    The order must be delivered, belong to the client and have a driver.
    Every score is an integer from 1 to 5.
    """
    errors: List[str] = []

    if order.client_id != client_id:
        errors.append("Order belongs to another client")
    if order.status != OrderStatus.DELIVERED.value:
        errors.append("Only delivered orders can be rated")
    if not order.driver_id:
        errors.append("Order has no driver to rate")

    for field_name in SCORE_FIELDS:
        if not _is_valid_score(getattr(request, field_name)):
            errors.append(f"{field_name} must be an integer between 1 and 5")

    if request.comment and len(request.comment) > MAX_COMMENT_LENGTH:
        errors.append(f"Comment must have at most {MAX_COMMENT_LENGTH} characters")

    return ValidationResult.from_errors(errors)


def build_rating(request: CreateRatingRequest, order: Order, client_id: str) -> Rating:
    comment = request.comment.strip() if request.comment else None
    return Rating(
        order_id=order.id,
        client_id=client_id,
        driver_id=order.driver_id,
        driver_rating=request.driver_rating,
        delivery_rating=request.delivery_rating,
        app_rating=request.app_rating,
        comment=comment or None,
        created_by=client_id,
        updated_by=client_id
    )
