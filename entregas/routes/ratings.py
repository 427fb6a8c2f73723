# SPDX-License-Identifier: Apache-2.0

"""
Rating endpoints: clients rate delivered orders, admins and drivers read them.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..domain import ranking
from ..domain import ratings as rating_domain
from ..models.base import from_document
from ..models.entities import Order, Rating, UserContext
from ..models.enums import NotificationType
from ..models.requests import CreateRatingRequest, DriverPath
from ..services.mongodb import ORDERS, RATINGS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    ValidationException
)
from ..utils.context import load_driver_stats, load_entity, save_driver_stats, store_new
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ratings_tag = Tag(name="Ratings", description="Delivery ratings and driver reputation")
ratings_bp = APIBlueprint('ratings', __name__, url_prefix='/api/ratings', abp_tags=[ratings_tag])


@ratings_bp.post('')
@require_jwt
@require_permission("rating:create")
@validate_body(CreateRatingRequest)
def create_rating(user_context: UserContext, rating_request: CreateRatingRequest):
    """Rate a delivered order. Each order takes a single rating."""
    with tracer.start_as_current_span(
        "ratings.create",
        attributes={"order.id": rating_request.order_id, "user.id": user_context.user_id}
    ) as span:
        order = load_entity(ORDERS, rating_request.order_id, Order, "Order")
        if order.client_id != user_context.user_id:
            raise AuthorizationException("Order belongs to another client")

        check = rating_domain.validate_rating(rating_request, order, user_context.user_id)
        if not check.is_valid:
            raise ValidationException("Invalid rating", check.errors)

        mongodb_service = current_app.mongodb_service
        if mongodb_service.find_one_by(RATINGS, {"orderId": order.id}):
            raise ConflictException("Order was already rated")

        rating = rating_domain.build_rating(rating_request, order, user_context.user_id)
        try:
            store_new(RATINGS, rating, user_context.user_id)
        except ValueError:
            raise ConflictException("Order was already rated")

        save_driver_stats(
            ranking.record_rating(load_driver_stats(rating.driver_id), rating.driver_rating),
            user_context.user_id
        )
        span.set_attribute("rating.driver_rating", rating.driver_rating)

        logger.info(
            "Order rated",
            extra={"order_id": order.id, "driver_id": rating.driver_id, "driver_rating": rating.driver_rating}
        )

        current_app.notifier.notify(
            rating.driver_id,
            "Nova avaliação",
            f"Você recebeu nota {rating.driver_rating} no pedido #{order.id[-6:]}.",
            NotificationType.RATING.value,
            {"order_id": order.id, "rating_id": rating.id}
        )

        response = current_app.hal_formatter.format_resource(
            rating.to_public_dict(), "rating", user_context.permissions, user_context.user_id
        )
        return jsonify(response), 201


@ratings_bp.get('')
@require_jwt
@require_permission("rating:read_all")
def list_ratings(user_context: UserContext):
    """Paginated ratings for admins; ``driver_id`` narrows the list."""
    with tracer.start_as_current_span("ratings.list", attributes={"user.id": user_context.user_id}):
        pagination = RequestParser.get_pagination_params()
        query = RequestParser.get_filter_params(allowed_filters=["driver_id"])
        filters = {"driverId": query["driver_id"]} if query.get("driver_id") else {}

        result = current_app.mongodb_service.paginate(
            RATINGS,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters=filters
        )
        items = [from_document(Rating, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "rating",
            result.total,
            result.page,
            result.page_size,
            "/api/ratings",
            user_context.permissions,
            user_context.user_id,
            query
        )
        return jsonify(response), 200


@ratings_bp.get('/driver/<driver_id>')
@require_jwt
def list_driver_ratings(user_context: UserContext, path: DriverPath):
    """Ratings received by a driver with the running average."""
    driver_id = path.driver_id
    with tracer.start_as_current_span("ratings.driver", attributes={"driver.id": driver_id}):
        is_self = driver_id == user_context.user_id
        if not (
            user_context.has_permission("rating:read_all")
            or (is_self and user_context.has_permission("rating:read_own"))
        ):
            raise AuthorizationException("You cannot read ratings of this driver")

        pagination = RequestParser.get_pagination_params()
        result = current_app.mongodb_service.paginate(
            RATINGS,
            page=pagination["page"],
            page_size=pagination["page_size"],
            filters={"driverId": driver_id}
        )
        stats = load_driver_stats(driver_id)

        items = [from_document(Rating, doc).to_public_dict() for doc in result.items]
        response = current_app.hal_formatter.format_collection(
            items,
            "rating",
            result.total,
            result.page,
            result.page_size,
            f"/api/ratings/driver/{driver_id}",
            user_context.permissions,
            user_context.user_id
        )
        response["average_rating"] = stats.average_rating
        response["rating_count"] = stats.rating_count
        return jsonify(response), 200
