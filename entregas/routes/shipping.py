# SPDX-License-Identifier: Apache-2.0

"""
Shipping endpoints: CEP address lookup, delivery quotes and regional pricing.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..domain import orders as order_domain
from ..models.base import from_document
from ..models.entities import DeliveryConfig, UserContext
from ..models.requests import (
    CepPath,
    DeliveryConfigPath,
    DeliveryConfigRequest,
    ShippingQuoteRequest,
    UpdateDeliveryConfigRequest
)
from ..services.cep import CepLookupError, InvalidCepError
from ..services.mongodb import DELIVERY_CONFIGS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
    ValidationException
)
from ..utils.context import find_entity, load_entity, store_changes, store_new

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

shipping_tag = Tag(name="Shipping", description="CEP lookup, delivery quotes and regional pricing")
shipping_bp = APIBlueprint('shipping', __name__, url_prefix='/api/shipping', abp_tags=[shipping_tag])


def _config_response(config: DeliveryConfig, user_context: UserContext) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        config.to_public_dict(), "delivery_config", user_context.permissions, user_context.user_id
    )


@shipping_bp.get('/cep/<cep>')
def lookup_cep(path: CepPath):
    """
    Address for a CEP.

    Public because the sign-up forms fill the address before an account exists.
    """
    cep = path.cep
    with tracer.start_as_current_span("shipping.lookup_cep"):
        try:
            address = current_app.cep_service.lookup(cep)
        except InvalidCepError as e:
            raise ValidationException(str(e))
        except CepLookupError as e:
            raise ServiceUnavailableException(str(e))

        if address is None:
            raise NotFoundException(f"CEP '{cep}' not found")
        return jsonify(address), 200


@shipping_bp.post('/quote')
@require_jwt
@require_permission("shipping:quote")
@validate_body(ShippingQuoteRequest)
def quote(user_context: UserContext, quote_request: ShippingQuoteRequest):
    with tracer.start_as_current_span("shipping.quote", attributes={"shipping.region": quote_request.region}):
        config = find_entity(DELIVERY_CONFIGS, {"region": quote_request.region}, DeliveryConfig)
        method = getattr(quote_request.delivery_method, 'value', quote_request.delivery_method)

        fee, error = order_domain.calculate_delivery_fee(config, quote_request.distance_km, method)
        if error:
            raise ValidationException(error)

        return jsonify({
            "region": quote_request.region,
            "distance_km": quote_request.distance_km,
            "delivery_method": method,
            "delivery_fee": fee
        }), 200


@shipping_bp.get('/configs')
@require_jwt
def list_configs(user_context: UserContext):
    """Regional pricing. Only admins see inactive regions."""
    with tracer.start_as_current_span("shipping.list_configs"):
        manage = user_context.has_permission("delivery_config:manage")
        filters = None if manage else {"isActive": True}

        documents = current_app.mongodb_service.find(DELIVERY_CONFIGS, filters, sort_by="region", sort_order=1)
        items = [from_document(DeliveryConfig, doc).to_public_dict() for doc in documents]
        response = current_app.hal_formatter.format_collection(
            items,
            "delivery_config",
            len(items),
            1,
            max(len(items), 1),
            "/api/shipping/configs",
            user_context.permissions,
            user_context.user_id
        )
        return jsonify(response), 200


@shipping_bp.post('/configs')
@require_jwt
@require_permission("delivery_config:manage")
@validate_body(DeliveryConfigRequest)
def create_config(user_context: UserContext, config_request: DeliveryConfigRequest):
    with tracer.start_as_current_span("shipping.create_config", attributes={"shipping.region": config_request.region}):
        if find_entity(DELIVERY_CONFIGS, {"region": config_request.region}, DeliveryConfig):
            raise ConflictException(f"Region '{config_request.region}' already has a configuration")

        config = DeliveryConfig(
            **config_request.model_dump(),
            created_by=user_context.user_id,
            updated_by=user_context.user_id
        )
        try:
            store_new(DELIVERY_CONFIGS, config, user_context.user_id)
        except ValueError:
            raise ConflictException(f"Region '{config_request.region}' already has a configuration")

        logger.info("Delivery config created", extra={"region": config.region, "admin_id": user_context.user_id})
        return jsonify(_config_response(config, user_context)), 201


@shipping_bp.patch('/configs/<config_id>')
@require_jwt
@require_permission("delivery_config:manage")
@validate_body(UpdateDeliveryConfigRequest)
def update_config(
    user_context: UserContext,
    update_request: UpdateDeliveryConfigRequest,
    path: DeliveryConfigPath
):
    config_id = path.config_id
    with tracer.start_as_current_span("shipping.update_config", attributes={"config.id": config_id}):
        changes = update_request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationException("No changes provided")

        config = load_entity(DELIVERY_CONFIGS, config_id, DeliveryConfig, "Delivery config")
        updated = config.model_copy(update=changes)
        updated.update_timestamp(user_context.user_id)
        store_changes(DELIVERY_CONFIGS, updated, user_context.user_id)

        logger.info(
            "Delivery config updated",
            extra={"region": updated.region, "fields": sorted(changes), "admin_id": user_context.user_id}
        )
        return jsonify(_config_response(updated, user_context)), 200


@shipping_bp.delete('/configs/<config_id>')
@require_jwt
@require_permission("delivery_config:manage")
def delete_config(user_context: UserContext, path: DeliveryConfigPath):
    config_id = path.config_id
    with tracer.start_as_current_span("shipping.delete_config", attributes={"config.id": config_id}):
        if not current_app.mongodb_service.soft_delete(DELIVERY_CONFIGS, config_id, user_context.user_id):
            raise NotFoundException(f"Delivery config '{config_id}' not found")

        logger.info("Delivery config deleted", extra={"config_id": config_id, "admin_id": user_context.user_id})
        return '', 204
