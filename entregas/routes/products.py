# SPDX-License-Identifier: Apache-2.0

"""
Product catalog endpoints.

The catalog is public so the storefront can render before login. Admins
manage products one by one or import a CSV export from the store's
spreadsheet. Removing a product only deactivates it, since past orders
still point at it.
"""

import re

from flask import Response, request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..domain import catalog
from ..models.base import from_document
from ..models.entities import Product, UserContext
from ..models.requests import ProductPath, ProductRequest, UpdateProductRequest
from ..services.mongodb import PRODUCTS
from ..middleware.auth import require_jwt, require_permission
from ..middleware.validation import validate_body
from ..middleware.error_handler import NotFoundException, ValidationException
from ..utils.context import load_entity, store_changes, store_new
from ..utils.request import RequestParser

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

products_tag = Tag(name="Products", description="Catalog, stock and CSV import")
products_bp = APIBlueprint('products', __name__, url_prefix='/api/products', abp_tags=[products_tag])

MAX_IMPORT_BYTES = 1024 * 1024


def _product_response(product: Product, permissions=None, user_id=None) -> Dict[str, Any]:
    return current_app.hal_formatter.format_resource(
        catalog.catalog_entry(product), "product", permissions or [], user_id
    )


def _load_active(product_id: str) -> Product:
    product = load_entity(PRODUCTS, product_id, Product, "Product")
    if not product.is_active:
        raise NotFoundException(f"Product '{product_id}' not found")
    return product


@products_bp.get('')
def list_products():
    """
    Active products sorted by name.

    ``search`` matches the name case-insensitively and ``category`` narrows
    the list to one category.
    """
    with tracer.start_as_current_span("products.list") as span:
        query = RequestParser.get_filter_params(allowed_filters=["search", "category"])
        filters: Dict[str, Any] = {"isActive": True}
        if query.get("search"):
            filters["name"] = {"$regex": re.escape(query["search"]), "$options": "i"}
        if query.get("category"):
            filters["category"] = query["category"]

        documents = current_app.mongodb_service.find(PRODUCTS, filters, sort_by="name", sort_order=1)
        items = [catalog.catalog_entry(from_document(Product, doc)) for doc in documents]
        span.set_attribute("products.count", len(items))

        response = current_app.hal_formatter.format_collection(
            items, "product", len(items), 1, max(len(items), 1), "/api/products", [], filters=query
        )
        response["categories"] = sorted({item["category"] for item in items})
        return jsonify(response), 200


@products_bp.get('/import/template')
@require_jwt
@require_permission("product:manage")
def import_template(user_context: UserContext):
    return Response(
        catalog.CSV_TEMPLATE,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=produtos.csv"}
    )


@products_bp.get('/<product_id>')
def get_product(path: ProductPath):
    with tracer.start_as_current_span("products.get", attributes={"product.id": path.product_id}):
        return jsonify(_product_response(_load_active(path.product_id))), 200


@products_bp.post('')
@require_jwt
@require_permission("product:manage")
@validate_body(ProductRequest)
def create_product(user_context: UserContext, product_request: ProductRequest):
    with tracer.start_as_current_span("products.create", attributes={"user.id": user_context.user_id}):
        try:
            product = Product(
                **product_request.model_dump(),
                created_by=user_context.user_id,
                updated_by=user_context.user_id
            )
        except ValueError as e:
            raise ValidationException("Invalid product", [str(e)])

        store_new(PRODUCTS, product, user_context.user_id)
        logger.info("Product created", extra={"product_id": product.id, "admin_id": user_context.user_id})
        return jsonify(_product_response(product, user_context.permissions, user_context.user_id)), 201


@products_bp.patch('/<product_id>')
@require_jwt
@require_permission("product:manage")
@validate_body(UpdateProductRequest)
def update_product(user_context: UserContext, update_request: UpdateProductRequest, path: ProductPath):
    with tracer.start_as_current_span("products.update", attributes={"product.id": path.product_id}):
        changes = update_request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationException("No changes provided")

        product = load_entity(PRODUCTS, path.product_id, Product, "Product")
        try:
            updated = Product.model_validate({**product.model_dump(), **changes})
        except ValueError as e:
            raise ValidationException("Invalid product", [str(e)])
        updated.update_timestamp(user_context.user_id)
        store_changes(PRODUCTS, updated, user_context.user_id)

        logger.info(
            "Product updated",
            extra={"product_id": updated.id, "fields": sorted(changes), "admin_id": user_context.user_id}
        )
        return jsonify(_product_response(updated, user_context.permissions, user_context.user_id)), 200


@products_bp.delete('/<product_id>')
@require_jwt
@require_permission("product:manage")
def deactivate_product(user_context: UserContext, path: ProductPath):
    """Hide a product from the catalog; order history keeps pointing at it."""
    with tracer.start_as_current_span("products.deactivate", attributes={"product.id": path.product_id}):
        product = load_entity(PRODUCTS, path.product_id, Product, "Product")
        updated = product.model_copy(update={"is_active": False})
        updated.update_timestamp(user_context.user_id)
        store_changes(PRODUCTS, updated, user_context.user_id)

        logger.info("Product deactivated", extra={"product_id": product.id, "admin_id": user_context.user_id})
        return '', 204


@products_bp.post('/import')
@require_jwt
@require_permission("product:manage")
def import_products(user_context: UserContext):
    """
    Import products from CSV.

    Accepts a multipart upload in the ``file`` field or a raw ``text/csv``
    body. Valid rows are created; invalid ones are reported back by line.
    """
    with tracer.start_as_current_span("products.import", attributes={"user.id": user_context.user_id}) as span:
        upload = request.files.get('file')
        raw = upload.read() if upload is not None else request.get_data()
        if not raw:
            raise ValidationException("CSV file is required")
        if len(raw) > MAX_IMPORT_BYTES:
            raise ValidationException("CSV file is larger than 1 MB")

        try:
            text = raw.decode('utf-8')
        except UnicodeDecodeError:
            text = raw.decode('latin-1')

        products, skipped = catalog.parse_product_csv(text, user_context.user_id)
        for product in products:
            store_new(PRODUCTS, product, user_context.user_id)

        span.set_attributes({"import.created": len(products), "import.skipped": len(skipped)})
        logger.info(
            "Products imported",
            extra={"admin_id": user_context.user_id, "created": len(products), "skipped": len(skipped)}
        )
        return jsonify({
            "imported": len(products),
            "skipped": skipped,
            "_embedded": {"items": [catalog.catalog_entry(product) for product in products]}
        }), 201
