# SPDX-License-Identifier: Apache-2.0

"""
Product catalog rules: server-side pricing, stock checks and CSV import.

Order lines are always priced from the stored product. The client only
chooses products and quantities.
"""

import csv
import io
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..models.entities import OrderItem, Product
from ..models.enums import UserRole
from ..models.requests import OrderItemRequest
from .results import WorkflowResult

# Wholesale accounts pay 85% of the retail price
WHOLESALE_DISCOUNT_RATE = 0.15

CSV_TEMPLATE = "nome,categoria,preco,estoque,descricao,imagem\n"

_CSV_FIELDS = {
    "nome": "name",
    "categoria": "category",
    "preco": "price",
    "preço": "price",
    "estoque": "stock",
    "descricao": "description",
    "descrição": "description",
    "imagem": "image_url",
    "image_url": "image_url",
}


def _value(enum_or_str):
    return getattr(enum_or_str, 'value', enum_or_str)


def wholesale_price(price: float) -> float:
    return round(price * (1 - WHOLESALE_DISCOUNT_RATE), 2)


def wholesale_discount(subtotal: float, role: str) -> float:
    """Reduction granted to wholesale accounts on the item subtotal."""
    if _value(role) != UserRole.WHOLESALE.value:
        return 0.0
    return round(subtotal * WHOLESALE_DISCOUNT_RATE, 2)


def catalog_entry(product: Product) -> Dict[str, Any]:
    """Public product representation with the wholesale price alongside."""
    data = product.to_public_dict()
    data["wholesale_price"] = wholesale_price(product.price)
    data["in_stock"] = product.stock > 0
    return data


def merge_quantities(items: Iterable[OrderItemRequest]) -> Dict[str, int]:
    """Total quantity per product, in first-seen order."""
    quantities: Dict[str, int] = {}
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


def price_items(quantities: Dict[str, int], products: Dict[str, Product]) -> WorkflowResult:
    """
    Build order lines from catalog products.

    Args:
        quantities: Requested units per product ID
        products: Stored products keyed by ID; missing IDs are unknown

    Returns:
        WorkflowResult whose entity is the list of OrderItem lines
    """
    errors: List[str] = []
    lines: List[OrderItem] = []

    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None or product.is_deleted() or not product.is_active:
            errors.append(f"Product '{product_id}' is not available")
            continue
        if product.stock < quantity:
            errors.append(f"Only {product.stock} units of '{product.name}' in stock")
            continue
        lines.append(OrderItem(product_id=product.id, name=product.name, price=product.price, quantity=quantity))

    if errors:
        return WorkflowResult.fail("Some items cannot be ordered", errors)
    return WorkflowResult.ok(lines)


def _parse_price(raw: str) -> Optional[float]:
    cleaned = raw.replace("R$", "").strip().replace(",", ".")
    try:
        price = float(cleaned)
    except ValueError:
        return None
    return price if math.isfinite(price) else None


def _parse_stock(raw: str) -> int:
    try:
        return max(int(raw.strip()), 0)
    except ValueError:
        return 0


def parse_product_csv(text: str, created_by: Optional[str] = None) -> Tuple[List[Product], List[str]]:
    """
    Read products from a CSV export in the Portuguese template layout.

    Headers are matched case-insensitively (``nome``, ``categoria``,
    ``preco``, ``estoque``, ``descricao``, ``imagem``). Prices accept the
    ``R$ 12,50`` form. Rows without a name, category or a non-negative price
    are skipped and reported by line number.

    Returns:
        Tuple of (products, skipped row messages)
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    try:
        header = next(reader)
    except StopIteration:
        return [], ["File is empty"]

    columns = [_CSV_FIELDS.get(name.strip().lower()) for name in header]
    products: List[Product] = []
    skipped: List[str] = []

    for line_number, row in enumerate(reader, start=2):
        if not any(value.strip() for value in row):
            continue

        fields: Dict[str, str] = {}
        for column, value in zip(columns, row):
            if column:
                fields[column] = value.strip()

        price = _parse_price(fields.get("price", ""))
        if not fields.get("name") or not fields.get("category") or price is None or price < 0:
            skipped.append(f"Line {line_number}: name, category and a valid price are required")
            continue

        try:
            product = Product(
                name=fields["name"],
                category=fields["category"],
                price=round(price, 2),
                stock=_parse_stock(fields.get("stock", "")),
                description=fields.get("description") or None,
                image_url=fields.get("image_url") or None,
                created_by=created_by,
                updated_by=created_by
            )
        except ValidationError:
            skipped.append(f"Line {line_number}: invalid product fields")
            continue
        products.append(product)

    return products, skipped
