"""Variant stock checks for checkout.

`products.color_stock` is a jsonb list of
`{"id": <color>, "stock": {"feminino": {...}, "masculino": {...}}}` where each
gender has `available` and `sizes`. Products without it fall back to the
legacy `colors` / `sizes` arrays.
"""

from dataclasses import dataclass
from typing import Any, Optional

from core.services.models import Product

GENDERS = ("feminino", "masculino")


@dataclass
class StockViolation:
    product_id: str
    color: str
    size: str

    def to_dict(self) -> dict[str, str]:
        return {"productId": self.product_id, "color": self.color, "size": self.size}


def _parse_color_stock(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def is_variant_in_stock(product: Product, color: str, size: str) -> bool:
    """
    A (color, size) pair is sellable when any gender of that color lists the
    size and is not explicitly unavailable.
    """
    entries = _parse_color_stock(product.color_stock)
    if entries:
        entry = next((e for e in entries if e.get("id") is not None and e.get("id") == color), None)
        if entry is None or not isinstance(entry.get("stock"), dict):
            return False
        for gender in GENDERS:
            stock = entry["stock"].get(gender)
            if not isinstance(stock, dict) or stock.get("available") is False:
                continue
            if size in (stock.get("sizes") or []):
                return True
        return False

    # No stock info at all: legacy products stay sellable
    if not product.colors and not product.sizes:
        return True
    color_ok = not color or not product.colors or color in product.colors
    size_ok = not size or not product.sizes or size in product.sizes
    return color_ok and size_ok


def find_stock_violations(
    items: list[tuple[str, Optional[str], Optional[str]]], products: dict[str, Product]
) -> list[StockViolation]:
    """Check (product_id, color, size) triples. Unknown products are reported elsewhere."""
    violations = []
    for product_id, color, size in items:
        product = products.get(product_id)
        if product is None:
            continue
        color = color or ""
        size = size or ""
        if not color and not size:
            continue
        if not is_variant_in_stock(product, color, size):
            violations.append(StockViolation(product_id, color, size))
    return violations
