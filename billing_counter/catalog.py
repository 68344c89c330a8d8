from typing import Iterable, Optional
from . import config
from .schemas import Product, ProductListing

SORT_KEYS = {
    "id": lambda p: p.id,
    "name": lambda p: p.name.lower(),
    "price": lambda p: p.price,
    "quantity": lambda p: p.available_quantity,
}

OUT_OF_STOCK = "Out of Stock"
LOW_STOCK = "Low Stock"
IN_STOCK = "In Stock"


def search_products(products: Iterable[Product], term: Optional[str]) -> list[Product]:
    """Case-insensitive substring match on the product name."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(products)
    return [p for p in products if needle in p.name.lower()]


def sort_products(products: Iterable[Product], key: str = "name", descending: bool = False) -> list[Product]:
    if key not in SORT_KEYS:
        raise ValueError(f"Cannot sort products by '{key}'; expected one of {sorted(SORT_KEYS)}")
    return sorted(products, key=SORT_KEYS[key], reverse=descending)


def stock_status(quantity: int, low_threshold: int = config.LOW_STOCK_THRESHOLD) -> str:
    if quantity <= 0:
        return OUT_OF_STOCK
    if quantity < low_threshold:
        return LOW_STOCK
    return IN_STOCK


def find_product_by_name(products: Iterable[Product], name: str, exclude_id: Optional[int] = None) -> Optional[Product]:
    wanted = name.strip().lower()
    for product in products:
        if product.name.lower() == wanted and product.id != exclude_id:
            return product
    return None


def to_listing(product: Product) -> ProductListing:
    return ProductListing(
        id=product.id,
        name=product.name,
        price=product.price,
        quantity=product.available_quantity,
        stock_status=stock_status(product.available_quantity),
    )
