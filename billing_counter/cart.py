"""
Cart reconciliation engine.

Keeps the lines of the bill being assembled at the counter consistent with
the last catalog snapshot: no line may ask for more units than the cached
stock, there is one line per product, and the total is re-summed from the
lines after every change. A failed operation leaves the cart exactly as it
was.

The engine is synchronous and does no locking. Callers that share one engine
between tasks must serialize access themselves.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, Iterator, Optional
import logging

from . import catalog
from .exceptions import (
    CartLineNotFound,
    CheckoutInProgress,
    EmptyCart,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    StockShortage,
)
from .schemas import Cart, CartLine, CheckoutSnapshot, Product, ZERO

logger = logging.getLogger(__name__)


def _validate_quantity(quantity: object) -> int:
    # bool is an int subclass; True must not mean "one unit"
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


class CartEngine:

    def __init__(self, products: Iterable[Product] = ()) -> None:
        self.products: dict[int, Product] = {}
        self._lines: dict[int, CartLine] = {} # insertion ordered
        self._total: Decimal = ZERO
        self._checkout_open = False
        self.refresh_catalog(products)

    # --- Read side ---

    @property
    def cart(self) -> Cart:
        return Cart(lines=tuple(self._lines.values()), total=self._total)

    @property
    def checkout_in_progress(self) -> bool:
        return self._checkout_open

    def available_quantity(self, product_id: int) -> int:
        # A product dropped from the catalog has nothing left to sell
        product = self.products.get(product_id)
        return product.available_quantity if product else 0

    def check_product_exists(self, name: str, exclude_id: Optional[int] = None) -> Optional[Product]:
        """Returns the cached product already using ``name`` (case-insensitive), if any."""
        return catalog.find_product_by_name(self.products.values(), name, exclude_id=exclude_id)

    # --- Mutations ---

    def refresh_catalog(self, products: Iterable[Product]) -> None:
        """Replaces the product cache. Existing lines are left alone even if they now exceed stock."""
        self.products = {p.id: p for p in products}
        logger.debug(f"Catalog cache refreshed with {len(self.products)} product(s)")

    def add_to_cart(self, product_id: int, quantity: int) -> Cart:
        self._ensure_unlocked()
        quantity = _validate_quantity(quantity)
        product = self.products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)

        existing = self._lines.get(product_id)
        wanted = quantity + (existing.quantity if existing else 0)
        if wanted > product.available_quantity:
            logger.warning(
                f"Add to cart rejected for product {product_id}: wanted {wanted}, available {product.available_quantity}"
            )
            raise InsufficientStock([StockShortage(product_id, wanted, product.available_quantity)])

        # A merged line picks up the current catalog price and name
        self._lines[product_id] = CartLine(
            product_id=product_id,
            name=product.name,
            unit_price=product.price,
            quantity=wanted,
        )
        return self._changed()

    def update_line_quantity(self, product_id: int, quantity: int) -> Cart:
        self._ensure_unlocked()
        line = self._lines.get(product_id)
        if line is None:
            raise CartLineNotFound(product_id)
        quantity = _validate_quantity(quantity)

        available = self.available_quantity(product_id)
        if quantity > available:
            logger.warning(
                f"Quantity update rejected for product {product_id}: wanted {quantity}, available {available}"
            )
            raise InsufficientStock([StockShortage(product_id, quantity, available)])

        # Reassigning an existing key keeps the line's position
        self._lines[product_id] = line.model_copy(update={"quantity": quantity})
        return self._changed()

    def remove_from_cart(self, product_id: int) -> Cart:
        self._ensure_unlocked()
        if self._lines.pop(product_id, None) is None:
            return self.cart
        return self._changed()

    def clear(self) -> Cart:
        self._ensure_unlocked()
        self._clear()
        return self.cart

    # --- Checkout ---

    def validate_stock(self) -> list[StockShortage]:
        """Lists every line that asks for more than the cached stock."""
        shortages = []
        for line in self._lines.values():
            available = self.available_quantity(line.product_id)
            if line.quantity > available:
                shortages.append(StockShortage(line.product_id, line.quantity, available))
        return shortages

    @contextmanager
    def checkout(self) -> Iterator[CheckoutSnapshot]:
        """
        Holds the cart while its snapshot is submitted for billing.

        Usage::

            with engine.checkout() as snapshot:
                bill = await billing.create_bill(snapshot)

        The cart is emptied only when the block finishes without raising,
        i.e. once the billing service has confirmed the bill. If the block
        raises, the cart is left as it was and the exception propagates.
        Until the block ends every mutation raises ``CheckoutInProgress``.
        """
        self._ensure_unlocked()
        if not self._lines:
            raise EmptyCart()
        shortages = self.validate_stock()
        if shortages:
            logger.warning(f"Checkout blocked by stock shortages: {shortages}")
            raise InsufficientStock(shortages)

        snapshot = CheckoutSnapshot(lines=tuple(self._lines.values()), total=self._total)
        self._checkout_open = True
        try:
            yield snapshot
        except BaseException:
            logger.info("Checkout did not complete; cart kept for retry")
            raise
        finally:
            self._checkout_open = False
        self._clear()
        logger.info(f"Checkout confirmed for {len(snapshot.lines)} line(s), total {snapshot.total}")

    # --- Internals ---

    def _ensure_unlocked(self) -> None:
        if self._checkout_open:
            raise CheckoutInProgress()

    def _clear(self) -> None:
        self._lines.clear()
        self._total = ZERO

    def _changed(self) -> Cart:
        # Always a full re-sum, never an adjustment of the previous total
        self._total = sum((line.line_total for line in self._lines.values()), ZERO)
        return self.cart
