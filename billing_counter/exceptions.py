"""Errors raised by the cart engine and the service clients.

Each error carries the ids and quantities involved as attributes, so callers
can report them without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


class BillingCounterError(Exception):
    pass


@dataclass(frozen=True)
class StockShortage:
    product_id: int
    requested: int
    available: int


# --- Cart ---

class CartError(BillingCounterError):
    pass


class InvalidQuantity(CartError):
    def __init__(self, quantity: object) -> None:
        super().__init__(f"Quantity must be a positive whole number, got {quantity!r}")
        self.quantity = quantity


class EmptyCart(CartError):
    def __init__(self) -> None:
        super().__init__("Cart is empty")


class InsufficientStock(CartError):
    def __init__(self, shortages: Iterable[StockShortage]) -> None:
        self.shortages = tuple(shortages)
        if not self.shortages:
            raise ValueError("InsufficientStock needs at least one shortage")
        parts = ", ".join(
            f"product {s.product_id}: requested {s.requested}, available {s.available}"
            for s in self.shortages
        )
        super().__init__(f"Not enough stock available ({parts})")

    @property
    def product_id(self) -> int:
        return self.shortages[0].product_id

    @property
    def requested(self) -> int:
        return self.shortages[0].requested

    @property
    def available(self) -> int:
        return self.shortages[0].available


class CheckoutInProgress(CartError):
    def __init__(self) -> None:
        super().__init__("Cart is locked while a checkout is being submitted")


# --- Lookups ---

class NotFound(BillingCounterError):
    pass


class ProductNotFound(NotFound):
    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class CartLineNotFound(NotFound):
    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} is not in the cart")
        self.product_id = product_id


class BillNotFound(NotFound):
    def __init__(self, bill_id: int) -> None:
        super().__init__(f"Bill {bill_id} not found")
        self.bill_id = bill_id


# --- Remote services ---

class ServiceFailure(BillingCounterError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceTimeout(ServiceFailure):
    """The request may or may not have been applied by the service."""


class DuplicateProductName(ServiceFailure):
    def __init__(self, name: str, existing_id: int) -> None:
        super().__init__(f"A product named '{name}' already exists (id {existing_id})", status_code=409)
        self.name = name
        self.existing_id = existing_id
