from pydantic import BaseModel, ConfigDict, Field, AliasChoices, PlainSerializer, conint, field_validator
from typing import Annotated, List, Optional, Tuple
from decimal import Decimal
import datetime

from .exceptions import StockShortage

Money = Annotated[
    Decimal,
    Field(ge=0),
    PlainSerializer(float, return_type=float, when_used="json"),
]

ZERO = Decimal("0")


# --- Catalog ---

class Product(BaseModel):
    """A catalog record as last fetched from the inventory service."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    price: Money
    available_quantity: conint(ge=0) = Field(
        validation_alias=AliasChoices("available_quantity", "quantity"),
        serialization_alias="quantity",
    )

class ProductDraft(BaseModel):
    """Body for creating or replacing a product."""
    name: str = Field(..., min_length=1, max_length=255)
    price: Money = Field(..., max_digits=12, decimal_places=2) # same limits as the service
    quantity: conint(ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


# --- Cart ---

class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str
    unit_price: Money
    quantity: conint(gt=0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class Cart(BaseModel):
    model_config = ConfigDict(frozen=True)

    lines: Tuple[CartLine, ...] = ()
    total: Money = ZERO

class CheckoutSnapshot(BaseModel):
    """What gets submitted to the billing service."""
    model_config = ConfigDict(frozen=True)

    lines: Tuple[CartLine, ...]
    total: Money

    def to_payload(self) -> dict:
        # Wire shape expected by POST /api/bills
        return {
            "items": [
                {
                    "id": line.product_id,
                    "name": line.name,
                    "price": float(line.unit_price),
                    "quantity": line.quantity,
                }
                for line in self.lines
            ],
            "total": float(self.total),
        }


# --- Bills ---

class BillLine(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[int] = None
    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId"))
    name: str
    unit_price: Money = Field(validation_alias=AliasChoices("unit_price", "price"))
    quantity: conint(gt=0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

class Bill(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    date: datetime.datetime
    lines: Tuple[BillLine, ...] = Field(validation_alias=AliasChoices("lines", "products"))
    total: Money

    @field_validator("date")
    @classmethod
    def assume_utc(cls, value: datetime.datetime) -> datetime.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value


# --- Front-end request bodies ---

class AddToCartRequest(BaseModel):
    product_id: int
    quantity: int = 1

class UpdateQuantityRequest(BaseModel):
    quantity: int

class CartView(BaseModel):
    """The cart plus any lines the latest catalog can no longer cover."""
    lines: Tuple[CartLine, ...]
    total: Money
    shortages: List[StockShortage] = []

class ProductListing(BaseModel):
    """A product row as shown in the catalog editor."""
    id: int
    name: str
    price: Money
    quantity: int
    stock_status: str
