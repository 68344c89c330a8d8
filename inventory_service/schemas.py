from pydantic import BaseModel, ConfigDict, Field, AliasChoices, PlainSerializer, conint, field_validator
from typing import Annotated, List, Optional
from decimal import Decimal
import datetime

# Money is exact on the way in, a plain JSON number on the way out
Money = Annotated[
    Decimal,
    Field(ge=0, max_digits=12, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands timestamps back without tzinfo; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


# --- Products ---

class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Money
    quantity: conint(ge=0) # Stock on hand, allows 0

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

class ProductCreate(ProductBase):
    pass

class ProductUpdate(ProductBase):
    pass

class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


# --- Bills ---

class BillItemRequest(BaseModel):
    id: int # Product id
    quantity: conint(gt=0) # Ensures quantity is integer > 0
    # Echoed by the front end; storage is authoritative for both
    name: Optional[str] = None
    price: Optional[Decimal] = None

class BillCreateRequest(BaseModel):
    items: List[BillItemRequest] = Field(..., min_length=1) # Require at least one item
    total: Optional[Decimal] = None

class BillItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    product_id: int = Field(
        validation_alias=AliasChoices("product_id", "productId"),
        serialization_alias="productId",
    )
    name: str
    quantity: int
    price: Money

class BillRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    date: datetime.datetime
    total: Money
    products: List[BillItemRead] = Field(validation_alias=AliasChoices("items", "products"))

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: datetime.datetime) -> datetime.datetime:
        return _as_utc(value)


# --- Errors ---

class StockShortage(BaseModel):
    product_id: int
    requested: int
    available: int

class InsufficientStockDetail(BaseModel):
    error: str = "insufficient_stock"
    shortages: List[StockShortage]
