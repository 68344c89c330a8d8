import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from billing_counter.schemas import Bill, BillLine, Product
from inventory_service import models  # noqa: F401  registers the tables
from inventory_service.database import Base, engine


async def reset_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def reset_database() -> None:
    asyncio.run(reset_tables())


def widget(quantity: int = 5, price: str = "9.99") -> Product:
    return Product(id=1, name="Widget", price=Decimal(price), quantity=quantity)


def gadget(quantity: int = 10, price: str = "4.50") -> Product:
    return Product(id=2, name="Gadget", price=Decimal(price), quantity=quantity)


def make_bill(bill_id: int, lines: list[tuple[int, int]], date: datetime | None = None) -> Bill:
    return Bill(
        id=bill_id,
        date=date or datetime.now(timezone.utc),
        lines=[
            BillLine(product_id=pid, name=f"Product {pid}", unit_price=Decimal("1.00"), quantity=qty)
            for pid, qty in lines
        ],
        total=sum((Decimal(qty) for _, qty in lines), Decimal("0")),
    )
