from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import func
from . import schemas, models
import logging

logger = logging.getLogger(__name__)


class ProductNotFoundError(Exception):
    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found")
        self.product_id = product_id


class DuplicateProductError(Exception):
    def __init__(self, name: str, existing_id: int):
        super().__init__(f"A product named '{name}' already exists (id {existing_id})")
        self.name = name
        self.existing_id = existing_id


class InsufficientStockError(Exception):
    def __init__(self, shortages: list[schemas.StockShortage]):
        names = ", ".join(str(s.product_id) for s in shortages)
        super().__init__(f"Not enough stock for product(s) {names}")
        self.shortages = shortages


# --- Products ---

async def list_products(db: AsyncSession) -> list[models.Product]:
    result = await db.execute(select(models.Product).order_by(models.Product.id))
    return list(result.scalars().all())

async def get_product(db: AsyncSession, product_id: int) -> models.Product | None:
    result = await db.execute(select(models.Product).filter(models.Product.id == product_id))
    return result.scalars().first()

async def find_product_by_name(db: AsyncSession, name: str, exclude_id: int | None = None) -> models.Product | None:
    """Case-insensitive name lookup, optionally ignoring one product (the one being edited)."""
    stmt = select(models.Product).where(func.lower(models.Product.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(models.Product.id != exclude_id)
    result = await db.execute(stmt)
    return result.scalars().first()

async def create_product(db: AsyncSession, product: schemas.ProductCreate) -> models.Product:
    existing = await find_product_by_name(db, product.name)
    if existing:
        logger.warning(f"Refusing to create duplicate product '{product.name}' (existing id {existing.id})")
        raise DuplicateProductError(product.name, existing.id)
    db_product = models.Product(**product.model_dump())
    db.add(db_product)
    await db.commit()
    await db.refresh(db_product)
    logger.info(f"Created product {db_product.id} '{db_product.name}' with stock {db_product.quantity}")
    return db_product

async def update_product(db: AsyncSession, product_id: int, product: schemas.ProductUpdate) -> models.Product | None:
    db_product = await get_product(db, product_id)
    if db_product is None:
        return None
    existing = await find_product_by_name(db, product.name, exclude_id=product_id)
    if existing:
        logger.warning(f"Refusing to rename product {product_id} to duplicate name '{product.name}'")
        raise DuplicateProductError(product.name, existing.id)
    db_product.name = product.name
    db_product.price = product.price
    db_product.quantity = product.quantity
    await db.commit()
    await db.refresh(db_product)
    logger.info(f"Updated product {product_id}: price={db_product.price}, stock={db_product.quantity}")
    return db_product

async def delete_product(db: AsyncSession, product_id: int) -> bool:
    db_product = await get_product(db, product_id)
    if db_product:
        await db.delete(db_product)
        await db.commit()
        logger.info(f"Deleted product {product_id}")
        return True
    logger.warning(f"Attempted to delete non-existent product {product_id}")
    return False


# --- Bills ---

async def list_bills(db: AsyncSession) -> list[models.Bill]:
    stmt = select(models.Bill).options(selectinload(models.Bill.items)).order_by(models.Bill.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())

async def get_bill(db: AsyncSession, bill_id: int) -> models.Bill | None:
    stmt = select(models.Bill).options(selectinload(models.Bill.items)).where(models.Bill.id == bill_id)
    result = await db.execute(stmt)
    return result.scalars().first()

async def create_bill(db: AsyncSession, request: schemas.BillCreateRequest) -> models.Bill:
    """
    Persists a bill and takes its quantities out of stock in one transaction.

    Prices and names come from storage, never from the request. Every
    product row is locked before it is checked so two tills cannot both sell
    the last unit. Nothing is written unless every line can be served.
    """
    # Merge repeated product ids, keeping first-seen order
    requested: dict[int, int] = {}
    for item in request.items:
        requested[item.id] = requested.get(item.id, 0) + item.quantity

    logger.info(f"Creating bill for products: {list(requested)}")

    stmt = (
        select(models.Product)
        .where(models.Product.id.in_(list(requested)))
        .with_for_update()
    )
    result = await db.execute(stmt)
    products = {p.id: p for p in result.scalars().all()}

    for product_id in requested:
        if product_id not in products:
            await db.rollback()
            logger.warning(f"Bill rejected: product {product_id} not found")
            raise ProductNotFoundError(product_id)

    shortages = [
        schemas.StockShortage(product_id=pid, requested=qty, available=products[pid].quantity)
        for pid, qty in requested.items()
        if products[pid].quantity < qty
    ]
    if shortages:
        await db.rollback()
        logger.warning(f"Bill rejected, insufficient stock: {[s.model_dump() for s in shortages]}")
        raise InsufficientStockError(shortages)

    total = Decimal("0")
    items = []
    for product_id, quantity in requested.items():
        product = products[product_id]
        product.quantity -= quantity
        price = Decimal(product.price)
        items.append(models.BillItem(product_id=product_id, name=product.name, quantity=quantity, price=price))
        total += price * quantity

    if request.total is not None and request.total != total:
        logger.warning(f"Client total {request.total} differs from computed total {total}; using computed")

    bill = models.Bill(date=models.utc_now(), total=total, items=items)
    db.add(bill)
    await db.commit()
    logger.info(f"Created bill {bill.id} with {len(items)} line(s), total {total}")
    return await get_bill(db, bill.id)
