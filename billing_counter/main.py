from fastapi import FastAPI, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from typing import List, Literal, Optional
from contextlib import asynccontextmanager
import asyncio
import logging

from . import catalog, clients, config, receipt, schemas
from .cart import CartEngine
from .checkout import submit_checkout
from .exceptions import (
    BillingCounterError,
    CartError,
    DuplicateProductName,
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    ServiceFailure,
    ServiceTimeout,
)

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


# --- FastAPI Lifespan Events ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Billing Counter starting up...")
    http_client = clients.build_http_client()
    app.state.http_client = http_client
    app.state.catalog = clients.CatalogClient(http_client)
    app.state.billing = clients.BillingClient(http_client)
    app.state.engine = CartEngine()
    # One cart, one writer at a time; held across a whole checkout submission
    app.state.cart_lock = asyncio.Lock()
    try:
        app.state.engine.refresh_catalog(await app.state.catalog.list_products())
    except ServiceFailure as e:
        logger.warning(f"Catalog not loaded at startup, will load on first use: {e}")

    yield # Application runs here

    logger.info("Billing Counter shutting down...")
    await http_client.aclose()


app = FastAPI(
    title="Billing Counter",
    description="Point-of-sale front end: catalog editor, stock-aware cart, checkout and receipts.",
    version="0.2.0",
    lifespan=lifespan
)


# --- Dependencies ---

def get_engine(request: Request) -> CartEngine:
    return request.app.state.engine

def get_catalog(request: Request) -> clients.CatalogClient:
    return request.app.state.catalog

def get_billing(request: Request) -> clients.BillingClient:
    return request.app.state.billing

def get_cart_lock(request: Request) -> asyncio.Lock:
    return request.app.state.cart_lock


async def refresh_catalog(request: Request) -> List[schemas.Product]:
    products = await get_catalog(request).list_products()
    async with get_cart_lock(request):
        get_engine(request).refresh_catalog(products)
    return products


async def try_refresh_catalog(request: Request) -> None:
    # Best effort: the outcome of the request must not depend on this reload
    try:
        await refresh_catalog(request)
    except ServiceFailure as e:
        logger.warning(f"Catalog reload failed, cache may be stale: {e}")


def cart_view(engine: CartEngine) -> schemas.CartView:
    cart = engine.cart
    return schemas.CartView(lines=cart.lines, total=cart.total, shortages=engine.validate_stock())


# --- Error mapping ---

def _status_for(exc: BillingCounterError) -> int:
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidQuantity):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (CartError, DuplicateProductName)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ServiceTimeout):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, ServiceFailure):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(exc: BillingCounterError) -> dict:
    # CamelCase class name -> snake_case error code
    code = "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in type(exc).__name__).lstrip("_")
    body = {"error": code, "message": str(exc)}
    if isinstance(exc, InsufficientStock):
        body["shortages"] = [
            {"product_id": s.product_id, "requested": s.requested, "available": s.available}
            for s in exc.shortages
        ]
    if isinstance(exc, DuplicateProductName):
        body["name"] = exc.name
        body["existing_id"] = exc.existing_id
    for attr in ("product_id", "bill_id"):
        if attr not in body and hasattr(exc, attr):
            body[attr] = getattr(exc, attr)
    if isinstance(exc, InvalidQuantity):
        body["quantity"] = exc.quantity if isinstance(exc.quantity, int) else str(exc.quantity)
    return body


@app.exception_handler(BillingCounterError)
async def billing_counter_error_handler(request: Request, exc: BillingCounterError):
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code, content=_error_body(exc))


@app.get("/health", summary="Health Check", tags=["Monitoring"])
async def health_check():
    return {"status": "ok"}


# --- Catalog editor ---

@app.get("/products", response_model=List[schemas.ProductListing], tags=["Catalog"], summary="List Products")
async def list_products(
    request: Request,
    search: Optional[str] = None,
    sort: str = "name",
    direction: Literal["ascending", "descending"] = "ascending",
):
    """Lists the catalog filtered by name and sorted by id, name, price or quantity."""
    products = await refresh_catalog(request)
    try:
        ordered = catalog.sort_products(products, key=sort, descending=direction == "descending")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return [catalog.to_listing(p) for p in catalog.search_products(ordered, search)]


@app.get("/products/{product_id}", response_model=schemas.ProductListing, tags=["Catalog"], summary="Get Product")
async def read_product(product_id: int, catalog_client: clients.CatalogClient = Depends(get_catalog)):
    return catalog.to_listing(await catalog_client.get_product(product_id))


@app.post(
    "/products",
    response_model=schemas.ProductListing,
    status_code=status.HTTP_201_CREATED,
    tags=["Catalog"],
    summary="Create Product"
)
async def create_product(
    draft: schemas.ProductDraft,
    request: Request,
    engine: CartEngine = Depends(get_engine),
    catalog_client: clients.CatalogClient = Depends(get_catalog),
):
    """
    Creates a product. A name already in use answers 409 with the existing
    product's id, so the caller can offer to update that product instead.
    """
    existing = engine.check_product_exists(draft.name)
    if existing:
        raise DuplicateProductName(draft.name, existing.id)
    product = await catalog_client.create_product(draft)
    await try_refresh_catalog(request)
    return catalog.to_listing(product)


@app.put("/products/{product_id}", response_model=schemas.ProductListing, tags=["Catalog"], summary="Update Product")
async def update_product(
    product_id: int,
    draft: schemas.ProductDraft,
    request: Request,
    engine: CartEngine = Depends(get_engine),
    catalog_client: clients.CatalogClient = Depends(get_catalog),
):
    existing = engine.check_product_exists(draft.name, exclude_id=product_id)
    if existing:
        raise DuplicateProductName(draft.name, existing.id)
    product = await catalog_client.update_product(product_id, draft)
    await try_refresh_catalog(request)
    return catalog.to_listing(product)


@app.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Catalog"], summary="Delete Product")
async def delete_product(
    product_id: int,
    request: Request,
    catalog_client: clients.CatalogClient = Depends(get_catalog),
):
    await catalog_client.delete_product(product_id)
    await try_refresh_catalog(request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Cart ---

@app.get("/cart", response_model=schemas.CartView, tags=["Cart"], summary="Current Cart")
async def read_cart(engine: CartEngine = Depends(get_engine)):
    return cart_view(engine)


@app.post("/cart/refresh", response_model=schemas.CartView, tags=["Cart"], summary="Reload Catalog")
async def refresh_cart(request: Request, engine: CartEngine = Depends(get_engine)):
    """Reloads stock and prices; lines that now exceed stock are reported, not trimmed."""
    await refresh_catalog(request)
    return cart_view(engine)


@app.post("/cart/items", response_model=schemas.CartView, tags=["Cart"], summary="Add To Cart")
async def add_to_cart(
    item: schemas.AddToCartRequest,
    engine: CartEngine = Depends(get_engine),
    lock: asyncio.Lock = Depends(get_cart_lock),
):
    async with lock:
        engine.add_to_cart(item.product_id, item.quantity)
        return cart_view(engine)


@app.put("/cart/items/{product_id}", response_model=schemas.CartView, tags=["Cart"], summary="Change Quantity")
async def update_cart_item(
    product_id: int,
    body: schemas.UpdateQuantityRequest,
    engine: CartEngine = Depends(get_engine),
    lock: asyncio.Lock = Depends(get_cart_lock),
):
    async with lock:
        engine.update_line_quantity(product_id, body.quantity)
        return cart_view(engine)


@app.delete("/cart/items/{product_id}", response_model=schemas.CartView, tags=["Cart"], summary="Remove From Cart")
async def remove_cart_item(
    product_id: int,
    engine: CartEngine = Depends(get_engine),
    lock: asyncio.Lock = Depends(get_cart_lock),
):
    async with lock:
        engine.remove_from_cart(product_id)
        return cart_view(engine)


@app.delete("/cart", response_model=schemas.CartView, tags=["Cart"], summary="Clear Cart")
async def clear_cart(engine: CartEngine = Depends(get_engine), lock: asyncio.Lock = Depends(get_cart_lock)):
    async with lock:
        engine.clear()
        return cart_view(engine)


# --- Billing ---

@app.post("/checkout", response_model=schemas.Bill, status_code=status.HTTP_201_CREATED, tags=["Billing"], summary="Generate Bill")
async def checkout(
    request: Request,
    engine: CartEngine = Depends(get_engine),
    billing: clients.BillingClient = Depends(get_billing),
    lock: asyncio.Lock = Depends(get_cart_lock),
):
    """
    Submits the cart as a bill. The cart is emptied only once the bill is
    stored; on any failure it is kept so the cashier can fix it and retry.
    """
    try:
        async with lock:
            bill = await submit_checkout(engine, billing)
    except InsufficientStock:
        # The service saw less stock than we did; pick up its numbers
        await try_refresh_catalog(request)
        raise
    await try_refresh_catalog(request)
    return bill


@app.get("/bills", response_model=List[schemas.Bill], tags=["Billing"], summary="Bill History")
async def list_bills(billing: clients.BillingClient = Depends(get_billing)):
    return await billing.list_bills()


@app.get("/bills/{bill_id}", response_model=schemas.Bill, tags=["Billing"], summary="Get Bill")
async def read_bill(bill_id: int, billing: clients.BillingClient = Depends(get_billing)):
    return await billing.get_bill(bill_id)


@app.get("/bills/{bill_id}/receipt", tags=["Billing"], summary="Download Receipt")
async def download_receipt(bill_id: int, billing: clients.BillingClient = Depends(get_billing)):
    bill = await billing.get_bill(bill_id)
    pdf = receipt.render_receipt(bill)
    logger.info(f"Rendered receipt for bill {bill.id} ({len(pdf)} bytes)")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{receipt.receipt_filename(bill)}"'},
    )
