from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
from contextlib import asynccontextmanager

# Use relative imports within the service package
from . import crud, schemas, config
from .database import get_db_session, engine, Base

# Configure logging basic setup
logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Inventory Service starting up...")
    logger.info("Checking/Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables check complete.")
    yield
    logger.info("Inventory Service shutting down...")
    await engine.dispose() # Clean up engine resources

app = FastAPI(
    title="Inventory Service",
    description="Product catalog and bill storage for the billing counter.",
    version="0.2.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(kind: str, ident: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": f"{kind}_not_found", f"{kind}_id": ident},
    )

def _duplicate(e: crud.DuplicateProductError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "duplicate_product", "name": e.name, "existing_id": e.existing_id},
    )


@app.get("/health", tags=["Monitoring"], summary="Health Check")
async def health_check():
    return {"status": "healthy"}


# --- Catalog ---

@app.get("/api/products", response_model=List[schemas.ProductRead], tags=["Catalog"], summary="List Products")
async def list_products(db: AsyncSession = Depends(get_db_session)):
    return await crud.list_products(db)


@app.get("/api/products/{product_id}", response_model=schemas.ProductRead, tags=["Catalog"], summary="Get Product")
async def read_product(product_id: int, db: AsyncSession = Depends(get_db_session)):
    db_product = await crud.get_product(db, product_id)
    if db_product is None:
        logger.warning(f"Product requested but not found: {product_id}")
        raise _not_found("product", product_id)
    return db_product


@app.post(
    "/api/products",
    response_model=schemas.ProductRead,
    status_code=status.HTTP_201_CREATED,
    tags=["Catalog"],
    summary="Create Product"
)
async def create_product(product: schemas.ProductCreate, db: AsyncSession = Depends(get_db_session)):
    """Creates a product. Names are unique regardless of case."""
    try:
        return await crud.create_product(db, product)
    except crud.DuplicateProductError as e:
        raise _duplicate(e)


@app.put("/api/products/{product_id}", response_model=schemas.ProductRead, tags=["Catalog"], summary="Update Product")
async def update_product(product_id: int, product: schemas.ProductUpdate, db: AsyncSession = Depends(get_db_session)):
    try:
        db_product = await crud.update_product(db, product_id, product)
    except crud.DuplicateProductError as e:
        raise _duplicate(e)
    if db_product is None:
        raise _not_found("product", product_id)
    return db_product


@app.delete(
    "/api/products/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Catalog"],
    summary="Delete Product"
)
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db_session)):
    deleted = await crud.delete_product(db, product_id)
    if not deleted:
        raise _not_found("product", product_id)
    return None # Return None for 204 response


# --- Billing ---

@app.get("/api/bills", response_model=List[schemas.BillRead], tags=["Billing"], summary="List Bills")
async def list_bills(db: AsyncSession = Depends(get_db_session)):
    bills = await crud.list_bills(db)
    return [schemas.BillRead.model_validate(b) for b in bills]


@app.get("/api/bills/{bill_id}", response_model=schemas.BillRead, tags=["Billing"], summary="Get Bill")
async def read_bill(bill_id: int, db: AsyncSession = Depends(get_db_session)):
    bill = await crud.get_bill(db, bill_id)
    if bill is None:
        raise _not_found("bill", bill_id)
    return schemas.BillRead.model_validate(bill)


@app.post(
    "/api/bills",
    response_model=schemas.BillRead,
    status_code=status.HTTP_201_CREATED,
    tags=["Billing"],
    summary="Create Bill"
)
async def create_bill(request_data: schemas.BillCreateRequest, db: AsyncSession = Depends(get_db_session)):
    """
    Persists a bill and decrements stock for every line, all or nothing.
    Answers 409 with the per-product shortages when stock ran out.
    """
    logger.info(f"Received bill request for products: {[item.id for item in request_data.items]}")
    try:
        bill = await crud.create_bill(db, request_data)
    except crud.ProductNotFoundError as e:
        raise _not_found("product", e.product_id)
    except crud.InsufficientStockError as e:
        detail = schemas.InsufficientStockDetail(shortages=e.shortages)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail.model_dump())
    except Exception as e:
        logger.exception("Error during bill creation") # Log full traceback
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"An unexpected error occurred while creating the bill: {e}"
        )
    return schemas.BillRead.model_validate(bill)
