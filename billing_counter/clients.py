"""HTTP clients for the catalog and billing endpoints of the inventory service."""

from typing import Any, Optional
import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from . import config
from .exceptions import (
    BillNotFound,
    DuplicateProductName,
    InsufficientStock,
    NotFound,
    ProductNotFound,
    ServiceFailure,
    ServiceTimeout,
    StockShortage,
)
from .schemas import Bill, CheckoutSnapshot, Product, ProductDraft

logger = logging.getLogger(__name__)

_products_adapter = TypeAdapter(list[Product])
_bills_adapter = TypeAdapter(list[Bill])


def build_http_client(base_url: str = config.INVENTORY_SERVICE_URL,
                      timeout: float = config.REQUEST_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, timeout=timeout)


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json().get("detail")
    except (ValueError, AttributeError):
        return response.text[:500]


class _ServiceClient:

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Sends one request and raises ``ServiceFailure`` for anything but 2xx.

        404 and 409 responses are handed back to the caller instead, since
        what they mean depends on the endpoint.
        """
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Timed out calling inventory service {method} {url}: {e}")
            raise ServiceTimeout(f"Inventory service timed out on {method} {url}") from e
        except httpx.RequestError as e:
            logger.error(f"Could not connect to inventory service ({e.request.url}): {e}")
            raise ServiceFailure(f"Inventory service connection error: {e}") from e

        if response.status_code in (404, 409):
            return response
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_body = e.response.text
            logger.error(f"Inventory service returned status {e.response.status_code} for {method} {url}. Response: {error_body[:500]}")
            raise ServiceFailure(
                f"Inventory service status error {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        return response

    @staticmethod
    def _parse(adapter_or_model: Any, data: Any) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(data)
            return adapter_or_model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed payload from inventory service: {e}")
            raise ServiceFailure(f"Malformed payload from inventory service: {e}") from e

    @staticmethod
    def _unexpected(response: httpx.Response) -> ServiceFailure:
        return ServiceFailure(
            f"Unexpected status {response.status_code} from inventory service: {_error_detail(response)}",
            status_code=response.status_code,
        )


class CatalogClient(_ServiceClient):

    async def list_products(self) -> list[Product]:
        response = await self._request("GET", "/api/products")
        if response.status_code != 200:
            raise self._unexpected(response)
        products = self._parse(_products_adapter, response.json())
        logger.info(f"Fetched {len(products)} product(s) from catalog")
        return products

    async def get_product(self, product_id: int) -> Product:
        response = await self._request("GET", f"/api/products/{product_id}")
        if response.status_code == 404:
            raise ProductNotFound(product_id)
        if response.status_code != 200:
            raise self._unexpected(response)
        return self._parse(Product, response.json())

    async def create_product(self, draft: ProductDraft) -> Product:
        response = await self._request("POST", "/api/products", json=draft.model_dump(mode="json"))
        self._raise_for_conflict(response, draft)
        if response.status_code not in (200, 201):
            raise self._unexpected(response)
        product = self._parse(Product, response.json())
        logger.info(f"Created product {product.id} '{product.name}'")
        return product

    async def update_product(self, product_id: int, draft: ProductDraft) -> Product:
        response = await self._request("PUT", f"/api/products/{product_id}", json=draft.model_dump(mode="json"))
        if response.status_code == 404:
            raise ProductNotFound(product_id)
        self._raise_for_conflict(response, draft)
        if response.status_code != 200:
            raise self._unexpected(response)
        product = self._parse(Product, response.json())
        logger.info(f"Updated product {product.id}")
        return product

    async def delete_product(self, product_id: int) -> None:
        response = await self._request("DELETE", f"/api/products/{product_id}")
        if response.status_code == 404:
            raise ProductNotFound(product_id)
        if response.status_code not in (200, 204):
            raise self._unexpected(response)
        logger.info(f"Deleted product {product_id}")

    def _raise_for_conflict(self, response: httpx.Response, draft: ProductDraft) -> None:
        if response.status_code != 409:
            return
        detail = _error_detail(response)
        existing_id = detail.get("existing_id") if isinstance(detail, dict) else None
        if existing_id is None:
            raise self._unexpected(response)
        raise DuplicateProductName(draft.name, existing_id)


class BillingClient(_ServiceClient):

    async def list_bills(self) -> list[Bill]:
        response = await self._request("GET", "/api/bills")
        if response.status_code != 200:
            raise self._unexpected(response)
        return self._parse(_bills_adapter, response.json())

    async def get_bill(self, bill_id: int) -> Bill:
        response = await self._request("GET", f"/api/bills/{bill_id}")
        if response.status_code == 404:
            raise BillNotFound(bill_id)
        if response.status_code != 200:
            raise self._unexpected(response)
        return self._parse(Bill, response.json())

    async def create_bill(self, snapshot: CheckoutSnapshot) -> Bill:
        logger.info(f"Submitting bill with {len(snapshot.lines)} line(s), total {snapshot.total}")
        response = await self._request("POST", "/api/bills", json=snapshot.to_payload())
        if response.status_code == 404:
            detail = _error_detail(response)
            product_id = detail.get("product_id") if isinstance(detail, dict) else None
            if product_id is not None:
                raise ProductNotFound(product_id)
            raise NotFound(f"Billing service answered 404: {detail}")
        if response.status_code == 409:
            raise InsufficientStock(self._shortages(response))
        if response.status_code not in (200, 201):
            raise self._unexpected(response)
        bill = self._parse(Bill, response.json())
        logger.info(f"Bill {bill.id} created, total {bill.total}")
        return bill

    def _shortages(self, response: httpx.Response) -> list[StockShortage]:
        detail = _error_detail(response)
        rows: Optional[list] = detail.get("shortages") if isinstance(detail, dict) else None
        if not rows:
            raise self._unexpected(response)
        try:
            return [StockShortage(int(r["product_id"]), int(r["requested"]), int(r["available"])) for r in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceFailure(f"Malformed stock shortage payload: {rows}", status_code=409) from e
