"""
Authenticated async client for the storefront REST API.

Every call either returns the parsed response body or raises ApiError; callers
never see httpx exceptions or transport envelopes. No retries happen here.
"""
import time
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from storefront.config import Config
from storefront.credentials import MemoryTokenStore, TokenStore
from storefront.exceptions import ApiError, ResponseValidationError
from storefront.models import (
    Battery,
    Cart,
    FavoriteList,
    Order,
    OrderConfirmation,
    OrderCreateRequest,
    OrderPage,
    ProductPage,
)

logger = logging.getLogger(__name__)

NO_RESPONSE_MESSAGE = "No response from server"
REQUEST_SETUP_MESSAGE = "Request setup failed"

_adapters: Dict[Any, TypeAdapter] = {}


def _adapter(tp: Any) -> TypeAdapter:
    if tp not in _adapters:
        _adapters[tp] = TypeAdapter(tp)
    return _adapters[tp]


def format_validation_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """Flatten pydantic errors into {dotted.location: [messages]}"""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "__root__"
        errors.setdefault(location, []).append(error["msg"])
    return errors


def _field_errors(body: Any) -> Optional[Dict[str, List[str]]]:
    """Extract {field: [messages]} from an error body, if it has one"""
    if not isinstance(body, dict) or not isinstance(body.get("errors"), dict):
        return None
    errors = {}
    for field, messages in body["errors"].items():
        if isinstance(messages, str):
            messages = [messages]
        elif not isinstance(messages, list):
            continue
        errors[str(field)] = [str(message) for message in messages]
    return errors or None


def _path_segment(value: str) -> str:
    return quote(str(value), safe="")


class ApiClient:
    """Thin wrapper over httpx.AsyncClient that normalizes failures"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token_store = token_store or MemoryTokenStore()
        self._client = httpx.AsyncClient(
            base_url=base_url or Config.API_BASE_URL,
            timeout=timeout if timeout is not None else Config.API_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport
        )

        self.cart = CartResource(self)
        self.favorites = FavoritesResource(self)
        self.products = ProductsResource(self)
        self.orders = OrdersResource(self)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def _build_request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Request:
        headers = {}
        token = await self.token_store.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self._client.build_request(method, path, json=json, params=params, headers=headers)

    async def send(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Any]:
        """
        Perform one request.

        Returns:
            (HTTP status, decoded JSON body or None for an empty body)

        Raises:
            ApiError: For every kind of failure
        """
        try:
            request = await self._build_request(method, path, json=json, params=params)
        except Exception as e:
            logger.warning(
                f"Request setup failed: {method} {path}",
                extra={"method": method, "path": path, "error_type": type(e).__name__}
            )
            raise ApiError(REQUEST_SETUP_MESSAGE, status=0) from e

        start_time = time.monotonic()
        try:
            response = await self._client.send(request)
        except httpx.TransportError as e:
            # Covers timeouts: nothing came back from the server
            logger.warning(
                f"No response: {method} {path}",
                extra={"method": method, "path": path, "error_type": type(e).__name__}
            )
            raise ApiError(NO_RESPONSE_MESSAGE, status=0) from e
        except Exception as e:
            # Includes sending on a closed client
            logger.warning(
                f"Request failed before a response: {method} {path}",
                extra={"method": method, "path": path, "error_type": type(e).__name__}
            )
            raise ApiError(REQUEST_SETUP_MESSAGE, status=0) from e

        latency_ms = (time.monotonic() - start_time) * 1000
        logger.debug(
            f"Response: {method} {path} {response.status_code}",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2)
            }
        )

        if not response.is_success:
            raise self._error_from_response(response)

        if not response.content:
            return response.status_code, None

        try:
            return response.status_code, response.json()
        except ValueError:
            raise ResponseValidationError(
                response.status_code, {"__root__": ["Response body is not valid JSON"]}
            )

    def _error_from_response(self, response: httpx.Response) -> ApiError:
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None

        message = None
        if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
            message = body["message"]
        if message is None:
            message = f"Request failed with status code {response.status_code}"

        error = ApiError(message, status=response.status_code, errors=_field_errors(body))
        logger.warning(
            f"Error response: {response.request.method} {response.request.url.path} {response.status_code}",
            extra={
                "method": response.request.method,
                "path": response.request.url.path,
                "status_code": response.status_code,
                "error": message
            }
        )
        return error

    async def request(self, method: str, path: str, **kwargs) -> Any:
        """Perform a request and return the raw decoded body"""
        _, body = await self.send(method, path, **kwargs)
        return body

    async def request_model(self, method: str, path: str, response_type: Any, **kwargs) -> Any:
        """Perform a request and validate the body against response_type"""
        status, body = await self.send(method, path, **kwargs)
        try:
            return _adapter(response_type).validate_python(body)
        except PydanticValidationError as e:
            logger.warning(
                f"Malformed response: {method} {path}",
                extra={"method": method, "path": path, "error_count": e.error_count()}
            )
            raise ResponseValidationError(status, format_validation_errors(e))


class _Resource:
    def __init__(self, api: ApiClient):
        self.api = api


class CartResource(_Resource):
    """Cart endpoints"""

    async def get(self) -> Cart:
        return await self.api.request_model("GET", "/cart", Cart)

    async def add_item(self, product_id: str, quantity: int) -> Any:
        return await self.api.request(
            "POST", "/cart/items", json={"productId": product_id, "quantity": quantity}
        )

    async def update_item(self, product_id: str, quantity: int) -> Any:
        return await self.api.request(
            "PUT", f"/cart/items/{_path_segment(product_id)}", json={"quantity": quantity}
        )

    async def remove_item(self, product_id: str) -> Any:
        return await self.api.request("DELETE", f"/cart/items/{_path_segment(product_id)}")

    async def clear(self) -> Any:
        return await self.api.request("DELETE", "/cart")


class FavoritesResource(_Resource):
    """Favorites endpoints"""

    async def get(self) -> FavoriteList:
        return await self.api.request_model("GET", "/favorites", FavoriteList)

    async def add(self, product_id: str) -> Any:
        return await self.api.request("POST", "/favorites", json={"productId": product_id})

    async def remove(self, product_id: str) -> Any:
        return await self.api.request("DELETE", f"/favorites/{_path_segment(product_id)}")

    async def clear(self) -> Any:
        return await self.api.request("DELETE", "/favorites")


class ProductsResource(_Resource):
    """Catalog read endpoints"""

    async def search(self, **params) -> ProductPage:
        """
        Search the catalog.

        Accepts query, brand, category, min_price, max_price,
        min_capacity_percentage, is_featured, compatibility, sort_by,
        sort_direction, page and per_page. None values are not sent.
        """
        params = {key: value for key, value in params.items() if value is not None}
        return await self.api.request_model("GET", "/search", ProductPage, params=params)

    async def get_by_id(self, product_id: str) -> Battery:
        status, body = await self.api.send("GET", f"/batteries/{_path_segment(product_id)}")
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        try:
            return _adapter(Battery).validate_python(body)
        except PydanticValidationError as e:
            raise ResponseValidationError(status, format_validation_errors(e))

    async def get_brands(self) -> List[str]:
        return await self.api.request_model("GET", "/brands", List[str])

    async def get_by_brand(self, brand: str) -> List[Battery]:
        return await self.api.request_model(
            "GET", f"/batteries/brand/{_path_segment(brand)}", List[Battery]
        )

    async def get_compatible(self, device: str) -> List[Battery]:
        return await self.api.request_model(
            "GET", f"/batteries/compatible/{_path_segment(device)}", List[Battery]
        )


class OrdersResource(_Resource):
    """Order endpoints"""

    async def create(self, order: OrderCreateRequest) -> OrderConfirmation:
        return await self.api.request_model(
            "POST", "/orders", OrderConfirmation, json=order.to_payload()
        )

    async def get_all(self, page: int = 1, per_page: int = 10) -> OrderPage:
        return await self.api.request_model(
            "GET", "/orders", OrderPage, params={"page": page, "per_page": per_page}
        )

    async def get_by_id(self, order_id: str) -> Order:
        return await self.api.request_model("GET", f"/orders/{_path_segment(order_id)}", Order)
