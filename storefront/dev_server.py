"""
FastAPI development backend speaking the storefront REST contract.

Run locally with `python -m storefront.dev_server`; tests mount it through
httpx.ASGITransport.
"""
import logging
import time
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.backend import PAYMENT_INSTRUCTIONS, InMemoryBackend
from storefront.config import Config
from storefront.exceptions import (
    CartLineNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from storefront.logging_setup import configure_logging
from storefront.middleware import RequestLoggingMiddleware, bearer_token
from storefront.models import OrderCreateRequest

logger = logging.getLogger(__name__)


class AddCartItemRequest(BaseModel):
    productId: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int


class FavoriteRequest(BaseModel):
    productId: str = Field(..., min_length=1)


def get_backend(request: Request) -> InMemoryBackend:
    return request.app.state.backend


def require_token(request: Request) -> str:
    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthenticated.")
    return token


def invalid_field(field: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"message": message, "errors": {field: [message]}}
    )


router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check():
    """Liveness probe"""
    return {"status": "healthy", "service": "storefront-dev-api", "timestamp": time.time()}


# Cart endpoints

@router.get("/cart")
async def get_cart(
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    return backend.cart_lines(token)


@router.post("/cart/items")
async def add_cart_item(
    body: AddCartItemRequest,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    try:
        line = backend.add_item(token, body.productId, body.quantity)
    except ProductNotFoundError:
        return invalid_field("productId", "The selected product id is invalid.")
    return {"success": True, "message": "Item added to cart", "item": line}


@router.put("/cart/items/{product_id}")
async def update_cart_item(
    product_id: str,
    body: UpdateCartItemRequest,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    line = backend.update_item(token, product_id, body.quantity)
    return {"success": True, "message": "Cart updated", "item": line}


@router.delete("/cart/items/{product_id}")
async def remove_cart_item(
    product_id: str,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    backend.remove_item(token, product_id)
    return {"success": True, "message": "Item removed from cart", "product_id": product_id}


@router.delete("/cart")
async def clear_cart(
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    backend.clear_cart(token)
    return {"success": True, "message": "Cart cleared"}


# Favorites endpoints

@router.get("/favorites")
async def get_favorites(
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    return backend.favorite_products(token)


@router.post("/favorites")
async def add_favorite(
    body: FavoriteRequest,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    try:
        backend.add_favorite(token, body.productId)
    except ProductNotFoundError:
        return invalid_field("productId", "The selected product id is invalid.")
    return {"success": True, "message": "Added to favorites"}


@router.delete("/favorites/{product_id}")
async def remove_favorite(
    product_id: str,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    backend.remove_favorite(token, product_id)
    return {"success": True, "message": "Removed from favorites"}


@router.delete("/favorites")
async def clear_favorites(
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    backend.clear_favorites(token)
    return {"success": True, "message": "Favorites cleared"}


# Catalog endpoints

@router.get("/search")
async def search_products(
    query: Optional[str] = None,
    brand: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    min_capacity_percentage: Optional[int] = None,
    is_featured: Optional[bool] = None,
    compatibility: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_direction: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    backend: InMemoryBackend = Depends(get_backend)
):
    return backend.search(
        query=query,
        brand=brand,
        category=category,
        min_price=min_price,
        max_price=max_price,
        min_capacity_percentage=min_capacity_percentage,
        is_featured=is_featured,
        compatibility=compatibility,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page
    )


@router.get("/brands")
async def get_brands(backend: InMemoryBackend = Depends(get_backend)) -> List[str]:
    return backend.brands()


@router.get("/batteries/brand/{brand}")
async def get_batteries_by_brand(brand: str, backend: InMemoryBackend = Depends(get_backend)):
    return backend.search(brand=brand, per_page=100)["data"]


@router.get("/batteries/compatible/{device}")
async def get_compatible_batteries(device: str, backend: InMemoryBackend = Depends(get_backend)):
    return backend.search(compatibility=device, per_page=100)["data"]


@router.get("/batteries/{product_id}")
async def get_battery(product_id: str, backend: InMemoryBackend = Depends(get_backend)):
    return {"data": backend.get_product(product_id)}


# Order endpoints

@router.post("/orders", status_code=201)
async def create_order(
    body: OrderCreateRequest,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    try:
        order = backend.create_order(token, body)
    except ProductNotFoundError as e:
        return invalid_field("batteries", f"The selected battery {e.product_id} is invalid.")

    return {
        "message": "Order placed successfully",
        "order": order,
        "payment_instructions": {
            "method": body.payment_method,
            "instructions": PAYMENT_INSTRUCTIONS[body.payment_method],
        },
    }


@router.get("/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    return backend.list_orders(token, page=page, per_page=per_page)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    token: str = Depends(require_token),
    backend: InMemoryBackend = Depends(get_backend)
):
    return backend.get_order(token, order_id)


# Error handlers

async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        errors.setdefault(".".join(location) or "body", []).append(error["msg"])
    return JSONResponse(
        status_code=422,
        content={"message": "The given data was invalid.", "errors": errors}
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


async def not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"message": str(exc)})


async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app(backend: Optional[InMemoryBackend] = None) -> FastAPI:
    """Build the development app around backend (a fresh one by default)"""
    app = FastAPI(
        title="Storefront Development API",
        description="In-memory implementation of the storefront REST contract",
        version="1.0.0"
    )
    app.state.backend = backend or InMemoryBackend()
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(router)

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    for exc_class in (ProductNotFoundError, CartLineNotFoundError, OrderNotFoundError):
        app.add_exception_handler(exc_class, not_found_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=Config.DEV_SERVER_PORT)
