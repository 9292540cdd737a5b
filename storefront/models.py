"""
Pydantic models for storefront resources, requests, and responses.

Wire payloads mix camelCase and snake_case field names, so read models accept
both through validation aliases. All read models are frozen: stores hand them
out to subscribers, who must not mutate them.
"""
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

PaymentMethod = Literal["bank", "mobile_money"]


def _coerce_id(value: Any) -> Any:
    """Backends send ids as numbers or strings; the client keeps them as strings"""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _unwrap_list(data: Any, *keys: str) -> Any:
    """Accept a bare array or an envelope holding it under one of keys"""
    if isinstance(data, dict):
        for key in keys:
            if key in data:
                return data[key]
    return data


def _decode_json_string(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON string: {e.msg}")
    return value


# Cart

class CartLineItem(BaseModel):
    """One product line in the cart, with its display snapshot"""
    model_config = ConfigDict(frozen=True)

    product_id: str = Field(..., validation_alias=AliasChoices("productId", "product_id", "id"))
    name: str = Field("", description="Display name captured at add time")
    image_url: Optional[str] = Field(None, validation_alias=AliasChoices("imageUrl", "image_url"))
    unit_price: Decimal = Field(..., validation_alias=AliasChoices("unitPrice", "unit_price", "price"))
    quantity: int = Field(..., description="Item quantity")

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Unit price must be a finite number")
        if v < 0:
            raise ValueError("Unit price cannot be negative")
        return v

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart(BaseModel):
    """
    Authoritative cart contents.

    item_count and total_price are computed from items on every access and
    cannot be set independently.
    """
    model_config = ConfigDict(frozen=True)

    items: Tuple[CartLineItem, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def unwrap_envelope(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"items": data}
        if isinstance(data, dict) and "items" not in data and "data" in data:
            return {"items": data["data"]}
        return data

    @field_validator("items")
    @classmethod
    def validate_items(cls, v: Tuple[CartLineItem, ...]) -> Tuple[CartLineItem, ...]:
        seen = set()
        kept = []
        for item in v:
            if item.quantity <= 0:
                # A non-positive line means the product is no longer in the cart
                logger.warning(
                    f"Dropping cart line with non-positive quantity: {item.product_id}",
                    extra={"product_id": item.product_id, "quantity": item.quantity}
                )
                continue
            if item.product_id in seen:
                raise ValueError(f"Duplicate cart line for product {item.product_id}")
            seen.add(item.product_id)
            kept.append(item)
        return tuple(kept)

    @computed_field
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field
    @property
    def total_price(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    def get(self, product_id: str) -> Optional[CartLineItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


# Favorites

class Favorite(BaseModel):
    """Favorited product; only the id matters to the store"""
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)


class FavoriteList(BaseModel):
    model_config = ConfigDict(frozen=True)

    favorites: Tuple[Favorite, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def unwrap_envelope(cls, data: Any) -> Any:
        return {"favorites": _unwrap_list(data, "favorites", "data", "items")}

    @property
    def product_ids(self) -> Tuple[str, ...]:
        # Ordered set: first occurrence wins
        return tuple(dict.fromkeys(favorite.id for favorite in self.favorites))


# Products

class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    slug: Optional[str] = None
    image_url: Optional[str] = None
    batteries_count: Optional[int] = None


class Battery(BaseModel):
    """Battery product as returned by the catalog endpoints"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    brand: str
    price: Decimal
    original_price: Optional[Decimal] = None
    compatibility: Union[List[str], str, None] = None
    capacity_percentage: Optional[int] = None
    capacity: Optional[str] = None
    voltage: Optional[str] = None
    warranty: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    is_featured: bool = False
    is_on_sale: bool = False
    created_at: Optional[str] = None
    category: Optional[Category] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("features", mode="before")
    @classmethod
    def decode_features(cls, v: Any) -> Any:
        # The catalog stores features as a JSON-encoded array
        if v is None:
            return []
        return _decode_json_string(v)

    @property
    def discount_percentage(self) -> int:
        if not self.original_price or self.original_price <= self.price:
            return 0
        return int((self.original_price - self.price) * 100 / self.original_price)


class ProductPage(BaseModel):
    """One page of a paginated catalog listing"""
    model_config = ConfigDict(frozen=True)

    data: List[Battery] = Field(default_factory=list)
    current_page: int = 1
    total_pages: Optional[int] = Field(None, validation_alias=AliasChoices("total_pages", "last_page"))
    total_items: Optional[int] = Field(None, validation_alias=AliasChoices("total_items", "total"))
    per_page: Optional[int] = None

    @property
    def has_next(self) -> bool:
        return self.total_pages is not None and self.current_page < self.total_pages


# Orders

class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    street: str
    city: str
    state: str
    zip_code: str = Field(..., alias="zipCode")
    country: str

    def missing_fields(self) -> List[str]:
        return [
            name for name in ("street", "city", "state", "zip_code", "country")
            if not getattr(self, name).strip()
        ]


class OrderLine(BaseModel):
    """Line of an order creation request"""
    id: str
    quantity: int = Field(..., ge=1)


class OrderCreateRequest(BaseModel):
    batteries: List[OrderLine]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod

    def to_payload(self) -> Dict:
        return self.model_dump(by_alias=True)


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    battery_id: str
    quantity: int
    price: Decimal
    subtotal: Optional[Decimal] = None
    battery: Optional[Battery] = None

    @field_validator("id", "battery_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return _coerce_id(v)


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: str = "pending"
    total_amount: Optional[Decimal] = None
    items: List[OrderItem] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("shipping_address", mode="before")
    @classmethod
    def decode_shipping_address(cls, v: Any) -> Any:
        # Stored server-side as a JSON-encoded object
        return _decode_json_string(v)


class OrderPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: List[Order] = Field(default_factory=list)
    current_page: int = 1
    last_page: int = 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.last_page


class PaymentInstructions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    instructions: str = ""


class OrderConfirmation(BaseModel):
    """Response to a successful order creation"""
    model_config = ConfigDict(frozen=True)

    message: Optional[str] = None
    order: Optional[Order] = None
    payment_instructions: Optional[PaymentInstructions] = None
