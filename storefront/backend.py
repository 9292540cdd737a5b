"""
In-memory storefront state used by the development server.

Each bearer token owns one cart, one favorites list and its orders.
"""
import json
import itertools
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from storefront.exceptions import (
    CartLineNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from storefront.models import OrderCreateRequest

PAYMENT_INSTRUCTIONS = {
    "bank": "Transfer the order total to the store account and use your order number as reference.",
    "mobile_money": "Send the order total via mobile money and reply with the transaction code.",
}

DEFAULT_CATALOG: List[Dict] = [
    {
        "id": "1",
        "name": "iPhone 11 Replacement Battery",
        "brand": "PowerCell",
        "price": "39.99",
        "original_price": "59.99",
        "compatibility": "iPhone 11",
        "capacity_percentage": 92,
        "capacity": "3110 mAh",
        "voltage": "3.79V",
        "warranty": "1 year",
        "description": "Brand new replacement battery for iPhone 11.",
        "features": json.dumps(["Easy installation", "Includes installation tools"]),
        "image_url": "https://images.example.com/batteries/iphone-11.jpg",
        "is_featured": True,
        "is_on_sale": True,
        "created_at": "2025-01-10T09:00:00Z",
        "category": {"id": 1, "name": "Apple", "slug": "apple", "image_url": None},
    },
    {
        "id": "2",
        "name": "Samsung Galaxy S21 Original Refurbished Battery",
        "brand": "SamsungParts",
        "price": "42.99",
        "original_price": None,
        "compatibility": "Samsung Galaxy S21",
        "capacity_percentage": 89,
        "capacity": "4000 mAh",
        "voltage": "3.85V",
        "warranty": "1 year",
        "description": "Original Samsung battery refurbished to like-new condition.",
        "features": json.dumps(["Genuine Samsung parts", "Professionally refurbished"]),
        "image_url": "https://images.example.com/batteries/galaxy-s21.jpg",
        "is_featured": False,
        "is_on_sale": False,
        "created_at": "2025-01-12T09:00:00Z",
        "category": {"id": 2, "name": "Samsung", "slug": "samsung", "image_url": None},
    },
    {
        "id": "3",
        "name": "Google Pixel 5 Battery Replacement Kit",
        "brand": "PixelPower",
        "price": "29.99",
        "original_price": "44.99",
        "compatibility": "Google Pixel 5",
        "capacity_percentage": 94,
        "capacity": "4080 mAh",
        "voltage": "3.85V",
        "warranty": "18 months",
        "description": "Complete battery replacement kit for Google Pixel 5.",
        "features": json.dumps(["Premium quality cells", "Complete toolkit included"]),
        "image_url": "https://images.example.com/batteries/pixel-5.jpg",
        "is_featured": True,
        "is_on_sale": True,
        "created_at": "2025-01-15T09:00:00Z",
        "category": {"id": 3, "name": "Google", "slug": "google", "image_url": None},
    },
]

SORT_KEYS = {
    "price": lambda p: Decimal(p["price"]),
    "created_at": lambda p: p.get("created_at") or "",
    "capacity_percentage": lambda p: p.get("capacity_percentage") or 0,
    "discount_percentage": lambda p: _discount(p),
}


def _discount(product: Dict) -> Decimal:
    if not product.get("original_price"):
        return Decimal("0")
    original = Decimal(product["original_price"])
    return (original - Decimal(product["price"])) / original


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryBackend:
    """Catalog plus per-token carts, favorites and orders"""

    def __init__(self, catalog: Optional[List[Dict]] = None):
        self.products: Dict[str, Dict] = {
            product["id"]: product for product in (catalog if catalog is not None else DEFAULT_CATALOG)
        }
        self.carts: Dict[str, Dict[str, int]] = {}
        self.favorites: Dict[str, List[str]] = {}
        self.orders: Dict[str, List[Dict]] = {}
        self._order_ids = itertools.count(1)

    def get_product(self, product_id: str) -> Dict:
        if product_id not in self.products:
            raise ProductNotFoundError(product_id)
        return self.products[product_id]

    # Cart

    def _line(self, product_id: str, quantity: int) -> Dict:
        product = self.products[product_id]
        return {
            "productId": product_id,
            "name": product["name"],
            "imageUrl": product.get("image_url"),
            "unitPrice": product["price"],
            "quantity": quantity,
        }

    def cart_lines(self, token: str) -> List[Dict]:
        return [self._line(pid, qty) for pid, qty in self.carts.get(token, {}).items()]

    def add_item(self, token: str, product_id: str, quantity: int) -> Dict:
        self.get_product(product_id)
        cart = self.carts.setdefault(token, {})
        cart[product_id] = cart.get(product_id, 0) + quantity
        return self._line(product_id, cart[product_id])

    def update_item(self, token: str, product_id: str, quantity: int) -> Optional[Dict]:
        """Set a line's quantity; zero or less removes it and returns None"""
        cart = self.carts.get(token, {})
        if product_id not in cart:
            raise CartLineNotFoundError(product_id)
        if quantity <= 0:
            del cart[product_id]
            return None
        cart[product_id] = quantity
        return self._line(product_id, quantity)

    def remove_item(self, token: str, product_id: str) -> None:
        cart = self.carts.get(token, {})
        if product_id not in cart:
            raise CartLineNotFoundError(product_id)
        del cart[product_id]

    def clear_cart(self, token: str) -> None:
        self.carts.pop(token, None)

    # Favorites

    def favorite_products(self, token: str) -> List[Dict]:
        return [self.products[pid] for pid in self.favorites.get(token, [])]

    def add_favorite(self, token: str, product_id: str) -> None:
        self.get_product(product_id)
        favorites = self.favorites.setdefault(token, [])
        if product_id not in favorites:
            favorites.append(product_id)

    def remove_favorite(self, token: str, product_id: str) -> None:
        favorites = self.favorites.get(token, [])
        if product_id in favorites:
            favorites.remove(product_id)

    def clear_favorites(self, token: str) -> None:
        self.favorites.pop(token, None)

    # Catalog

    def search(
        self,
        query: Optional[str] = None,
        brand: Optional[str] = None,
        category: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        min_capacity_percentage: Optional[int] = None,
        is_featured: Optional[bool] = None,
        compatibility: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_direction: str = "asc",
        page: int = 1,
        per_page: int = 10
    ) -> Dict:
        products = list(self.products.values())
        if query:
            needle = query.lower()
            products = [
                p for p in products
                if needle in p["name"].lower() or needle in (p.get("description") or "").lower()
            ]
        if brand:
            products = [p for p in products if p["brand"].lower() == brand.lower()]
        if category:
            products = [
                p for p in products
                if p.get("category") and category.lower() in (
                    str(p["category"]["id"]), p["category"]["name"].lower(), (p["category"].get("slug") or "")
                )
            ]
        if min_price is not None:
            products = [p for p in products if Decimal(p["price"]) >= min_price]
        if max_price is not None:
            products = [p for p in products if Decimal(p["price"]) <= max_price]
        if min_capacity_percentage is not None:
            products = [p for p in products if (p.get("capacity_percentage") or 0) >= min_capacity_percentage]
        if is_featured is not None:
            products = [p for p in products if p.get("is_featured", False) == is_featured]
        if compatibility:
            products = [p for p in products if compatibility.lower() in (p.get("compatibility") or "").lower()]
        if sort_by in SORT_KEYS:
            products.sort(key=SORT_KEYS[sort_by], reverse=sort_direction == "desc")

        total = len(products)
        total_pages = max(1, -(-total // per_page))
        start = (page - 1) * per_page
        return {
            "data": products[start:start + per_page],
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total,
            "per_page": per_page,
        }

    def brands(self) -> List[str]:
        return sorted({p["brand"] for p in self.products.values()})

    # Orders

    def create_order(self, token: str, request: OrderCreateRequest) -> Dict:
        items = []
        total = Decimal("0")
        for index, line in enumerate(request.batteries):
            product = self.get_product(line.id)
            price = Decimal(product["price"])
            subtotal = price * line.quantity
            total += subtotal
            items.append({
                "id": str(index + 1),
                "battery_id": line.id,
                "quantity": line.quantity,
                "price": str(price),
                "subtotal": str(subtotal),
            })

        order = {
            "id": str(next(self._order_ids)),
            "status": "pending",
            "total_amount": str(total),
            "items": items,
            "shipping_address": json.dumps(request.shipping_address.model_dump(by_alias=True)),
            "payment_method": request.payment_method,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.orders.setdefault(token, []).append(order)
        return order

    def list_orders(self, token: str, page: int = 1, per_page: int = 10) -> Dict:
        orders = list(reversed(self.orders.get(token, [])))
        start = (page - 1) * per_page
        return {
            "data": orders[start:start + per_page],
            "current_page": page,
            "last_page": max(1, -(-len(orders) // per_page)),
        }

    def get_order(self, token: str, order_id: str) -> Dict:
        for order in self.orders.get(token, []):
            if order["id"] == order_id:
                return order
        raise OrderNotFoundError(order_id)
