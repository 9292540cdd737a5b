"""
Cart sync store: mirrors the server-owned cart for one session.
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple

from storefront.api_client import ApiClient
from storefront.exceptions import ApiError, ValidationError
from storefront.models import Cart, CartLineItem
from storefront.sync import SyncStore

logger = logging.getLogger(__name__)


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer")


class CartStore(SyncStore):
    """
    Session cart.

    Every mutation is confirmed by the server and followed by a full refetch
    of the cart; the local copy is never advanced optimistically. Only
    clear() skips the refetch, since its end state is known.
    """

    name = "cart"

    def __init__(self, api: ApiClient):
        super().__init__(api)
        self._cart = Cart()

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def items(self) -> Tuple[CartLineItem, ...]:
        return self._cart.items

    @property
    def item_count(self) -> int:
        return self._cart.item_count

    @property
    def total_price(self) -> Decimal:
        return self._cart.total_price

    def get_item(self, product_id: str) -> Optional[CartLineItem]:
        return self._cart.get(product_id)

    def contains(self, product_id: str) -> bool:
        return self._cart.get(product_id) is not None

    def quantity_of(self, product_id: str) -> int:
        item = self._cart.get(product_id)
        return item.quantity if item else 0

    def _reset_state(self) -> None:
        self._cart = Cart()

    def _commit(self, snapshot: Cart) -> None:
        self._cart = snapshot

    async def initialize(self) -> Cart:
        """Load the authoritative cart; safe to call again to retry"""
        await self._run("initialize", self.api.cart.get)
        return self._cart

    async def add(self, product_id: str, quantity: int = 1) -> Cart:
        """
        Add quantity of product_id. Adding a product already in the cart
        increases its quantity on the server instead of adding a line.

        Raises:
            ValidationError: quantity is not a positive integer
            ApiError: the add or the refetch failed; the cart is unchanged
        """
        _validate_quantity(quantity)
        if quantity < 1:
            raise ValidationError("Quantity must be greater than 0")

        async def add_and_resync() -> Cart:
            await self.api.cart.add_item(product_id, quantity)
            return await self.api.cart.get()

        logger.info(f"Adding {quantity} x {product_id} to cart")
        await self._run("add", add_and_resync)
        return self._cart

    async def update_quantity(self, product_id: str, quantity: int) -> Cart:
        """
        Set the quantity of a line. A quantity of zero or less removes the
        line; a product that is not in the cart is left alone.
        """
        _validate_quantity(quantity)
        if quantity <= 0:
            return await self.remove(product_id)

        async def update_and_resync() -> Optional[Cart]:
            if not self.contains(product_id):
                logger.debug(f"Ignoring quantity update for product not in cart: {product_id}")
                return None
            await self.api.cart.update_item(product_id, quantity)
            return await self.api.cart.get()

        await self._run("update_quantity", update_and_resync)
        return self._cart

    async def remove(self, product_id: str) -> Cart:
        """Remove a line; removing a product not in the cart is a no-op"""

        async def remove_and_resync() -> Optional[Cart]:
            if not self.contains(product_id):
                return None
            try:
                await self.api.cart.remove_item(product_id)
            except ApiError as e:
                if e.status != 404:
                    raise
                logger.info(f"Product already removed on server: {product_id}")
            return await self.api.cart.get()

        await self._run("remove", remove_and_resync)
        return self._cart

    async def clear(self) -> Cart:
        """Empty the cart on the server, then locally"""

        async def clear_remote() -> Cart:
            await self.api.cart.clear()
            return Cart()

        await self._run("clear", clear_remote)
        return self._cart
