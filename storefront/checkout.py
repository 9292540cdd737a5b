"""
Checkout service for turning the session cart into an order.
"""
import logging
from typing import Dict, Union

from pydantic import ValidationError as PydanticValidationError

from storefront.exceptions import ApiError, ValidationError
from storefront.logging_setup import hash_identifier
from storefront.models import (
    OrderConfirmation,
    OrderCreateRequest,
    OrderLine,
    ShippingAddress,
)
from storefront.session import StorefrontSession

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("bank", "mobile_money")


class CheckoutService:
    """Service for checkout operations"""

    def __init__(self, session: StorefrontSession):
        self.session = session

    def build_order(
        self,
        shipping_address: Union[ShippingAddress, Dict],
        payment_method: str
    ) -> OrderCreateRequest:
        """
        Validate checkout input against the current cart.

        Raises:
            ValidationError: Missing address fields, unknown payment method
                or empty cart
        """
        if not isinstance(shipping_address, ShippingAddress):
            try:
                shipping_address = ShippingAddress.model_validate(shipping_address)
            except PydanticValidationError:
                raise ValidationError("Please fill in all shipping address fields")

        if shipping_address.missing_fields():
            raise ValidationError("Please fill in all shipping address fields")

        if payment_method not in PAYMENT_METHODS:
            raise ValidationError("Please select a payment method")

        cart = self.session.cart.cart
        if not cart.items:
            raise ValidationError("Cannot checkout empty cart")

        return OrderCreateRequest(
            batteries=[
                OrderLine(id=item.product_id, quantity=item.quantity)
                for item in cart.items
            ],
            shipping_address=shipping_address,
            payment_method=payment_method
        )

    async def place_order(
        self,
        shipping_address: Union[ShippingAddress, Dict],
        payment_method: str
    ) -> OrderConfirmation:
        """
        Place an order for everything in the cart:
        1. Validate address, payment method and cart
        2. Create the order on the server
        3. Clear the cart

        A failure to clear the cart after the order was accepted does not
        undo the order; it is left on the cart store's error for the screen
        to show and the confirmation is still returned.

        Raises:
            ValidationError: See build_order
            ApiError: The order was not created; the cart is untouched
        """
        order = self.build_order(shipping_address, payment_method)
        confirmation = await self.session.api.orders.create(order)

        order_id = confirmation.order.id if confirmation.order else None
        logger.info(
            "Order placed",
            extra={
                "hashed_session_id": hash_identifier(self.session.session_id),
                "order_id": order_id,
                "lines": len(order.batteries)
            }
        )

        try:
            await self.session.cart.clear()
        except ApiError as e:
            logger.error(
                f"Order {order_id} placed but cart could not be cleared: {e.message}",
                extra={"order_id": order_id, "status_code": e.status}
            )

        return confirmation
