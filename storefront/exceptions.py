"""
Custom exceptions for the storefront sync client.
"""
from typing import Dict, List, Optional


class StorefrontError(Exception):
    """Base exception for storefront client operations"""
    pass


class ApiError(StorefrontError):
    """
    Normalized failure of a remote API call.

    status is 0 when no response reached the network layer (connectivity,
    timeout, request setup); otherwise it is the HTTP status code.
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        errors: Optional[Dict[str, List[str]]] = None
    ):
        self.message = message
        self.status = status
        self.errors = errors
        super().__init__(message)

    @property
    def is_connectivity_error(self) -> bool:
        return self.status == 0

    @property
    def is_validation_error(self) -> bool:
        return 400 <= self.status < 500 and bool(self.errors)

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500

    def to_dict(self) -> Dict:
        data = {"message": self.message, "status": self.status}
        if self.errors:
            data["errors"] = self.errors
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status={self.status})"


class ResponseValidationError(ApiError):
    """Raised when a successful response body does not match the expected shape"""

    def __init__(self, status: int, errors: Dict[str, List[str]]):
        super().__init__("Malformed response from server", status=status, errors=errors)


class ValidationError(StorefrontError):
    """Raised when a local precondition fails before any network call"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TokenStoreError(StorefrontError):
    """Raised when the credential store cannot be reached"""
    pass


class SessionClosedError(StorefrontError):
    """Raised when a session is used after logout"""

    def __init__(self):
        super().__init__("Session has been closed")


class BackendError(StorefrontError):
    """Base exception for the development backend"""
    pass


class ProductNotFoundError(BackendError):
    """Raised when a product id is not in the catalog"""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class CartLineNotFoundError(BackendError):
    """Raised when a product is not in the cart"""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found in cart: {product_id}")


class OrderNotFoundError(BackendError):
    """Raised when an order does not exist for the caller"""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")
