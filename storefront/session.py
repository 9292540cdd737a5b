"""
Authenticated session scope owning the API client and both sync stores.
"""
import asyncio
import logging
import uuid
from typing import Dict, Optional

import httpx

from storefront.api_client import ApiClient
from storefront.cart_store import CartStore
from storefront.config import Config
from storefront.credentials import MemoryTokenStore, TokenStore
from storefront.exceptions import ApiError, SessionClosedError
from storefront.favorites_store import FavoritesStore
from storefront.logging_setup import hash_identifier

logger = logging.getLogger(__name__)


class StorefrontSession:
    """
    Created at login, closed at logout.

    Screens receive the session (or its stores) explicitly; nothing here is
    reachable through module globals.
    """

    def __init__(self, api: ApiClient, session_id: Optional[str] = None):
        self.api = api
        self.session_id = session_id or uuid.uuid4().hex
        self.cart = CartStore(api)
        self.favorites = FavoritesStore(api)
        self._closed = False

    @classmethod
    def from_config(
        cls,
        token_store: Optional[TokenStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "StorefrontSession":
        """Build a session against Config.API_BASE_URL"""
        Config.load_api_secrets()
        if token_store is None:
            token_store = MemoryTokenStore(Config.API_TOKEN)
        return cls(ApiClient(token_store=token_store, transport=transport))

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "StorefrontSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> Dict[str, ApiError]:
        """
        Load cart and favorites concurrently.

        A failure in one store does not stop the other. Returns the errors
        keyed by store name; each is also left on the failing store.
        """
        if self._closed:
            raise SessionClosedError()

        logger.info(
            "Session started",
            extra={"hashed_session_id": hash_identifier(self.session_id)}
        )
        results = await asyncio.gather(
            self.cart.initialize(),
            self.favorites.initialize(),
            return_exceptions=True
        )

        errors: Dict[str, ApiError] = {}
        for store, result in zip((self.cart, self.favorites), results):
            if isinstance(result, ApiError):
                errors[store.name] = result
            elif isinstance(result, BaseException):
                raise result
        return errors

    async def close(self, clear_credentials: bool = False) -> None:
        """Tear down both stores and the client (logout)"""
        if self._closed:
            return
        self._closed = True

        self.cart.close()
        self.favorites.close()
        logger.info(
            "Session closed",
            extra={"hashed_session_id": hash_identifier(self.session_id)}
        )
        try:
            if clear_credentials:
                await self.api.token_store.clear_token()
        finally:
            await self.api.aclose()
