"""
Bearer credential stores consulted by the API client before each request.

Acquiring the credential (login) happens elsewhere; these stores only hold it.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    RedisError,
    AuthenticationError
)

from storefront.config import Config
from storefront.exceptions import TokenStoreError

logger = logging.getLogger(__name__)


class TokenStore:
    """Interface for credential storage"""

    async def get_token(self) -> Optional[str]:
        raise NotImplementedError

    async def set_token(self, token: str) -> None:
        raise NotImplementedError

    async def clear_token(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    """Keeps the credential in process memory"""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token

    async def set_token(self, token: str) -> None:
        self._token = token

    async def clear_token(self) -> None:
        self._token = None


class RedisTokenStore(TokenStore):
    """Redis-backed credential store with retry logic"""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        key: Optional[str] = None,
        max_retries: int = 3
    ):
        self.client = client or self._connect()
        self.key = key or Config.TOKEN_KEY
        self.max_retries = max_retries

    @staticmethod
    def _connect() -> redis.Redis:
        """Create a Redis client from Config"""
        return redis.Redis(
            host=Config.REDIS_HOST,
            port=Config.REDIS_PORT,
            db=Config.REDIS_DB,
            password=Config.REDIS_AUTH_TOKEN,
            socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
            decode_responses=True
        )

    async def _retry_with_backoff(
        self,
        func: Callable[[], Awaitable[Any]],
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute coroutine function with exponential backoff retry.

        Raises:
            TokenStoreError: If all retries fail or the error is not retryable
        """
        backoff = initial_backoff

        for attempt in range(self.max_retries):
            try:
                return await func()
            except AuthenticationError as e:
                raise TokenStoreError(f"Redis authentication failed: {e}")
            except (ConnectionError, TimeoutError) as e:
                if attempt == self.max_retries - 1:
                    raise TokenStoreError(
                        f"Token store operation failed after {self.max_retries} retries: {e}"
                    )

                logger.warning(
                    f"Token store unavailable, retrying (attempt {attempt + 1})",
                    extra={"attempt": attempt + 1, "error": str(e)}
                )
                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                await asyncio.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)
            except RedisError as e:
                # Non-retryable errors
                raise TokenStoreError(f"Redis error: {e}")

    async def get_token(self) -> Optional[str]:
        return await self._retry_with_backoff(lambda: self.client.get(self.key))

    async def set_token(self, token: str) -> None:
        await self._retry_with_backoff(lambda: self.client.set(self.key, token))

    async def clear_token(self) -> None:
        await self._retry_with_backoff(lambda: self.client.delete(self.key))

    async def close(self) -> None:
        await self.client.aclose()
