import asyncio
from typing import Callable, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from storefront.api_client import ApiClient
from storefront.backend import InMemoryBackend
from storefront.credentials import MemoryTokenStore
from storefront.dev_server import create_app
from storefront.session import StorefrontSession

BASE_URL = "http://testserver/api"
TOKEN = "test-token"


class ScriptedTransport(httpx.AsyncBaseTransport):
    """
    Delegates to the development app, recording every request. Tests can
    make the next matching request fail or hold it until an event is set.
    """

    def __init__(self, inner: httpx.AsyncBaseTransport):
        self.inner = inner
        self.requests: List[Tuple[str, str]] = []
        self._scripts: List[Tuple[str, str, Callable]] = []

    def _add(self, method: str, path: str, action: Callable) -> None:
        self._scripts.append((method, path, action))

    def fail_next(self, method: str, path: str, status: Optional[int] = None, body=None) -> None:
        """Fail with a connectivity error, or with an HTTP error when status is given"""
        async def action(request):
            if status is None:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(status, json=body, request=request)
        self._add(method, path, action)

    def respond_next(self, method: str, path: str, status: int, body) -> None:
        async def action(request):
            return httpx.Response(status, json=body, request=request)
        self._add(method, path, action)

    def hold_next(self, method: str, path: str) -> asyncio.Event:
        release = asyncio.Event()

        async def action(request):
            await release.wait()
            return await self.inner.handle_async_request(request)
        self._add(method, path, action)
        return release

    def sent(self, method: str = None) -> List[Tuple[str, str]]:
        return [r for r in self.requests if method is None or r[0] == method]

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        for index, (method, suffix, action) in enumerate(self._scripts):
            if request.method == method and path.endswith(suffix):
                del self._scripts[index]
                return await action(request)
        return await self.inner.handle_async_request(request)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def transport(backend):
    return ScriptedTransport(httpx.ASGITransport(app=create_app(backend)))


@pytest.fixture
def token_store():
    return MemoryTokenStore(TOKEN)


@pytest_asyncio.fixture
async def api(transport, token_store):
    client = ApiClient(base_url=BASE_URL, token_store=token_store, transport=transport)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def session(transport, token_store):
    client = ApiClient(base_url=BASE_URL, token_store=token_store, transport=transport)
    session = StorefrontSession(client)
    yield session
    await session.close()


@pytest_asyncio.fixture
async def make_api():
    """Factory for ApiClients whose requests are answered by handler(request)"""
    clients = []

    def factory(handler, token: Optional[str] = TOKEN) -> ApiClient:
        client = ApiClient(
            base_url=BASE_URL,
            token_store=MemoryTokenStore(token),
            transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()
