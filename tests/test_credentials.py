import pytest
from redis.exceptions import AuthenticationError, ConnectionError, ResponseError

from storefront.credentials import MemoryTokenStore, RedisTokenStore
from storefront.exceptions import TokenStoreError


class FakeRedis:
    """Async stand-in for redis.asyncio.Redis failing a scripted number of times"""

    def __init__(self, failures=()):
        self.data = {}
        self.failures = list(failures)
        self.calls = 0
        self.closed = False

    def _maybe_fail(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)

    async def get(self, key):
        self._maybe_fail()
        return self.data.get(key)

    async def set(self, key, value):
        self._maybe_fail()
        self.data[key] = value
        return True

    async def delete(self, key):
        self._maybe_fail()
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self):
        self.closed = True


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(_):
        return None
    monkeypatch.setattr("storefront.credentials.asyncio.sleep", instant)


async def test_memory_store_round_trip():
    store = MemoryTokenStore()
    assert await store.get_token() is None
    await store.set_token("abc")
    assert await store.get_token() == "abc"
    await store.clear_token()
    assert await store.get_token() is None


async def test_redis_store_uses_configured_key():
    client = FakeRedis()
    store = RedisTokenStore(client=client, key="session:token")

    await store.set_token("abc")

    assert client.data == {"session:token": "abc"}
    assert await store.get_token() == "abc"
    await store.clear_token()
    assert await store.get_token() is None


async def test_redis_store_retries_connection_errors():
    client = FakeRedis(failures=[ConnectionError("reset"), ConnectionError("reset")])
    client.data["token"] = "abc"
    store = RedisTokenStore(client=client, key="token")

    assert await store.get_token() == "abc"
    assert client.calls == 3


async def test_redis_store_gives_up_after_max_retries():
    client = FakeRedis(failures=[ConnectionError("down")] * 3)
    store = RedisTokenStore(client=client, key="token", max_retries=3)

    with pytest.raises(TokenStoreError):
        await store.get_token()


@pytest.mark.parametrize("error", [AuthenticationError("bad password"), ResponseError("WRONGTYPE")])
async def test_redis_store_does_not_retry_fatal_errors(error):
    client = FakeRedis(failures=[error])
    store = RedisTokenStore(client=client, key="token")

    with pytest.raises(TokenStoreError):
        await store.get_token()
    assert client.calls == 1


async def test_close():
    client = FakeRedis()
    await RedisTokenStore(client=client).close()
    assert client.closed
