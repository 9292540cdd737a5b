import asyncio

import pytest

from storefront.exceptions import ApiError
from storefront.favorites_store import FavoritesStore
from storefront.sync import SyncStatus


@pytest.fixture
def store(api):
    return FavoritesStore(api)


async def test_initialize_loads_ids(store, backend):
    backend.add_favorite("test-token", "3")
    backend.add_favorite("test-token", "1")

    ids = await store.initialize()

    assert ids == ("3", "1")
    assert store.status == SyncStatus.READY


async def test_toggle_twice_restores_membership(store):
    await store.initialize()

    assert await store.toggle("1") is True
    assert store.is_favorite("1")

    assert await store.toggle("1") is False
    assert not store.is_favorite("1")
    assert store.product_ids == ()


async def test_toggle_updates_single_id_without_refetch(store, transport):
    await store.initialize()
    gets_before = len(transport.sent("GET"))

    await store.toggle("1")
    await store.toggle("2")

    assert store.product_ids == ("1", "2")
    assert len(transport.sent("GET")) == gets_before


async def test_failed_add_leaves_membership(store, transport):
    await store.toggle("1")
    before = store.product_ids
    transport.fail_next("POST", "/favorites")

    with pytest.raises(ApiError):
        await store.toggle("2")

    assert store.product_ids is before
    assert not store.is_favorite("2")
    assert store.error.status == 0


async def test_failed_remove_leaves_membership(store, transport):
    await store.toggle("1")
    transport.fail_next("DELETE", "/favorites/1", status=500, body={"message": "Try again later"})

    with pytest.raises(ApiError):
        await store.toggle("1")

    assert store.is_favorite("1")
    assert store.error.message == "Try again later"


async def test_local_change_waits_for_server(store, transport):
    release = transport.hold_next("POST", "/favorites")
    task = asyncio.create_task(store.toggle("1"))
    await asyncio.sleep(0.05)

    assert not store.is_favorite("1")

    release.set()
    assert await task is True
    assert store.is_favorite("1")


async def test_rapid_toggles_apply_in_order(store, transport):
    release = transport.hold_next("POST", "/favorites")
    first = asyncio.create_task(store.toggle("1"))
    second = asyncio.create_task(store.toggle("1"))
    await asyncio.sleep(0.05)
    release.set()

    assert await asyncio.gather(first, second) == [True, False]
    assert [r[0] for r in transport.sent()] == ["POST", "DELETE"]


async def test_clear(store, backend):
    await store.toggle("1")
    await store.toggle("2")

    await store.clear()

    assert store.product_ids == ()
    assert backend.favorites.get("test-token") is None


async def test_failed_clear_keeps_favorites(store, transport):
    await store.toggle("1")
    before = store.product_ids
    transport.fail_next("DELETE", "/favorites", status=500)

    with pytest.raises(ApiError):
        await store.clear()

    assert store.product_ids is before
    assert store.is_favorite("1")


async def test_unknown_product_is_validation_error(store):
    with pytest.raises(ApiError) as exc_info:
        await store.toggle("no-such-product")

    assert exc_info.value.is_validation_error
    assert store.product_ids == ()
