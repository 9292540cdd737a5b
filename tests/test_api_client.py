import json

import httpx
import pytest

from storefront.api_client import ApiClient
from storefront.credentials import TokenStore
from storefront.exceptions import ApiError, ResponseValidationError
from storefront.models import OrderCreateRequest


def json_handler(status=200, body=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)
    return handler


async def test_attaches_bearer_token(make_api):
    seen = []
    api = make_api(json_handler(body=[], seen=seen))
    await api.cart.get()
    assert seen[0].headers["Authorization"] == "Bearer test-token"


async def test_missing_token_is_not_an_error(make_api):
    seen = []
    api = make_api(json_handler(body=[], seen=seen), token=None)
    await api.cart.get()
    assert "Authorization" not in seen[0].headers


async def test_unwraps_body(make_api):
    api = make_api(json_handler(body={"success": True}))
    assert await api.cart.clear() == {"success": True}


async def test_empty_body_is_none(make_api):
    api = make_api(lambda request: httpx.Response(204))
    assert await api.favorites.remove("battery-1") is None


async def test_request_paths_and_bodies(make_api):
    seen = []
    api = make_api(json_handler(body={}, seen=seen))
    await api.cart.add_item("battery-1", 2)
    await api.cart.update_item("battery-1", 3)
    await api.favorites.add("battery-1")

    assert (seen[0].method, seen[0].url.path) == ("POST", "/api/cart/items")
    assert json.loads(seen[0].content) == {"productId": "battery-1", "quantity": 2}
    assert (seen[1].method, seen[1].url.path) == ("PUT", "/api/cart/items/battery-1")
    assert json.loads(seen[1].content) == {"quantity": 3}
    assert json.loads(seen[2].content) == {"productId": "battery-1"}


async def test_server_message_and_field_errors(make_api):
    body = {"message": "The given data was invalid.", "errors": {"quantity": ["Too many."], "productId": "Bad id"}}
    api = make_api(json_handler(status=422, body=body))

    with pytest.raises(ApiError) as exc_info:
        await api.cart.add_item("battery-1", 1000)

    error = exc_info.value
    assert error.message == "The given data was invalid."
    assert error.status == 422
    assert error.errors == {"quantity": ["Too many."], "productId": ["Bad id"]}
    assert error.is_validation_error
    assert not error.is_connectivity_error


async def test_server_error_without_message_uses_transport_text(make_api):
    api = make_api(lambda request: httpx.Response(503, text="upstream down"))

    with pytest.raises(ApiError) as exc_info:
        await api.cart.get()

    assert exc_info.value.message == "Request failed with status code 503"
    assert exc_info.value.status == 503
    assert exc_info.value.errors is None
    assert exc_info.value.is_server_error


async def test_connectivity_failure(make_api):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    api = make_api(handler)

    with pytest.raises(ApiError) as exc_info:
        await api.cart.get()

    assert exc_info.value.message == "No response from server"
    assert exc_info.value.status == 0
    assert exc_info.value.is_connectivity_error


async def test_timeout_is_connectivity_failure(make_api):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)
    api = make_api(handler)

    with pytest.raises(ApiError) as exc_info:
        await api.favorites.get()

    assert exc_info.value.message == "No response from server"
    assert exc_info.value.status == 0


async def test_request_setup_failure():
    class BrokenTokenStore(TokenStore):
        async def get_token(self):
            raise RuntimeError("keychain locked")

    api = ApiClient(
        base_url="http://testserver/api",
        token_store=BrokenTokenStore(),
        transport=httpx.MockTransport(json_handler(body=[]))
    )
    try:
        with pytest.raises(ApiError) as exc_info:
            await api.cart.get()
    finally:
        await api.aclose()

    assert exc_info.value.message == "Request setup failed"
    assert exc_info.value.status == 0


async def test_request_on_closed_client(make_api):
    api = make_api(json_handler(body=[]))
    await api.aclose()

    with pytest.raises(ApiError) as exc_info:
        await api.cart.get()

    assert exc_info.value.message == "Request setup failed"
    assert exc_info.value.status == 0


async def test_malformed_cart_fails_closed(make_api):
    api = make_api(json_handler(body=[{"productId": "a", "unitPrice": "-3", "quantity": 1}]))

    with pytest.raises(ResponseValidationError) as exc_info:
        await api.cart.get()

    error = exc_info.value
    assert error.status == 200
    assert error.message == "Malformed response from server"
    assert any("unit_price" in location or "unitPrice" in location for location in error.errors)


async def test_non_json_body_fails_closed(make_api):
    api = make_api(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ResponseValidationError):
        await api.cart.get()


async def test_search_drops_unset_params(make_api):
    seen = []
    api = make_api(json_handler(body={"data": [], "current_page": 1}, seen=seen))

    page = await api.products.search(query="pixel", brand=None, page=2, is_featured=True)

    assert page.data == []
    assert dict(seen[0].url.params) == {"query": "pixel", "page": "2", "is_featured": "true"}


async def test_get_product_unwraps_data(make_api):
    body = {"data": {"id": 3, "name": "Pixel", "brand": "PixelPower", "price": "29.99", "features": "[\"a\"]"}}
    api = make_api(json_handler(body=body))

    product = await api.products.get_by_id("3")

    assert product.id == "3"
    assert product.features == ["a"]


async def test_order_payload_uses_wire_names(make_api):
    seen = []
    api = make_api(json_handler(status=201, body={"message": "ok"}, seen=seen))
    order = OrderCreateRequest.model_validate({
        "batteries": [{"id": "1", "quantity": 2}],
        "shipping_address": {"street": "s", "city": "c", "state": "st", "zipCode": "z", "country": "co"},
        "payment_method": "bank",
    })

    confirmation = await api.orders.create(order)

    assert confirmation.message == "ok"
    sent = json.loads(seen[0].content)
    assert sent["shipping_address"]["zipCode"] == "z"
    assert sent["payment_method"] == "bank"
