import json
from decimal import Decimal

import httpx
import pytest

from shopify_engraving.errors import CartGatewayError
from shopify_engraving.models.cart_models import CartAddRequest, CartItem, LineItemProperties
from shopify_engraving.storefront.cart import DEFAULT_SECTIONS, AjaxCartGateway, FakeCartGateway


def make_request():
    return CartAddRequest(
        items=[CartItem(
            id="111",
            quantity=2,
            properties=LineItemProperties(engraving="Forever", engraving_price=Decimal("10")),
        )],
        sections=DEFAULT_SECTIONS,
    )


def test_payload_uses_cart_property_names():
    payload = make_request().to_payload()
    assert payload["items"] == [{
        "id": "111",
        "quantity": 2,
        "properties": {"Engraving": "Forever", "_engraving_price": "10.00"},
    }]
    assert payload["sections"] == DEFAULT_SECTIONS


@pytest.mark.asyncio
async def test_ajax_gateway_posts_cart_add_js():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"items": [{"id": 111, "quantity": 2}]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://shop.test")
    gateway = AjaxCartGateway("https://shop.test", client=client)

    result = await gateway.add(make_request())

    assert seen["path"] == "/cart/add.js"
    assert seen["body"]["items"][0]["properties"]["Engraving"] == "Forever"
    assert result["items"][0]["id"] == 111
    await client.aclose()


@pytest.mark.asyncio
async def test_ajax_gateway_maps_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"description": "Sold out"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://shop.test")
    gateway = AjaxCartGateway("https://shop.test", client=client)

    with pytest.raises(CartGatewayError) as exc_info:
        await gateway.add(make_request())

    assert exc_info.value.status_code == 422
    assert str(exc_info.value) == "HTTP error! status: 422"
    await client.aclose()


@pytest.mark.asyncio
async def test_ajax_gateway_maps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://shop.test")
    gateway = AjaxCartGateway("https://shop.test", client=client)

    with pytest.raises(CartGatewayError) as exc_info:
        await gateway.add(make_request())

    assert exc_info.value.status_code is None
    await client.aclose()


@pytest.mark.asyncio
async def test_fake_gateway_records_requests():
    gateway = FakeCartGateway()

    result = await gateway.add(make_request())

    assert len(gateway.requests) == 1
    assert result["items"][0]["properties"]["_engraving_price"] == "10.00"
