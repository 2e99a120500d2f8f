import json

import httpx
import pytest

from nutricache.domain.errors import CatalogApiError, RateLimitedError
from nutricache.integrations.shopify_client import ShopifyStorefrontClient


def _product(handle, title, amount="19.90", compare=None, available=True):
    return {
        "node": {
            "id": f"gid://shopify/Product/{handle}",
            "title": title,
            "handle": handle,
            "description": f"{title} description",
            "descriptionHtml": "<h3>Bienfaits</h3><ul><li>Tonus</li></ul>",
            "tags": ["vegan"],
            "collections": {"edges": [{"node": {"id": "c1", "title": "Vitamines", "handle": "vitamines"}}]},
            "images": {"edges": [{"node": {"url": f"https://cdn.example/{handle}.jpg", "altText": None}}]},
            "variants": {"edges": [{"node": {
                "id": f"gid://shopify/ProductVariant/{handle}",
                "price": {"amount": amount, "currencyCode": "EUR"},
                "compareAtPrice": {"amount": compare, "currencyCode": "EUR"} if compare else None,
                "availableForSale": available,
            }}]},
        }
    }


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ShopifyStorefrontClient("shop.example.com", "token-123", client=http, page_size=2)


@pytest.mark.asyncio
async def test_fetch_page_maps_products_and_cursor():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["token"] = request.headers.get("X-Shopify-Storefront-Access-Token")
        seen["variables"] = json.loads(request.content)["variables"]
        return httpx.Response(200, json={"data": {"products": {
            "pageInfo": {"hasNextPage": True, "endCursor": "cur-2"},
            "edges": [
                _product("vitamine-d3", "Vitamine D3", compare="24.90"),
                _product("", "Sans handle"),
            ],
        }}})

    page = await _client(handler).fetch_page("cur-1")

    assert seen["url"] == "https://shop.example.com/api/2023-10/graphql.json"
    assert seen["token"] == "token-123"
    assert seen["variables"] == {"first": 2, "cursor": "cur-1"}
    assert page.next_cursor == "cur-2"
    assert [i.handle for i in page.items] == ["vitamine-d3"]

    item = page.items[0]
    assert item.price == pytest.approx(19.9)
    assert item.is_on_sale and item.discount_percentage == 20
    assert item.collections == ["Vitamines"]
    assert item.primary_collection == "vitamines"
    assert item.content.benefits == ["Tonus"]
    assert not item.enriched


@pytest.mark.asyncio
async def test_last_page_has_no_cursor():
    def handler(request):
        return httpx.Response(200, json={"data": {"products": {
            "pageInfo": {"hasNextPage": False, "endCursor": "ignored"},
            "edges": [_product("omega-3", "Oméga 3")],
        }}})

    page = await _client(handler).fetch_page(None)
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_graphql_errors_raise():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

    with pytest.raises(CatalogApiError):
        await _client(handler).fetch_page(None)


@pytest.mark.asyncio
async def test_http_error_raises():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).fetch_page(None)


@pytest.mark.asyncio
async def test_product_page_statuses():
    def handler(request):
        handle = request.url.path.rsplit("/", 1)[-1]
        if handle == "busy":
            return httpx.Response(429, headers={"Retry-After": "2"})
        if handle == "gone":
            return httpx.Response(404)
        return httpx.Response(200, text="<html>ok</html>")

    client = _client(handler)
    assert await client.fetch_product_page("vitamine-d3") == "<html>ok</html>"
    assert await client.fetch_product_page("gone") is None
    with pytest.raises(RateLimitedError) as exc:
        await client.fetch_product_page("busy")
    assert exc.value.handle == "busy"
    assert exc.value.retry_after == 2.0


def test_missing_credentials():
    with pytest.raises(ValueError):
        ShopifyStorefrontClient("", "")
