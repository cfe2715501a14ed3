"""Tests for the catalog fetcher against a mocked upstream."""

import json

import httpx
import pytest

from backend.src.core.categories import Category
from backend.src.core.config import settings
from backend.src.core.exceptions import CrawlError
from backend.src.services.catalog_fetcher import CatalogFetcher

LISTING = [
    {"componentType": "productRecommed", "props": [{"props": [{"productCode": "u001"}, {"productCode": "u002"}]}]},
    {"componentType": "image", "props": [{"alt": "女装"}]},
    {"componentType": "productRecommed_v2", "props": [{"props": [{"productCode": "u003"}, {"productCode": "u001"}]}]},
    {"componentType": "image", "props": [{"alt": "男装"}]},
]

DETAILS = {
    "u001": {
        "summary": {"name": "Down Jacket", "code": "455123", "sex": "女装", "minPrice": "399"},
        "rows": [
            {"productId": "sku-a", "style": "09 BLACK", "size": "M", "varyPrice": "299"},
            {"productId": "sku-b", "style": "09 BLACK", "size": "L", "varyPrice": "299"},
        ],
    },
    "u002": {
        # Listed in the women's sections, but the product itself is menswear
        "summary": {"name": "Oxford Shirt", "code": "455777", "gDeptValue": "男装"},
        "rows": [{"productId": "sku-c", "style": "00 WHITE", "size": "L", "varyPrice": "149"}],
    },
    "u003": {
        "summary": {"name": "Chino", "code": "455888", "sex": "男装"},
        "rows": [{"productId": "sku-d", "style": "32 BEIGE", "size": "76", "varyPrice": "199"}],
    },
}

STOCK = {
    "u001": {"skuStocks": {"sku-a": 1, "sku-b": 0}, "expressSkuStocks": {"sku-a": 2}},
    "u002": {"skuStocks": {"sku-c": 4}, "expressSkuStocks": {}},
    "u003": {"skuStocks": {"sku-d": 0}, "expressSkuStocks": {"sku-d": 5}},
}


def make_handler(listing_status=200, broken_details=()):
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == settings.CATALOG_CONFIG_URL:
            return httpx.Response(listing_status, json=LISTING)
        if url.startswith(settings.CATALOG_DETAIL_URL):
            product_id = url.rsplit("/", 1)[-1].removesuffix(".json")
            if product_id in broken_details or product_id not in DETAILS:
                return httpx.Response(404)
            return httpx.Response(200, json=DETAILS[product_id])
        if url == settings.CATALOG_STOCK_URL:
            product_id = json.loads(request.content)["productCode"]
            return httpx.Response(200, json={"resp": [STOCK[product_id]]})
        if url == settings.CATALOG_SEARCH_URL:
            return httpx.Response(
                200,
                json={"resp": [{}, [{"productCode": "u001", "code": "455123", "minPrice": 299, "mainPic": "/a.jpg"}]]},
            )
        return httpx.Response(500)

    return handler


def make_fetcher(**handler_options) -> CatalogFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(make_handler(**handler_options)))
    return CatalogFetcher(http_client=client, max_concurrency=2, jitter_ms=0)


@pytest.mark.asyncio
async def test_candidate_codes_for_category_follow_section_grouping():
    fetcher = make_fetcher()

    assert await fetcher.fetch_candidate_codes(Category.WOMEN) == ["u001", "u002"]
    assert await fetcher.fetch_candidate_codes(Category.MEN) == ["u003", "u001"]
    assert await fetcher.fetch_candidate_codes(Category.KIDS) == []
    assert await fetcher.fetch_candidate_codes() == ["u001", "u002", "u003"]

    await fetcher.close()


@pytest.mark.asyncio
async def test_listing_failure_raises_crawl_error():
    fetcher = make_fetcher(listing_status=503)

    with pytest.raises(CrawlError):
        await fetcher.fetch_candidate_codes(Category.WOMEN)

    await fetcher.close()


@pytest.mark.asyncio
async def test_catalog_items_keep_in_stock_variants_of_matching_category():
    fetcher = make_fetcher()

    items = await fetcher.fetch_catalog_items(["u001", "u002"], Category.WOMEN)

    assert len(items) == 1
    item = items[0]
    assert (item.product_id, item.sku_id, item.color, item.size) == ("u001", "sku-a", "09 BLACK", "M")
    assert item.stock == 3
    assert item.price == 299
    assert item.code == "455123"
    assert item.category == "WOMEN"

    await fetcher.close()


@pytest.mark.asyncio
async def test_whole_catalog_classifies_each_product():
    fetcher = make_fetcher()

    items = await fetcher.fetch_catalog_items(["u001", "u002", "u003"])

    by_product = {item.product_id: item.category for item in items}
    assert by_product == {"u001": "WOMEN", "u002": "MEN", "u003": "MEN"}

    await fetcher.close()


@pytest.mark.asyncio
async def test_failing_candidate_is_skipped():
    fetcher = make_fetcher(broken_details=("u001",))

    items = await fetcher.fetch_catalog_items(["u001", "u003"], Category.MEN)

    assert [item.product_id for item in items] == ["u003"]

    await fetcher.close()


@pytest.mark.asyncio
async def test_fetch_variant_stock():
    fetcher = make_fetcher()

    assert await fetcher.fetch_variant_stock("u001", "09 BLACK", "M") == 3
    assert await fetcher.fetch_variant_stock("u001", "09 BLACK", "L") == 0
    assert await fetcher.fetch_variant_stock("u001", "00 WHITE", "M") == 0

    await fetcher.close()


@pytest.mark.asyncio
async def test_fetch_variant_stock_raises_when_detail_missing():
    fetcher = make_fetcher(broken_details=("u001",))

    with pytest.raises(CrawlError):
        await fetcher.fetch_variant_stock("u001", "09 BLACK", "M")

    await fetcher.close()


@pytest.mark.asyncio
async def test_search_by_code_returns_variant_stock():
    fetcher = make_fetcher()

    products = await fetcher.search_by_code("455123")

    assert len(products) == 1
    product = products[0]
    assert product.product_id == "u001"
    assert product.category == "WOMEN"
    assert product.image_url == "/a.jpg"
    assert {(v.size, v.stock) for v in product.variants} == {("M", 3), ("L", 0)}

    await fetcher.close()
