"""
Retailer catalog fetcher.

Discovers candidate products from the listing configuration, then fetches
per-product detail and stock with bounded concurrency and request jitter.
Only variants with positive stock are materialized.
"""

import asyncio
import random
from typing import Any, Dict, Iterable, List, Optional

import httpx

from backend.src.api.schemas.catalog_schemas import (
    CatalogItemData,
    ProductStock,
    VariantStock,
)
from backend.src.core.categories import (
    Category,
    category_matches,
    classify_category,
    find_section_markers,
)
from backend.src.core.config import settings
from backend.src.core.exceptions import CrawlError
from backend.src.core.logging import get_logger

logger = get_logger(__name__)

PRODUCT_SECTION_TYPES = ("productRecommed", "productRecommed_v2")

COMMON_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Referer": "https://www.uniqlo.cn/",
}


def iter_sections(config: Any) -> List[Dict[str, Any]]:
    """Listing sections in upstream order; the config is a list or an ordered mapping."""
    if isinstance(config, dict):
        values: Iterable[Any] = config.values()
    elif isinstance(config, list):
        values = config
    else:
        return []
    return [section for section in values if isinstance(section, dict)]


def is_product_section(section: Dict[str, Any]) -> bool:
    return section.get("componentType") in PRODUCT_SECTION_TYPES


def section_product_codes(section: Dict[str, Any]) -> List[str]:
    """Product ids listed by a product section."""
    codes: List[str] = []
    for group in section.get("props") or []:
        if not isinstance(group, dict):
            continue
        for prop in group.get("props") or []:
            if isinstance(prop, dict) and prop.get("productCode"):
                codes.append(str(prop["productCode"]))
    return codes


def _section_texts(value: Any) -> List[str]:
    # All string leaves of a section (titles, alt texts, link labels)
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [text for item in value.values() for text in _section_texts(item)]
    if isinstance(value, list):
        return [text for item in value for text in _section_texts(item)]
    return []


def group_sections(config: Any) -> Dict[Category, List[Dict[str, Any]]]:
    """
    Group product sections into category buckets.

    Sections are scanned in order. Product sections accumulate into an open
    bucket; the first non-product section whose text names exactly one
    category closes the bucket and assigns it to that category. Sections
    naming several categories (navigation bars) do not close a bucket, and
    product sections after the last marker stay unassigned.

    Args:
        config: Parsed listing configuration

    Returns:
        Mapping of category to its product sections in upstream order
    """
    groups: Dict[Category, List[Dict[str, Any]]] = {}
    bucket: List[Dict[str, Any]] = []

    for section in iter_sections(config):
        if is_product_section(section):
            bucket.append(section)
            continue

        markers = find_section_markers(_section_texts(section))
        if len(markers) != 1 or not bucket:
            continue

        (category,) = markers
        groups.setdefault(category, []).extend(bucket)
        bucket = []

    if bucket:
        logger.debug(
            "Listing sections after the last category marker left unassigned",
            extra={"section_count": len(bucket)},
        )

    return groups


def _dedupe(codes: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for code in codes:
        if code not in seen:
            seen.add(code)
            ordered.append(code)
    return ordered


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_float(*values: Any) -> float:
    # First value that parses to a non-zero float
    for value in values:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            continue
        if parsed:
            return parsed
    return 0.0


def merge_stock_maps(stock_payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, int]]:
    """
    Sum store and express stock per SKU.

    Returns:
        SKU to units mapping, or None if the payload is malformed
    """
    if not isinstance(stock_payload, dict):
        return None
    resp = stock_payload.get("resp")
    if not isinstance(resp, list) or not resp or not isinstance(resp[0], dict):
        return None

    sku_stocks = resp[0].get("skuStocks") or {}
    express_stocks = resp[0].get("expressSkuStocks") or {}

    merged: Dict[str, int] = {}
    for sku in set(sku_stocks) | set(express_stocks):
        merged[sku] = _to_int(sku_stocks.get(sku)) + _to_int(express_stocks.get(sku))
    return merged


def _row_color(row: Dict[str, Any]) -> str:
    return str(row.get("style") or row.get("styleText") or "")


def _row_size(row: Dict[str, Any]) -> str:
    return str(row.get("size") or row.get("sizeText") or "")


class CatalogFetcher:
    """
    Client for the retailer catalog endpoints.

    One shared httpx client is reused across cycles; each crawl bounds its
    own in-flight detail and stock requests with a semaphore.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        max_concurrency: Optional[int] = None,
        jitter_ms: Optional[int] = None,
    ):
        self._http_client = http_client
        self.max_concurrency = max_concurrency or settings.CATALOG_MAX_CONCURRENCY
        self.jitter_ms = settings.CATALOG_JITTER_MS if jitter_ms is None else jitter_ms

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.CATALOG_HTTP_TIMEOUT),
                follow_redirects=True,
                headers=COMMON_HEADERS,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _jitter(self) -> None:
        if self.jitter_ms > 0:
            await asyncio.sleep(random.uniform(0, self.jitter_ms) / 1000)

    async def fetch_listing_config(self) -> Any:
        """
        Fetch the listing configuration.

        Raises:
            CrawlError: If the configuration cannot be fetched or parsed
        """
        client = await self._get_http_client()
        url = settings.CATALOG_CONFIG_URL
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Failed to fetch listing configuration",
                extra={"url": url, "error": str(e)},
            )
            raise CrawlError(message=f"Listing configuration unavailable: {e}", url=url)

    async def fetch_candidate_codes(self, category: Optional[Category] = None) -> List[str]:
        """
        Candidate product ids for a category, or for every product section.

        Grouping is recomputed from a fresh configuration on every call.

        Args:
            category: Category to restrict to, or None for all sections

        Returns:
            De-duplicated product ids in upstream order

        Raises:
            CrawlError: If the listing configuration is unavailable
        """
        config = await self.fetch_listing_config()

        if category is None:
            sections = [s for s in iter_sections(config) if is_product_section(s)]
        else:
            sections = group_sections(config).get(category, [])

        codes = _dedupe(code for section in sections for code in section_product_codes(section))

        logger.info(
            "Candidate product codes discovered",
            extra={
                "category": category.value if category else None,
                "section_count": len(sections),
                "code_count": len(codes),
            },
        )
        return codes

    async def fetch_product_detail(self, product_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the detail payload of a product.

        Returns:
            Dict with "summary" and "rows", or None on any failure
        """
        client = await self._get_http_client()
        url = f"{settings.CATALOG_DETAIL_URL}/{product_id}.json"
        try:
            response = await client.get(url)
            if response.status_code != 200:
                logger.debug(
                    "Product detail fetch failed",
                    extra={"product_id": product_id, "http_status": response.status_code},
                )
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(
                "Product detail fetch error",
                extra={"product_id": product_id, "error": str(e)},
            )
            return None

        if not isinstance(data, dict):
            return None
        rows = data.get("rows") or []
        return {
            "summary": data.get("summary") or {},
            "rows": [row for row in rows if isinstance(row, dict)],
        }

    async def fetch_stock(self, product_id: str) -> Optional[Dict[str, int]]:
        """
        Fetch merged per-SKU stock of a product.

        Returns:
            SKU to units mapping, or None on any failure
        """
        client = await self._get_http_client()
        body = {"distribution": "EXPRESS", "productCode": product_id, "type": "DETAIL"}
        try:
            response = await client.post(settings.CATALOG_STOCK_URL, json=body)
            if response.status_code != 200:
                logger.debug(
                    "Stock fetch failed",
                    extra={"product_id": product_id, "http_status": response.status_code},
                )
                return None
            return merge_stock_maps(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(
                "Stock fetch error",
                extra={"product_id": product_id, "error": str(e)},
            )
            return None

    async def _fetch_candidate(
        self,
        product_id: str,
        category: Optional[Category],
        semaphore: asyncio.Semaphore,
    ) -> List[CatalogItemData]:
        async with semaphore:
            await self._jitter()
            detail = await self.fetch_product_detail(product_id)
            if not detail or not detail["rows"]:
                return []

            summary = detail["summary"]
            rows = detail["rows"]
            category_text = str(summary.get("sex") or summary.get("gDeptValue") or "")

            # The product's own category wins over section grouping
            if category is not None:
                if not category_matches(category, category_text):
                    logger.debug(
                        "Skipping candidate outside requested category",
                        extra={
                            "product_id": product_id,
                            "category": category.value,
                            "product_category": category_text,
                        },
                    )
                    return []
                item_category = category
            else:
                item_category = classify_category(category_text)
                if item_category is None:
                    logger.debug(
                        "Skipping candidate with unknown category",
                        extra={"product_id": product_id, "product_category": category_text},
                    )
                    return []

            await self._jitter()
            stock_map = await self.fetch_stock(product_id)
            if stock_map is None:
                return []

        name = str(summary.get("name") or rows[0].get("name") or "")
        code = str(summary.get("code") or summary.get("oms_productCode") or "")

        items: List[CatalogItemData] = []
        for row in rows:
            sku_id = row.get("productId")
            units = stock_map.get(sku_id, 0) if sku_id else 0
            if units <= 0:
                continue

            price = _to_float(row.get("varyPrice"), row.get("minPrice"), summary.get("minVaryPrice"))
            items.append(
                CatalogItemData(
                    product_id=product_id,
                    code=code,
                    name=name,
                    color=_row_color(row),
                    size=_row_size(row),
                    price=price,
                    min_price=_to_float(row.get("minPrice"), summary.get("minPrice"), price),
                    origin_price=_to_float(row.get("originPrice"), summary.get("originPrice")),
                    stock=units,
                    category=item_category.value,
                    sku_id=str(sku_id),
                )
            )
        return items

    async def fetch_catalog_items(
        self,
        codes: List[str],
        category: Optional[Category] = None,
    ) -> List[CatalogItemData]:
        """
        Fetch detail and stock for every candidate and keep in-stock variants.

        A candidate that fails for any reason is skipped; the cycle continues.

        Args:
            codes: Candidate product ids
            category: Requested category, or None to classify each product

        Returns:
            In-stock variants across all candidates
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._fetch_candidate(code, category, semaphore) for code in codes),
            return_exceptions=True,
        )

        items: List[CatalogItemData] = []
        failed = 0
        for code, result in zip(codes, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.warning(
                    "Candidate fetch failed",
                    extra={"product_id": code, "error": str(result)},
                )
                continue
            items.extend(result)

        logger.info(
            "Catalog items fetched",
            extra={
                "category": category.value if category else None,
                "candidate_count": len(codes),
                "failed_candidates": failed,
                "item_count": len(items),
            },
        )
        return items

    async def fetch_variant_stock(self, product_id: str, color: str, size: str) -> int:
        """
        Units available for one color/size variant.

        Returns:
            Stock count, 0 if the variant is not listed

        Raises:
            CrawlError: If detail or stock cannot be fetched
        """
        detail = await self.fetch_product_detail(product_id)
        if detail is None:
            raise CrawlError(
                message="Product detail unavailable",
                url=f"{settings.CATALOG_DETAIL_URL}/{product_id}.json",
            )
        stock_map = await self.fetch_stock(product_id)
        if stock_map is None:
            raise CrawlError(message="Product stock unavailable", url=settings.CATALOG_STOCK_URL)

        for row in detail["rows"]:
            if _row_color(row) == color and _row_size(row) == size:
                return stock_map.get(row.get("productId"), 0)
        return 0

    async def search_by_code(self, code: str) -> List[ProductStock]:
        """
        Resolve a 6-digit catalog code to products with per-variant stock.

        Products whose detail or stock cannot be fetched are omitted.

        Raises:
            CrawlError: If the search request itself fails
        """
        client = await self._get_http_client()
        body = {
            "belongTo": "pc",
            "description": code,
            "insiteDescription": code,
            "pageInfo": {"page": 1, "pageSize": 24, "withSideBar": "Y"},
            "priceRange": {"low": 0, "high": 0},
            "rank": "overall",
            "searchFlag": True,
        }
        try:
            response = await client.post(settings.CATALOG_SEARCH_URL, json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Product search failed", extra={"code": code, "error": str(e)})
            raise CrawlError(message=f"Product search failed: {e}", url=settings.CATALOG_SEARCH_URL)

        resp = data.get("resp") if isinstance(data, dict) else None
        hits = resp[1] if isinstance(resp, list) and len(resp) > 1 else []

        products: List[ProductStock] = []
        for hit in hits or []:
            if not isinstance(hit, dict) or not hit.get("productCode"):
                continue
            product_id = str(hit["productCode"])

            stock_map = await self.fetch_stock(product_id)
            detail = await self.fetch_product_detail(product_id)
            if stock_map is None or not detail or not detail["rows"]:
                continue

            rows = detail["rows"]
            variants = [
                VariantStock(
                    sku_id=row.get("productId"),
                    color=_row_color(row),
                    size=_row_size(row),
                    price=_to_float(row.get("varyPrice"), row.get("minPrice")),
                    stock=stock_map.get(row.get("productId"), 0),
                )
                for row in rows
                if row.get("productId") in stock_map
            ]
            category = classify_category(
                str(detail["summary"].get("sex") or detail["summary"].get("gDeptValue") or "")
            )
            products.append(
                ProductStock(
                    product_id=product_id,
                    code=str(hit.get("code") or code),
                    name=str(rows[0].get("name") or detail["summary"].get("name") or ""),
                    category=category.value if category else None,
                    min_price=_to_float(hit.get("minPrice")),
                    origin_price=_to_float(hit.get("originPrice")),
                    image_url=hit.get("mainPic") or None,
                    variants=variants,
                )
            )

        logger.info(
            "Product search completed",
            extra={"code": code, "hit_count": len(hits or []), "product_count": len(products)},
        )
        return products


# Export
__all__ = [
    "CatalogFetcher",
    "group_sections",
    "iter_sections",
    "is_product_section",
    "section_product_codes",
    "merge_stock_maps",
]
