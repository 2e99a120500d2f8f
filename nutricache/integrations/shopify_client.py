# nutricache/integrations/shopify_client.py
"""
Shopify Storefront adapter.

This is the only place that talks to Shopify: the paginated GraphQL product listing and the
public product pages used for enrichment. Everything it returns is already mapped to our
CatalogItem / CatalogPage shapes.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from nutricache.core.config import Settings
from nutricache.domain.errors import CatalogApiError, RateLimitedError
from nutricache.domain.models.catalog import CatalogItem, CatalogPage
from nutricache.domain.services.content_extractor import ContentExtractor, DescriptionExtractor

logger = logging.getLogger(__name__)

PRODUCTS_QUERY = """
query fetchAllProducts($first: Int!, $cursor: String) {
  products(first: $first, after: $cursor) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        title
        handle
        description
        descriptionHtml
        tags
        collections(first: 5) { edges { node { id title handle } } }
        images(first: 1) { edges { node { url altText } } }
        variants(first: 1) {
          edges {
            node {
              id
              price { amount currencyCode }
              compareAtPrice { amount currencyCode }
              availableForSale
            }
          }
        }
      }
    }
  }
}
"""

PAGE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; NutriCacheBot/1.0)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
}


def _first_node(connection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    edges = (connection or {}).get("edges") or []
    if not edges:
        return {}
    return (edges[0] or {}).get("node") or {}


def _nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [e.get("node") or {} for e in (connection or {}).get("edges") or []]


def _amount(money: Optional[Dict[str, Any]]) -> Optional[float]:
    if not money or money.get("amount") in (None, ""):
        return None
    try:
        return float(money["amount"])
    except (TypeError, ValueError):
        return None


def _retry_after(response: httpx.Response) -> Optional[float]:
    try:
        return float(response.headers.get("Retry-After", ""))
    except ValueError:
        return None


class ShopifyStorefrontClient:
    def __init__(
        self,
        domain: str,
        token: str,
        *,
        api_version: str = "2023-10",
        page_size: int = 250,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        description_extractor: Optional[ContentExtractor] = None,
    ):
        if not domain or not token:
            raise ValueError("Missing SHOPIFY_STORE_DOMAIN or SHOPIFY_STOREFRONT_TOKEN")
        self.domain = domain.removeprefix("https://").rstrip("/")
        self.token = token
        self.api_version = api_version
        self.page_size = page_size
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None
        self._descriptions = description_extractor or DescriptionExtractor()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyStorefrontClient":
        return cls(
            settings.SHOPIFY_STORE_DOMAIN,
            settings.SHOPIFY_STOREFRONT_TOKEN,
            api_version=settings.SHOPIFY_API_VERSION,
            page_size=settings.catalog_page_size,
            timeout=settings.catalog_page_timeout_s,
        )

    @property
    def graphql_url(self) -> str:
        return f"https://{self.domain}/api/{self.api_version}/graphql.json"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ----- Catalog listing ---------------------------------------------------

    async def fetch_page(self, cursor: Optional[str]) -> CatalogPage:
        """
        One page of the product listing. Timeouts surface as httpx.TimeoutException so the
        caller can retry them; HTTP and GraphQL errors are raised as-is.
        """
        resp = await self._client.post(
            self.graphql_url,
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Storefront-Access-Token": self.token,
            },
            json={"query": PRODUCTS_QUERY, "variables": {"first": self.page_size, "cursor": cursor}},
        )
        resp.raise_for_status()
        data = resp.json()

        if data.get("errors"):
            logger.error("shopify graphql errors=%s", data["errors"])
            raise CatalogApiError(f"GraphQL query failed: {data['errors']}")

        try:
            products = data["data"]["products"]
        except (KeyError, TypeError) as e:
            raise CatalogApiError(f"Unexpected products payload: {e}") from e

        items = [self._to_item(edge.get("node") or {}) for edge in products.get("edges") or []]
        page_info = products.get("pageInfo") or {}
        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        logger.debug("shopify page items=%s has_next=%s", len(items), next_cursor is not None)
        return CatalogPage(items=[i for i in items if i.handle], next_cursor=next_cursor)

    def _to_item(self, node: Dict[str, Any]) -> CatalogItem:
        variant = _first_node(node.get("variants"))
        image = _first_node(node.get("images"))
        collections = _nodes(node.get("collections"))
        price = variant.get("price") or {}
        description_html = node.get("descriptionHtml") or ""

        return CatalogItem(
            handle=node.get("handle") or "",
            title=node.get("title") or "",
            price=_amount(price) or 0.0,
            currency=price.get("currencyCode") or "EUR",
            compare_at_price=_amount(variant.get("compareAtPrice")),
            available=bool(variant.get("availableForSale")),
            variant_id=variant.get("id"),
            image_url=image.get("url"),
            description=node.get("description") or "",
            description_html=description_html,
            tags=list(node.get("tags") or []),
            collections=[c.get("title") for c in collections if c.get("title")],
            collection_handles=[c.get("handle") for c in collections if c.get("handle")],
            content=self._descriptions.extract(description_html),
        )

    # ----- Product detail pages ---------------------------------------------

    def product_url(self, handle: str) -> str:
        return f"https://{self.domain}/products/{handle}"

    async def fetch_product_page(self, handle: str) -> Optional[str]:
        """
        Rendered product page HTML, or None when the page is missing / errors out.
        429 is raised as RateLimitedError so callers can throttle.
        """
        resp = await self._client.get(self.product_url(handle), headers=PAGE_HEADERS)
        if resp.status_code == 429:
            raise RateLimitedError(handle, retry_after=_retry_after(resp))
        if resp.is_error:
            logger.warning("product page fetch failed handle=%s status=%s", handle, resp.status_code)
            return None
        return resp.text
