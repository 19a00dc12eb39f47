"""Shopify Admin API client for orders, products, metafields and webhooks."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from .circuit_breaker import CircuitBreaker
from .config import AppConfig
from .errors import ShopifyAdminError
from .models.shopify_models import Metafield, NameValue, ShopifyOrder, ShopifyProduct, Webhook
from .rate_limiter import TokenBucketRateLimiter, TTLCache

logger = logging.getLogger(__name__)

METAFIELD_NAMESPACE = "engraving"

PRODUCT_METAFIELDS_QUERY = """
query productMetafields($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on Product {
      id
      enabled: metafield(namespace: "engraving", key: "enabled") { value }
      price: metafield(namespace: "engraving", key: "price") { value }
    }
  }
}
"""

METAFIELDS_SET_MUTATION = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id namespace key value type }
    userErrors { field message }
  }
}
"""

SHOP_METAFIELD_QUERY = """
query shopMetafield($namespace: String!, $key: String!) {
  shop {
    id
    metafield(namespace: $namespace, key: $key) { id namespace key value type }
  }
}
"""

SHOP_ID_QUERY = "query { shop { id } }"

METAFIELD_DEFINITION_MUTATION = """
mutation CreateMetafieldDefinition($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition { id name namespace key }
    userErrors { field message code }
  }
}
"""

METAFIELD_DEFINITIONS = [
    {
        "name": "Engraving Enabled",
        "namespace": METAFIELD_NAMESPACE,
        "key": "enabled",
        "description": "Whether engraving is enabled for this product",
        "type": "boolean",
        "ownerType": "PRODUCT",
    },
    {
        "name": "Engraving Price",
        "namespace": METAFIELD_NAMESPACE,
        "key": "price",
        "description": "Price in cents for engraving this product",
        "type": "number_integer",
        "ownerType": "PRODUCT",
    },
    {
        "name": "Engraving Settings",
        "namespace": METAFIELD_NAMESPACE,
        "key": "settings",
        "description": "Shop-wide engraving settings",
        "type": "json",
        "ownerType": "SHOP",
    },
]


def product_gid(product_id: str) -> str:
    product_id = str(product_id)
    if product_id.startswith("gid://"):
        return product_id
    return f"gid://shopify/Product/{product_id}"


def gid_to_id(gid: str) -> str:
    return str(gid).rsplit("/", 1)[-1]


class ShopifyAdminClient:
    """
    Async client for the Shopify Admin REST and GraphQL APIs.

    This class handles:
    - Rate limiting API calls (token bucket)
    - Caching GET responses, invalidated by writes to the same resource
    - Refusing calls while the circuit breaker is open
    - Mapping HTTP and GraphQL failures to :class:`ShopifyAdminError`
    """

    def __init__(self, config: AppConfig, client: Optional[Any] = None):
        """
        Initialize the client.

        Args:
            config: App configuration
            client: Optional HTTP client (e.g., MockShopifyClient)
        """
        self.config = config
        self.api_version = config.shopify.api_version
        self.circuit_breaker = CircuitBreaker()
        self.rate_limiter = TokenBucketRateLimiter(
            rate=config.rate_limit.max_requests_per_second,
            burst_size=config.rate_limit.burst_size,
        )
        self.cache = (
            TTLCache(ttl=config.rate_limit.cache_ttl_seconds)
            if config.rate_limit.enable_caching
            else None
        )

        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(
                base_url=f"https://{config.shopify.shop_domain}",
                headers={
                    "X-Shopify-Access-Token": config.shopify.access_token,
                    "Content-Type": "application/json",
                },
                timeout=30.0,
            )
            self._owns_client = True

    @property
    def shop_domain(self) -> str:
        return self.config.shopify.shop_domain

    async def close(self):
        """Close HTTP client."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _path(self, resource: str) -> str:
        return f"/admin/api/{self.api_version}/{resource}"

    async def _make_request(self, endpoint: str, method: str = "GET", **kwargs) -> Dict[str, Any]:
        """
        Make a rate-limited API request.

        Args:
            endpoint: API endpoint path
            method: HTTP method
            **kwargs: Additional request parameters

        Returns:
            JSON response data
        """
        cache_key = f"{method}:{endpoint}:{json.dumps(kwargs.get('params'), sort_keys=True)}"
        if self.cache is not None and method == "GET":
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        self.circuit_breaker.guard()
        await self.rate_limiter.acquire()

        try:
            response = await self.client.request(method, endpoint, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # 4xx is the caller's problem, not an outage
            if e.response.status_code >= 500:
                self.circuit_breaker.record_failure()
            logger.error("Admin API %s %s failed with %s", method, endpoint, e.response.status_code)
            raise ShopifyAdminError(
                f"Admin API request failed: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            self.circuit_breaker.record_failure()
            logger.error("Admin API %s %s failed: %s", method, endpoint, e)
            raise ShopifyAdminError(f"Admin API request failed: {e}") from e
        self.circuit_breaker.record_success()

        data = response.json()
        if self.cache is not None:
            if method == "GET":
                self.cache.set(cache_key, data)
            else:
                self.cache.invalidate_prefix(f"GET:{endpoint}")
        return data

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a GraphQL Admin API operation.

        Args:
            query: GraphQL document
            variables: Operation variables

        Returns:
            The ``data`` object of the response

        Raises:
            ShopifyAdminError: on top-level ``errors`` or on ``userErrors``
                reported by any mutation in the response
        """
        payload = await self._make_request(
            self._path("graphql.json"),
            method="POST",
            json={"query": query, "variables": variables or {}},
        )
        if payload.get("errors"):
            raise ShopifyAdminError("GraphQL request failed", errors=payload["errors"])
        data = payload.get("data") or {}
        for result in data.values():
            if isinstance(result, dict) and result.get("userErrors"):
                raise ShopifyAdminError(
                    "; ".join(e.get("message", "") for e in result["userErrors"]),
                    errors=result["userErrors"],
                )
        return data

    # -- orders ---------------------------------------------------------------

    async def get_order(self, order_id: str) -> ShopifyOrder:
        data = await self._make_request(self._path(f"orders/{order_id}.json"))
        return ShopifyOrder(**data["order"])

    async def update_order_note_attributes(
        self, order_id: str, note_attributes: Iterable[NameValue]
    ) -> ShopifyOrder:
        """Replace the order's note attributes with ``note_attributes``."""
        endpoint = self._path(f"orders/{order_id}.json")
        body = {
            "order": {
                "id": order_id,
                "note_attributes": [a.model_dump() for a in note_attributes],
            }
        }
        data = await self._make_request(endpoint, method="PUT", json=body)
        return ShopifyOrder(**data["order"])

    # -- products -------------------------------------------------------------

    async def list_products(self, query: str = "", limit: int = 100) -> List[ShopifyProduct]:
        """Active products, optionally filtered by title."""
        params: Dict[str, Any] = {
            "status": "active",
            "limit": limit,
            "fields": "id,title,status,handle,images",
        }
        if query:
            params["title"] = query
        data = await self._make_request(self._path("products.json"), params=params)
        return [ShopifyProduct(**p) for p in data.get("products", [])]

    async def get_product(self, product_id: str) -> Optional[ShopifyProduct]:
        try:
            data = await self._make_request(self._path(f"products/{gid_to_id(product_id)}.json"))
        except ShopifyAdminError as e:
            if e.status_code == 404:
                return None
            raise
        product = data.get("product")
        return ShopifyProduct(**product) if product else None

    async def get_product_metafields(self, product_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """
        Engraving metafields for several products in one GraphQL call.

        Returns:
            Mapping of numeric product id to ``{"enabled": bool, "price": int | None}``
        """
        if not product_ids:
            return {}
        data = await self.graphql(
            PRODUCT_METAFIELDS_QUERY,
            {"ids": [product_gid(pid) for pid in product_ids]},
        )
        result: Dict[str, Dict[str, Any]] = {}
        for node in data.get("nodes") or []:
            if not node:
                continue
            enabled = (node.get("enabled") or {}).get("value")
            price = (node.get("price") or {}).get("value")
            result[gid_to_id(node["id"])] = {
                "enabled": enabled == "true",
                "price": int(price) if price not in (None, "") else None,
            }
        return result

    async def set_product_engraving(
        self, product_id: str, enabled: bool, price_cents: Optional[int] = None
    ) -> List[Metafield]:
        """Set the product's ``engraving.enabled`` (and optionally ``engraving.price``) metafields."""
        owner = product_gid(product_id)
        metafields = [{
            "ownerId": owner,
            "namespace": METAFIELD_NAMESPACE,
            "key": "enabled",
            "type": "boolean",
            "value": "true" if enabled else "false",
        }]
        if price_cents is not None:
            metafields.append({
                "ownerId": owner,
                "namespace": METAFIELD_NAMESPACE,
                "key": "price",
                "type": "number_integer",
                "value": str(int(price_cents)),
            })
        data = await self.graphql(METAFIELDS_SET_MUTATION, {"metafields": metafields})
        logger.info("Engraving %s for product %s", "enabled" if enabled else "disabled", gid_to_id(owner))
        return [Metafield(**m) for m in data["metafieldsSet"]["metafields"]]

    # -- shop metafields ------------------------------------------------------

    async def get_shop_metafield(self, namespace: str, key: str) -> Optional[Metafield]:
        data = await self.graphql(SHOP_METAFIELD_QUERY, {"namespace": namespace, "key": key})
        metafield = (data.get("shop") or {}).get("metafield")
        return Metafield(**metafield) if metafield else None

    async def set_shop_metafield(self, namespace: str, key: str, value: str, type: str = "json") -> Metafield:
        shop = await self.graphql(SHOP_ID_QUERY)
        data = await self.graphql(METAFIELDS_SET_MUTATION, {"metafields": [{
            "ownerId": shop["shop"]["id"],
            "namespace": namespace,
            "key": key,
            "type": type,
            "value": value,
        }]})
        return Metafield(**data["metafieldsSet"]["metafields"][0])

    async def create_metafield_definitions(self) -> List[Dict[str, Any]]:
        """
        Create the engraving metafield definitions.

        Definitions that already exist are skipped, so this is safe to run on
        every install.

        Returns:
            One ``{"key", "owner_type", "created"}`` entry per definition
        """
        results = []
        for definition in METAFIELD_DEFINITIONS:
            try:
                await self.graphql(METAFIELD_DEFINITION_MUTATION, {"definition": definition})
                created = True
            except ShopifyAdminError as e:
                if not any(err.get("code") == "TAKEN" for err in e.errors):
                    raise
                created = False
            logger.info("Metafield definition %s.%s %s", definition["namespace"], definition["key"],
                        "created" if created else "already exists")
            results.append({"key": definition["key"], "owner_type": definition["ownerType"], "created": created})
        return results

    # -- webhooks -------------------------------------------------------------

    async def list_webhooks(self) -> List[Webhook]:
        data = await self._make_request(self._path("webhooks.json"))
        return [Webhook(**w) for w in data.get("webhooks", [])]

    async def register_webhook(self, topic: str, address: str) -> Tuple[Webhook, bool]:
        """
        Subscribe ``address`` to ``topic`` unless that subscription exists.

        Returns:
            The webhook and whether it was newly created
        """
        for webhook in await self.list_webhooks():
            if webhook.topic == topic and webhook.address == address:
                logger.info("Webhook already registered: %s", webhook.id)
                return webhook, False
        data = await self._make_request(
            self._path("webhooks.json"),
            method="POST",
            json={"webhook": {"topic": topic, "address": address, "format": "json"}},
        )
        webhook = Webhook(**data["webhook"])
        logger.info("Registered new webhook: %s", webhook.id)
        return webhook, True

    def invalidate_cache(self, resource: Optional[str] = None):
        """
        Invalidate cached responses for a resource path (e.g. ``orders/123.json``) or all.
        """
        if self.cache is None:
            return
        if resource:
            self.cache.invalidate_prefix(f"GET:{self._path(resource)}")
        else:
            self.cache.clear()
