"""Mock Admin API transport for sandbox mode and tests."""

import copy
import json
import re
from typing import Any, Dict, List, Optional

import httpx

SHOP_GID = "gid://shopify/Shop/1"

_RESOURCE = re.compile(r"^/admin/api/[^/]+/(?P<resource>.+)\.json$")


def sample_order() -> Dict[str, Any]:
    return {
        "id": 1001,
        "name": "#1001",
        "email": "shopper@example.com",
        "currency": "USD",
        "note_attributes": [],
        "line_items": [
            {
                "id": 501,
                "title": "Silver Pendant",
                "variant_id": 40001,
                "quantity": 1,
                "price": "49.00",
                "properties": [
                    {"name": "Engraving", "value": "Forever Yours"},
                    {"name": "_engraving_price", "value": "10.00"},
                ],
            },
            {
                "id": 502,
                "title": "Gift Box",
                "variant_id": 40002,
                "quantity": 1,
                "price": "5.00",
                "properties": [],
            },
        ],
    }


def sample_products() -> List[Dict[str, Any]]:
    return [
        {
            "id": 123,
            "title": "Silver Pendant",
            "status": "active",
            "handle": "silver-pendant",
            "images": [{"id": 9001, "src": "https://example.com/pendant.jpg", "alt": "Pendant"}],
        },
        {
            "id": 124,
            "title": "Leather Wallet",
            "status": "active",
            "handle": "leather-wallet",
            "images": [],
        },
    ]


class MockShopifyClient:
    """In-memory stand-in for the Admin API, used in place of ``httpx.AsyncClient``.

    Orders, products, product and shop metafields, metafield definitions and
    webhooks are kept in dicts, so writes are visible to later reads.
    """

    def __init__(
        self,
        orders: Optional[List[Dict[str, Any]]] = None,
        products: Optional[List[Dict[str, Any]]] = None,
    ):
        self.orders = {str(o["id"]): copy.deepcopy(o) for o in (orders or [sample_order()])}
        self.products = {str(p["id"]): copy.deepcopy(p) for p in (products or sample_products())}
        self.product_metafields: Dict[str, Dict[str, str]] = {"123": {"enabled": "true", "price": "1000"}}
        self.shop_metafields: Dict[tuple, Dict[str, Any]] = {}
        self.definitions: set = set()
        self.webhooks: List[Dict[str, Any]] = []
        self.requests: List[tuple] = []
        self._next_id = 1

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        self.requests.append((method, endpoint))
        request = httpx.Request(method, f"https://mock.myshopify.com{endpoint}")
        match = _RESOURCE.match(endpoint)
        if match is None:
            return httpx.Response(404, json={"errors": "Not Found"}, request=request)
        resource = match.group("resource")
        status, data = self._route(method, resource, kwargs.get("params") or {}, kwargs.get("json") or {})
        return httpx.Response(status, json=data, request=request)

    def _route(self, method: str, resource: str, params: Dict[str, Any], body: Dict[str, Any]):
        parts = resource.split("/")
        if parts[0] == "graphql":
            return 200, self._graphql(body.get("query", ""), body.get("variables") or {})
        if parts[0] == "orders" and len(parts) == 2:
            order = self.orders.get(parts[1])
            if order is None:
                return 404, {"errors": "Not Found"}
            if method == "PUT":
                order["note_attributes"] = body["order"].get("note_attributes", [])
            return 200, {"order": copy.deepcopy(order)}
        if parts[0] == "products":
            if len(parts) == 2:
                product = self.products.get(parts[1])
                if product is None:
                    return 404, {"errors": "Not Found"}
                return 200, {"product": copy.deepcopy(product)}
            products = list(self.products.values())
            if params.get("title"):
                needle = params["title"].lower()
                products = [p for p in products if needle in p["title"].lower()]
            return 200, {"products": copy.deepcopy(products[: int(params.get("limit", 50))])}
        if parts[0] == "webhooks":
            if method == "POST":
                webhook = dict(body["webhook"], id=self._id())
                self.webhooks.append(webhook)
                return 201, {"webhook": webhook}
            return 200, {"webhooks": copy.deepcopy(self.webhooks)}
        return 404, {"errors": "Not Found"}

    def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        if "metafieldDefinitionCreate" in query:
            definition = variables["definition"]
            key = (definition["ownerType"], definition["namespace"], definition["key"])
            if key in self.definitions:
                return {"data": {"metafieldDefinitionCreate": {
                    "createdDefinition": None,
                    "userErrors": [{"field": ["definition", "key"], "message": "Key is in use", "code": "TAKEN"}],
                }}}
            self.definitions.add(key)
            return {"data": {"metafieldDefinitionCreate": {
                "createdDefinition": {"id": f"gid://shopify/MetafieldDefinition/{self._id()}",
                                      "name": definition["name"], "namespace": key[1], "key": key[2]},
                "userErrors": [],
            }}}
        if "metafieldsSet" in query:
            saved = []
            for field in variables["metafields"]:
                if field["ownerId"] == SHOP_GID:
                    self.shop_metafields[(field["namespace"], field["key"])] = dict(field)
                else:
                    owner = field["ownerId"].rsplit("/", 1)[-1]
                    self.product_metafields.setdefault(owner, {})[field["key"]] = field["value"]
                saved.append({"id": f"gid://shopify/Metafield/{self._id()}", "namespace": field["namespace"],
                              "key": field["key"], "value": field["value"], "type": field["type"]})
            return {"data": {"metafieldsSet": {"metafields": saved, "userErrors": []}}}
        if "nodes(ids" in query:
            nodes = []
            for gid in variables["ids"]:
                product_id = gid.rsplit("/", 1)[-1]
                if product_id not in self.products:
                    nodes.append(None)
                    continue
                fields = self.product_metafields.get(product_id, {})
                nodes.append({
                    "id": gid,
                    "enabled": {"value": fields["enabled"]} if "enabled" in fields else None,
                    "price": {"value": fields["price"]} if "price" in fields else None,
                })
            return {"data": {"nodes": nodes}}
        if "metafield(namespace" in query:
            stored = self.shop_metafields.get((variables["namespace"], variables["key"]))
            metafield = None
            if stored is not None:
                metafield = {"id": "gid://shopify/Metafield/1", "namespace": stored["namespace"],
                             "key": stored["key"], "value": stored["value"], "type": stored["type"]}
            return {"data": {"shop": {"id": SHOP_GID, "metafield": metafield}}}
        if "shop" in query:
            return {"data": {"shop": {"id": SHOP_GID}}}
        return {"errors": [{"message": "Unsupported mock query"}]}

    def shop_metafield_value(self, namespace: str, key: str) -> Optional[Any]:
        stored = self.shop_metafields.get((namespace, key))
        if stored is None:
            return None
        return json.loads(stored["value"]) if stored["type"] == "json" else stored["value"]

    async def aclose(self) -> None:
        return None
