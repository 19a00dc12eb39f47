"""Admin product list with per-product engraving enablement."""

import logging
from typing import List, Optional

from .admin_client import ShopifyAdminClient
from .errors import ShopifyAdminError
from .models.shopify_models import ProductEngraving

logger = logging.getLogger(__name__)


async def list_products_with_engraving(client: ShopifyAdminClient, query: str = "") -> List[ProductEngraving]:
    """Active products merged with their ``engraving.enabled`` / ``engraving.price`` metafields."""
    products = await client.list_products(query)
    metafields = await client.get_product_metafields([p.id for p in products])
    result = []
    for product in products:
        fields = metafields.get(product.id, {})
        result.append(ProductEngraving(
            id=product.id,
            title=product.title,
            status=product.status.upper(),
            image=product.images[0].src if product.images else None,
            engraving_enabled=fields.get("enabled", False),
            engraving_price=fields.get("price"),
        ))
    return result


async def toggle_product_engraving(
    client: ShopifyAdminClient, product_id: str, enabled: bool, price_cents: Optional[int] = None
) -> None:
    """Enable or disable engraving on one product.

    Raises:
        ShopifyAdminError: with ``status_code`` 404 when the product does not exist
    """
    if await client.get_product(product_id) is None:
        raise ShopifyAdminError("Product not found", status_code=404)
    await client.set_product_engraving(product_id, enabled, price_cents)
