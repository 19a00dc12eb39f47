"""Data models for Shopify Admin resources and the storefront cart API."""

from .cart_models import (
    ENGRAVING_PRICE_PROPERTY,
    ENGRAVING_PROPERTY,
    CartAddRequest,
    CartItem,
    LineItemProperties,
)
from .shopify_models import (
    LineItem,
    Metafield,
    NameValue,
    ProductEngraving,
    ShopifyImage,
    ShopifyOrder,
    ShopifyProduct,
    Webhook,
)

__all__ = [
    "ENGRAVING_PRICE_PROPERTY",
    "ENGRAVING_PROPERTY",
    "CartAddRequest",
    "CartItem",
    "LineItemProperties",
    "LineItem",
    "Metafield",
    "NameValue",
    "ProductEngraving",
    "ShopifyImage",
    "ShopifyOrder",
    "ShopifyProduct",
    "Webhook",
]
