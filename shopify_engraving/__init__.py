"""
Shopify Custom Engraving

Adds a paid "custom engraving" option to Shopify product pages: the
storefront widget with live price updates and cart attachment, plus the
admin API, webhooks and CLI that manage it.
"""

__version__ = "0.1.0"

from .admin_client import ShopifyAdminClient
from .config import AppConfig, EngravingConfig, ShopSettings
from .mock_client import MockShopifyClient
from .packing_slip import add_engraving_to_packing_slip
from .router import get_engraving_router
from .storefront import EngravingManager, bootstrap, render_preview
from .webhook import WebhookHandler, create_app, create_webhook_app

__all__ = [
    "ShopifyAdminClient",
    "AppConfig",
    "EngravingConfig",
    "ShopSettings",
    "MockShopifyClient",
    "add_engraving_to_packing_slip",
    "get_engraving_router",
    "EngravingManager",
    "bootstrap",
    "render_preview",
    "WebhookHandler",
    "create_app",
    "create_webhook_app",
]
