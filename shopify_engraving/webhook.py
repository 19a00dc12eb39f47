"""Webhook handler for Shopify events."""

import base64
import hashlib
import hmac
import json
import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi import FastAPI, HTTPException, Request, status

from .admin_client import ShopifyAdminClient
from .config import AppConfig
from .errors import ShopifyAdminError
from .orders import handle_order_create
from .router import get_engraving_router
from .settings_store import BaseSettingsStore, InMemorySettingsStore, MetafieldSettingsStore
from .telemetry import get_saved_engravings_counter, get_webhook_duration_histogram

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ("X-Shopify-Topic", "X-Shopify-Shop-Domain", "X-Shopify-Webhook-Id")


def compute_webhook_hmac(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``body``, as Shopify sends in ``X-Shopify-Hmac-Sha256``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_oauth_hmac(query_params: Mapping[str, str], secret: str) -> bool:
    """
    Verify the ``hmac`` parameter of an install or OAuth callback.

    The message is every other parameter, sorted by key and joined as a
    query string; the digest is hex encoded.
    """
    received = query_params.get("hmac")
    if not received:
        return False
    message = "&".join(
        f"{key}={value}" for key, value in sorted(query_params.items()) if key not in ("hmac", "signature")
    )
    computed = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, received)


class WebhookHandler:
    """
    Handle Shopify webhooks for the engraving app.

    Built-in topics:
    - orders/create: record engravings as an order note attribute
    - app/uninstalled: forget the shop's stored settings
    """

    def __init__(
        self,
        client: ShopifyAdminClient,
        store: Optional[BaseSettingsStore] = None,
        webhook_secret: Optional[str] = None,
    ):
        """
        Initialize webhook handler.

        Args:
            client: Admin API client
            store: Settings store cleaned up on uninstall
            webhook_secret: Secret for webhook verification (defaults to the
                configured signing secret)
        """
        self.client = client
        self.store = store or InMemorySettingsStore()
        self.webhook_secret = webhook_secret or client.config.shopify.signing_secret
        self._handlers: Dict[str, List[Callable]] = {}
        self.duration_histogram = get_webhook_duration_histogram()
        self.saved_counter = get_saved_engravings_counter()

    def verify_webhook(self, data: bytes, hmac_header: str) -> bool:
        """
        Verify Shopify webhook signature.

        Args:
            data: Raw request body
            hmac_header: HMAC header from Shopify

        Returns:
            True if signature is valid
        """
        if not self.webhook_secret:
            logger.warning("No webhook secret configured, skipping signature check")
            return True
        if not hmac_header:
            return False
        computed = compute_webhook_hmac(self.webhook_secret, data)
        return hmac.compare_digest(computed.encode(), hmac_header.encode())

    def on(self, topic: str):
        """
        Decorator to register webhook event handlers.

        Args:
            topic: Webhook topic (e.g., 'orders/create')

        Example:
            @webhook_handler.on('orders/paid')
            async def handle_order_paid(shop, order_data):
                print(f"Order paid: {order_data['id']}")
        """
        def decorator(func: Callable):
            self._handlers.setdefault(topic, []).append(func)
            return func
        return decorator

    async def handle_webhook(self, topic: str, shop: str, data: Dict[str, Any]) -> None:
        """
        Process webhook event and call registered handlers.

        Args:
            topic: Webhook topic
            shop: Shop domain the event came from
            data: Webhook payload data
        """
        if topic == "orders/create":
            details = await handle_order_create(self.client, data)
            if details is not None:
                self.saved_counter.add(1, attributes={"shop": shop})
        elif topic == "app/uninstalled":
            await self.store.delete(shop)
            self.client.invalidate_cache()
            logger.info("App uninstalled from %s, shop data removed", shop)

        for handler in self._handlers.get(topic, []):
            await handler(shop, data)

    def create_fastapi_app(self, app: Optional[FastAPI] = None) -> FastAPI:
        """
        Add the webhook endpoints to ``app`` (or a new app).

        Returns:
            FastAPI application ready to receive webhooks
        """
        app = app or FastAPI(title="Shopify Engraving Webhook Handler")

        @app.post("/api/webhooks/{topic_path:path}")
        async def shopify_webhook(topic_path: str, request: Request):
            """Endpoint to receive Shopify webhooks."""
            start = perf_counter()
            body = await request.body()

            if not self.verify_webhook(body, request.headers.get("X-Shopify-Hmac-Sha256", "")):
                logger.error("Invalid webhook signature")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid webhook signature"
                )

            missing = [h for h in REQUIRED_HEADERS if not request.headers.get(h)]
            if missing:
                logger.error("Missing required webhook headers: %s", ", ".join(missing))
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Missing required headers"
                )
            topic = request.headers["X-Shopify-Topic"]
            shop = request.headers["X-Shopify-Shop-Domain"]
            webhook_id = request.headers["X-Shopify-Webhook-Id"]

            try:
                data = json.loads(body)
            except json.JSONDecodeError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invalid JSON payload"
                )

            logger.info("webhook_received", extra={"topic": topic, "shop": shop, "webhook_id": webhook_id})
            try:
                await self.handle_webhook(topic, shop, data)
            except ShopifyAdminError as e:
                logger.error("Error processing %s webhook from %s: %s", topic, shop, e)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Error processing webhook"
                )

            duration_ms = (perf_counter() - start) * 1000
            self.duration_histogram.record(duration_ms, attributes={"topic": topic})
            return {"success": True, "message": "Webhook processed"}

        return app


def create_webhook_app(config: AppConfig, client: Optional[Any] = None) -> FastAPI:
    """
    Convenience function to create webhook app with configuration.

    Args:
        config: App configuration
        client: Optional HTTP client (e.g., MockShopifyClient)

    Returns:
        FastAPI app ready to run

    Example:
        app = create_webhook_app(config)

        # Run with uvicorn:
        # uvicorn app:app --host 0.0.0.0 --port 8000
    """
    handler = WebhookHandler(ShopifyAdminClient(config, client=client))
    return handler.create_fastapi_app()


def create_app(
    config: AppConfig,
    client: Optional[Any] = None,
    store: Optional[BaseSettingsStore] = None,
) -> FastAPI:
    """
    Full app: the ``/api`` engraving router plus the webhook endpoint.

    Settings default to the shop's ``engraving.settings`` metafield and are
    shared by the router and the uninstall cleanup.
    """
    admin = ShopifyAdminClient(config, client=client)
    settings_store = store or MetafieldSettingsStore(admin)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await admin.close()

    app = FastAPI(title="Shopify Engraving", lifespan=lifespan)
    app.include_router(get_engraving_router(admin, settings_store))
    WebhookHandler(admin, settings_store).create_fastapi_app(app)
    return app
