"""FastAPI router for the engraving admin and storefront endpoints."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from time import perf_counter
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field, ValidationError, field_validator

from . import __version__
from .admin_client import ShopifyAdminClient
from .circuit_breaker import CircuitBreakerOpen
from .config import ShopSettings
from .errors import ShopifyAdminError
from .orders import EngravingDetails, extract_engravings, save_engraving_to_order
from .packing_slip import add_engraving_to_packing_slip
from .products import list_products_with_engraving, toggle_product_engraving
from .settings_store import BaseSettingsStore, InMemorySettingsStore
from .storefront.bootstrap import render_preview

logger = logging.getLogger(__name__)

_SETTINGS_FIELD_ERRORS = {
    "default_price": "Invalid price",
    "defaultPrice": "Invalid price",
    "max_characters": "Invalid max characters",
    "maxCharacters": "Invalid max characters",
}

# field names and the storefront spelling of the price, mapped to the stored aliases
_SETTINGS_KEYS = {name: field.alias or name for name, field in ShopSettings.model_fields.items()}
_SETTINGS_KEYS["engravingPrice"] = "defaultPrice"


def _admin_error(e: Exception) -> HTTPException:
    if isinstance(e, CircuitBreakerOpen):
        return HTTPException(status_code=503, detail="Shopify API temporarily unavailable")
    status_code = getattr(e, "status_code", None)
    if status_code == 404:
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=502, detail=f"Shopify API error: {e}")


def _settings_error(e: ValidationError) -> str:
    for error in e.errors():
        loc = error.get("loc") or ()
        if loc and loc[0] in _SETTINGS_FIELD_ERRORS:
            return _SETTINGS_FIELD_ERRORS[loc[0]]
    return "Invalid settings"


def get_engraving_router(
    client: ShopifyAdminClient, store: Optional[BaseSettingsStore] = None
) -> APIRouter:
    """
    Create a FastAPI router for the engraving endpoints.

    Args:
        client: Admin API client for the shop
        store: Where merchant settings live (in memory by default)

    Returns:
        APIRouter mounted under ``/api``
    """
    router = APIRouter(prefix="/api", tags=["engraving"])
    settings_store: BaseSettingsStore = store or InMemorySettingsStore()

    class PackingSlipRequest(BaseModel):
        html: str

    class PreviewRequest(BaseModel):
        html: str
        select: bool = False
        text: Optional[str] = None
        config: Optional[Dict[str, Any]] = None

    class EngravingRequest(BaseModel):
        order_id: Optional[str] = Field(None, alias="orderId")
        line_item_id: Optional[str] = Field(None, alias="lineItemId")
        engraving_text: Optional[str] = Field(None, alias="engravingText")
        price: Decimal = Decimal("0")

        @field_validator("order_id", "line_item_id", mode="before")
        @classmethod
        def _ids(cls, value):
            return str(value) if isinstance(value, int) else value

    def _shop(shop: Optional[str]) -> str:
        return shop or client.shop_domain

    @router.get("/health")
    async def health():
        """Liveness check."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        }

    @router.get("/settings")
    async def get_settings(shop: Optional[str] = None):
        """Merchant settings for a shop, defaults when none are stored."""
        try:
            settings = await settings_store.get_or_default(_shop(shop))
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        return {**settings.model_dump(mode="json", by_alias=True), "shop": _shop(shop)}

    @router.put("/settings")
    async def update_settings(shop: Optional[str] = None, payload: Dict[str, Any] = Body(...)):
        """Partially update the merchant settings."""
        shop_domain = _shop(shop)
        try:
            current = await settings_store.get_or_default(shop_domain)
            data = current.model_dump(by_alias=True)
            data.update({_SETTINGS_KEYS.get(key, key): value for key, value in payload.items()})
            try:
                settings = ShopSettings.model_validate(data)
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=_settings_error(e))
            settings = await settings_store.save(shop_domain, settings)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)

        logger.info("settings_updated", extra={"shop": shop_domain})
        return {
            "success": True,
            "message": "Settings updated successfully",
            "data": settings.model_dump(mode="json", by_alias=True),
        }

    @router.get("/storefront/config")
    async def storefront_config(shop: Optional[str] = None):
        """Storefront configuration derived from the shop's settings."""
        try:
            settings = await settings_store.get_or_default(_shop(shop))
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        return settings.to_engraving_config(client.config.engraving).model_dump(mode="json", by_alias=True)

    @router.post("/engraving")
    async def save_engraving(request: EngravingRequest):
        """Record an engraving on an order as its ``Engraving`` note attribute."""
        start = perf_counter()
        missing = [
            name for name, value in (("orderId", request.order_id), ("engravingText", request.engraving_text))
            if not value
        ]
        if missing:
            raise HTTPException(
                status_code=400,
                detail={"error": "Missing required fields", "required": missing},
            )

        details = EngravingDetails(
            text=request.engraving_text,
            price=request.price,
            line_item_id=request.line_item_id,
        )
        try:
            await save_engraving_to_order(client, request.order_id, details)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)

        duration_ms = (perf_counter() - start) * 1000
        logger.info("engraving_saved", extra={"order_id": request.order_id, "duration_ms": duration_ms})
        return {"success": True, "message": "Engraving details saved successfully"}

    @router.get("/engraving/{order_id}")
    async def get_engraving(order_id: str):
        """Engravings recorded on an order."""
        try:
            order = await client.get_order(order_id)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        return {
            "orderId": order.id,
            "engravings": [e.model_dump(mode="json") for e in extract_engravings(order)],
        }

    @router.post("/engraving/{order_id}/packing-slip")
    async def packing_slip(order_id: str, request: PackingSlipRequest):
        """Add the order's engraving details to its packing slip HTML."""
        try:
            order = await client.get_order(order_id)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        return {"html": add_engraving_to_packing_slip(request.html, order)}

    @router.get("/products")
    async def get_products(query: str = ""):
        """Products with their engraving metafields."""
        try:
            products = await list_products_with_engraving(client, query)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        return {"products": [p.model_dump(mode="json", by_alias=True) for p in products]}

    @router.post("/products/{product_id}/engraving")
    async def set_product_engraving(product_id: str, payload: Dict[str, Any] = Body(...)):
        """Enable or disable engraving on one product."""
        enabled = payload.get("enabled")
        if not isinstance(enabled, bool):
            raise HTTPException(status_code=400, detail="Missing or invalid enabled parameter")
        price_cents = payload.get("priceCents")
        if price_cents is not None and (isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0):
            raise HTTPException(status_code=400, detail="Invalid priceCents parameter")

        try:
            await toggle_product_engraving(client, product_id, enabled, price_cents)
        except (ShopifyAdminError, CircuitBreakerOpen) as e:
            raise _admin_error(e)
        logger.info("product_engraving_toggled", extra={"product_id": product_id, "enabled": enabled})
        return {"success": True}

    @router.post("/preview")
    async def preview(request: PreviewRequest):
        """Inject the engraving widget into a product page's HTML."""
        try:
            html = await render_preview(request.html, request.config, select=request.select, text=request.text)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid config: {e.errors()[0]['msg']}")
        return {"html": html}

    return router
