"""Entry point that attaches an EngravingManager to a storefront page."""

import json
import logging
from typing import Any, Dict, Optional, Union

from bs4 import BeautifulSoup

from ..config import EngravingConfig
from .cart import CartGateway
from .dom import Page
from .manager import EngravingManager
from .themes import DEFAULT_THEME, ThemeProfile, detect_theme, with_defaults

logger = logging.getLogger(__name__)

SETTINGS_SCRIPT_SELECTOR = 'script#engraving-settings[type="application/json"]'
PRODUCT_PAGE_SELECTOR = "body.template-product, body.product-template"

# Defaults the storefront script ships with; they differ from the model
# defaults in the character limit.
STOREFRONT_DEFAULTS = {
    "engravingPrice": "10.00",
    "currency": "USD",
    "maxCharacters": 50,
    "enabled": True,
}

_THEME_KEYS = {
    "priceSelector": "price",
    "formSelector": "form",
    "buttonSelector": "submit_button",
    "priceContainer": "price_container",
}


def is_product_page(document: BeautifulSoup) -> bool:
    return document.select_one(PRODUCT_PAGE_SELECTOR) is not None


def load_settings_from_page(document: BeautifulSoup) -> Dict[str, Any]:
    """Settings embedded by the theme as a JSON script tag, or ``{}``."""
    script = document.select_one(SETTINGS_SCRIPT_SELECTOR)
    if script is None:
        return {}
    try:
        settings = json.loads(script.get_text() or "{}")
    except json.JSONDecodeError as e:
        logger.warning("Ignoring malformed engraving settings: %s", e)
        return {}
    if not isinstance(settings, dict):
        logger.warning("Ignoring engraving settings that are not an object")
        return {}
    return settings


def profile_from_settings(theme: Dict[str, Any], fallback: ThemeProfile = DEFAULT_THEME) -> ThemeProfile:
    """Build a profile from the ``theme`` entry of an embedded settings blob."""
    values = {field: theme.get(key, "") for key, field in _THEME_KEYS.items()}
    variants = theme.get("variantSelectors") or ()
    profile = ThemeProfile(
        name=theme.get("name", "embedded"),
        variant_inputs=tuple(variants),
        **values,
    )
    return with_defaults(profile, fallback)


def resolve_config(
    document: BeautifulSoup,
    config: Union[EngravingConfig, Dict[str, Any], None] = None,
) -> EngravingConfig:
    """Storefront defaults, then the page's settings blob, then ``config``."""
    resolved = EngravingConfig().merged(STOREFRONT_DEFAULTS)
    page_settings = load_settings_from_page(document)
    if page_settings:
        resolved = resolved.merged(page_settings)
    if isinstance(config, EngravingConfig):
        resolved = resolved.merged(config.model_dump(exclude_unset=True))
    elif config:
        resolved = resolved.merged(config)
    return resolved


async def bootstrap(
    source: Union[str, bytes, Page],
    config: Union[EngravingConfig, Dict[str, Any], None] = None,
    cart_gateway: Optional[CartGateway] = None,
    force: bool = False,
    timeout: float = 0,
) -> Optional[EngravingManager]:
    """Attach the engraving option to a product page.

    Args:
        source: Page HTML or an existing :class:`Page`.
        config: Overrides applied on top of the page's embedded settings.
        cart_gateway: Gateway for async cart saves.
        force: Run even when the body does not mark a product template.
        timeout: Seconds to wait for the product form to appear.

    Returns:
        The manager, or None when the page is not a product page or the
        feature is disabled. A manager whose initialization failed is still
        returned so callers can inspect its events.
    """
    page = source if isinstance(source, Page) else Page(source)
    if not force and not is_product_page(page.document):
        logger.debug("Not a product page, skipping engraving")
        return None

    resolved = resolve_config(page.document, config)
    if not resolved.enabled:
        logger.info("Engraving disabled in settings")
        return None

    theme = load_settings_from_page(page.document).get("theme")
    if isinstance(theme, dict):
        profile = profile_from_settings(theme)
    else:
        profile = detect_theme(page.document)

    manager = EngravingManager(page, resolved, cart_gateway=cart_gateway, profile=profile)
    await manager.initialize(timeout=timeout)
    return manager


async def render_preview(
    html: Union[str, bytes],
    config: Union[EngravingConfig, Dict[str, Any], None] = None,
    select: bool = False,
    text: Optional[str] = None,
) -> str:
    """Return ``html`` with the widget injected, optionally with the option chosen."""
    manager = await bootstrap(html, config, force=True)
    if manager is None:
        return html.decode() if isinstance(html, bytes) else html
    try:
        widget = manager.widget
        if select and widget is not None:
            manager.page.click(widget.checkbox)
            if text:
                manager.page.type_text(widget.textarea, text)
        await manager.page.idle()
        return manager.page.html()
    finally:
        manager.destroy(remove_widget=False)
