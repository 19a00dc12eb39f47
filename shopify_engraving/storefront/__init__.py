"""Storefront engraving core: theme detection, widget, price sync and cart attachment."""

from .bootstrap import bootstrap, is_product_page, load_settings_from_page, render_preview
from .cart import AjaxCartGateway, CartAttacher, CartGateway, FakeCartGateway
from .dom import DomEvent, FormSubmission, MutationObserver, Page
from .manager import EngravingManager, OptionState
from .pricing import PriceSynchronizer, format_price, parse_price
from .themes import THEME_PROFILES, ThemeProfile, detect_theme, register_theme
from .widget import EngravingWidget, WidgetInjector

__all__ = [
    "bootstrap",
    "is_product_page",
    "load_settings_from_page",
    "render_preview",
    "AjaxCartGateway",
    "CartAttacher",
    "CartGateway",
    "FakeCartGateway",
    "DomEvent",
    "FormSubmission",
    "MutationObserver",
    "Page",
    "EngravingManager",
    "OptionState",
    "PriceSynchronizer",
    "format_price",
    "parse_price",
    "THEME_PROFILES",
    "ThemeProfile",
    "detect_theme",
    "register_theme",
    "WidgetInjector",
    "EngravingWidget",
]
