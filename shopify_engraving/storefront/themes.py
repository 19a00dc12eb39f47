"""Theme detection: pick a selector profile for the storefront's markup."""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThemeProfile:
    """Selectors describing one storefront template's product page."""
    name: str
    price: str
    form: str
    submit_button: str
    price_container: str
    variant_inputs: Tuple[str, ...] = ()


DEFAULT_THEME = ThemeProfile(
    name="default",
    price=".price, [data-product-price]",
    form='form[action$="/cart/add"]',
    submit_button='button[type="submit"][name="add"], .add-to-cart',
    price_container=".product-price, [data-price-wrapper]",
    variant_inputs=('[name="id"]', ".swatch input", ".variant-input input"),
)

# Order matters: detection walks this table top to bottom and the default
# row is only ever used as the fallback.
THEME_PROFILES: List[ThemeProfile] = [
    ThemeProfile(
        name="dawn",
        price=".price__regular .price-item--regular",
        form='form[action$="/cart/add"]',
        submit_button='button[type="submit"][name="add"]',
        price_container=".price",
        variant_inputs=('input[name="id"]', 'variant-radios input[type="radio"]'),
    ),
    ThemeProfile(
        name="debut",
        price=".product-single__price",
        form='form[action$="/cart/add"]',
        submit_button='button[type="submit"][name="add"]',
        price_container=".product-single__price",
        variant_inputs=("select.product-form__variants", ".swatch input"),
    ),
    ThemeProfile(
        name="minimal",
        price="#productPrice",
        form='form[action$="/cart/add"]',
        submit_button='button[type="submit"][name="add"]',
        price_container=".product-single__prices",
        variant_inputs=("#productSelect", ".swatch input"),
    ),
    ThemeProfile(
        name="supply",
        price=".product__price",
        form='form[action$="/cart/add"]',
        submit_button='button[type="submit"][name="add"]',
        price_container=".product__price",
        variant_inputs=("#ProductSelect", ".swatch input"),
    ),
    DEFAULT_THEME,
]


def register_theme(profile: ThemeProfile, profiles: Optional[List[ThemeProfile]] = None) -> None:
    """Add or replace a profile ahead of the default row."""
    table = THEME_PROFILES if profiles is None else profiles
    for index, existing in enumerate(table):
        if existing.name == profile.name:
            table[index] = profile
            return
    position = next((i for i, p in enumerate(table) if p.name == DEFAULT_THEME.name), len(table))
    table.insert(position, profile)


def get_profile(name: str, profiles: Sequence[ThemeProfile] = ()) -> ThemeProfile:
    """Look up a profile by name, falling back to the default profile."""
    for profile in profiles or THEME_PROFILES:
        if profile.name == name:
            return profile
    return DEFAULT_THEME


def _body_classes(document: BeautifulSoup) -> str:
    body = document.body
    if body is None:
        return ""
    classes = body.get("class") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(classes).lower()


def detect_theme(document: BeautifulSoup, profiles: Sequence[ThemeProfile] = ()) -> ThemeProfile:
    """Return the profile matching ``document``.

    Body classes are checked first, then each profile's price selector. The
    result is always usable: unknown markup gets the generic default profile.
    """
    table = list(profiles or THEME_PROFILES)
    candidates = [p for p in table if p.name != DEFAULT_THEME.name]
    fallback = next((p for p in table if p.name == DEFAULT_THEME.name), DEFAULT_THEME)

    body_classes = _body_classes(document)
    for profile in candidates:
        if profile.name in body_classes:
            logger.info("Detected theme %s from body classes", profile.name)
            return with_defaults(profile, fallback)

    for profile in candidates:
        try:
            if document.select_one(profile.price) is not None:
                logger.info("Detected theme %s from markup", profile.name)
                return with_defaults(profile, fallback)
        except SelectorSyntaxError:
            logger.warning("Skipping theme %s with unusable price selector %r", profile.name, profile.price)

    logger.info("Using default theme configuration")
    return fallback


def with_defaults(profile: ThemeProfile, fallback: ThemeProfile = DEFAULT_THEME) -> ThemeProfile:
    """Fill blank selectors of ``profile`` from ``fallback``."""
    overrides: Dict[str, object] = {}
    for name in ("price", "form", "submit_button", "price_container"):
        if not getattr(profile, name):
            overrides[name] = getattr(fallback, name)
    if not profile.variant_inputs:
        overrides["variant_inputs"] = fallback.variant_inputs
    return replace(profile, **overrides) if overrides else profile
