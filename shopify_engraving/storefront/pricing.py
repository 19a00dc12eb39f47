"""Price parsing, formatting and on-page price synchronization."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Set

from babel.core import UnknownLocaleError
from babel.numbers import format_currency
from bs4 import Tag

from .dom import MutationRecord, Page
from .themes import ThemeProfile

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Scanned in order when looking for the base price; the theme profile's own
# price selector is tried before these.
BASE_PRICE_SELECTORS = [
    ".price-item--regular",
    "[data-product-price]",
    ".product__price",
    ".price",
    ".product-price__price",
    ".product-single__price",
]

# Every element matching one of these shows the product price and is
# rewritten when the option toggles.
DISPLAY_PRICE_SELECTORS = BASE_PRICE_SELECTORS + [
    ".product-price",
    ".product-item__price",
    ".product-card__price",
    ".grid-product__price",
    ".product-form__price",
    ".add-to-cart .price",
    ".cart__price",
    ".cart-item__price",
    ".grid__item .price",
    ".featured-product__price",
    ".quick-product__price",
    ".drawer__cart .price",
]

# Watched for changes made by the theme (variant switches, sale badges).
OBSERVED_PRICE_SELECTORS = BASE_PRICE_SELECTORS + [
    ".product-single__price--compare",
    ".product__price--compare",
    ".price--on-sale",
    ".price-item--sale",
    ".price__sale",
    ".product-price__sale",
    ".product__price-savings",
    ".savings",
    ".sale-price",
    ".compare-price",
    ".product-price__regular",
    ".product__price-item--regular",
]

SALE_CONTAINERS = ".price__sale, .product-price__sale, .price--sale, .sale-price, .compare-at-price"
COMPARE_MARKERS = ".price-item--compare, .product__compare-price, .compare-price, .was-price, .saved-amount"
WIDGET_ROOT = "[data-engraving-container]"

UPDATED_ATTR = "data-engraving-updated"
BASE_ATTR = "data-engraving-base-price"
DISPLAY_ATTR = "data-engraving-display"


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a displayed price into a Decimal.

    Handles the formats themes render:
      "$29.99"         -> 29.99
      "1,299.00 USD"   -> 1299.00
      "1.299,00 €"     -> 1299.00
      "29,99 kr"       -> 29.99
      "1 299"          -> 1299
    Returns None when the text holds no number.
    """
    if not raw:
        return None

    s = raw.replace("\xa0", " ").strip()
    s = re.sub(r"[^0-9,\.]", "", s)
    # "Rs. 299.00" leaves a stray leading "."
    s = s.strip(".,")
    if not re.search(r"\d", s):
        return None

    if "," in s and "." in s:
        # the LAST separator is the decimal separator
        if s.rfind(".") > s.rfind(","):
            s = s.replace(",", "")
        else:
            s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        whole, _, frac = s.rpartition(",")
        if s.count(",") == 1 and len(frac) in (1, 2):
            s = f"{whole}.{frac}"
        else:
            s = s.replace(",", "")
    elif s.count(".") > 1:
        s = s.replace(".", "")
    elif "." in s:
        whole, _, frac = s.partition(".")
        if len(frac) == 3 and whole and whole != "0":
            # "1.299" is a thousands separator, not a decimal
            s = whole + frac

    try:
        return Decimal(s or "x")
    except InvalidOperation:
        return None


def format_price(amount: Decimal, currency: str = "USD", locale: str = "en_US") -> str:
    """Format ``amount`` for display with two decimals in ``locale``."""
    amount = Decimal(amount).quantize(TWO_PLACES)
    try:
        return format_currency(amount, currency, locale=locale)
    except (UnknownLocaleError, ValueError) as e:
        logger.warning("Cannot format %s %s for locale %s: %s", amount, currency, locale, e)
        return f"{currency} {amount:.2f}"


def to_cart_amount(amount: Decimal) -> str:
    """Two-decimal string used in line-item properties."""
    return str(Decimal(amount).quantize(TWO_PLACES))


class PriceSynchronizer:
    """Reads the base price from the page and writes totals back into it."""

    def __init__(self, page: Page, profile: ThemeProfile):
        self.page = page
        self.profile = profile
        self._own_writes: Set[int] = set()
        self._clear_scheduled = False

    def _selectors(self, extra: Iterable[str]) -> List[str]:
        selectors = [s.strip() for s in self.profile.price.split(",") if s.strip()]
        for selector in extra:
            if selector not in selectors:
                selectors.append(selector)
        return selectors

    def is_excluded(self, node: Tag) -> bool:
        """True for sale/compare-at prices and for anything inside the widget."""
        if self.page.closest(node, SALE_CONTAINERS) is not None:
            return True
        if self.page.matches(node, COMPARE_MARKERS):
            return True
        return self.page.closest(node, WIDGET_ROOT) is not None

    def read_price(self, node: Tag) -> Optional[Decimal]:
        """Price shown by ``node``, looking through values this class wrote itself."""
        text = self.page.text_of(node).strip()
        if node.name in ("input", "select", "textarea"):
            text = self.page.value_of(node)
        if node.has_attr(BASE_ATTR) and node.get(DISPLAY_ATTR) == text:
            return parse_price(node[BASE_ATTR])
        return parse_price(text) if text else parse_price(node.get("data-product-price"))

    def find_base_price(self) -> Optional[Decimal]:
        """First parseable positive price on the page, or None."""
        for selector in self._selectors(BASE_PRICE_SELECTORS):
            for node in self.page.query_all(selector):
                if self.is_excluded(node):
                    continue
                price = self.read_price(node)
                if price is not None and price > 0:
                    return price
        return None

    def price_elements(self) -> List[Tag]:
        """The current PriceElementSet: leaf-most display price nodes, deduplicated."""
        seen: Set[int] = set()
        found: List[Tag] = []
        for selector in self._selectors(DISPLAY_PRICE_SELECTORS):
            for node in self.page.query_all(selector):
                if id(node) in seen or self.is_excluded(node):
                    continue
                seen.add(id(node))
                found.append(node)
        # a wrapper holding other price nodes (or a sale block) is not itself a price
        leaves = []
        for node in found:
            if any(other is not node and any(p is node for p in other.parents) for other in found):
                continue
            if node.select_one(SALE_CONTAINERS) is not None:
                continue
            leaves.append(node)
        return leaves

    def observed_elements(self) -> List[Tag]:
        seen: Set[int] = set()
        nodes = []
        selectors = self._selectors(OBSERVED_PRICE_SELECTORS)
        selectors += [s.strip() for s in self.profile.price_container.split(",") if s.strip()]
        for selector in selectors:
            for node in self.page.query_all(selector):
                if id(node) not in seen and self.page.closest(node, WIDGET_ROOT) is None:
                    seen.add(id(node))
                    nodes.append(node)
        return nodes

    def write(self, base: Decimal, total: Decimal, formatted: str) -> int:
        """Show ``formatted`` in every price element; returns the number updated."""
        updated = 0
        for node in self.price_elements():
            try:
                if node.name in ("input", "select", "textarea"):
                    self.page.set_value(node, to_cart_amount(total))
                    shown = self.page.value_of(node)
                elif self.page.text_of(node).strip() or node.has_attr("data-product-price"):
                    self.page.set_text(node, formatted)
                    shown = formatted
                else:
                    continue
                if node.has_attr("data-product-price"):
                    self.page.set_attribute(node, "data-product-price", to_cart_amount(total))
                self.page.set_attribute(node, BASE_ATTR, to_cart_amount(base))
                self.page.set_attribute(node, DISPLAY_ATTR, shown)
                self.page.set_attribute(node, UPDATED_ATTR, "true")
                self._mark_own(node)
                updated += 1
            except Exception:
                logger.exception("Error updating price element %s", node.name)
        return updated

    def forget(self, node: Tag) -> None:
        """Drop the cached base of a node the theme rewrote, so its text is read again."""
        self.page.remove_attribute(node, BASE_ATTR)
        self.page.remove_attribute(node, DISPLAY_ATTR)

    def _mark_own(self, node: Tag) -> None:
        self._own_writes.add(id(node))
        if not self._clear_scheduled:
            self._clear_scheduled = True
            self.page.loop.call_soon(self._clear_own_writes)

    def _clear_own_writes(self) -> None:
        self._own_writes.clear()
        self._clear_scheduled = False

    def is_own_write(self, record: MutationRecord) -> bool:
        """True when ``record`` was caused by :meth:`write` in the current tick."""
        return id(record.target) in self._own_writes
