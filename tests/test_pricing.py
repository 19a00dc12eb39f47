from decimal import Decimal

import pytest

from shopify_engraving.storefront.dom import Page
from shopify_engraving.storefront.pricing import (
    BASE_ATTR,
    DISPLAY_ATTR,
    PriceSynchronizer,
    format_price,
    parse_price,
    to_cart_amount,
)
from shopify_engraving.storefront.themes import DEFAULT_THEME, detect_theme

from pages import DAWN_PAGE


@pytest.mark.parametrize("raw, expected", [
    ("$29.99", Decimal("29.99")),
    ("1,299.00 USD", Decimal("1299.00")),
    ("1.299,00 €", Decimal("1299.00")),
    ("29,99 kr", Decimal("29.99")),
    ("1 299", Decimal("1299")),
    ("1.299", Decimal("1299")),
    ("Price: $0.50", Decimal("0.50")),
    ("Rs. 299.00", Decimal("299.00")),
    ("Rs. 1,299.00", Decimal("1299.00")),
    ("Dhs. 29.99", Decimal("29.99")),
    ("29.99 Dhs.", Decimal("29.99")),
])
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "Sold out", "—"])
def test_parse_price_without_number(raw):
    assert parse_price(raw) is None


def test_format_price_uses_locale():
    assert format_price(Decimal("35"), "USD", "en_US") == "$35.00"
    formatted = format_price(Decimal("1299"), "EUR", "de_DE")
    assert formatted.startswith("1.299,00")
    assert formatted.endswith("€")


def test_format_price_unknown_locale_falls_back():
    assert format_price(Decimal("5"), "USD", "xx_YY") == "USD 5.00"


def test_to_cart_amount():
    assert to_cart_amount(Decimal("10")) == "10.00"
    assert to_cart_amount(Decimal("7.499")) == "7.50"


def test_base_price_skips_sale_and_unparseable_nodes():
    page = Page(
        '<body><div class="price__sale"><span class="price">$9.00</span></div>'
        '<span class="price">Sold out</span>'
        '<span class="price">$19.00</span></body>'
    )
    assert PriceSynchronizer(page, DEFAULT_THEME).find_base_price() == Decimal("19.00")


def test_price_elements_are_leaf_most():
    page = Page(DAWN_PAGE)
    prices = PriceSynchronizer(page, detect_theme(page.document))

    elements = prices.price_elements()

    assert [e.get_text() for e in elements] == ["$25.00"]


@pytest.mark.asyncio
async def test_write_tags_nodes_and_reads_base_back():
    page = Page(DAWN_PAGE)
    prices = PriceSynchronizer(page, detect_theme(page.document))

    assert prices.write(Decimal("25.00"), Decimal("35.00"), "$35.00") == 1

    node = page.query(".price-item--regular")
    assert node.get_text() == "$35.00"
    assert node[BASE_ATTR] == "25.00"
    assert node[DISPLAY_ATTR] == "$35.00"
    assert prices.find_base_price() == Decimal("25.00")


@pytest.mark.asyncio
async def test_input_price_nodes_get_cart_amount():
    page = Page('<body><input class="product-price" data-product-price="2500" value="25.00"></body>')
    prices = PriceSynchronizer(page, DEFAULT_THEME)

    prices.write(Decimal("25.00"), Decimal("35.00"), "$35.00")

    node = page.query("input")
    assert node["value"] == "35.00"
    assert node["data-product-price"] == "35.00"
