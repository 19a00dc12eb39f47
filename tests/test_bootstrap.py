import pytest
from bs4 import BeautifulSoup

from shopify_engraving.config import EngravingConfig
from shopify_engraving.storefront.bootstrap import (
    bootstrap,
    is_product_page,
    load_settings_from_page,
    render_preview,
    resolve_config,
)

from pages import DAWN_PAGE, with_settings


def soup(html):
    return BeautifulSoup(html, "html.parser")


def test_is_product_page():
    assert is_product_page(soup(DAWN_PAGE))
    assert is_product_page(soup('<body class="product-template"></body>'))
    assert not is_product_page(soup('<body class="template-collection"></body>'))


def test_malformed_settings_are_ignored():
    assert load_settings_from_page(soup(with_settings(DAWN_PAGE, "{not json"))) == {}
    assert load_settings_from_page(soup(with_settings(DAWN_PAGE, "[1, 2]"))) == {}
    assert load_settings_from_page(soup(DAWN_PAGE)) == {}


def test_resolve_config_precedence():
    document = soup(with_settings(DAWN_PAGE, '{"maxCharacters": 20, "engravingPrice": "5"}'))

    assert resolve_config(soup(DAWN_PAGE)).max_characters == 50
    assert resolve_config(document).max_characters == 20
    assert resolve_config(document, {"maxCharacters": 10}).max_characters == 10

    explicit = resolve_config(document, EngravingConfig(currency="eur"))
    assert explicit.currency == "EUR"
    assert explicit.max_characters == 20
    assert str(explicit.engraving_price) == "5.00"


@pytest.mark.asyncio
async def test_bootstrap_skips_non_product_pages():
    html = DAWN_PAGE.replace("template-product", "template-collection")

    assert await bootstrap(html) is None

    manager = await bootstrap(html, force=True)
    assert manager is not None
    assert manager.initialized


@pytest.mark.asyncio
async def test_bootstrap_respects_disabled_setting():
    assert await bootstrap(with_settings(DAWN_PAGE, '{"enabled": false}')) is None


@pytest.mark.asyncio
async def test_bootstrap_uses_embedded_theme():
    settings = '{"theme": {"name": "custom", "priceSelector": ".price-item--regular"}}'

    manager = await bootstrap(with_settings(DAWN_PAGE, settings))

    assert manager.profile.name == "custom"
    assert manager.profile.price == ".price-item--regular"
    assert manager.profile.form == 'form[action$="/cart/add"]'
    assert manager.config.max_characters == 50


@pytest.mark.asyncio
async def test_render_preview_selected_with_text():
    html = await render_preview(DAWN_PAGE, {"engravingPrice": "5"}, select=True, text="Hello")

    document = soup(html)
    assert document.select_one("#engraving-checkbox").has_attr("checked")
    assert document.select_one("#engraving-text").get_text() == "Hello"
    assert document.select_one(".price-item--regular").get_text() == "$30.00"
    assert document.select_one(".engraving-char-count").get_text() == "5/50 characters"


@pytest.mark.asyncio
async def test_render_preview_unselected_leaves_price_alone():
    html = await render_preview(DAWN_PAGE)

    document = soup(html)
    assert document.select_one("#engraving-container") is not None
    assert document.select_one(".price-item--regular").get_text() == "$25.00"
