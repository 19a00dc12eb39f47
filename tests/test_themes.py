from bs4 import BeautifulSoup

from shopify_engraving.storefront.themes import (
    DEFAULT_THEME,
    THEME_PROFILES,
    ThemeProfile,
    detect_theme,
    get_profile,
    register_theme,
)


def soup(html):
    return BeautifulSoup(html, "html.parser")


def test_body_class_wins_over_markup():
    document = soup('<body class="template-product Debut"><div id="productPrice">$5</div></body>')
    assert detect_theme(document).name == "debut"


def test_detects_from_price_markup():
    document = soup('<body class="template-product"><span id="productPrice">$5.00</span></body>')
    assert detect_theme(document).name == "minimal"


def test_table_order_breaks_ties():
    document = soup(
        '<body><div class="product-single__price">$5</div>'
        '<div class="price__regular"><span class="price-item--regular">$5</span></div></body>'
    )
    assert detect_theme(document).name == "dawn"


def test_unknown_markup_gets_default_profile():
    document = soup("<body><p>Nothing here</p></body>")
    assert detect_theme(document) is DEFAULT_THEME


def test_table_rows():
    assert [p.name for p in THEME_PROFILES] == ["dawn", "debut", "minimal", "supply", "default"]


def test_register_theme_inserts_before_default_and_fills_blanks():
    profiles = list(THEME_PROFILES)
    register_theme(
        ThemeProfile(name="impulse", price=".product-block--price", form="", submit_button="", price_container=""),
        profiles,
    )

    assert [p.name for p in profiles][-2:] == ["impulse", "default"]
    profile = detect_theme(soup('<body class="impulse"></body>'), profiles)
    assert profile.name == "impulse"
    assert profile.form == DEFAULT_THEME.form
    assert profile.variant_inputs == DEFAULT_THEME.variant_inputs
    assert get_profile("impulse", profiles).price == ".product-block--price"
    assert "impulse" not in [p.name for p in THEME_PROFILES]


def test_register_theme_replaces_existing_row():
    profiles = list(THEME_PROFILES)
    register_theme(ThemeProfile(name="dawn", price=".x", form="f", submit_button="b", price_container="c"), profiles)
    assert len(profiles) == len(THEME_PROFILES)
    assert get_profile("dawn", profiles).price == ".x"


def test_broken_selector_is_skipped():
    profiles = [
        ThemeProfile(name="broken", price="[[", form="f", submit_button="b", price_container="c"),
        DEFAULT_THEME,
    ]
    assert detect_theme(soup("<body></body>"), profiles) is DEFAULT_THEME
