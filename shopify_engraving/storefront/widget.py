"""Builds the engraving option widget and mounts it in the product form."""

import logging
from decimal import Decimal
from typing import List, Optional

from bs4 import Tag

from ..config import EngravingConfig
from ..errors import WidgetMountError
from .dom import Page
from .pricing import format_price, to_cart_amount
from .themes import ThemeProfile

logger = logging.getLogger(__name__)

# Elements that usually precede the add-to-cart button, best first. The
# theme's own submit button selector is spliced in ahead of the generic ones.
QUANTITY_SELECTORS = [
    ".product-form__quantity",
    ".quantity-selector",
    ".product-quantity",
]
VARIANT_BLOCK_SELECTORS = [
    ".product-options",
    ".product-variants",
    ".selector-wrapper",
]
BUTTON_WRAPPER_SELECTORS = [
    ".product-add",
    ".product-actions",
    ".product-form__buttons",
]
BUTTON_SELECTORS = [
    'button[type="submit"][name="add"]',
    'input[type="submit"][value="Add to cart"]',
    ".add-to-cart",
    ".product-form__submit",
    ".shopify-payment-button",
]


class EngravingWidget:
    """Handles to the mounted widget's elements and small render helpers."""

    def __init__(self, page: Page, root: Tag):
        self.page = page
        self.root = root
        self.checkbox = page.query("#engraving-checkbox", root)
        self.input_container = page.query(".engraving-input-container", root)
        self.textarea = page.query("#engraving-text", root)
        self.character_count = page.query("#engraving-char-count", root)
        self.breakdown = page.query(".engraving-price-breakdown", root)
        self.original_price = page.query(".engraving-original-price", root)
        self.fee = page.query(".engraving-fee", root)
        self.total = page.query(".engraving-total-price", root)
        self.error = page.query("#engraving-error", root)

    @property
    def mounted(self) -> bool:
        return self.root.parent is not None

    def set_expanded(self, expanded: bool) -> None:
        self.page.set_hidden(self.input_container, not expanded)
        if expanded:
            self.page.add_class(self.root, "engraving-selected")
        else:
            self.page.remove_class(self.root, "engraving-selected")

    def set_text(self, text: str) -> None:
        if self.page.value_of(self.textarea) != text:
            self.page.set_value(self.textarea, text)

    def set_character_count(self, count: int, max_characters: int) -> None:
        self.page.set_text(self.character_count, f"{count}/{max_characters} characters")
        if max_characters - count < 10:
            self.page.add_class(self.character_count, "warning")
        else:
            self.page.remove_class(self.character_count, "warning")

    def set_breakdown(self, product: str, fee: str, total: str, visible: bool) -> None:
        self.page.set_text(self.original_price, f"Product: {product}")
        self.page.set_text(self.fee, f"Engraving: +{fee}")
        self.page.set_text(self.total, f"Total: {total}")
        self.page.set_hidden(self.breakdown, not visible)

    def show_error(self, message: str) -> None:
        self.page.set_text(self.error, message)
        self.page.set_hidden(self.error, False)

    def clear_error(self) -> None:
        self.page.set_text(self.error, "")
        self.page.set_hidden(self.error, True)

    @property
    def error_visible(self) -> bool:
        return not self.page.is_hidden(self.error)

    def set_loading(self, loading: bool) -> None:
        if loading:
            self.page.add_class(self.root, "engraving-loading")
        else:
            self.page.remove_class(self.root, "engraving-loading")


class WidgetInjector:
    """Creates the widget subtree and inserts it at the best spot on the page."""

    def __init__(self, page: Page, config: EngravingConfig, profile: ThemeProfile):
        self.page = page
        self.config = config
        self.profile = profile

    def insertion_selectors(self) -> List[str]:
        theme_buttons = [s.strip() for s in self.profile.submit_button.split(",") if s.strip()]
        buttons = theme_buttons + [s for s in BUTTON_SELECTORS if s not in theme_buttons]
        return QUANTITY_SELECTORS + VARIANT_BLOCK_SELECTORS + BUTTON_WRAPPER_SELECTORS + buttons + [
            f'{self.profile.form} [type="submit"]',
        ]

    def find_insertion_point(self) -> Optional[Tag]:
        for selector in self.insertion_selectors():
            element = self.page.query(selector)
            if element is not None and element.parent is not None:
                logger.debug("Found insertion point with selector: %s", selector)
                return element
        logger.warning("Could not find an appropriate insertion point for engraving UI")
        return None

    def build(self, base_price: Decimal = Decimal("0")) -> Tag:
        page, config = self.page, self.config
        fee = format_price(config.engraving_price, config.currency, config.locale)

        root = page.create_element("div", {
            "id": "engraving-container",
            "class": "engraving-container",
            "data-engraving-container": "true",
            "data-engraving-price": to_cart_amount(config.engraving_price),
        })

        option = page.create_element("div", {"class": "engraving-option"})
        checkbox = page.create_element("input", {
            "type": "checkbox",
            "id": "engraving-checkbox",
            "class": "engraving-checkbox",
            "aria-label": "Add custom engraving",
        })
        label = page.create_element("label", {"for": "engraving-checkbox", "class": "engraving-label"})
        label.append(page.create_element("span", {"class": "engraving-checkbox-visual"}))
        label_text = page.create_element("span", {"class": "engraving-label-text"}, config.checkbox_label)
        label_text.append(page.create_element("span", {"class": "engraving-price"}, f" (+{fee})"))
        label.append(label_text)
        option.append(checkbox)
        option.append(label)

        input_container = page.create_element("div", {
            "class": "engraving-input-container",
            "style": "display: none",
        })
        input_container.append(page.create_element(
            "label", {"for": "engraving-text", "class": "engraving-text-label"}, config.text_label))
        textarea = page.create_element("textarea", {
            "id": "engraving-text",
            "class": "engraving-textarea",
            "placeholder": config.placeholder,
            "maxlength": str(config.max_characters),
            "aria-label": "Engraving text",
            "rows": "3",
        })
        input_container.append(textarea)
        counter_attrs = {"id": "engraving-char-count", "class": "engraving-char-count"}
        if not config.show_character_count:
            counter_attrs["style"] = "display: none"
        input_container.append(page.create_element(
            "div", counter_attrs, f"0/{config.max_characters} characters"))

        breakdown = page.create_element("div", {
            "class": "engraving-price-breakdown",
            "style": "display: none",
        })
        breakdown.append(page.create_element(
            "div", {"class": "engraving-original-price"},
            f"Product: {format_price(base_price, config.currency, config.locale)}"))
        breakdown.append(page.create_element("div", {"class": "engraving-fee"}, f"Engraving: +{fee}"))
        breakdown.append(page.create_element(
            "div", {"class": "engraving-total-price"},
            f"Total: {format_price(base_price + config.engraving_price, config.currency, config.locale)}"))

        error = page.create_element("div", {
            "id": "engraving-error",
            "class": "engraving-error",
            "role": "alert",
            "aria-live": "assertive",
            "style": "display: none",
        })

        root.append(option)
        root.append(input_container)
        root.append(breakdown)
        root.append(error)
        return root

    def mount(self, form: Optional[Tag], base_price: Decimal = Decimal("0")) -> EngravingWidget:
        """Build the widget and insert it; raises :class:`WidgetMountError` on failure."""
        try:
            root = self.build(base_price)
            point = self.find_insertion_point()
            if point is not None:
                self.page.insert_before(point, root)
                logger.debug("Engraving UI inserted before <%s>", point.name)
            elif form is not None:
                self.page.prepend(form, root)
                logger.debug("Engraving UI inserted at the beginning of the form")
            else:
                self.page.append(self.page.body, root)
                logger.warning("Could not find form, appended engraving UI to body")
            self.page.add_class(self.page.root, "has-engraving")
        except WidgetMountError:
            raise
        except Exception as e:
            raise WidgetMountError(f"Failed to build engraving UI: {e}") from e
        return EngravingWidget(self.page, root)
