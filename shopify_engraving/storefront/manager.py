"""EngravingManager: wires the widget, price synchronizer, watchers and cart attacher."""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from bs4 import Tag

from ..config import EngravingConfig
from ..errors import ErrorType, WidgetMountError
from . import events
from .cart import CartAttacher, CartGateway, FakeCartGateway
from .dom import DomEvent, MutationObserver, MutationRecord, Page, is_descendant, utc_timestamp
from .pricing import PriceSynchronizer, format_price
from .themes import ThemeProfile, detect_theme
from .widget import EngravingWidget, WidgetInjector

logger = logging.getLogger(__name__)

FORM_FALLBACK_SELECTOR = 'form[action*="/cart/add"]'

# Variant pickers across common themes. Containers are included because
# "change" bubbles up from the inputs they hold.
VARIANT_SELECTORS = [
    'select[name="id"]',
    'input[name="id"]',
    "[data-product-select]",
    "[data-productid]",
    ".product-variant-select",
    ".variant-select",
    ".product-option-value",
    ".swatch",
    ".product-single__variants",
    ".product-variants",
    ".variant-input",
    ".variant-input-wrap input",
    "[data-option]",
    ".selector-wrapper select",
    ".product-option",
    ".product-option-item",
    ".product-options__value",
    ".product-form__input",
    '.product-option input[type="radio"]',
    '.product-option input[type="checkbox"]',
]

INIT_FAILED_MESSAGE = "Failed to initialize engraving functionality. Please refresh the page."
TOGGLE_FAILED_MESSAGE = "Failed to update engraving option. Please try again."
AJAX_REFRESH_DELAY = 100
FOCUS_DELAY = 50


@dataclass
class OptionState:
    """What the shopper has chosen, and the prices the total is built from."""
    selected: bool = False
    text: str = ""
    base_price: Decimal = Decimal("0")
    option_price: Decimal = Decimal("0")
    variant_id: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return self.base_price + (self.option_price if self.selected else Decimal("0"))


class EngravingManager:
    """Runs the engraving option on one product page.

    Construct it with a :class:`Page` and call :meth:`initialize`. The manager
    owns every listener, observer and timer it creates; :meth:`destroy`
    releases all of them so a fresh manager can be attached to the same page.

    Args:
        page: The page to attach to.
        config: Storefront options, as a model or a dict of (camelCase) settings.
        cart_gateway: Used when ``save_to_cart_async`` is on. Defaults to a
            :class:`FakeCartGateway` that accepts every request.
        profile: Theme profile; detected from the page when omitted.
    """

    def __init__(
        self,
        page: Page,
        config: Union[EngravingConfig, Dict[str, Any], None] = None,
        cart_gateway: Optional[CartGateway] = None,
        profile: Optional[ThemeProfile] = None,
    ):
        if config is None:
            config = EngravingConfig()
        elif isinstance(config, dict):
            config = EngravingConfig.model_validate(config)
        self.page = page
        self.config = config
        self.profile = profile or detect_theme(page.document)
        self.cart_gateway = cart_gateway or FakeCartGateway()

        self.state = OptionState(option_price=config.engraving_price)
        self.prices = PriceSynchronizer(page, self.profile)
        self.form: Optional[Tag] = None
        self.widget: Optional[EngravingWidget] = None
        self.cart: Optional[CartAttacher] = None
        self.initialized = False
        self.error: Optional[str] = None

        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.observer_triggers = 0
        self._handlers: List[Tuple[Tag, str, Callable]] = []
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._observers: List[MutationObserver] = []
        self._price_observer: Optional[MutationObserver] = None
        self._observed: set = set()
        self._tasks: set = set()
        self._has_written = False
        self._price_missing = False

    # -- logging and events --------------------------------------------------

    def log(self, message: str, *args) -> None:
        if self.config.debug:
            logger.info(message, *args)
        else:
            logger.debug(message, *args)

    def dispatch(self, event_type: str, detail: Optional[Dict[str, Any]] = None) -> DomEvent:
        """Fire a bubbling ``engraving:*`` event from the widget (or the document)."""
        detail = dict(detail or {})
        detail["timestamp"] = utc_timestamp()
        self.events.append((event_type, detail))
        if self.widget is not None and self.widget.mounted:
            target = self.widget.root
        else:
            target = self.page.document
        return self.page.dispatch(target, event_type, detail)

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [detail for name, detail in self.events if name == event_type]

    def report(self, error_type: ErrorType, message: str, error: Optional[BaseException] = None) -> None:
        """Publish an ``engraving:error`` event without touching the banner."""
        detail: Dict[str, Any] = {"message": message, "type": error_type.value}
        if error is not None:
            detail["error"] = str(error)
        self.dispatch(events.ERROR, detail)

    # -- tracked resources ---------------------------------------------------

    def listen(self, target: Tag, event_type: str, handler: Callable) -> None:
        self.page.add_event_listener(target, event_type, handler)
        self._handlers.append((target, event_type, handler))

    def spawn(self, awaitable) -> asyncio.Task:
        task = self.page.spawn(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _debounce(self, key: str, delay_ms: int, callback: Callable, *args) -> None:
        self.page.clear_timeout(self._timers.pop(key, None))

        def fire():
            self._timers.pop(key, None)
            callback(*args)

        self._timers[key] = self.page.set_timeout(delay_ms, fire)

    # -- lifecycle -----------------------------------------------------------

    def find_form(self) -> Optional[Tag]:
        return self.page.query(self.profile.form) or self.page.query(FORM_FALLBACK_SELECTOR)

    async def wait_for_form(self, timeout: float) -> Optional[Tag]:
        """Return the product form, waiting up to ``timeout`` seconds for it to appear."""
        form = self.find_form()
        if form is not None or timeout <= 0:
            return form

        found = self.page.loop.create_future()

        def check(records, observer):
            node = self.find_form()
            if node is not None and not found.done():
                found.set_result(node)

        observer = self.page.observe_mutations(check)
        observer.observe(self.page.document, subtree=True)
        try:
            return await asyncio.wait_for(found, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            observer.disconnect()

    async def initialize(self, timeout: float = 0) -> bool:
        """Mount the widget and start watching the page.

        Returns False (after publishing an ``engraving:error``) when the page
        cannot host the option. Never raises for page problems.
        """
        if self.initialized:
            self.log("Already initialized, skipping")
            return True
        if not self.config.enabled:
            self.log("Engraving disabled, not initializing")
            return False

        self.log("Initializing engraving on theme %s", self.profile.name)
        self.dispatch(events.INITIALIZING, {"theme": self.profile.name})

        self.form = await self.wait_for_form(timeout)
        if self.form is None:
            logger.warning("No product form found, engraving not injected")
            self.report(ErrorType.INITIALIZATION, "Product form not found")
            return False

        try:
            self.state.variant_id = self.get_selected_variant_id()
            self.cache_base_price()

            injector = WidgetInjector(self.page, self.config, self.profile)
            try:
                self.widget = injector.mount(self.form, self.state.base_price)
            except WidgetMountError as e:
                logger.error("Error adding engraving UI: %s", e)
                self.report(ErrorType.UI, "Failed to build engraving UI", e)
                return False
            self._wire_widget()
            self.dispatch(events.UI_READY)

            self._setup_price_observer()
            self._setup_variant_listeners()

            self.cart = CartAttacher(self, self.form, self.cart_gateway)
            self.listen(self.form, "submit", self.cart.handle_submit)
        except Exception as e:
            logger.exception("Error initializing engraving")
            self.report(ErrorType.INITIALIZATION, "Failed to initialize engraving functionality", e)
            if self.widget is not None:
                self.show_error(INIT_FAILED_MESSAGE, ErrorType.INITIALIZATION)
            return False

        self.initialized = True
        self.dispatch(events.INITIALIZED, {
            "originalPrice": self.state.base_price,
            "variantId": self.state.variant_id,
        })
        self.log("Engraving functionality initialized")
        return True

    def destroy(self, remove_widget: bool = True) -> None:
        """Cancel timers and tasks, disconnect observers and remove every listener."""
        for handle in self._timers.values():
            self.page.clear_timeout(handle)
        self._timers.clear()
        for observer in self._observers:
            observer.disconnect()
        self._observers.clear()
        self._price_observer = None
        self._observed.clear()
        self._price_missing = False
        for target, event_type, handler in self._handlers:
            self.page.remove_event_listener(target, event_type, handler)
        self._handlers.clear()
        for task in list(self._tasks):
            task.cancel()

        if remove_widget and self.widget is not None:
            self.page.remove(self.widget.root)
            self.page.remove_class(self.page.root, "has-engraving")
            self.widget = None
        self.initialized = False
        self.log("Cleanup complete")

    # -- widget interaction --------------------------------------------------

    def _wire_widget(self) -> None:
        widget = self.widget
        self.listen(widget.checkbox, "change", self._on_checkbox_change)
        self.listen(widget.textarea, "input", self._on_text_input)

    def _on_checkbox_change(self, event: DomEvent) -> None:
        self.set_selected(self.page.is_checked(event.target))

    def _on_text_input(self, event: DomEvent) -> None:
        self.update_text(self.page.value_of(event.target))

    def _focus_text(self) -> None:
        if self.widget is not None and self.state.selected:
            self.page.focus(self.widget.textarea)

    def set_selected(self, selected: bool) -> None:
        """Toggle the option; the price refresh is debounced."""
        self.state.selected = selected
        try:
            if self.widget is not None:
                self.widget.set_expanded(selected)
                if self.page.is_checked(self.widget.checkbox) != selected:
                    self.page.set_checked(self.widget.checkbox, selected)
            if selected:
                if self.widget is not None:
                    if self.config.auto_scroll_to_engraving:
                        self.page.scroll_into_view(self.widget.root, self.config.scroll_offset)
                    self._debounce("focus", FOCUS_DELAY, self._focus_text)
            else:
                self.update_text("")
                self.clear_error()
                if self.cart is not None:
                    self.cart.detach_from_form()
            self.dispatch(events.SELECTED, {"selected": selected})
        except Exception as e:
            logger.exception("Error toggling engraving")
            self.show_error(TOGGLE_FAILED_MESSAGE, ErrorType.UI)
            self.report(ErrorType.UI, "Failed to toggle engraving", e)
        self.schedule_price_update()

    def update_text(self, text: str) -> str:
        """Store ``text`` truncated to ``max_characters``; returns what was kept."""
        truncated = (text or "")[:self.config.max_characters]
        self.state.text = truncated
        if self.widget is not None:
            self.widget.set_text(truncated)
        self.update_character_count(len(truncated))
        self.dispatch(events.TEXT_UPDATED, {
            "text": truncated,
            "length": len(truncated),
            "maxLength": self.config.max_characters,
        })
        return truncated

    def update_character_count(self, count: int) -> None:
        if self.widget is None:
            return
        self.widget.set_character_count(count, self.config.max_characters)
        self.dispatch(events.CHARACTER_COUNT, {
            "count": count,
            "remaining": self.config.max_characters - count,
            "maxLength": self.config.max_characters,
        })

    def show_error(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Show ``message`` in the widget banner; it hides itself after ``error_auto_hide`` ms."""
        self.error = message
        if self.widget is not None:
            self.widget.show_error(message)
            if self.config.error_auto_hide > 0:
                self._debounce("error", self.config.error_auto_hide, self.clear_error)
        detail: Dict[str, Any] = {"message": message}
        if error_type is not None:
            detail["type"] = error_type.value
        if error is not None:
            detail["error"] = str(error)
        self.dispatch(events.ERROR, detail)

    def clear_error(self) -> None:
        self.page.clear_timeout(self._timers.pop("error", None))
        had_error = self.error is not None
        self.error = None
        if self.widget is not None:
            self.widget.clear_error()
        if had_error:
            self.dispatch(events.ERROR_CLEARED)

    # -- prices --------------------------------------------------------------

    def format(self, amount: Decimal) -> str:
        return format_price(amount, self.config.currency, self.config.locale)

    def cache_base_price(self) -> Optional[Decimal]:
        """Read the product's own price from the page into the option state."""
        try:
            price = self.prices.find_base_price()
        except Exception as e:
            logger.exception("Error caching original price")
            self.report(ErrorType.PRICE, "Error determining product price", e)
            return None
        if price is None:
            if self._price_missing:
                self.log("Still no product price on the page")
                return None
            self._price_missing = True
            logger.warning("Could not determine original product price")
            self.report(ErrorType.PRICE_NOT_FOUND, "Could not determine product price")
            return None
        self._price_missing = False
        self.state.base_price = price
        self.dispatch(events.PRICE_CACHED, {"price": price})
        return price

    def update_price(self) -> int:
        """Write the current total into the page's price elements.

        Returns the number of elements written. Nothing is written while the
        option has never been selected, so the theme's own markup stays
        untouched until the shopper opts in.
        """
        state = self.state
        try:
            if state.base_price <= 0:
                self.cache_base_price()
            if state.base_price <= 0:
                self.log("No valid base price available for update")
                return 0

            fee = self.format(state.option_price)
            if self.widget is not None:
                self.widget.set_breakdown(
                    self.format(state.base_price),
                    fee,
                    self.format(state.base_price + state.option_price),
                    visible=state.selected and self.config.show_price_breakdown,
                )
            if not state.selected and not self._has_written:
                return 0

            total = state.total
            formatted = self.format(total)
            updated = self.prices.write(state.base_price, total, formatted)
            self._has_written = self._has_written or updated > 0
            self.dispatch(events.PRICE_UPDATED, {
                "originalPrice": state.base_price,
                "engravingPrice": state.option_price if state.selected else Decimal("0"),
                "totalPrice": total,
                "formattedPrice": formatted,
                "formattedEngravingPrice": fee,
                "updatedElements": updated,
            })
            self.log("Price updated: %s + %s = %s", self.format(state.base_price),
                     fee if state.selected else self.format(Decimal("0")), formatted)
            return updated
        except Exception as e:
            logger.exception("Error updating price")
            self.report(ErrorType.PRICE_UPDATE, "Failed to update price display", e)
            return 0

    def refresh(self) -> None:
        """Re-read the base price and rewrite the displayed total."""
        self.cache_base_price()
        self.update_price()
        self._observe_price_nodes()

    def schedule_price_update(self) -> None:
        self._debounce("price_update", self.config.price_update_debounce, self.refresh)

    # -- watchers ------------------------------------------------------------

    def _in_widget(self, node: Tag) -> bool:
        if self.widget is None:
            return False
        root = self.widget.root
        return node is root or is_descendant(node, root)

    def _setup_price_observer(self) -> None:
        try:
            self._price_observer = self.page.observe_mutations(self._on_price_mutations)
            self._observers.append(self._price_observer)
            self._observe_price_nodes()
        except Exception as e:
            logger.exception("Error setting up price observer")
            self.report(ErrorType.OBSERVER, "Error setting up price monitoring", e)

    def _observe_price_nodes(self) -> None:
        if self._price_observer is None:
            return
        for node in self.prices.observed_elements():
            if id(node) not in self._observed:
                self._observed.add(id(node))
                self._price_observer.observe(node, subtree=True, attribute_filter=["class"])

    def _on_price_mutations(self, records: List[MutationRecord], observer: MutationObserver) -> None:
        relevant = [
            r for r in records
            if not self.prices.is_own_write(r) and not self._in_widget(r.target)
        ]
        if not relevant:
            return
        for record in relevant:
            if record.type in ("childList", "characterData"):
                self.prices.forget(record.target)
        self.observer_triggers += 1
        self.log("Price markup changed (%d records), scheduling refresh", len(relevant))
        self.schedule_price_update()

    def _setup_variant_listeners(self) -> None:
        try:
            seen = set()
            for selector in VARIANT_SELECTORS + list(self.profile.variant_inputs):
                for node in self.page.query_all(selector):
                    if id(node) in seen or self._in_widget(node):
                        continue
                    seen.add(id(node))
                    self.listen(node, "change", self._on_variant_input)
                    if node.name == "input" and node.get("type") in ("radio", "checkbox"):
                        self.listen(node, "click", self._on_variant_input)
            self.listen(self.page.document, events.THEME_VARIANT_CHANGE, self._on_theme_variant_change)
            self.listen(self.page.document, events.THEME_AJAX_COMPLETE, self._on_ajax_complete)
            self.log("Watching %d variant inputs", len(seen))
        except Exception as e:
            logger.exception("Error setting up variant listener")
            self.report(ErrorType.VARIANT, "Error setting up variant monitoring", e)

    def _on_variant_input(self, event: DomEvent) -> None:
        if self._in_widget(event.target):
            return
        self._debounce("variant_change", self.config.variant_change_debounce, self._variant_settled, None, None)

    def _on_theme_variant_change(self, event: DomEvent) -> None:
        variant = event.detail.get("variant")
        if not variant:
            return
        variant_id = variant.get("id")
        self._debounce(
            "variant_change", self.config.variant_change_debounce, self._variant_settled,
            str(variant_id) if variant_id is not None else None, variant,
        )

    def _on_ajax_complete(self, event: DomEvent) -> None:
        self._debounce("ajax", AJAX_REFRESH_DELAY, self.refresh)

    def _variant_settled(self, variant_id: Optional[str], variant: Optional[Dict[str, Any]]) -> None:
        previous = self.state.variant_id
        current = variant_id or self.get_selected_variant_id()
        self.dispatch(events.VARIANT_CHANGING, {"variantId": current, "previousVariantId": previous})
        self.state.variant_id = current
        self.refresh()
        detail: Dict[str, Any] = {
            "variantId": current,
            "price": self.state.base_price,
            "hasEngraving": self.state.selected,
        }
        if variant is not None:
            detail["variant"] = variant
        self.dispatch(events.VARIANT_CHANGED, detail)

    def get_selected_variant_id(self) -> Optional[str]:
        """Variant currently chosen in the product form, or None."""
        form = self.form if self.form is not None else self.find_form()
        if form is None:
            return self.state.variant_id
        select = self.page.query('select[name="id"]', form)
        if select is not None:
            return self.page.value_of(select) or None
        radio = self.page.query('input[name="id"][type="radio"][checked]', form)
        if radio is not None:
            return self.page.value_of(radio) or None
        hidden = self.page.query('input[name="id"]:not([type="radio"])', form)
        if hidden is not None:
            return self.page.value_of(hidden) or None
        if form.get("data-variant-id"):
            return form["data-variant-id"]
        logger.warning("Could not determine variant ID")
        return None
