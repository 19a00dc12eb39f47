import asyncio
from decimal import Decimal

import pytest

from shopify_engraving.errors import CartGatewayError
from shopify_engraving.storefront import events
from shopify_engraving.storefront.cart import FakeCartGateway, SAVE_FAILED_MESSAGE, VALIDATION_MESSAGE
from shopify_engraving.storefront.dom import Page
from shopify_engraving.storefront.manager import EngravingManager
from shopify_engraving.storefront.pricing import BASE_ATTR, UPDATED_ATTR

from pages import DAWN_PAGE, NO_FORM_PAGE, NO_PRICE_PAGE, VARIANT_PAGE

FAST = {
    "priceUpdateDebounce": 10,
    "variantChangeDebounce": 15,
    "saveToCartAsync": False,
}


async def make_manager(html=DAWN_PAGE, cart_gateway=None, **overrides):
    page = Page(html)
    manager = EngravingManager(page, {**FAST, **overrides}, cart_gateway=cart_gateway)
    assert await manager.initialize()
    return page, manager


def displayed_price(page):
    return page.query(".price__regular .price-item--regular").get_text()


@pytest.mark.asyncio
async def test_initialize_mounts_widget_and_caches_price():
    page, manager = await make_manager()

    assert manager.profile.name == "dawn"
    assert manager.state.base_price == Decimal("25.00")
    assert manager.state.variant_id == "111"
    assert page.query("#engraving-container") is manager.widget.root
    assert "has-engraving" in page.root["class"]
    fired = [name for name, _ in manager.events]
    assert fired[:3] == [events.INITIALIZING, events.PRICE_CACHED, events.UI_READY]
    assert fired[-1] == events.INITIALIZED
    assert all("timestamp" in detail for _, detail in manager.events)


@pytest.mark.asyncio
async def test_select_shows_total_and_deselect_restores_base():
    page, manager = await make_manager()

    page.click(manager.widget.checkbox)
    await page.idle()
    assert displayed_price(page) == "$35.00"
    assert manager.widget.total.get_text() == "Total: $35.00"
    assert not page.is_hidden(manager.widget.breakdown)

    page.click(manager.widget.checkbox)
    await page.idle()
    assert displayed_price(page) == "$25.00"
    assert page.is_hidden(manager.widget.breakdown)


@pytest.mark.asyncio
async def test_toggles_inside_debounce_window_settle_on_last_state():
    page, manager = await make_manager()
    checkbox = manager.widget.checkbox

    page.click(checkbox)
    page.click(checkbox)
    await page.idle()
    assert manager.state.selected is False
    assert displayed_price(page) == "$25.00"
    assert not page.query(".price-item--regular").has_attr(UPDATED_ATTR)
    assert manager.events_of(events.PRICE_UPDATED) == []

    page.click(checkbox)
    page.click(checkbox)
    page.click(checkbox)
    await page.idle()
    assert manager.state.selected is True
    assert displayed_price(page) == "$35.00"
    assert len(manager.events_of(events.PRICE_UPDATED)) == 1


@pytest.mark.asyncio
async def test_text_is_truncated_to_max_characters():
    page, manager = await make_manager(maxCharacters=30)
    page.click(manager.widget.checkbox)

    page.type_text(manager.widget.textarea, "x" * 40)

    assert manager.state.text == "x" * 30
    assert page.value_of(manager.widget.textarea) == "x" * 30
    assert manager.widget.character_count.get_text() == "30/30 characters"
    assert manager.events_of(events.TEXT_UPDATED)[-1]["length"] == 30


@pytest.mark.asyncio
async def test_deselect_clears_text_and_counter():
    page, manager = await make_manager()
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Forever")

    page.click(manager.widget.checkbox)

    assert manager.state.text == ""
    assert page.value_of(manager.widget.textarea) == ""
    assert manager.widget.character_count.get_text() == "0/30 characters"
    assert page.is_hidden(manager.widget.input_container)


@pytest.mark.asyncio
async def test_compare_at_price_is_never_overwritten():
    page, manager = await make_manager()

    page.click(manager.widget.checkbox)
    await page.idle()

    compare = page.query(".price-item--compare")
    assert compare.get_text() == "$30.00"
    assert not compare.has_attr(UPDATED_ATTR)


@pytest.mark.asyncio
async def test_repeated_refresh_does_not_compound_surcharge():
    page, manager = await make_manager()
    page.click(manager.widget.checkbox)
    await page.idle()

    manager.refresh()
    manager.refresh()

    assert manager.state.base_price == Decimal("25.00")
    assert displayed_price(page) == "$35.00"
    assert page.query(".price-item--regular")[BASE_ATTR] == "25.00"


@pytest.mark.asyncio
async def test_selecting_scrolls_and_focuses_text():
    page, manager = await make_manager()

    page.click(manager.widget.checkbox)
    await page.idle()

    assert page.scroll_requests == [(manager.widget.root, 20)]
    assert page.focused is manager.widget.textarea


@pytest.mark.asyncio
async def test_own_price_writes_do_not_trigger_observer():
    page, manager = await make_manager()

    for _ in range(3):
        page.click(manager.widget.checkbox)
        await page.idle()

    assert manager.observer_triggers == 0


@pytest.mark.asyncio
async def test_theme_price_change_is_picked_up():
    page, manager = await make_manager()
    page.click(manager.widget.checkbox)
    await page.idle()

    page.set_text(page.query(".price-item--regular"), "$40.00")
    await page.idle()

    assert manager.observer_triggers == 1
    assert manager.state.base_price == Decimal("40.00")
    assert displayed_price(page) == "$50.00"


@pytest.mark.asyncio
async def test_theme_price_equal_to_old_total_becomes_new_base():
    page, manager = await make_manager(VARIANT_PAGE)
    page.click(manager.widget.checkbox)
    await page.idle()
    assert displayed_price(page) == "$35.00"

    page.set_text(page.query(".price-item--regular"), "$35.00")
    page.select_option(page.query('select[name="id"]'), "222")
    await page.idle()

    assert manager.state.base_price == Decimal("35.00")
    assert displayed_price(page) == "$45.00"
    assert page.query(".price-item--regular")[BASE_ATTR] == "35.00"


@pytest.mark.asyncio
async def test_variant_change_recaches_without_retoggling():
    page, manager = await make_manager(VARIANT_PAGE)
    page.click(manager.widget.checkbox)
    await page.idle()
    assert displayed_price(page) == "$35.00"

    page.set_text(page.query(".price-item--regular"), "$40.00")
    page.select_option(page.query('select[name="id"]'), "222")
    await page.idle()

    assert manager.state.selected is True
    assert page.is_checked(manager.widget.checkbox)
    assert manager.state.variant_id == "222"
    assert displayed_price(page) == "$50.00"
    changed = manager.events_of(events.VARIANT_CHANGED)
    assert len(changed) == 1
    assert changed[0]["variantId"] == "222"
    assert changed[0]["hasEngraving"] is True
    assert manager.events_of(events.VARIANT_CHANGING)[0]["previousVariantId"] == "111"


@pytest.mark.asyncio
async def test_theme_variant_event_uses_event_variant_id():
    page, manager = await make_manager(VARIANT_PAGE)

    page.dispatch(page.document, events.THEME_VARIANT_CHANGE, {"variant": {"id": 333, "price": 4000}})
    page.dispatch(page.document, events.THEME_VARIANT_CHANGE, {"variant": {"id": 444, "price": 4500}})
    await page.idle()

    changed = manager.events_of(events.VARIANT_CHANGED)
    assert len(changed) == 1
    assert changed[0]["variantId"] == "444"
    assert changed[0]["variant"] == {"id": 444, "price": 4500}


@pytest.mark.asyncio
async def test_ajax_complete_refreshes_price():
    page, manager = await make_manager()
    page.click(manager.widget.checkbox)
    await page.idle()

    # the theme re-renders without going through observed mutations
    page.query(".price-item--regular").string = "$45.00"
    page.dispatch(page.document, events.THEME_AJAX_COMPLETE)
    await page.idle()

    assert displayed_price(page) == "$55.00"


@pytest.mark.asyncio
async def test_events_reach_document_once():
    page, manager = await make_manager()
    received = []
    page.add_event_listener(page.document, events.SELECTED, received.append)

    page.click(manager.widget.checkbox)

    assert len(received) == 1
    assert received[0].detail["selected"] is True
    assert received[0].target is manager.widget.root


@pytest.mark.asyncio
async def test_submit_with_empty_text_is_blocked():
    page, manager = await make_manager(errorAutoHide=0)
    page.click(manager.widget.checkbox)

    event = page.submit(manager.form)

    assert event.default_prevented
    assert page.submissions == []
    assert manager.cart.blocked_submissions == 1
    assert manager.widget.error_visible
    assert manager.widget.error.get_text() == VALIDATION_MESSAGE
    assert manager.events_of(events.ERROR)[-1]["type"] == "validation_error"


@pytest.mark.asyncio
async def test_error_banner_hides_itself():
    page, manager = await make_manager(errorAutoHide=20)
    page.click(manager.widget.checkbox)
    page.submit(manager.form)
    assert manager.widget.error_visible

    await page.idle()

    assert not manager.widget.error_visible
    assert manager.error is None
    assert len(manager.events_of(events.ERROR_CLEARED)) == 1


@pytest.mark.asyncio
async def test_submit_unselected_is_untouched():
    page, manager = await make_manager()

    page.submit(manager.form)

    assert len(page.submissions) == 1
    assert page.submissions[0].properties == {}


@pytest.mark.asyncio
async def test_deselect_after_kept_submit_drops_properties():
    page, manager = await make_manager()
    # an ajax theme cancels the native submit and keeps the page
    page.add_event_listener(manager.form, "submit", lambda event: event.prevent_default())
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Hi")

    page.submit(manager.form)
    assert page.native_submit(manager.form).properties == {"Engraving": "Hi", "_engraving_price": "10.00"}

    page.click(manager.widget.checkbox)
    assert page.native_submit(manager.form).properties == {}

    page.submit(manager.form)
    assert page.query('input[name="properties[Engraving]"]', manager.form) is None


@pytest.mark.asyncio
async def test_sync_submit_attaches_properties():
    page, manager = await make_manager(engravingPrice="12.5")
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "  Forever Yours  ")

    page.submit(manager.form)

    submission = page.submissions[0]
    assert submission.properties == {"Engraving": "Forever Yours", "_engraving_price": "12.50"}
    assert submission.get("id") == "111"
    assert manager.events_of(events.ADDED_TO_FORM)[0]["text"] == "Forever Yours"


@pytest.mark.asyncio
async def test_async_submit_saves_then_resubmits():
    gateway = FakeCartGateway()
    page, manager = await make_manager(VARIANT_PAGE, cart_gateway=gateway, saveToCartAsync=True)
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Forever")

    event = page.submit(manager.form)
    assert event.default_prevented
    assert page.submissions == []
    await page.idle()

    assert len(gateway.requests) == 1
    item = gateway.requests[0].items[0]
    assert item.id == "111"
    assert item.quantity == 2
    assert item.properties.engraving == "Forever"
    assert item.properties.engraving_price == "10.00"
    assert len(page.submissions) == 1
    assert page.submissions[0].properties["Engraving"] == "Forever"
    assert len(manager.events_of(events.ADDED_TO_CART)) == 1


@pytest.mark.asyncio
async def test_async_submit_ignores_double_submit():
    gateway = FakeCartGateway()
    page, manager = await make_manager(cart_gateway=gateway, saveToCartAsync=True)
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Forever")

    page.submit(manager.form)
    page.submit(manager.form)
    await page.idle()

    assert len(gateway.requests) == 1
    assert len(page.submissions) == 1


@pytest.mark.asyncio
async def test_async_submit_failure_blocks_and_allows_retry():
    gateway = FakeCartGateway(error=CartGatewayError("HTTP error! status: 422", status_code=422))
    page, manager = await make_manager(cart_gateway=gateway, saveToCartAsync=True, errorAutoHide=0)
    page.click(manager.widget.checkbox)
    page.type_text(manager.widget.textarea, "Forever")

    page.submit(manager.form)
    await page.idle()

    assert page.submissions == []
    assert manager.widget.error.get_text() == SAVE_FAILED_MESSAGE
    errors = manager.events_of(events.ERROR)
    assert len(errors) == 1
    assert errors[0]["type"] == "cart_error"
    assert "engraving-loading" not in manager.widget.root["class"]

    gateway.error = None
    page.submit(manager.form)
    await page.idle()

    assert len(page.submissions) == 1


@pytest.mark.asyncio
async def test_missing_form_is_non_fatal():
    page = Page(NO_FORM_PAGE)
    manager = EngravingManager(page, FAST)

    assert await manager.initialize() is False

    assert page.query("#engraving-container") is None
    error = manager.events_of(events.ERROR)[0]
    assert error["type"] == "initialization_error"
    assert error["message"] == "Product form not found"


@pytest.mark.asyncio
async def test_waits_for_late_form():
    page = Page(NO_FORM_PAGE)
    manager = EngravingManager(page, FAST)
    task = asyncio.ensure_future(manager.initialize(timeout=1))
    await asyncio.sleep(0)

    form = page.create_element("form", {"action": "/cart/add", "method": "post"})
    form.append(page.create_element("input", {"type": "hidden", "name": "id", "value": "7"}))
    form.append(page.create_element("button", {"type": "submit", "name": "add"}, "Add to cart"))
    page.append(page.body, form)

    assert await task is True
    assert manager.form is form
    assert manager.state.variant_id == "7"


@pytest.mark.asyncio
async def test_missing_price_degrades_silently():
    page, manager = await make_manager(NO_PRICE_PAGE)

    assert manager.events_of(events.ERROR)[0]["type"] == "price_not_found"

    page.click(manager.widget.checkbox)
    await page.idle()
    assert manager.events_of(events.PRICE_UPDATED) == []
    assert manager.state.selected is True


@pytest.mark.asyncio
async def test_missing_price_is_reported_once_until_it_appears():
    page, manager = await make_manager(NO_PRICE_PAGE)
    manager.refresh()
    manager.refresh()

    not_found = [e for e in manager.events_of(events.ERROR) if e["type"] == "price_not_found"]
    assert len(not_found) == 1

    price = page.create_element("span", {"class": "price-item price-item--regular"}, "$20.00")
    page.prepend(page.body, price)
    manager.refresh()
    assert manager.state.base_price == Decimal("20.00")

    page.remove(price)
    manager.state.base_price = Decimal("0")
    manager.refresh()
    not_found = [e for e in manager.events_of(events.ERROR) if e["type"] == "price_not_found"]
    assert len(not_found) == 2


@pytest.mark.asyncio
async def test_disabled_config_does_nothing():
    page = Page(DAWN_PAGE)
    manager = EngravingManager(page, {"enabled": False})

    assert await manager.initialize() is False
    assert manager.events == []
    assert page.query("#engraving-container") is None


@pytest.mark.asyncio
async def test_destroy_releases_everything_and_allows_reinit():
    page, manager = await make_manager()
    page.click(manager.widget.checkbox)
    assert page.listener_count() > 0
    assert page.pending_timers > 0

    manager.destroy()

    assert page.listener_count() == 0
    assert page.observer_count == 0
    assert page.pending_timers == 0
    assert page.query("#engraving-container") is None
    assert "has-engraving" not in (page.root.get("class") or [])

    second = EngravingManager(page, FAST)
    assert await second.initialize()
    assert len(page.query_all("#engraving-container")) == 1


@pytest.mark.asyncio
async def test_initialize_twice_is_noop():
    page, manager = await make_manager()
    listeners = page.listener_count()

    assert await manager.initialize() is True
    assert page.listener_count() == listeners
