import asyncio

import pytest

from shopify_engraving.storefront.dom import Page


FORM_PAGE = """
<body>
  <div id="outer">
    <p id="status">Ready</p>
    <form action="/cart/add" method="post">
      <input type="hidden" name="id" value="111">
      <input type="checkbox" name="gift" value="yes">
      <input type="radio" name="size" value="s" checked>
      <input type="radio" name="size" value="l">
      <input type="text" name="note" value="x" disabled>
      <select name="color"><option value="red">Red</option><option value="blue" selected>Blue</option></select>
      <textarea name="message">Hi</textarea>
      <button type="submit" name="add">Add</button>
    </form>
  </div>
</body>
"""


def test_events_bubble_to_document():
    page = Page(FORM_PAGE)
    seen = []
    page.add_event_listener(page.query("#outer"), "ping", lambda e: seen.append(("outer", e.current_target.name)))
    page.add_event_listener(page.document, "ping", lambda e: seen.append(("document", e.target.name)))

    page.dispatch(page.query("form"), "ping")

    assert seen == [("outer", "div"), ("document", "form")]


def test_stop_propagation_and_prevent_default():
    page = Page(FORM_PAGE)
    seen = []

    def stop(event):
        event.prevent_default()
        event.stop_propagation()

    page.add_event_listener(page.query("form"), "submit", stop)
    page.add_event_listener(page.document, "submit", seen.append)

    event = page.submit(page.query("form"))

    assert event.default_prevented
    assert seen == []
    assert page.submissions == []


def test_listener_errors_do_not_escape():
    page = Page(FORM_PAGE)
    calls = []

    def broken(event):
        raise RuntimeError("boom")

    page.add_event_listener(page.document, "ping", broken)
    page.add_event_listener(page.document, "ping", calls.append)

    page.dispatch(page.query("form"), "ping")

    assert len(calls) == 1


def test_remove_event_listener():
    page = Page(FORM_PAGE)
    handler = lambda e: None  # noqa: E731
    page.add_event_listener(page.document, "ping", handler)

    assert page.remove_event_listener(page.document, "ping", handler) is True
    assert page.remove_event_listener(page.document, "ping", handler) is False
    assert page.listener_count() == 0


def test_native_submit_serializes_like_a_browser():
    page = Page(FORM_PAGE)

    submission = page.native_submit(page.query("form"))

    assert submission.action == "/cart/add"
    assert submission.method == "post"
    assert submission.fields == [("id", "111"), ("size", "s"), ("color", "blue"), ("message", "Hi")]


def test_click_radio_unchecks_siblings():
    page = Page(FORM_PAGE)
    large = page.query('input[value="l"]')

    page.click(large)

    assert page.native_submit(page.query("form")).get("size") == "l"


def test_click_submit_button_submits_form():
    page = Page(FORM_PAGE)

    page.click(page.query("button"))

    assert len(page.submissions) == 1


@pytest.mark.asyncio
async def test_mutations_are_delivered_in_one_batch_next_tick():
    page = Page(FORM_PAGE)
    batches = []
    observer = page.observe_mutations(lambda records, obs: batches.append(records))
    observer.observe(page.query("form"), subtree=True, attribute_filter=["class"])

    textarea = page.query("textarea")
    page.set_text(textarea, "Hello")
    page.add_class(textarea, "active")
    page.set_attribute(textarea, "data-ignored", "1")
    page.set_text(page.query("#status"), "Busy")
    assert batches == []

    await asyncio.sleep(0)

    assert len(batches) == 1
    assert [r.type for r in batches[0]] == ["childList", "attributes"]
    assert observer.deliveries == 1


@pytest.mark.asyncio
async def test_disconnected_observer_gets_nothing():
    page = Page(FORM_PAGE)
    batches = []
    observer = page.observe_mutations(lambda records, obs: batches.append(records))
    observer.observe(page.query("form"))
    page.set_text(page.query("textarea"), "Hello")

    observer.disconnect()
    await asyncio.sleep(0)

    assert batches == []
    assert page.observer_count == 0


@pytest.mark.asyncio
async def test_timers_and_idle():
    page = Page(FORM_PAGE)
    fired = []

    page.set_timeout(10, fired.append, "a")
    cancelled = page.set_timeout(10, fired.append, "b")
    page.clear_timeout(cancelled)
    assert page.pending_timers == 1

    await page.idle()

    assert fired == ["a"]
    assert page.pending_timers == 0


@pytest.mark.asyncio
async def test_async_listener_runs_as_tracked_task():
    page = Page(FORM_PAGE)
    done = []

    async def listener(event):
        await asyncio.sleep(0.01)
        done.append(event.type)

    page.add_event_listener(page.document, "ping", listener)
    page.dispatch(page.query("form"), "ping")
    assert done == []

    await page.idle()

    assert done == ["ping"]


@pytest.mark.asyncio
async def test_focus_moves_and_blurs():
    page = Page(FORM_PAGE)
    blurred = []
    textarea = page.query("textarea")
    page.add_event_listener(textarea, "blur", blurred.append)

    page.focus(textarea)
    page.focus(page.query("select"))

    assert page.focused is page.query("select")
    assert len(blurred) == 1
