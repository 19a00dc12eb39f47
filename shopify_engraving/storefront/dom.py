"""Single-threaded page runtime over a parsed HTML document.

A :class:`Page` wraps a BeautifulSoup tree and gives the storefront code the
browser facilities it relies on: CSS queries, bubbling events with
``prevent_default``, mutation observers whose records are delivered once per
loop tick, and timers. Everything runs on one ``asyncio`` event loop, so there
is no locking; ordering comes from the loop.

Only changes made through the ``Page`` API produce mutation records. Code that
edits the soup directly bypasses observers, the same way a detached DOM
fragment does.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

Listener = Callable[["DomEvent"], Any]

FORM_CONTROLS = ["input", "select", "textarea"]


def utc_timestamp() -> str:
    """ISO-8601 timestamp used in event details."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DomEvent:
    """An event travelling from its target up to the document."""
    type: str
    target: Tag
    detail: Dict[str, Any] = field(default_factory=dict)
    bubbles: bool = True
    cancelable: bool = True
    current_target: Optional[Tag] = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        if self.cancelable:
            self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass
class MutationRecord:
    """A single change made through the page API."""
    type: str  # "childList", "attributes" or "characterData"
    target: Tag
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None


@dataclass
class FormSubmission:
    """A form that was actually submitted, with its serialized fields."""
    action: str
    method: str
    fields: List[Tuple[str, str]]

    def get(self, name: str) -> Optional[str]:
        for key, value in self.fields:
            if key == name:
                return value
        return None

    @property
    def properties(self) -> Dict[str, str]:
        """Line-item properties (``properties[Name]`` fields) keyed by name."""
        props = {}
        for key, value in self.fields:
            if key.startswith("properties[") and key.endswith("]"):
                props[key[len("properties["):-1]] = value
        return props


def is_descendant(node: Tag, ancestor: Tag) -> bool:
    """True when ``node`` sits below ``ancestor`` in the tree."""
    return any(parent is ancestor for parent in node.parents)


class MutationObserver:
    """Collects mutation records for observed subtrees.

    Records are queued as they happen and handed to the callback in one batch
    on the next loop iteration, mirroring browser microtask delivery.
    """

    def __init__(self, page: "Page", callback: Callable[[List[MutationRecord], "MutationObserver"], Any]):
        self._page = page
        self._callback = callback
        self._targets: Dict[int, Tuple[Tag, bool, Optional[Set[str]]]] = {}
        self._queue: List[MutationRecord] = []
        self._scheduled = False
        self.deliveries = 0

    @property
    def pending(self) -> bool:
        return bool(self._queue)

    def observe(self, target: Tag, subtree: bool = True, attribute_filter: Optional[Iterable[str]] = None) -> None:
        self._targets[id(target)] = (
            target,
            subtree,
            set(attribute_filter) if attribute_filter is not None else None,
        )
        self._page._register_observer(self)

    def disconnect(self) -> None:
        self._targets.clear()
        self._queue.clear()
        self._page._unregister_observer(self)

    def take_records(self) -> List[MutationRecord]:
        records, self._queue = self._queue, []
        return records

    def _wants(self, record: MutationRecord) -> bool:
        for target, subtree, attribute_filter in self._targets.values():
            if record.type == "attributes" and attribute_filter is not None:
                if record.attribute_name not in attribute_filter:
                    continue
            if record.target is target or (subtree and is_descendant(record.target, target)):
                return True
        return False

    def _enqueue(self, record: MutationRecord) -> None:
        if not self._wants(record):
            return
        self._queue.append(record)
        if not self._scheduled:
            self._scheduled = True
            self._page.loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._scheduled = False
        records = self.take_records()
        if not records or not self._targets:
            return
        self.deliveries += 1
        try:
            self._callback(records, self)
        except Exception:
            logger.exception("Mutation observer callback failed")


class Page:
    """A parsed storefront page plus its event loop facilities."""

    def __init__(
        self,
        document: Union[str, bytes, BeautifulSoup],
        url: str = "/",
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if isinstance(document, BeautifulSoup):
            self.document = document
        else:
            self.document = BeautifulSoup(document, "html.parser")
        self.url = url
        self._loop = loop
        self._listeners: Dict[int, Tuple[Tag, Dict[str, List[Listener]]]] = {}
        self._observers: List[MutationObserver] = []
        self._timers: Set[asyncio.TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.submissions: List[FormSubmission] = []
        self.scroll_requests: List[Tuple[Tag, int]] = []
        self.focused: Optional[Tag] = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def body(self) -> Tag:
        return self.document.body or self.document

    @property
    def root(self) -> Tag:
        return self.document.html or self.document

    def html(self) -> str:
        return str(self.document)

    # -- queries -----------------------------------------------------------

    def query(self, selector: str, root: Optional[Tag] = None) -> Optional[Tag]:
        return (root if root is not None else self.document).select_one(selector)

    def query_all(self, selector: str, root: Optional[Tag] = None) -> List[Tag]:
        return list((root if root is not None else self.document).select(selector))

    def matches(self, node: Tag, selector: str) -> bool:
        return bool(node.css.match(selector))

    def closest(self, node: Tag, selector: str) -> Optional[Tag]:
        return node.css.closest(selector)

    def create_element(self, name: str, attrs: Optional[Dict[str, Any]] = None, text: Optional[str] = None) -> Tag:
        attrs = dict(attrs or {})
        if isinstance(attrs.get("class"), str):
            attrs["class"] = attrs["class"].split()
        element = self.document.new_tag(name, attrs=attrs)
        if text is not None:
            element.string = text
        return element

    @staticmethod
    def text_of(node: Tag) -> str:
        return node.get_text()

    # -- mutations ---------------------------------------------------------

    def _record(self, record: MutationRecord) -> None:
        for observer in list(self._observers):
            observer._enqueue(record)

    def set_text(self, node: Tag, text: str) -> None:
        old = node.get_text()
        node.string = text
        self._record(MutationRecord("childList", node, old_value=old))

    def set_attribute(self, node: Tag, name: str, value: Any) -> None:
        old = node.get(name)
        if name == "class":
            old = " ".join(old or [])
            new_value = str(value).split()
            if old == " ".join(new_value):
                return
            node["class"] = new_value
        else:
            new_value = str(value)
            if old == new_value:
                return
            node[name] = new_value
        self._record(MutationRecord("attributes", node, attribute_name=name, old_value=old))

    def remove_attribute(self, node: Tag, name: str) -> None:
        if not node.has_attr(name):
            return
        old = node.get(name)
        del node[name]
        self._record(MutationRecord("attributes", node, attribute_name=name,
                                    old_value=" ".join(old) if isinstance(old, list) else old))

    def add_class(self, node: Tag, class_name: str) -> None:
        classes = list(node.get("class") or [])
        if class_name not in classes:
            self.set_attribute(node, "class", " ".join(classes + [class_name]))

    def remove_class(self, node: Tag, class_name: str) -> None:
        classes = list(node.get("class") or [])
        if class_name in classes:
            classes.remove(class_name)
            if classes:
                self.set_attribute(node, "class", " ".join(classes))
            else:
                self.remove_attribute(node, "class")

    def set_hidden(self, node: Tag, hidden: bool) -> None:
        if hidden:
            self.set_attribute(node, "style", "display: none")
        else:
            self.remove_attribute(node, "style")

    @staticmethod
    def is_hidden(node: Tag) -> bool:
        return "display: none" in (node.get("style") or "")

    def insert_before(self, reference: Tag, node: Tag) -> None:
        parent = reference.parent
        reference.insert_before(node)
        self._record(MutationRecord("childList", parent))

    def prepend(self, parent: Tag, node: Tag) -> None:
        parent.insert(0, node)
        self._record(MutationRecord("childList", parent))

    def append(self, parent: Tag, node: Tag) -> None:
        parent.append(node)
        self._record(MutationRecord("childList", parent))

    def remove(self, node: Tag) -> None:
        parent = node.parent
        node.extract()
        if parent is not None:
            self._record(MutationRecord("childList", parent))

    # -- form controls -----------------------------------------------------

    def value_of(self, node: Tag) -> str:
        if node.name == "textarea":
            return node.get_text()
        if node.name == "select":
            options = node.find_all("option")
            chosen = next((o for o in options if o.has_attr("selected")), options[0] if options else None)
            if chosen is None:
                return ""
            return chosen.get("value", chosen.get_text().strip())
        if node.get("type") in ("checkbox", "radio"):
            return node.get("value", "on")
        return node.get("value", "")

    def set_value(self, node: Tag, value: Any) -> None:
        value = str(value)
        if node.name == "textarea":
            self.set_text(node, value)
        elif node.name == "select":
            for option in node.find_all("option"):
                if option.get("value", option.get_text().strip()) == value:
                    self.set_attribute(option, "selected", "selected")
                else:
                    self.remove_attribute(option, "selected")
        else:
            self.set_attribute(node, "value", value)

    @staticmethod
    def is_checked(node: Tag) -> bool:
        return node.has_attr("checked")

    def set_checked(self, node: Tag, checked: bool) -> None:
        if checked:
            if node.get("type") == "radio" and node.get("name"):
                scope = node.find_parent("form") or self.document
                for other in scope.find_all("input", attrs={"type": "radio", "name": node["name"]}):
                    if other is not node:
                        self.remove_attribute(other, "checked")
            self.set_attribute(node, "checked", "checked")
        else:
            self.remove_attribute(node, "checked")

    # -- events ------------------------------------------------------------

    def add_event_listener(self, target: Tag, event_type: str, listener: Listener) -> None:
        _, by_type = self._listeners.setdefault(id(target), (target, {}))
        by_type.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, target: Tag, event_type: str, listener: Listener) -> bool:
        entry = self._listeners.get(id(target))
        if entry is None:
            return False
        handlers = entry[1].get(event_type, [])
        if listener in handlers:
            handlers.remove(listener)
            return True
        return False

    def listener_count(self, event_type: Optional[str] = None) -> int:
        total = 0
        for _, by_type in self._listeners.values():
            for name, handlers in by_type.items():
                if event_type is None or name == event_type:
                    total += len(handlers)
        return total

    def dispatch(
        self,
        target: Tag,
        event_type: str,
        detail: Optional[Dict[str, Any]] = None,
        bubbles: bool = True,
        cancelable: bool = True,
    ) -> DomEvent:
        event = DomEvent(event_type, target, dict(detail or {}), bubbles=bubbles, cancelable=cancelable)
        path = [target] + list(target.parents) if bubbles else [target]
        for node in path:
            entry = self._listeners.get(id(node))
            if entry is None:
                continue
            event.current_target = node
            for listener in list(entry[1].get(event_type, [])):
                self._invoke(listener, event)
            if event.propagation_stopped:
                break
        return event

    def _invoke(self, listener: Listener, event: DomEvent) -> None:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                self.spawn(result)
        except Exception:
            logger.exception("Unhandled error in %r listener", event.type)

    def spawn(self, awaitable) -> asyncio.Task:
        """Run a coroutine as a tracked background task."""
        task = self.loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    # -- observers and timers ----------------------------------------------

    def observe_mutations(self, callback) -> MutationObserver:
        return MutationObserver(self, callback)

    def _register_observer(self, observer: MutationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _unregister_observer(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def set_timeout(self, delay_ms: float, callback: Callable, *args) -> asyncio.TimerHandle:
        def fire():
            self._timers.discard(handle)
            try:
                callback(*args)
            except Exception:
                logger.exception("Timer callback failed")

        handle = self.loop.call_later(max(delay_ms, 0) / 1000.0, fire)
        self._timers.add(handle)
        return handle

    def clear_timeout(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()
            self._timers.discard(handle)

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    async def idle(self, timeout: float = 2.0) -> None:
        """Wait until timers due within ``timeout``, tasks and observer queues are drained."""
        deadline = self.loop.time() + timeout

        def busy() -> bool:
            return (
                any(t.when() <= deadline for t in self._timers)
                or bool(self._tasks)
                or any(o.pending for o in self._observers)
            )

        while busy():
            if self.loop.time() > deadline:
                raise asyncio.TimeoutError("Page did not settle")
            await asyncio.sleep(0.005)

    # -- shopper actions ---------------------------------------------------

    def click(self, node: Tag) -> DomEvent:
        if node.name == "input" and node.get("type") == "checkbox":
            self.set_checked(node, not self.is_checked(node))
            event = self.dispatch(node, "click")
            self.dispatch(node, "change")
            return event
        if node.name == "input" and node.get("type") == "radio":
            self.set_checked(node, True)
            event = self.dispatch(node, "click")
            self.dispatch(node, "change")
            return event
        event = self.dispatch(node, "click")
        if not event.default_prevented and node.get("type", "submit") == "submit" and node.name == "button":
            form = node.find_parent("form")
            if form is not None:
                self.submit(form)
        return event

    def type_text(self, node: Tag, text: str) -> DomEvent:
        self.set_value(node, text)
        return self.dispatch(node, "input")

    def select_option(self, node: Tag, value: str) -> DomEvent:
        self.set_value(node, value)
        self.dispatch(node, "input")
        return self.dispatch(node, "change")

    def focus(self, node: Tag) -> None:
        if self.focused is node:
            return
        if self.focused is not None:
            self.dispatch(self.focused, "blur", bubbles=False)
        self.focused = node
        self.dispatch(node, "focus", bubbles=False)

    def blur(self) -> None:
        if self.focused is not None:
            node, self.focused = self.focused, None
            self.dispatch(node, "blur", bubbles=False)

    def scroll_into_view(self, node: Tag, offset: int = 0) -> None:
        self.scroll_requests.append((node, offset))

    def submit(self, form: Tag) -> DomEvent:
        """Fire ``submit`` on ``form`` and submit it unless a listener prevented it."""
        event = self.dispatch(form, "submit")
        if not event.default_prevented:
            self.native_submit(form)
        return event

    def native_submit(self, form: Tag) -> FormSubmission:
        """Submit without firing ``submit`` listeners, like ``HTMLFormElement.submit()``."""
        fields = []
        for control in form.find_all(FORM_CONTROLS):
            name = control.get("name")
            if not name or control.has_attr("disabled"):
                continue
            kind = control.get("type", "")
            if kind in ("submit", "button", "reset", "image"):
                continue
            if kind in ("checkbox", "radio") and not self.is_checked(control):
                continue
            fields.append((name, self.value_of(control)))
        submission = FormSubmission(
            action=form.get("action", self.url),
            method=form.get("method", "get").lower(),
            fields=fields,
        )
        self.submissions.append(submission)
        logger.debug("Form submitted to %s with %d fields", submission.action, len(fields))
        return submission
