"""Cart attachment: line-item properties on submit, or an async cart-API save."""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx
from bs4 import Tag

from ..errors import CartGatewayError, ErrorType
from ..models.cart_models import (
    ENGRAVING_PRICE_PROPERTY,
    ENGRAVING_PROPERTY,
    CartAddRequest,
    CartItem,
    LineItemProperties,
)
from . import events
from .dom import DomEvent
from .pricing import to_cart_amount

if TYPE_CHECKING:
    from .manager import EngravingManager

logger = logging.getLogger(__name__)

DEFAULT_SECTIONS = ["cart-icon-bubble", "cart-live-region-text", "main-cart-items"]

VALIDATION_MESSAGE = "Please enter your engraving text or uncheck the engraving option."
SAVE_FAILED_MESSAGE = "Failed to save engraving details. Please try again."
UNEXPECTED_MESSAGE = "An error occurred while saving your engraving."


class CartGateway(ABC):
    """Adds items to the shopper's cart on behalf of the widget."""

    @abstractmethod
    async def add(self, request: CartAddRequest) -> Dict[str, Any]:
        """Add the request's items; raise :class:`CartGatewayError` on failure."""

    async def close(self) -> None:
        return None


class AjaxCartGateway(CartGateway):
    """Shopify's storefront AJAX cart API (``POST /cart/add.js``)."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(
                base_url=base_url,
                headers={
                    "Content-Type": "application/json",
                    "X-Requested-With": "XMLHttpRequest",
                },
                timeout=timeout,
            )
            self._owns_client = True

    async def add(self, request: CartAddRequest) -> Dict[str, Any]:
        try:
            response = await self.client.post("/cart/add.js", json=request.to_payload())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CartGatewayError(
                f"HTTP error! status: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise CartGatewayError(f"Cart request failed: {e}") from e
        return response.json()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class FakeCartGateway(CartGateway):
    """In-memory gateway for previews and tests; records every request."""

    def __init__(self, error: Optional[Exception] = None, response: Optional[Dict[str, Any]] = None):
        self.error = error
        self.response = response
        self.requests: List[CartAddRequest] = []

    async def add(self, request: CartAddRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response
        return {"items": [item.model_dump(mode="json", by_alias=True) for item in request.items]}


class CartAttacher:
    """Submit-time handling of the engraving option for one product form."""

    def __init__(self, manager: "EngravingManager", form: Tag, gateway: CartGateway):
        self.manager = manager
        self.page = manager.page
        self.config = manager.config
        self.form = form
        self.gateway = gateway
        self.blocked_submissions = 0
        self._in_flight = None

    def handle_submit(self, event: DomEvent) -> None:
        state = self.manager.state
        if not state.selected:
            self.detach_from_form()
            return
        text = state.text.strip()
        if not text:
            if self.config.require_text:
                event.prevent_default()
                self.blocked_submissions += 1
                self.manager.show_error(VALIDATION_MESSAGE, ErrorType.VALIDATION)
            else:
                self.detach_from_form()
            return

        if self.config.save_to_cart_async:
            event.prevent_default()
            if self._in_flight is None:
                self._in_flight = self.manager.spawn(self.save_and_resubmit(text))
        else:
            self.attach_to_form(text)

    def _upsert_hidden(self, name: str, value: str) -> None:
        field = self.page.query(f'input[name="{name}"]', self.form)
        if field is None:
            field = self.page.create_element("input", {"type": "hidden", "name": name})
            self.page.append(self.form, field)
        self.page.set_value(field, value)

    def attach_to_form(self, text: str) -> None:
        """Write the engraving as hidden line-item property inputs."""
        price = to_cart_amount(self.config.engraving_price)
        self._upsert_hidden(f"properties[{ENGRAVING_PROPERTY}]", text)
        self._upsert_hidden(f"properties[{ENGRAVING_PRICE_PROPERTY}]", price)
        self.manager.dispatch(events.ADDED_TO_FORM, {"text": text, "price": price})

    def detach_from_form(self) -> None:
        """Remove property inputs left by an earlier submit the theme kept on the page."""
        for name in (ENGRAVING_PROPERTY, ENGRAVING_PRICE_PROPERTY):
            field = self.page.query(f'input[name="properties[{name}]"]', self.form)
            if field is not None:
                self.page.remove(field)

    def _quantity(self) -> int:
        field = self.page.query('[name="quantity"]', self.form)
        try:
            return max(int(self.page.value_of(field)), 1) if field is not None else 1
        except ValueError:
            return 1

    def build_request(self, text: str) -> CartAddRequest:
        variant_id = self.manager.get_selected_variant_id()
        if not variant_id:
            raise CartGatewayError("No variant ID found")
        return CartAddRequest(
            items=[CartItem(
                id=variant_id,
                quantity=self._quantity(),
                properties=LineItemProperties(
                    engraving=text,
                    engraving_price=self.config.engraving_price,
                ),
            )],
            sections=DEFAULT_SECTIONS,
        )

    async def save_and_resubmit(self, text: str) -> bool:
        """Save through the gateway, then submit the form without re-entering this handler."""
        widget = self.manager.widget
        if widget is not None:
            widget.set_loading(True)
        try:
            result = await self.gateway.add(self.build_request(text))
        except CartGatewayError as e:
            logger.error("Error saving engraving to cart: %s", e)
            self.manager.show_error(SAVE_FAILED_MESSAGE, ErrorType.CART, e)
            return False
        except Exception as e:
            logger.exception("Unexpected error saving engraving")
            self.manager.show_error(UNEXPECTED_MESSAGE, ErrorType.CART, e)
            return False
        finally:
            self._in_flight = None
            if widget is not None:
                widget.set_loading(False)

        self.manager.dispatch(events.ADDED_TO_CART, {
            "text": text,
            "price": to_cart_amount(self.config.engraving_price),
            "cart": result,
        })
        self.attach_to_form(text)
        self.page.native_submit(self.form)
        return True
