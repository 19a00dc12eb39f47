"""Reading engravings from orders and recording them as an order note attribute."""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .admin_client import ShopifyAdminClient
from .models.cart_models import ENGRAVING_PRICE_PROPERTY, ENGRAVING_PROPERTY
from .models.shopify_models import NameValue, ShopifyOrder
from .storefront.dom import utc_timestamp

logger = logging.getLogger(__name__)

NOTE_ATTRIBUTE = ENGRAVING_PROPERTY
NOTE_ATTRIBUTE_NAMES = ("Engraving", "engraving", "properties[Engraving]")


class EngravingDetails(BaseModel):
    """One engraving attached to an order."""
    text: str
    price: Decimal = Decimal("0")
    line_item_id: Optional[str] = None
    product: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    def to_note_value(self) -> str:
        return json.dumps({
            "text": self.text,
            "price": float(self.price),
            "line_item_id": self.line_item_id,
            "timestamp": self.timestamp,
        })


def _as_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def parse_note_value(value: Any) -> Optional[EngravingDetails]:
    """Decode an ``Engraving`` note attribute; plain text is taken as the engraving itself."""
    if value in (None, ""):
        return None
    data = value
    if isinstance(value, str):
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            return EngravingDetails(text=value)
    if not isinstance(data, dict) or not data.get("text"):
        return EngravingDetails(text=str(value)) if isinstance(value, str) else None
    line_item_id = data.get("line_item_id")
    details = {
        "text": str(data["text"]),
        "price": _as_decimal(data.get("price", 0)),
        "line_item_id": str(line_item_id) if line_item_id is not None else None,
    }
    if data.get("timestamp"):
        details["timestamp"] = data["timestamp"]
    return EngravingDetails(**details)


def extract_engravings(order: Union[ShopifyOrder, Dict[str, Any]]) -> List[EngravingDetails]:
    """Engravings recorded on ``order``.

    Line-item properties whose name mentions "engraving" come first, one per
    line item; private (underscore) properties only contribute the price.
    When no line item carries one, the ``Engraving`` note attribute is used.
    """
    if not isinstance(order, ShopifyOrder):
        order = ShopifyOrder(**order)

    found = []
    for item in order.line_items:
        text = None
        price = Decimal("0.00")
        for prop in item.properties:
            if prop.name == ENGRAVING_PRICE_PROPERTY:
                price = _as_decimal(prop.value)
            elif not prop.name.startswith("_") and "engraving" in prop.name.lower() and prop.value:
                text = text or str(prop.value)
        if text:
            found.append(EngravingDetails(text=text, price=price, line_item_id=item.id, product=item.title))

    if not found:
        note = order.note_attribute(*NOTE_ATTRIBUTE_NAMES)
        details = parse_note_value(note.value) if note is not None else None
        if details is not None:
            found.append(details)
    return found


async def save_engraving_to_order(
    client: ShopifyAdminClient, order_id: str, details: EngravingDetails
) -> ShopifyOrder:
    """Upsert the order's ``Engraving`` note attribute with ``details``."""
    order = await client.get_order(order_id)
    attributes = [a for a in order.note_attributes if a.name not in NOTE_ATTRIBUTE_NAMES]
    attributes.append(NameValue(name=NOTE_ATTRIBUTE, value=details.to_note_value()))
    updated = await client.update_order_note_attributes(order_id, attributes)
    logger.info("Updated order %s with engraving details", order_id)
    return updated


async def handle_order_create(
    client: ShopifyAdminClient, order: Union[ShopifyOrder, Dict[str, Any]]
) -> Optional[EngravingDetails]:
    """Record the first engraving found in a new order as its note attribute."""
    if not isinstance(order, ShopifyOrder):
        order = ShopifyOrder(**order)
    logger.info("Processing order %s", order.id)
    engravings = extract_engravings(order)
    if not engravings:
        logger.info("No engraving details found for order %s", order.id)
        return None
    details = engravings[0]
    await save_engraving_to_order(client, order.id, details)
    logger.info("Processed engraving for order %s", order.id)
    return details
