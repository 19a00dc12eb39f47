"""Adds engraving details to packing slip HTML."""

import logging
from typing import Any, Dict, Union

from bs4 import BeautifulSoup

from .models.shopify_models import ShopifyOrder
from .orders import extract_engravings

logger = logging.getLogger(__name__)

BLOCK_STYLE = "margin: 15px 0; padding: 10px; background: #f8f9fa; border: 1px solid #e1e1e1; border-radius: 4px;"
HEADING_STYLE = "margin: 0 0 10px 0; font-size: 14px; color: #333;"


def add_engraving_to_packing_slip(html: str, order: Union[ShopifyOrder, Dict[str, Any]]) -> str:
    """
    Insert an "Engraving Details" block after the slip's ``.order-summary``.

    Args:
        html: Packing slip HTML
        order: The order the slip is for

    Returns:
        The modified HTML, or ``html`` unchanged when the order has no
        engravings or the slip has no order summary
    """
    engravings = [e for e in extract_engravings(order) if e.product]
    if not engravings:
        return html

    soup = BeautifulSoup(html, "html.parser")
    anchor = soup.select_one(".order-summary")
    if anchor is None:
        logger.warning("Packing slip has no .order-summary, engraving details not added")
        return html

    block = soup.new_tag("div", attrs={"class": "engraving-details", "style": BLOCK_STYLE})
    heading = soup.new_tag("h3", attrs={"style": HEADING_STYLE})
    heading.string = "Engraving Details:"
    block.append(heading)
    for engraving in engravings:
        entry = soup.new_tag("div", attrs={"style": "margin-bottom: 8px;"})
        product = soup.new_tag("strong")
        product.string = f"{engraving.product}:"
        text = soup.new_tag("div", attrs={"style": "margin-left: 15px; font-style: italic;"})
        text.string = engraving.text
        entry.append(product)
        entry.append(text)
        block.append(entry)

    anchor.insert_after(block)
    return str(soup)
