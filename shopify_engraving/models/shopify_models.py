"""Pydantic models for Shopify Admin API resources used by the engraving app."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_str(value: Any) -> Any:
    return str(value) if isinstance(value, int) else value


class NameValue(BaseModel):
    """A ``{name, value}`` pair, used for note attributes and line-item properties."""
    name: str
    value: Any = None


class LineItem(BaseModel):
    """Shopify order line item."""
    id: str
    title: str = ""
    variant_id: Optional[str] = None
    quantity: int = 1
    price: Optional[str] = None
    properties: List[NameValue] = Field(default_factory=list)

    _ids = field_validator("id", "variant_id", mode="before")(_to_str)


class ShopifyOrder(BaseModel):
    """Shopify order (REST representation)."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    currency: Optional[str] = None
    note: Optional[str] = None
    note_attributes: List[NameValue] = Field(default_factory=list)
    line_items: List[LineItem] = Field(default_factory=list)

    _ids = field_validator("id", mode="before")(_to_str)

    def note_attribute(self, *names: str) -> Optional[NameValue]:
        for attribute in self.note_attributes:
            if attribute.name in names:
                return attribute
        return None


class ShopifyImage(BaseModel):
    """Shopify image data."""
    id: Optional[str] = None
    src: str
    alt: Optional[str] = None

    _ids = field_validator("id", mode="before")(_to_str)


class ShopifyProduct(BaseModel):
    """Shopify product (REST representation, only the fields the admin list needs)."""
    id: str
    title: str
    status: str = "active"
    handle: Optional[str] = None
    images: List[ShopifyImage] = Field(default_factory=list)

    _ids = field_validator("id", mode="before")(_to_str)


class ProductEngraving(BaseModel):
    """A product as shown in the admin list, with its engraving metafields."""
    id: str
    title: str
    status: str
    image: Optional[str] = None
    engraving_enabled: bool = Field(False, alias="engravingEnabled")
    engraving_price: Optional[int] = Field(None, alias="engravingPrice", description="Price in cents")

    model_config = ConfigDict(populate_by_name=True)


class Metafield(BaseModel):
    """Shopify metafield."""
    id: Optional[str] = None
    namespace: str
    key: str
    value: Optional[str] = None
    type: Optional[str] = None

    _ids = field_validator("id", mode="before")(_to_str)


class Webhook(BaseModel):
    """Shopify webhook subscription."""
    id: str
    topic: str
    address: str
    format: str = "json"

    _ids = field_validator("id", mode="before")(_to_str)
