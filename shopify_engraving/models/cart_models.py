"""Pydantic models for the storefront cart API."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENGRAVING_PROPERTY = "Engraving"
ENGRAVING_PRICE_PROPERTY = "_engraving_price"


class LineItemProperties(BaseModel):
    """Engraving line-item properties as the cart stores them."""
    engraving: str = Field(alias=ENGRAVING_PROPERTY)
    engraving_price: str = Field(alias=ENGRAVING_PRICE_PROPERTY, description="Decimal string with two places")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("engraving_price", mode="before")
    @classmethod
    def _two_places(cls, value: Any) -> str:
        return str(Decimal(str(value)).quantize(Decimal("0.01")))


class CartItem(BaseModel):
    """One entry of a ``/cart/add.js`` request."""
    id: str
    quantity: int = Field(1, ge=1)
    properties: LineItemProperties


class CartAddRequest(BaseModel):
    """Body of ``POST /cart/add.js``."""
    items: List[CartItem]
    sections: Optional[List[str]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
