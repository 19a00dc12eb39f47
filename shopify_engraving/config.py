"""Configuration management for the engraving add-on."""

import json
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_currency(value: str) -> str:
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError(f"Invalid currency code: {value!r}")
    return value


class EngravingConfig(BaseModel):
    """Storefront options for the engraving widget.

    Field names are snake_case; the camelCase names used by theme settings
    blobs and the admin app (``engravingPrice``, ``maxCharacters`` ...) are
    accepted as aliases.
    """
    engraving_price: Decimal = Field(Decimal("10.00"), ge=0, alias="engravingPrice", description="Option surcharge")
    currency: str = Field("USD", description="Currency code (ISO 4217)")
    locale: str = Field("en_US", description="Locale used for price formatting")
    max_characters: int = Field(30, ge=1, alias="maxCharacters", description="Maximum engraving length")
    enabled: bool = Field(True, description="Whether engraving is offered at all")
    debug: bool = Field(False, description="Verbose storefront logging")
    save_to_cart_async: bool = Field(True, alias="saveToCartAsync", description="Add to cart through the cart API before submitting")
    require_text: bool = Field(True, alias="requireText", description="Block submission when the option is selected without text")
    show_character_count: bool = Field(True, alias="showCharacterCount")
    show_price_breakdown: bool = Field(True, alias="showPriceBreakdown")
    auto_scroll_to_engraving: bool = Field(True, alias="autoScrollToEngraving")
    scroll_offset: int = Field(20, alias="scrollOffset", description="Pixels above the widget when scrolling to it")
    price_update_debounce: int = Field(100, ge=0, alias="priceUpdateDebounce", description="ms")
    variant_change_debounce: int = Field(150, ge=0, alias="variantChangeDebounce", description="ms")
    error_auto_hide: int = Field(10000, ge=0, alias="errorAutoHide", description="ms before an error banner hides; 0 keeps it")
    checkbox_label: str = Field("Add Custom Engraving", alias="checkboxLabel")
    text_label: str = Field("Engraving Text", alias="textLabel")
    placeholder: str = Field("Enter your custom engraving text here...")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return normalize_currency(value)

    @field_validator("engraving_price")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))

    def merged(self, overrides: dict) -> "EngravingConfig":
        """Return a copy with ``overrides`` (alias or field names) applied and validated."""
        data = self.model_dump(by_alias=False)
        for key, value in overrides.items():
            field_name = _ALIASES.get(key, key)
            if field_name in type(self).model_fields:
                data[field_name] = value
        return type(self).model_validate(data)


_ALIASES = {
    field.alias: name
    for name, field in EngravingConfig.model_fields.items()
    if field.alias
}


class ShopSettings(BaseModel):
    """Merchant-level engraving settings, stored in the ``engraving.settings`` shop metafield."""
    default_price: Decimal = Field(Decimal("10.00"), ge=0, alias="defaultPrice")
    checkbox_label: str = Field("Add Custom Engraving", alias="defaultCheckboxLabel")
    text_label: str = Field("Engraving Text", alias="defaultTextLabel")
    placeholder: str = Field(
        "Enter your engraving text here (max 100 characters)", alias="defaultPlaceholder"
    )
    max_characters: int = Field(100, ge=1, alias="maxCharacters")
    currency: str = Field("USD")
    enabled: bool = Field(True)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("default_price")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return normalize_currency(value)

    def to_engraving_config(self, base: Optional[EngravingConfig] = None) -> EngravingConfig:
        """Storefront config for these settings, layered over ``base``."""
        return (base or EngravingConfig()).merged({
            "engraving_price": self.default_price,
            "checkbox_label": self.checkbox_label,
            "text_label": self.text_label,
            "placeholder": self.placeholder,
            "max_characters": self.max_characters,
            "currency": self.currency,
            "enabled": self.enabled,
        })


class RateLimitConfig(BaseModel):
    """Rate limiting configuration for the Admin API."""
    max_requests_per_second: float = Field(2.0, gt=0, description="Maximum API requests per second")
    burst_size: int = Field(10, gt=0, description="Maximum burst size for rate limiter")
    enable_caching: bool = Field(True, description="Cache GET responses")
    cache_ttl_seconds: int = Field(60, gt=0, description="Cache TTL in seconds")


class ShopifyConfig(BaseModel):
    """Shopify API configuration."""
    shop_domain: str = Field(..., description="Shopify shop domain (e.g., 'mystore.myshopify.com')")
    access_token: str = Field(..., description="Shopify Admin API access token")
    api_version: str = Field("2024-01", description="Shopify API version")
    api_secret: Optional[str] = Field(None, description="App API secret, used to verify webhooks and OAuth callbacks")
    webhook_secret: Optional[str] = Field(None, description="Overrides api_secret for webhook verification")

    @property
    def signing_secret(self) -> Optional[str]:
        return self.webhook_secret or self.api_secret


class AppConfig(BaseModel):
    """Main configuration for the engraving app."""
    shopify: ShopifyConfig
    engraving: EngravingConfig = Field(default_factory=EngravingConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    app_url: Optional[str] = Field(None, description="Public URL of this app (webhook and proxy target)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "shopify": {
                    "shop_domain": "mystore.myshopify.com",
                    "access_token": "shpat_xxxxx",
                    "api_version": "2024-01",
                    "api_secret": "shpss_xxxxx"
                },
                "app_url": "https://engraving.example.com",
                "engraving": {
                    "engravingPrice": "10.00",
                    "currency": "USD",
                    "maxCharacters": 50,
                    "saveToCartAsync": True
                },
                "rate_limit": {
                    "max_requests_per_second": 2.0,
                    "burst_size": 10,
                    "enable_caching": True,
                    "cache_ttl_seconds": 60
                }
            }
        }
    )


def load_app_config(path: Union[str, Path]) -> AppConfig:
    """Load and validate an :class:`AppConfig` from a JSON file."""
    with open(path) as f:
        data = json.load(f)
    return AppConfig(**data)
