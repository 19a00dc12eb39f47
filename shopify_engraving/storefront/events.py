"""Custom storefront events produced by the engraving widget."""

INITIALIZING = "engraving:initializing"
INITIALIZED = "engraving:initialized"
UI_READY = "engraving:ui-ready"
SELECTED = "engraving:selected"
TEXT_UPDATED = "engraving:text-updated"
CHARACTER_COUNT = "engraving:character-count"
PRICE_CACHED = "engraving:price-cached"
PRICE_UPDATED = "engraving:price-updated"
VARIANT_CHANGING = "engraving:variant-changing"
VARIANT_CHANGED = "engraving:variant-changed"
ADDED_TO_FORM = "engraving:added-to-form"
ADDED_TO_CART = "engraving:added-to-cart"
ERROR = "engraving:error"
ERROR_CLEARED = "engraving:error-cleared"

# Signals emitted by themes and consumed by the watchers.
THEME_VARIANT_CHANGE = "variant:change"
THEME_AJAX_COMPLETE = "ajaxComplete"
