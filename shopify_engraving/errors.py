"""Exception types and error taxonomy for the engraving add-on."""

from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    """Values carried in the ``type`` field of ``engraving:error`` events."""
    INITIALIZATION = "initialization_error"
    PRICE_NOT_FOUND = "price_not_found"
    PRICE = "price_error"
    PRICE_UPDATE = "price_update_error"
    UI = "ui_error"
    OBSERVER = "observer_error"
    VARIANT = "variant_error"
    VALIDATION = "validation_error"
    CART = "cart_error"


class EngravingError(Exception):
    """Base class for engraving errors."""

    error_type: ErrorType = ErrorType.UI

    def __init__(self, message: str, error_type: Optional[ErrorType] = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type


class WidgetMountError(EngravingError):
    """Raised when the option widget cannot be built or inserted."""

    error_type = ErrorType.UI


class CartGatewayError(EngravingError):
    """Raised when the asynchronous add-to-cart call fails."""

    error_type = ErrorType.CART

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyAdminError(Exception):
    """Raised for Admin API failures (HTTP errors, GraphQL errors, userErrors)."""

    def __init__(self, message: str, errors: Optional[list] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.errors = errors or []
        self.status_code = status_code