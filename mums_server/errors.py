"""Exceptions raised by the storefront."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront errors."""


class CartError(StorefrontError):
    """Invalid cart operation (unknown product, bad color, bad index)."""


class CatalogUnavailableError(StorefrontError):
    """The product catalog could not be loaded after all retries."""

    def __init__(self, message: str = "Failed to load products. Please refresh the page.") -> None:
        super().__init__(message)


class SubmissionError(StorefrontError):
    """
    A write to the order system failed.

    ``kind`` is one of ``"network"``, ``"server"`` or ``"generic"``; the
    message is already phrased for the customer.
    """

    def __init__(self, message: str, kind: str = "generic") -> None:
        super().__init__(message)
        self.kind = kind


class OrderValidationError(StorefrontError):
    """Customer or payment data failed local validation."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class EmptyCartError(OrderValidationError):
    """Checkout attempted with nothing in the cart."""

    def __init__(self) -> None:
        super().__init__("Please select at least one product", field="cart")


class InvalidTransitionError(StorefrontError):
    """The checkout flow is not in a state that allows the requested step."""
