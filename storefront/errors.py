# storefront/errors.py
from typing import Optional


class StorefrontError(Exception):
    """Base class for cart and checkout errors."""


class ValidationError(StorefrontError):
    """Rejected input or state; the operation had no side effects."""


class InsufficientFundsError(StorefrontError):
    pass


class CheckoutInProgressError(StorefrontError):
    pass


class GatewayError(StorefrontError):
    """A remote service answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(GatewayError):
    """Network failure or timeout, no answer from the remote service."""


class MalformedResponseError(GatewayError):
    """The remote service answered with success but the body could not be read."""


# Older backends report a duplicate cart line only through the error text.
LEGACY_CONFLICT_MARKERS = ("item already exists", "already exists", "already in cart")


def is_legacy_conflict_message(error: Exception) -> bool:
    """Whether a gateway failure reads like an "item already exists" answer."""
    text = str(error).lower()
    return any(marker in text for marker in LEGACY_CONFLICT_MARKERS)
