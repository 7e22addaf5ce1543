"""
Error taxonomy for order and catalog operations.

Every error carries a wire ``code`` so it can be reported to the one
session whose request failed (``order_error`` event) or mapped to an HTTP
status by the read API.
"""


class OrderHubError(Exception):
    """Base class for all expected, user-facing failures."""

    code = "error"


class ValidationError(OrderHubError):
    """Malformed or incomplete request (empty cart, missing name, bad quantity)."""

    code = "validation_error"


class NotFoundError(OrderHubError):
    """Unknown order or product id."""

    code = "not_found"


class InvalidTransitionError(OrderHubError):
    """Status change requested on a terminal order."""

    code = "invalid_transition"


class StockExhaustedError(OrderHubError):
    """A conditional stock decrement failed; nothing was committed."""

    code = "stock_exhausted"


class TransportError(OrderHubError):
    """Connection lost or session registration failed."""

    code = "transport_error"
