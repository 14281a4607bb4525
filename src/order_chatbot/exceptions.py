"""Exceptions raised by the order chatbot service."""


class OrderStoreError(Exception):
    """Raised when the order store backend fails unexpectedly."""


class SessionLimitError(Exception):
    """Raised when no more session contexts can be opened."""
