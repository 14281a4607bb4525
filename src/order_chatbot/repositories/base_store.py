"""Base order store for session orders and order history.

This module defines the abstract interface every persistence backend must
implement. Expected outcomes use simple return values (None/False/empty
lists); unexpected backend failures raise OrderStoreError.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal

from order_chatbot.models.order_models import OrderLine, PlacedOrder

DEFAULT_HISTORY_LIMIT = 5


class OrderStore(ABC):
    """Abstract base class for order persistence, keyed by device identifier.

    Implementations must guarantee that:
    - add_line is an atomic read-modify-write per device identifier
    - place_order records the snapshot and clears the current order together
      or not at all
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        """Initialize the store.

        Args:
            history_limit: Maximum number of placed orders returned by
                list_placed_orders, newest first

        Raises:
            ValueError: If history_limit is not positive
        """
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit

    @abstractmethod
    async def ensure_session(self, device_id: str) -> None:
        """Create an empty current order for the device if none exists.

        An existing order is never reset.
        """

    @abstractmethod
    async def session_exists(self, device_id: str) -> bool:
        """Return True if a persisted session record exists for the device."""

    @abstractmethod
    async def get_current_order(self, device_id: str) -> list[OrderLine]:
        """Return the current order lines, empty if none are recorded."""

    @abstractmethod
    async def add_line(
        self, device_id: str, item_id: int, name: str, price: Decimal
    ) -> list[OrderLine]:
        """Add one unit of (item_id, name) to the current order.

        Args:
            device_id: Device identifier
            item_id: Catalog item identifier
            name: Resolved display name
            price: Unit price

        Returns:
            list: The updated current order lines
        """

    @abstractmethod
    async def clear_current_order(self, device_id: str) -> None:
        """Set the current order to an empty sequence."""

    @abstractmethod
    async def place_order(self, device_id: str) -> PlacedOrder | None:
        """Snapshot the current order as a placed order and clear it.

        Returns:
            PlacedOrder if an order was placed, None if the current order is empty
        """

    @abstractmethod
    async def list_placed_orders(self, device_id: str) -> list[PlacedOrder]:
        """Return up to history_limit placed orders, most recent first."""

    @abstractmethod
    async def purge_expired_sessions(self, cutoff: datetime) -> int:
        """Delete session records created before cutoff.

        Placed orders are never affected.

        Returns:
            int: Number of session records removed
        """
