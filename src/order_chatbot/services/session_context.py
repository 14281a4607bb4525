"""Per-connection conversational state and debounce policy."""

import logging
from dataclasses import dataclass
from enum import Enum

from order_chatbot.exceptions import SessionLimitError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_MAX_SESSIONS = 1000


class BotState(str, Enum):
    """Menu position of a conversation."""

    MAIN_MENU = "main_menu"
    ITEM_SELECTION = "item_selection"
    SUB_MENU = "sub_menu"


@dataclass
class SessionContext:
    """Transient state of one connection.

    Attributes:
        connection_id: Identifier of the owning connection
        device_id: Device identifier bound at connection time
        state: Current menu position
        selected_item_id: Catalog item whose options are offered, only in SUB_MENU
        last_input_time: Arrival time of the last accepted message, None before the first
    """

    connection_id: str
    device_id: str
    state: BotState = BotState.MAIN_MENU
    selected_item_id: int | None = None
    last_input_time: float | None = None


def should_throttle(last_time: float | None, now: float, threshold: float) -> bool:
    """Return True if a message arriving at now must be rejected.

    Args:
        last_time: Arrival time of the last accepted message, or None
        now: Arrival time of the current message
        threshold: Minimum interval between accepted messages, in seconds
    """
    if last_time is None:
        return False
    return (now - last_time) < threshold


class SessionRegistry:
    """Bounded mapping of open connections to their session contexts.

    Contexts are created explicitly when a connection opens and removed when
    it closes; nothing is shared between connections.
    """

    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        """Initialize the registry.

        Args:
            max_sessions: Maximum number of simultaneously open contexts

        Raises:
            ValueError: If max_sessions is not positive
        """
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self.max_sessions = max_sessions
        self._contexts: dict[str, SessionContext] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def open(self, connection_id: str, device_id: str) -> SessionContext:
        """Create the context for a new connection.

        Raises:
            SessionLimitError: If the registry is full
            ValueError: If the connection already has a context
        """
        if connection_id in self._contexts:
            raise ValueError(f"Connection {connection_id} already has a session context")
        if len(self._contexts) >= self.max_sessions:
            raise SessionLimitError(f"Session limit of {self.max_sessions} reached")

        context = SessionContext(connection_id=connection_id, device_id=device_id)
        self._contexts[connection_id] = context
        logger.debug(f"Opened session context {connection_id} for device {device_id}")
        return context

    def get(self, connection_id: str) -> SessionContext | None:
        return self._contexts.get(connection_id)

    def close(self, connection_id: str) -> SessionContext | None:
        context = self._contexts.pop(connection_id, None)
        if context is not None:
            logger.debug(f"Closed session context {connection_id}")
        return context
