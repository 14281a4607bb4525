"""Conversation engine driving the ordering menu.

Each state has one handler that receives the validated numeric input and
returns a Transition describing the next state and the reply texts. The
engine only applies a transition to the session context after its handler
completed, so a failed store call never leaves a half-applied state change.
"""

import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from order_chatbot.exceptions import OrderStoreError
from order_chatbot.models.message_models import ChannelEnum, InboundMessage, OutboundMessage
from order_chatbot.observability import metrics, traced
from order_chatbot.repositories.base_store import OrderStore
from order_chatbot.services import replies
from order_chatbot.services.catalog import Catalog
from order_chatbot.services.session_context import (
    DEFAULT_DEBOUNCE_SECONDS,
    BotState,
    SessionContext,
    SessionRegistry,
    should_throttle,
)

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"[0-9]+")

START_ORDER = 1
CHECKOUT = 99
ORDER_HISTORY = 98
CURRENT_ORDER = 97
CANCEL_ORDER = 0

# Wider than any catalog id or menu action; longer inputs never match
MAX_CHOICE_DIGITS = 9
UNKNOWN_CHOICE = -1


@dataclass
class Transition:
    """Result of handling one input in a given state.

    Attributes:
        next_state: State the session moves to
        replies: Reply texts, sent in order
        selected_item_id: Item whose options are offered when next_state is SUB_MENU
    """

    next_state: BotState
    replies: list[str]
    selected_item_id: int | None = None


@dataclass
class MessageOutcome:
    """Messages to send back for one inbound message.

    Attributes:
        replies: Outbound messages, in send order
        disconnect: Whether the transport must close the connection afterwards
    """

    replies: list[OutboundMessage] = field(default_factory=list)
    disconnect: bool = False


StateHandler = Callable[[SessionContext, str, int, OrderStore, Catalog], Awaitable[Transition]]


def parse_choice(raw: str) -> int:
    """Convert a digit string to a menu choice, UNKNOWN_CHOICE if it is too long to be one."""
    significant = raw.lstrip("0")
    if len(significant) > MAX_CHOICE_DIGITS:
        return UNKNOWN_CHOICE
    return int(significant or "0")


def current_menu(context: SessionContext, catalog: Catalog) -> str:
    """Return the menu text matching the context's current state."""
    if context.state == BotState.ITEM_SELECTION:
        return replies.item_menu(catalog)
    if context.state == BotState.SUB_MENU and context.selected_item_id is not None:
        menu = replies.sub_menu(catalog, context.selected_item_id)
        if menu is not None:
            return menu
    return replies.WELCOME_TEXT


async def checkout(device_id: str, store: OrderStore) -> Transition:
    """Place the current order, or report that there is nothing to place."""
    lines = await store.get_current_order(device_id)
    if not lines:
        return Transition(BotState.MAIN_MENU, [replies.NO_ORDER_TO_PLACE, replies.WELCOME_TEXT])

    order = await store.place_order(device_id)
    if order is None:
        return Transition(BotState.MAIN_MENU, [replies.NO_ORDER_TO_PLACE, replies.WELCOME_TEXT])

    metrics.record_order_placed(len(order.lines))
    return Transition(BotState.MAIN_MENU, [replies.ORDER_PLACED, replies.WELCOME_TEXT])


async def show_history(device_id: str, store: OrderStore) -> Transition:
    """List the most recent placed orders."""
    orders = await store.list_placed_orders(device_id)
    text = replies.order_history(orders) if orders else replies.NO_ORDERS_FOUND
    return Transition(BotState.MAIN_MENU, [text, replies.WELCOME_TEXT])


async def show_current_order(device_id: str, store: OrderStore) -> Transition:
    """Render the current order with its total."""
    lines = await store.get_current_order(device_id)
    text = replies.current_order(lines) if lines else replies.NO_CURRENT_ORDER
    return Transition(BotState.MAIN_MENU, [text, replies.WELCOME_TEXT])


async def cancel_order(device_id: str, store: OrderStore) -> Transition:
    """Clear the current order if it has any lines."""
    lines = await store.get_current_order(device_id)
    if not lines:
        return Transition(BotState.MAIN_MENU, [replies.NO_ORDER_TO_CANCEL, replies.WELCOME_TEXT])

    await store.clear_current_order(device_id)
    return Transition(BotState.MAIN_MENU, [replies.ORDER_CANCELLED, replies.WELCOME_TEXT])


async def handle_main_menu(
    context: SessionContext, raw: str, number: int, store: OrderStore, catalog: Catalog
) -> Transition:
    if number == START_ORDER:
        return Transition(BotState.ITEM_SELECTION, [replies.item_menu(catalog)])
    if number == CHECKOUT:
        return await checkout(context.device_id, store)
    if number == ORDER_HISTORY:
        return await show_history(context.device_id, store)
    if number == CURRENT_ORDER:
        return await show_current_order(context.device_id, store)
    if number == CANCEL_ORDER:
        return await cancel_order(context.device_id, store)

    error = replies.not_valid(raw, "menu option")
    return Transition(BotState.MAIN_MENU, [replies.with_menu(error, replies.WELCOME_TEXT)])


async def handle_item_selection(
    context: SessionContext, raw: str, number: int, store: OrderStore, catalog: Catalog
) -> Transition:
    item = catalog.lookup_item(number)
    if item is None:
        error = replies.not_valid(raw, "menu item")
        return Transition(
            BotState.ITEM_SELECTION, [replies.with_menu(error, replies.item_menu(catalog))]
        )

    if item.has_options:
        menu = replies.sub_menu(catalog, item.id) or replies.WELCOME_TEXT
        return Transition(BotState.SUB_MENU, [menu], selected_item_id=item.id)

    await store.add_line(context.device_id, item.id, item.name, item.price)
    return Transition(
        BotState.MAIN_MENU, [replies.added_to_order(item.name), replies.WELCOME_TEXT]
    )


async def handle_sub_menu(
    context: SessionContext, raw: str, number: int, store: OrderStore, catalog: Catalog
) -> Transition:
    item = None
    if context.selected_item_id is not None:
        item = catalog.lookup_item(context.selected_item_id)

    if item is None or not item.has_options:
        logger.warning(f"Sub-menu without a valid selected item for {context.device_id}")
        return Transition(BotState.MAIN_MENU, [replies.WELCOME_TEXT])

    option = catalog.lookup_option(item.id, number)
    if option is None:
        error = replies.not_valid(raw, "option")
        menu = replies.sub_menu(catalog, item.id) or replies.WELCOME_TEXT
        return Transition(
            BotState.SUB_MENU, [replies.with_menu(error, menu)], selected_item_id=item.id
        )

    name = f"{item.name} ({option.name})"
    await store.add_line(context.device_id, item.id, name, option.price)
    return Transition(BotState.MAIN_MENU, [replies.added_to_order(name), replies.WELCOME_TEXT])


STATE_HANDLERS: dict[BotState, StateHandler] = {
    BotState.MAIN_MENU: handle_main_menu,
    BotState.ITEM_SELECTION: handle_item_selection,
    BotState.SUB_MENU: handle_sub_menu,
}


class ConversationEngine:
    """State machine turning text messages into order mutations and replies.

    The engine owns the session contexts of all open connections. One call to
    handle_message is one unit of work; callers must not interleave calls
    for the same connection.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: OrderStore,
        registry: SessionRegistry | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the engine.

        Args:
            catalog: Static catalog of orderable items
            store: Order persistence backend
            registry: Session context mapping (a default-sized one if omitted)
            debounce_seconds: Minimum interval between accepted messages
            clock: Source of message arrival times, in seconds
        """
        self.catalog = catalog
        self.store = store
        self.registry = registry if registry is not None else SessionRegistry()
        self.debounce_seconds = debounce_seconds
        self.clock = clock

    async def connect(self, connection_id: str, device_id: str) -> OutboundMessage:
        """Bind a new connection to a device and return its welcome message.

        Raises:
            SessionLimitError: If no more contexts can be opened
            OrderStoreError: If the persisted session cannot be ensured
        """
        self.registry.open(connection_id, device_id)
        try:
            await self.store.ensure_session(device_id)
        except OrderStoreError:
            self.registry.close(connection_id)
            raise

        metrics.record_session_change(1)
        logger.info(f"Device {device_id} connected on {connection_id}")
        return self._reply(device_id, replies.WELCOME_TEXT)

    def disconnect(self, connection_id: str) -> None:
        """Release the session context of a closed connection."""
        context = self.registry.close(connection_id)
        if context is not None:
            metrics.record_session_change(-1)
            logger.info(f"Device {context.device_id} disconnected from {connection_id}")

    def get_context(self, connection_id: str) -> SessionContext | None:
        return self.registry.get(connection_id)

    @traced("conversation.handle_message", service_name="order-chatbot")
    async def handle_message(
        self,
        connection_id: str,
        message: InboundMessage,
        received_at: float | None = None,
    ) -> MessageOutcome:
        """Process one inbound message.

        Args:
            connection_id: Connection the message arrived on
            message: The inbound message
            received_at: Arrival time in clock seconds (now if omitted)

        Returns:
            MessageOutcome with the replies to send
        """
        started = time.perf_counter()
        now = self.clock() if received_at is None else received_at

        context = self.registry.get(connection_id)
        if context is None:
            logger.warning(f"Message on unknown connection {connection_id}")
            metrics.record_message("session_missing")
            return MessageOutcome(
                [
                    OutboundMessage(
                        channel=ChannelEnum.ERROR,
                        text=replies.SESSION_NOT_FOUND,
                        device_id=message.device_id or "",
                    )
                ],
                disconnect=True,
            )

        outcome = await self._process(context, message, now)
        metrics.record_handling_duration(time.perf_counter() - started)
        for reply in outcome.replies:
            logger.debug(f"[{context.device_id}] <<< {reply.text}")
        return outcome

    async def _process(
        self, context: SessionContext, message: InboundMessage, now: float
    ) -> MessageOutcome:
        device_id = context.device_id

        if message.device_id != device_id:
            logger.warning(
                f"Rejected message for {message.device_id!r} on connection bound to {device_id}"
            )
            metrics.record_message("identity_error")
            return MessageOutcome([self._error(device_id, replies.INVALID_DEVICE_ID)])

        if should_throttle(context.last_input_time, now, self.debounce_seconds):
            logger.warning(f"Throttled message from {device_id}")
            metrics.record_message("throttled")
            return MessageOutcome([self._reply(device_id, replies.PLEASE_WAIT)])

        context.last_input_time = now
        raw = message.text.strip()
        logger.debug(f"[{device_id}] >>> {raw}")

        try:
            if not await self.store.session_exists(device_id):
                logger.error(f"No persisted session for {device_id}, closing connection")
                metrics.record_message("session_missing")
                return MessageOutcome(
                    [self._error(device_id, replies.SESSION_NOT_FOUND)], disconnect=True
                )

            if not NUMBER_PATTERN.fullmatch(raw):
                metrics.record_message("invalid_input")
                text = replies.with_menu(
                    replies.not_a_number(raw), current_menu(context, self.catalog)
                )
                return MessageOutcome([self._reply(device_id, text)])

            handler = STATE_HANDLERS[context.state]
            transition = await handler(
                context, raw, parse_choice(raw), self.store, self.catalog
            )
        except OrderStoreError as e:
            logger.error(f"Order store failure for {device_id} in {context.state.value}: {e}")
            metrics.record_message("persistence_failure")
            text = replies.with_menu(
                replies.PERSISTENCE_FAILURE, current_menu(context, self.catalog)
            )
            return MessageOutcome([self._reply(device_id, text)])

        context.state = transition.next_state
        context.selected_item_id = (
            transition.selected_item_id if transition.next_state == BotState.SUB_MENU else None
        )
        metrics.record_message("handled")
        return MessageOutcome([self._reply(device_id, text) for text in transition.replies])

    def _reply(self, device_id: str, text: str) -> OutboundMessage:
        return OutboundMessage(channel=ChannelEnum.MESSAGE, text=text, device_id=device_id)

    def _error(self, device_id: str, text: str) -> OutboundMessage:
        return OutboundMessage(channel=ChannelEnum.ERROR, text=text, device_id=device_id)
