"""User-facing reply texts."""

from decimal import Decimal

from order_chatbot.models.order_models import OrderLine, PlacedOrder
from order_chatbot.services.catalog import Catalog, format_price

WELCOME_TEXT = """Welcome to the Restaurant ChatBot!
Select 1 to Place an order
Select 99 to checkout order
Select 98 to see order history
Select 97 to see current order
Select 0 to cancel order"""

ORDER_PLACED = "Order placed successfully!"
NO_ORDER_TO_PLACE = "No order to place."
NO_ORDERS_FOUND = "No orders found."
NO_CURRENT_ORDER = "No current order."
NO_ORDER_TO_CANCEL = "No order to cancel."
ORDER_CANCELLED = "Order cancelled."
PLEASE_WAIT = "Please wait a moment before sending another message."
INVALID_DEVICE_ID = "Invalid or missing deviceId in message."
MALFORMED_MESSAGE = "Malformed message."
SESSION_NOT_FOUND = "Session not found. Please reconnect."
SERVER_BUSY = "Server is busy, please try again later."
PERSISTENCE_FAILURE = "Sorry, we could not process your request right now. Please try again."


def item_menu(catalog: Catalog) -> str:
    return "Please select an item from the menu:\n" + catalog.formatted_menu()


def sub_menu(catalog: Catalog, item_id: int) -> str | None:
    item = catalog.lookup_item(item_id)
    options = catalog.formatted_sub_menu(item_id)
    if item is None or options is None:
        return None
    return f"Select an option for {item.name}:\n{options}"


def with_menu(text: str, menu: str) -> str:
    """Append the menu to an error text so the client keeps its context."""
    return f"{text}\n\n{menu}"


def not_a_number(raw: str) -> str:
    return f'Invalid input: "{raw}" is not a number.'


def not_valid(raw: str, what: str) -> str:
    return f'"{raw}" is not a valid {what}.'


def added_to_order(name: str) -> str:
    return f"Added {name} to your order."


def format_line(line: OrderLine) -> str:
    return f"{line.quantity}x {line.name} ({format_price(line.price)})"


def current_order(lines: list[OrderLine]) -> str:
    total = sum((line.line_total for line in lines), Decimal("0"))
    body = "\n".join(format_line(line) for line in lines)
    return f"Current order:\n{body}\nTotal: {format_price(total)}"


def order_history(orders: list[PlacedOrder]) -> str:
    return "\n".join(
        f"Order #{order.order_id}: " + ", ".join(format_line(line) for line in order.lines)
        for order in orders
    )
