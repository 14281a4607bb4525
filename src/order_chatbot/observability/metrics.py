"""Custom metrics for the order chatbot service."""

from opentelemetry import metrics

meter = metrics.get_meter("order-chatbot")

messages_counter = meter.create_counter(
    name="chat_messages_total",
    description="Total number of inbound chat messages by outcome",
    unit="1",
)

orders_placed_counter = meter.create_counter(
    name="orders_placed_total",
    description="Total number of orders placed at checkout",
    unit="1",
)

order_lines_histogram = meter.create_histogram(
    name="order_lines_per_order",
    description="Number of distinct lines in each placed order",
    unit="1",
)

active_sessions = meter.create_up_down_counter(
    name="active_chat_sessions",
    description="Current number of open chat connections",
    unit="1",
)

message_duration_histogram = meter.create_histogram(
    name="chat_message_duration_seconds",
    description="Time spent handling one inbound chat message",
    unit="s",
)

purged_sessions_counter = meter.create_counter(
    name="purged_sessions_total",
    description="Total number of expired session records removed by housekeeping",
    unit="1",
)


def record_message(outcome: str) -> None:
    """Record one handled inbound message.

    Args:
        outcome: How the message ended (e.g. "handled", "throttled", "identity_error")
    """
    messages_counter.add(1, {"outcome": outcome})


def record_order_placed(line_count: int) -> None:
    """Record a placed order.

    Args:
        line_count: Number of lines in the order
    """
    orders_placed_counter.add(1)
    order_lines_histogram.record(line_count)


def record_session_change(change: int) -> None:
    """Record a connection opening (+1) or closing (-1)."""
    active_sessions.add(change)


def record_handling_duration(duration_seconds: float) -> None:
    message_duration_histogram.record(duration_seconds)


def record_sessions_purged(count: int) -> None:
    purged_sessions_counter.add(count)
