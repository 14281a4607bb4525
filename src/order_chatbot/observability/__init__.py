"""Logging, OpenTelemetry instrumentation and metrics."""

from order_chatbot.observability.config import configure_logging, setup_observability
from order_chatbot.observability.decorators import traced

__all__ = ["setup_observability", "configure_logging", "traced"]
