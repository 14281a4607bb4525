"""Main application entry point for the order chatbot service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
"""

import logging
import os
from datetime import timedelta
from typing import Any

import boto3
from fastapi import FastAPI

from order_chatbot.auth.api_key_validator import parse_api_keys
from order_chatbot.handlers.api_handler import create_app
from order_chatbot.observability import configure_logging, setup_observability
from order_chatbot.repositories.base_store import OrderStore
from order_chatbot.repositories.dynamodb_order_store import DynamoDBOrderStore
from order_chatbot.repositories.memory_order_store import InMemoryOrderStore
from order_chatbot.services.catalog import Catalog, default_catalog
from order_chatbot.services.conversation_engine import ConversationEngine
from order_chatbot.services.housekeeping import HousekeepingService
from order_chatbot.services.session_context import SessionRegistry

logger = logging.getLogger(__name__)


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # DynamoDB Local accepts any credentials
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "dummy"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "dummy"),
        )

    logger.info(f"Using AWS DynamoDB in region {region}")
    return boto3.resource("dynamodb", region_name=region)


def create_order_store() -> OrderStore:
    """Create the order store selected by ORDER_STORE_BACKEND.

    Returns:
        Configured OrderStore

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = os.getenv("ORDER_STORE_BACKEND", "dynamodb").lower()
    history_limit = int(os.getenv("ORDER_HISTORY_LIMIT", "5"))

    if backend == "memory":
        logger.warning("Using in-memory order store - orders are lost on restart")
        return InMemoryOrderStore(history_limit=history_limit)

    if backend == "dynamodb":
        sessions_table = os.getenv("DYNAMODB_SESSIONS_TABLE", "order-chatbot-sessions")
        orders_table = os.getenv("DYNAMODB_ORDERS_TABLE", "order-chatbot-orders")
        logger.info(f"Order store tables - sessions: {sessions_table}, orders: {orders_table}")
        return DynamoDBOrderStore(
            dynamodb_resource=get_dynamodb_resource(),
            sessions_table_name=sessions_table,
            orders_table_name=orders_table,
            history_limit=history_limit,
        )

    raise ValueError(f"Unknown ORDER_STORE_BACKEND: {backend}")


def load_catalog() -> Catalog:
    """Load the catalog from CATALOG_PATH, or the built-in one when unset."""
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        return Catalog.from_json_file(catalog_path)

    logger.info("Using built-in catalog")
    return default_catalog()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Loads the catalog
    3. Creates the order store
    4. Creates the conversation engine and housekeeping service
    5. Creates the FastAPI app with chat and admin endpoints
    6. Sets up observability

    Returns:
        Configured FastAPI application instance
    """
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    logger.info("Initializing order chatbot service...")

    catalog = load_catalog()
    store = create_order_store()

    engine = ConversationEngine(
        catalog=catalog,
        store=store,
        registry=SessionRegistry(max_sessions=int(os.getenv("MAX_ACTIVE_SESSIONS", "1000"))),
        debounce_seconds=int(os.getenv("DEBOUNCE_MILLISECONDS", "500")) / 1000,
    )

    housekeeping = HousekeepingService(
        store=store,
        retention=timedelta(hours=float(os.getenv("SESSION_RETENTION_HOURS", "24"))),
        interval_seconds=float(os.getenv("HOUSEKEEPING_INTERVAL_SECONDS", "3600")),
    )

    api_keys = parse_api_keys(os.getenv("ADMIN_API_KEY"))
    if not api_keys:
        logger.warning("No ADMIN_API_KEY configured - admin endpoints will not be accessible")
        api_keys = ["dummy-key-for-development"]

    app = create_app(
        engine=engine,
        store=store,
        housekeeping=housekeeping,
        api_keys=api_keys,
        allowed_origins=[os.getenv("FRONTEND_URL", "http://localhost:3000")],
    )

    setup_observability(app)

    logger.info("Order chatbot service initialized successfully")
    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
