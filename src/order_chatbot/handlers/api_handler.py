"""FastAPI application exposing the chat socket and admin endpoints."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from order_chatbot.auth.api_dependencies import require_api_key
from order_chatbot.auth.api_key_validator import APIKeyValidator
from order_chatbot.exceptions import OrderStoreError
from order_chatbot.handlers.websocket_handler import ChatConnectionHandler
from order_chatbot.models.order_models import OrderLine, PlacedOrder
from order_chatbot.repositories.base_store import OrderStore
from order_chatbot.services.conversation_engine import ConversationEngine
from order_chatbot.services.housekeeping import HousekeepingService

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class PurgeResponse(BaseModel):
    """Response model for a manual housekeeping run."""

    purged: int


def create_app(
    engine: ConversationEngine,
    store: OrderStore,
    housekeeping: HousekeepingService,
    api_keys: list[str],
    allowed_origins: list[str] | None = None,
    run_housekeeping: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Conversation engine serving chat connections
        store: Order store, read by the admin endpoints
        housekeeping: Service purging stale session records
        api_keys: List of valid API keys for the admin endpoints
        allowed_origins: Origins allowed by CORS
        run_housekeeping: Whether to run the purge loop during the app lifespan

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if run_housekeeping:
            housekeeping.start()
        yield
        await housekeeping.stop()

    app = FastAPI(
        title="Restaurant Order ChatBot",
        description="Menu-driven ordering over WebSocket with admin endpoints",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or [],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.engine = engine
    app.state.store = store
    app.state.housekeeping = housekeeping
    app.state.chat_handler = ChatConnectionHandler(engine)
    validate_api_key = require_api_key(APIKeyValidator(api_keys=api_keys))

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    @app.websocket("/ws")
    async def chat_socket(
        websocket: WebSocket,
        device_id: str | None = Query(None, alias="deviceId"),
    ) -> None:
        """Chat connection; the deviceId query parameter binds the session."""
        await app.state.chat_handler.serve(websocket, device_id)

    @app.get(
        "/admin/orders/{device_id}",
        response_model=list[PlacedOrder],
        tags=["Orders"],
    )
    async def get_order_history(
        device_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> list[PlacedOrder]:
        """Get the most recent placed orders for a device."""
        try:
            orders: list[PlacedOrder] = await app.state.store.list_placed_orders(device_id)
        except OrderStoreError as e:
            raise HTTPException(status_code=503, detail="Order store unavailable") from e
        return orders

    @app.get(
        "/admin/sessions/{device_id}/current-order",
        response_model=list[OrderLine],
        tags=["Orders"],
    )
    async def get_current_order(
        device_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> list[OrderLine]:
        """Get the in-progress order for a device."""
        try:
            if not await app.state.store.session_exists(device_id):
                raise HTTPException(status_code=404, detail=f"Session {device_id} not found")
            lines: list[OrderLine] = await app.state.store.get_current_order(device_id)
        except OrderStoreError as e:
            raise HTTPException(status_code=503, detail="Order store unavailable") from e
        return lines

    @app.post(
        "/admin/housekeeping/purge",
        response_model=PurgeResponse,
        tags=["Housekeeping"],
    )
    async def purge_sessions(
        _api_key: str = Depends(validate_api_key),
    ) -> PurgeResponse:
        """Run one purge of expired session records."""
        logger.info("Manual session purge triggered")
        try:
            purged = await app.state.housekeeping.purge_once()
        except OrderStoreError as e:
            raise HTTPException(status_code=503, detail="Order store unavailable") from e
        return PurgeResponse(purged=purged)

    return app
