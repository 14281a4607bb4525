"""WebSocket transport binding one connection to one device identifier."""

import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from order_chatbot.exceptions import OrderStoreError, SessionLimitError
from order_chatbot.models.message_models import (
    ChannelEnum,
    InboundFrame,
    InboundMessage,
    OutboundMessage,
)
from order_chatbot.services import replies
from order_chatbot.services.conversation_engine import ConversationEngine

logger = logging.getLogger(__name__)


def parse_frame(raw: str) -> InboundMessage | None:
    """Parse a client frame into a message.

    Args:
        raw: Text frame received on the socket

    Returns:
        InboundMessage for well-formed 'message' frames, None otherwise
    """
    try:
        frame = InboundFrame.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Rejected malformed frame: {e.error_count()} validation errors")
        return None

    if frame.event != ChannelEnum.MESSAGE:
        logger.warning(f"Rejected frame on unexpected channel {frame.event.value}")
        return None
    return frame.data


class ChatConnectionHandler:
    """Relays text frames between a WebSocket client and the conversation engine.

    Frames on one connection are handled strictly one after another.
    """

    def __init__(self, engine: ConversationEngine) -> None:
        self.engine = engine

    async def serve(self, websocket: WebSocket, device_id: str | None = None) -> None:
        """Run a connection until the client leaves or the engine ends it.

        Args:
            websocket: Connection to serve
            device_id: Identifier supplied by the client; generated when absent
        """
        await websocket.accept()
        device_id = device_id or str(uuid.uuid4())
        connection_id = uuid.uuid4().hex

        try:
            welcome = await self.engine.connect(connection_id, device_id)
        except SessionLimitError:
            logger.warning(f"Refused connection for {device_id}: session limit reached")
            await self._send(websocket, self._error(device_id, replies.SERVER_BUSY))
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
            return
        except OrderStoreError as e:
            logger.error(f"Could not open session for {device_id}: {e}")
            await self._send(websocket, self._error(device_id, replies.PERSISTENCE_FAILURE))
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        try:
            await self._send(websocket, welcome)
            while True:
                raw = await self._receive_text(websocket)
                message = parse_frame(raw) if raw is not None else None
                if message is None:
                    await self._send(websocket, self._error(device_id, replies.MALFORMED_MESSAGE))
                    continue

                outcome = await self.engine.handle_message(connection_id, message)
                for reply in outcome.replies:
                    await self._send(websocket, reply)

                if outcome.disconnect:
                    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                    break
        except WebSocketDisconnect:
            logger.info(f"Client {device_id} closed connection {connection_id}")
        finally:
            self.engine.disconnect(connection_id)

    async def _receive_text(self, websocket: WebSocket) -> str | None:
        """Wait for the next frame; None for a frame that carries no text."""
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
        if message.get("text") is None:
            logger.warning("Rejected binary frame")
            return None
        return message["text"]

    async def _send(self, websocket: WebSocket, message: OutboundMessage) -> None:
        await websocket.send_json(message.to_frame())

    def _error(self, device_id: str, text: str) -> OutboundMessage:
        return OutboundMessage(channel=ChannelEnum.ERROR, text=text, device_id=device_id)
