"""Chat message models exchanged with connected clients.

Frames on the wire are JSON objects of the form
``{"event": "message" | "error", "data": {"text": ..., "deviceId": ...}}``.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChannelEnum(str, Enum):
    """Event channels used on a client connection."""

    MESSAGE = "message"
    ERROR = "error"


class InboundMessage(BaseModel):
    """Text message sent by a client."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., description="Raw text typed by the user")
    device_id: str | None = Field(None, alias="deviceId", description="Sender device identifier")


class InboundFrame(BaseModel):
    """JSON frame received from a client."""

    event: ChannelEnum = Field(..., description="Event channel, only 'message' is accepted")
    data: InboundMessage


class OutboundMessage(BaseModel):
    """Text message sent to a client on one of the event channels."""

    model_config = ConfigDict(frozen=True)

    channel: ChannelEnum = Field(default=ChannelEnum.MESSAGE, description="Event channel")
    text: str = Field(..., description="Reply text")
    device_id: str = Field(..., description="Device identifier bound to the connection")

    def to_frame(self) -> dict[str, Any]:
        """Convert to the JSON frame sent over the connection.

        Returns:
            dict: Wire representation
        """
        return {
            "event": self.channel.value,
            "data": {"text": self.text, "deviceId": self.device_id},
        }
