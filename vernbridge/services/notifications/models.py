"""Wire models and errors for the observer notification channel."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

CHANNEL_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]{1,128}$")


class InboundType(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"


class OutboundType(str, Enum):
    WELCOME = "welcome"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    BROADCAST = "broadcast"
    PONG = "pong"
    ERROR = "error"


class InboundMessage(BaseModel):
    """Message sent by an observer."""

    type: str = Field(..., description="subscribe, unsubscribe or ping")
    channel: Optional[str] = Field(default=None, description="Target channel")


class OutboundMessage(BaseModel):
    """Message delivered to an observer."""

    type: OutboundType = Field(..., description="Message type")
    channel: Optional[str] = Field(default=None, description="Channel the message concerns")
    data: Optional[Any] = Field(default=None, description="Payload")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def error(cls, message: str, channel: Optional[str] = None) -> "OutboundMessage":
        return cls(type=OutboundType.ERROR, channel=channel, data={"message": message})


class NotificationError(Exception):
    """Base exception for notification errors."""

    code = "NOTIFICATION_ERROR"


class InvalidChannelError(NotificationError):
    code = "INVALID_CHANNEL"

    def __init__(self, channel: Any):
        super().__init__(
            f"Invalid channel name: {channel!r}. "
            "Use 1-128 letters, digits, '_', '.', ':' or '-'."
        )
        self.channel = channel


class UnknownObserverError(NotificationError):
    code = "UNKNOWN_OBSERVER"

    def __init__(self, observer_id: str):
        super().__init__(f"Observer {observer_id} is not connected")
        self.observer_id = observer_id


class ObserverAlreadyConnectedError(NotificationError):
    code = "OBSERVER_ALREADY_CONNECTED"

    def __init__(self, observer_id: str):
        super().__init__(f"Observer {observer_id} is already connected")
        self.observer_id = observer_id


def validate_channel(channel: Any) -> str:
    if not isinstance(channel, str) or not CHANNEL_PATTERN.fullmatch(channel):
        raise InvalidChannelError(channel)
    return channel
