"""
Observer session protocol.

Translates raw inbound frames into broadcaster operations and the replies
to send back. Malformed frames are answered with an ``error`` message;
they never close the session.
"""

import json
import logging
from typing import List

from pydantic import ValidationError

from .broadcaster import NotificationBroadcaster, ObserverInbox
from .models import (
    InboundMessage,
    InboundType,
    InvalidChannelError,
    OutboundMessage,
    OutboundType,
)


logger = logging.getLogger(__name__)


class ObserverSession:
    """One connected observer speaking the JSON message protocol."""

    def __init__(self, broadcaster: NotificationBroadcaster, observer_id: str):
        self.broadcaster = broadcaster
        self.observer_id = observer_id
        self.inbox: ObserverInbox = broadcaster.connect(observer_id)

    def welcome(self) -> OutboundMessage:
        return OutboundMessage(
            type=OutboundType.WELCOME,
            data={
                "observerId": self.observer_id,
                "message": "Connected to bridge notifications",
            },
        )

    async def handle_message(self, raw: str) -> List[OutboundMessage]:
        """Process one inbound frame and return the replies."""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            return [OutboundMessage.error("Invalid JSON message")]

        if not isinstance(payload, dict):
            return [OutboundMessage.error("Message must be a JSON object")]

        try:
            message = InboundMessage.model_validate(payload)
        except ValidationError:
            return [OutboundMessage.error("Malformed message: 'type' and 'channel' must be strings")]

        try:
            kind = InboundType(message.type)
        except ValueError:
            return [OutboundMessage.error(f"Unknown message type: {message.type}")]

        if kind is InboundType.PING:
            return [OutboundMessage(type=OutboundType.PONG)]

        if not message.channel:
            return [OutboundMessage.error(f"'{kind.value}' requires a channel")]

        try:
            if kind is InboundType.SUBSCRIBE:
                await self.broadcaster.subscribe(self.observer_id, message.channel)
                return [OutboundMessage(type=OutboundType.SUBSCRIBED, channel=message.channel)]

            await self.broadcaster.unsubscribe(self.observer_id, message.channel)
            return [OutboundMessage(type=OutboundType.UNSUBSCRIBED, channel=message.channel)]
        except InvalidChannelError as e:
            logger.debug(f"Observer {self.observer_id} sent invalid channel: {e.channel!r}")
            return [OutboundMessage.error(str(e), channel=None)]

    async def close(self) -> None:
        await self.broadcaster.disconnect(self.observer_id)
