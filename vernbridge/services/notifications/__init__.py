"""
Notifications Service

Publish/subscribe delivery of bridge state changes to observers.
"""

from .broadcaster import NotificationBroadcaster, ObserverInbox, SubscriptionRegistry
from .models import (
    InboundMessage,
    InvalidChannelError,
    NotificationError,
    ObserverAlreadyConnectedError,
    OutboundMessage,
    OutboundType,
    UnknownObserverError,
    validate_channel,
)
from .protocol import ObserverSession

__all__ = [
    "NotificationBroadcaster",
    "SubscriptionRegistry",
    "ObserverInbox",
    "ObserverSession",
    "InboundMessage",
    "OutboundMessage",
    "OutboundType",
    "NotificationError",
    "InvalidChannelError",
    "UnknownObserverError",
    "ObserverAlreadyConnectedError",
    "validate_channel",
]
