"""Service layer helpers"""

from .notifications import NotificationBroadcaster, ObserverSession

__all__ = [
    "NotificationBroadcaster",
    "ObserverSession",
]
