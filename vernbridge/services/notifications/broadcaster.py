"""
Notification Broadcaster

Channel-based publish/subscribe for bridge observers.

Each connected observer owns a bounded inbox. Publishing never blocks on
a slow observer: when an inbox is full the observer is disconnected and
has to reconnect and resubscribe.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from .models import (
    ObserverAlreadyConnectedError,
    OutboundMessage,
    OutboundType,
    UnknownObserverError,
    validate_channel,
)


logger = logging.getLogger(__name__)


class ObserverInbox:
    """Bounded queue of messages for one observer."""

    def __init__(self, observer_id: str, maxsize: int = 256):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.observer_id = observer_id
        self._queue: "asyncio.Queue[Optional[OutboundMessage]]" = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, message: OutboundMessage) -> bool:
        """Enqueue without waiting. False if closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> Optional[OutboundMessage]:
        """Next message, or None once the inbox is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def get_nowait(self) -> Optional[OutboundMessage]:
        """Next message if one is queued; None when empty or closed."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Drop undelivered messages and wake any waiting reader
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[OutboundMessage]:
        while True:
            message = await self.get()
            if message is None:
                return
            yield message


class SubscriptionRegistry:
    """
    Many-to-many map between channels and observers.

    Each channel has its own lock; membership of a channel only changes,
    and is only read for delivery, while that lock is held. A lock lives
    only while someone holds or waits for it or the channel has members.
    """

    def __init__(self):
        self._channels: Dict[str, Set[str]] = defaultdict(set)
        self._observers: Dict[str, Set[str]] = defaultdict(set)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _channel_lock(self, channel: str) -> AsyncIterator[None]:
        lock = self._locks.get(channel)
        if lock is None:
            lock = self._locks[channel] = asyncio.Lock()
        self._lock_users[channel] = self._lock_users.get(channel, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[channel] -= 1
            if not self._lock_users[channel]:
                del self._lock_users[channel]
                if channel not in self._channels:
                    del self._locks[channel]

    def lock_count(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def locked(self, channel: str) -> AsyncIterator[Set[str]]:
        """Hold the channel lock and yield a copy of its subscribers."""
        async with self._channel_lock(channel):
            yield set(self._channels.get(channel, ()))

    async def add(self, observer_id: str, channel: str) -> bool:
        async with self._channel_lock(channel):
            if observer_id in self._channels[channel]:
                return False
            self._channels[channel].add(observer_id)
            self._observers[observer_id].add(channel)
            return True

    async def remove(self, observer_id: str, channel: str) -> bool:
        async with self._channel_lock(channel):
            return self._remove_unlocked(observer_id, channel)

    async def remove_observer(self, observer_id: str) -> Set[str]:
        """Drop every subscription of an observer; returns the channels it had."""
        channels = set(self._observers.get(observer_id, ()))
        for channel in channels:
            async with self._channel_lock(channel):
                self._remove_unlocked(observer_id, channel)
        self._observers.pop(observer_id, None)
        return channels

    def _remove_unlocked(self, observer_id: str, channel: str) -> bool:
        members = self._channels.get(channel)
        if not members or observer_id not in members:
            return False
        members.discard(observer_id)
        if not members:
            del self._channels[channel]
        observer_channels = self._observers.get(observer_id)
        if observer_channels is not None:
            observer_channels.discard(channel)
            if not observer_channels:
                del self._observers[observer_id]
        return True

    def has_subscribers(self, channel: str) -> bool:
        return bool(self._channels.get(channel))

    def subscribers(self, channel: str) -> Set[str]:
        return set(self._channels.get(channel, ()))

    def channels_of(self, observer_id: str) -> Set[str]:
        return set(self._observers.get(observer_id, ()))

    def channel_counts(self) -> Dict[str, int]:
        return {channel: len(members) for channel, members in self._channels.items()}


class NotificationBroadcaster:
    """
    Delivers published events to the observers subscribed to a channel.

    Usage:
        inbox = broadcaster.connect("obs-1")
        await broadcaster.subscribe("obs-1", "bridge_updates")
        await broadcaster.publish("bridge_updates", {"state": "pending"})
        message = await inbox.get()
    """

    def __init__(
        self,
        registry: Optional[SubscriptionRegistry] = None,
        queue_size: int = 256,
    ):
        self.registry = registry or SubscriptionRegistry()
        self.queue_size = queue_size
        self._inboxes: Dict[str, ObserverInbox] = {}

    @property
    def observer_count(self) -> int:
        return len(self._inboxes)

    def is_connected(self, observer_id: str) -> bool:
        return observer_id in self._inboxes

    def connect(self, observer_id: str) -> ObserverInbox:
        if observer_id in self._inboxes:
            raise ObserverAlreadyConnectedError(observer_id)
        inbox = ObserverInbox(observer_id, maxsize=self.queue_size)
        self._inboxes[observer_id] = inbox
        logger.info(f"Observer connected: {observer_id} (total={len(self._inboxes)})")
        return inbox

    async def subscribe(self, observer_id: str, channel: str) -> bool:
        """Returns False if the observer was already subscribed."""
        validate_channel(channel)
        if observer_id not in self._inboxes:
            raise UnknownObserverError(observer_id)
        added = await self.registry.add(observer_id, channel)
        if added:
            logger.debug(f"Observer {observer_id} subscribed to {channel}")
        return added

    async def unsubscribe(self, observer_id: str, channel: str) -> bool:
        validate_channel(channel)
        removed = await self.registry.remove(observer_id, channel)
        if removed:
            logger.debug(f"Observer {observer_id} unsubscribed from {channel}")
        return removed

    async def publish(self, channel: str, event: Any) -> int:
        """Deliver an event to current subscribers. Returns how many received it."""
        validate_channel(channel)
        if not self.registry.has_subscribers(channel):
            return 0
        message = OutboundMessage(type=OutboundType.BROADCAST, channel=channel, data=event)

        delivered = 0
        overflowed: List[str] = []
        async with self.registry.locked(channel) as subscribers:
            for observer_id in subscribers:
                inbox = self._inboxes.get(observer_id)
                if inbox is None:
                    continue
                if inbox.offer(message):
                    delivered += 1
                else:
                    overflowed.append(observer_id)

        for observer_id in overflowed:
            logger.warning(f"Observer {observer_id} inbox full on {channel}, disconnecting")
            await self.disconnect(observer_id)

        return delivered

    async def disconnect(self, observer_id: str) -> None:
        """Remove the observer and all of its subscriptions. Idempotent."""
        inbox = self._inboxes.pop(observer_id, None)
        channels = await self.registry.remove_observer(observer_id)
        if inbox is not None:
            inbox.close()
            logger.info(
                f"Observer disconnected: {observer_id} "
                f"(channels={len(channels)}, total={len(self._inboxes)})"
            )

    async def close(self) -> None:
        for observer_id in list(self._inboxes):
            await self.disconnect(observer_id)

    def stats(self) -> Dict[str, Any]:
        return {
            "observers": len(self._inboxes),
            "channels": self.registry.channel_counts(),
        }
