"""
Presence fanout for live session dashboards.

Watchers subscribe to a session channel and receive every event published to
it. Delivery is best-effort: the attendance ledger is the source of truth and
a dropped event never affects what was recorded. ``publish`` never blocks the
caller; when a subscriber's queue is full the event is dropped for that
subscriber only.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Protocol, Set

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PresencePublisher(Protocol):
    """What check-in and close flows need from a fanout channel"""

    def publish(self, session_id: str, event: BaseModel) -> int:
        ...


class Subscription:
    """One watcher's view of a session channel"""

    def __init__(self, broker: "PresenceBroadcaster", session_id: str, maxsize: int):
        self.session_id = session_id
        self._broker = broker
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, message: Dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self):
        if not self.closed:
            self.closed = True
            self._broker.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PresenceBroadcaster:
    """In-process publish/subscribe keyed by session id"""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._channels: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(self, session_id, self.queue_size)
        self._channels[session_id].add(subscription)
        logger.debug(
            f"Watcher subscribed to session {session_id}",
            extra={"session_id": session_id, "watchers": len(self._channels[session_id])},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription):
        channel = self._channels.get(subscription.session_id)
        if channel is None:
            return
        channel.discard(subscription)
        if not channel:
            del self._channels[subscription.session_id]
        logger.debug(
            f"Watcher left session {subscription.session_id}",
            extra={"session_id": subscription.session_id},
        )

    def watcher_count(self, session_id: str) -> int:
        return len(self._channels.get(session_id, ()))

    def publish(self, session_id: str, event: BaseModel) -> int:
        """Fan an event out to the session channel; returns deliveries made."""
        watchers = self._channels.get(session_id)
        if not watchers:
            return 0

        message = event.model_dump(mode="json", by_alias=True)
        delivered = 0
        for subscription in list(watchers):
            if subscription.offer(message):
                delivered += 1
            else:
                logger.warning(
                    f"Dropped {message.get('event')} for slow watcher on session {session_id}",
                    extra={"session_id": session_id, "dropped": subscription.dropped},
                )
        return delivered
