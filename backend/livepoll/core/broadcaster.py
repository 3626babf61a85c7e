"""
In-process live broadcast hub.

Subscribers register per poll id (or for every poll through ALL_POLLS) and
receive full poll snapshots as serialized JSON strings. Publishing never
waits on a subscriber: each one owns a bounded queue and is pruned when it
falls behind, so the client reconnects and starts again from a fresh
snapshot.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Dict, Iterable, Optional, Set, Tuple

from livepoll.core.config import settings

logger = logging.getLogger(__name__)

ALL_POLLS = "*"
KEEP_ALIVE = "keep-alive"

_CLOSED = object()

Snapshot = Tuple[str, int, str]


def encode_snapshot(snapshot: dict) -> str:
    return json.dumps(snapshot, default=str)


class Subscription:
    """One connected viewer. Iterate ``events()`` to drain it."""

    def __init__(self, hub: "BroadcastHub", channel: str, maxsize: int):
        self.hub = hub
        self.channel = channel
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._last_versions: Dict[str, int] = {}

    def offer(self, item: Snapshot) -> bool:
        """Queue a snapshot without waiting. False means the queue is full."""
        if self.closed:
            return True
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        return True

    async def events(self, keepalive_seconds: Optional[float] = None) -> AsyncIterator[str]:
        """
        Yield serialized snapshots in publish order, and KEEP_ALIVE whenever
        nothing arrived for ``keepalive_seconds``.

        Snapshots older than one already delivered for the same poll are
        skipped.
        """
        interval = keepalive_seconds if keepalive_seconds is not None else settings.KEEPALIVE_SECONDS
        while not self.closed:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=interval)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE
                continue
            if item is _CLOSED or self.closed:
                break
            poll_id, version, payload = item
            if version <= self._last_versions.get(poll_id, -1):
                continue
            self._last_versions[poll_id] = version
            yield payload

    def close(self):
        """Unsubscribe. Safe to call more than once."""
        self.hub.unsubscribe(self)

    def _shutdown(self):
        self.closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # a full queue already wakes the reader, which sees `closed`
            pass


class BroadcastHub:
    """Registry of subscriptions keyed by poll id."""

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.SUBSCRIBER_QUEUE_SIZE
        self._channels: Dict[str, Set[Subscription]] = {}

    def subscribe(self, channel: str, initial: Iterable[Snapshot] = ()) -> Subscription:
        """
        Register a subscription on ``channel`` (a poll id or ALL_POLLS) and
        queue ``initial`` snapshots ahead of anything published later.
        """
        initial = list(initial)
        subscription = Subscription(self, channel, self.queue_size + len(initial))
        for item in initial:
            subscription.offer(item)
        self._channels.setdefault(channel, set()).add(subscription)
        logger.debug(f"Subscribed to {channel} ({self.subscriber_count(channel)} subscribers)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscribers = self._channels.get(subscription.channel)
        if subscribers is not None:
            subscribers.discard(subscription)
            if not subscribers:
                del self._channels[subscription.channel]
        subscription._shutdown()

    def publish(self, poll_id: str, version: int, snapshot: dict) -> int:
        """
        Push ``snapshot`` to every subscriber of ``poll_id`` and of ALL_POLLS.

        Returns the number of subscribers the snapshot was queued for.
        Subscribers whose queue is full are pruned.
        """
        item = (poll_id, version, encode_snapshot(snapshot))
        delivered = 0
        targets = list(self._channels.get(poll_id, ())) + list(self._channels.get(ALL_POLLS, ()))
        for subscription in targets:
            if subscription.offer(item):
                delivered += 1
            else:
                logger.warning(f"Pruning slow subscriber on {subscription.channel} (queue full)")
                self.unsubscribe(subscription)
        return delivered

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        if channel is not None:
            return len(self._channels.get(channel, ()))
        return sum(len(subs) for subs in self._channels.values())

    def close_all(self):
        for subscribers in list(self._channels.values()):
            for subscription in list(subscribers):
                self.unsubscribe(subscription)


broadcaster = BroadcastHub()
