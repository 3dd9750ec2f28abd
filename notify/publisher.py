"""
notify/publisher.py -- Topic-based real-time event fan-out.

Services depend on the Publisher protocol only; whoever builds them decides
what sits behind it. The application wires in a ChannelHub, the CLI wires
in a NullPublisher, and tests use a recording fake.

Topics are per role: one channel for each staff privilege level, named by the
role's stored value ("moderator", "admin", "superAdmin"). A WebSocket
connection subscribes to the channel of its account's role.

Threading:
  Services run in FastAPI's worker thread pool, WebSocket handlers run on the
  event loop. ChannelHub.publish() may be called from either; it hands the
  message to the loop with call_soon_threadsafe() and never blocks the
  caller. Each subscriber has a bounded queue; a subscriber that falls behind
  loses events rather than stalling everyone else.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable, Optional, Protocol

from core.roles import Role

logger = logging.getLogger("reviewdesk.notify")

_QUEUE_SIZE = 100


class Publisher(Protocol):
    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None: ...


def topic_for(role: Role) -> str:
    return role.value


def publish_to_roles(publisher: Publisher, roles: Iterable[Role], event: str, payload: dict[str, Any]) -> None:
    """Publish the same event on every listed role channel."""
    for role in sorted(roles):
        publisher.publish(topic_for(role), event, payload)


class NullPublisher:
    """Discards every event. Used where nothing can be listening (CLI commands)."""

    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        return None


class ChannelHub:
    """In-process Publisher backed by one asyncio.Queue per subscriber.

    Usage:
        hub = ChannelHub()
        hub.bind(asyncio.get_running_loop())      # once, at startup
        queue = hub.subscribe("admin")
        message = await queue.get()
        hub.unsubscribe("admin", queue)
    """

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._channels: dict[str, set[asyncio.Queue]] = {}

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def subscribe(self, topic: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._channels.setdefault(topic, set()).add(queue)
        logger.debug("Subscriber joined %s (%d total)", topic, len(self._channels[topic]))
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        subscribers = self._channels.get(topic)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._channels[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._channels.get(topic, ()))

    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        if self._loop is None or self._loop.is_closed():
            logger.debug("Hub not bound to a loop; dropping %s on %s", event, topic)
            return
        message = {"type": event, "channel": topic, "data": payload, "ts": time.time()}
        self._loop.call_soon_threadsafe(self._fan_out, topic, message)

    def _fan_out(self, topic: str, message: dict[str, Any]) -> None:
        for queue in list(self._channels.get(topic, ())):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Subscriber on %s is not keeping up; dropped %s", topic, message["type"])
