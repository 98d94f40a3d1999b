"""
in_process.py — Primary broadcast channel.

An ephemeral publish/subscribe bus shared by every component running on
one event loop (the Python counterpart of a browser BroadcastChannel):

    • Delivery is immediate to whoever is subscribed at publish time.
    • Nothing is queued: a late subscriber never sees earlier messages.
    • No acknowledgment. A subscriber that raises is logged and skipped;
      that is a delivery failure, not channel unavailability.
    • Messages from one publisher reach each subscriber in send order.

A closed channel, or UnsupportedChannel, raises ChannelUnavailableError
from publish(). That is the only signal the broadcaster treats as
"use the fallback mailbox".
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Protocol

from backend.app.alerts.models import ChannelMessage
from backend.app.core.errors import ChannelUnavailableError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[ChannelMessage], Awaitable[None]]


class PrimaryChannel(Protocol):
    name: str

    @property
    def available(self) -> bool: ...

    async def publish(self, message: ChannelMessage) -> int: ...

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]: ...


class InProcessChannel:
    """Named in-memory pub/sub bus."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: List[MessageHandler] = []
        self._closed = False

    @property
    def available(self) -> bool:
        return not self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        if self._closed:
            raise ChannelUnavailableError(self.name, "channel is closed")
        self._subscribers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return _unsubscribe

    async def publish(self, message: ChannelMessage) -> int:
        """
        Deliver to current subscribers; returns how many handled it cleanly.
        """
        if self._closed:
            raise ChannelUnavailableError(self.name, "channel is closed")

        delivered = 0
        for handler in list(self._subscribers):
            try:
                await handler(message)
                delivered += 1
            except Exception as e:
                logger.error(
                    "[%s] subscriber failed on %s: %s",
                    self.name, message.type.value, e,
                    extra={"channel": self.name},
                )
        logger.debug(
            "[%s] %s delivered to %d/%d subscribers",
            self.name, message.type.value, delivered, len(self._subscribers),
        )
        return delivered

    def close(self) -> None:
        self._closed = True
        self._subscribers.clear()


class UnsupportedChannel:
    """A runtime without a primary channel. Every operation is unavailable."""

    def __init__(self, name: str) -> None:
        self.name = name

    @property
    def available(self) -> bool:
        return False

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        raise ChannelUnavailableError(self.name, "not supported in this runtime")

    async def publish(self, message: ChannelMessage) -> int:
        raise ChannelUnavailableError(self.name, "not supported in this runtime")
