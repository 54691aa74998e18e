"""Broadcast channel delivering settle events to async subscribers."""

from __future__ import annotations

import asyncio
import weakref
from types import TracebackType

_CLOSED = object()


class Subscription:
    """One subscriber's view of the settle events.

    Iterating yields ``None`` once per settle notification published while
    the subscription is open. Iteration ends after the subscription or the
    tracker is closed and any already delivered events are consumed.

    Example:
        async with tracker.subscribe() as settles:
            async for _ in settles:
                print("settled")
    """

    def __init__(self, channel: _BroadcastChannel) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self) -> None:
        self._queue.put_nowait(None)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Stop receiving events. Idempotent."""
        self._channel._detach(self)
        self._end()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> None:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return None

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class _BroadcastChannel:
    """Fan-out of payload-free events to every open subscription.

    Subscriptions are held weakly: one the consumer drops (for example after
    breaking out of ``async for``) detaches on its own.
    """

    def __init__(self) -> None:
        self._subscriptions: weakref.WeakSet[Subscription] = weakref.WeakSet()
        self.closed = False

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscriptions)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        if self.closed:
            subscription._end()
        else:
            self._subscriptions.add(subscription)
        return subscription

    def publish(self) -> None:
        for subscription in list(self._subscriptions):
            subscription._deliver()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        subscriptions = list(self._subscriptions)
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription._end()

    def _detach(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)
