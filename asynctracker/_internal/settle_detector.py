from __future__ import annotations

import asyncio
import contextvars
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from asynctracker.types import Listener

if TYPE_CHECKING:
    from asynctracker.stream import _BroadcastChannel

logger = logging.getLogger("asynctracker")


class _SettleDetector:
    """Internal component owning activity counters and the pending settle check.

    The interception layer only moves the counters and calls ``trigger()``;
    deciding whether and when observers are notified happens here.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        listeners: list[Listener],
        channel: _BroadcastChannel,
        parent_context: Callable[[], contextvars.Context],
        delay: float | None = None,
        debug: bool = False,
    ) -> None:
        self.running_count: int = 0
        self.microtask_count: int = 0
        self.scheduled: bool = False
        self._loop = loop
        self._listeners = listeners
        self._channel = channel
        self._parent_context = parent_context
        self._delay = delay
        self._debug = debug
        self._timer: asyncio.TimerHandle | None = None

    @property
    def is_active(self) -> bool:
        """Return True if tracked work is running or enqueued."""
        return self.running_count > 0 or self.microtask_count > 0

    @property
    def has_listener(self) -> bool:
        return bool(self._listeners) or self._channel.has_subscribers

    @property
    def delay(self) -> float | None:
        return self._delay

    def record_run_start(self) -> None:
        self.running_count += 1

    def record_run_end(self) -> None:
        self.running_count -= 1

    def record_microtask(self) -> None:
        self.microtask_count += 1

    def record_microtask_done(self) -> None:
        self.microtask_count -= 1

    def trigger(self) -> None:
        """Schedule a settle check if idle, observed and none is pending."""
        if self.is_active or not self.has_listener or self.scheduled:
            return

        # The check runs in the parent context so it is not counted by us.
        context = self._parent_context()
        self.scheduled = True
        if self._delay is None:
            self._loop.call_soon(self.publish_event, context=context)
        else:
            self._timer = self._loop.call_later(
                self._delay, self.publish_event, context=context
            )
        if self._debug:
            logger.debug(
                "Settle check scheduled (%s)",
                "next loop iteration"
                if self._delay is None
                else f"in {self._delay:.3f}s",
            )

    def publish_event(self) -> None:
        """Run the settle check: re-validate idleness, then notify."""
        self.scheduled = False
        self._timer = None
        if self.is_active or not self.has_listener:
            if self._debug:
                logger.debug(
                    "Settle check aborted (active=%s, listeners=%s)",
                    self.is_active,
                    self.has_listener,
                )
            return

        if self._debug:
            logger.debug(
                "Settled; notifying %d listener(s) and %d subscriber(s)",
                len(self._listeners),
                self._channel.subscriber_count,
            )

        if not self._channel.closed and self._channel.has_subscribers:
            self._channel.publish()

        for listener in tuple(self._listeners):
            try:
                listener()
            except Exception as exc:
                self._loop.call_exception_handler(
                    {
                        "message": "Exception in settle listener",
                        "exception": exc,
                        "listener": listener,
                    }
                )
