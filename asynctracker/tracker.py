from __future__ import annotations

import asyncio
import contextvars
import logging
import sys
from collections.abc import Callable, Coroutine
from types import TracebackType
from typing import Any, TypeVar

from asynctracker._internal.interception import (
    acquire_interceptor,
    context_with,
    current_detectors,
    release_interceptor,
    run_tracked,
    tracked_context,
)
from asynctracker._internal.settle_detector import _SettleDetector, logger
from asynctracker._internal.shared.utils import resolve_bool_flag, resolve_delay
from asynctracker.stream import Subscription, _BroadcastChannel
from asynctracker.types import Listener, TrackerClosedError

R = TypeVar("R")
T = TypeVar("T")
T1 = TypeVar("T1")
T2 = TypeVar("T2")


def _enable_debug_logging() -> None:
    """Send asynctracker debug records to stderr unless logging is configured."""
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[asynctracker] %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


class AsyncTracker:
    """Tracks asynchronous callbacks (``call_soon``, timers, tasks) started from
    :meth:`run` and notifies observers whenever all of them have completed.

    Work is tracked through the event loop's ``call_soon``, ``call_at`` and
    ``call_later``; tasks and future callbacks are covered because asyncio
    schedules them through ``call_soon``. Work handed to threads or to
    ``call_soon_threadsafe`` is not tracked.

    Example:
        tracker = AsyncTracker()
        tracker.add_listener(lambda: print("settled"))
        tracker.create_task(fetch_all())
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        debounce_delay: float | None = None,
        *,
        debug: bool | None = None,
    ):
        """Create a tracker bound to an event loop.

        Args:
            loop: Parent event loop. Defaults to the running loop.
            debounce_delay: Seconds to wait after going idle before checking
                again and notifying. If None, uses ASYNCTRACKER_DEBOUNCE_DELAY
                when set; otherwise the check runs on the next loop iteration.
            debug: Log settle decisions. If None, uses ASYNCTRACKER_DEBUG env var.

        Raises:
            RuntimeError: If no loop is given and none is running.
            ConfigurationError: If the debounce delay is invalid.
        """
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        delay = resolve_delay(debounce_delay, "ASYNCTRACKER_DEBOUNCE_DELAY")
        self._debug = resolve_bool_flag(debug, "ASYNCTRACKER_DEBUG")
        if self._debug:
            _enable_debug_logging()

        self._parent_detectors = current_detectors()
        self._listeners: list[Listener] = []
        self._channel = _BroadcastChannel()
        self._detector = _SettleDetector(
            self._loop,
            self._listeners,
            self._channel,
            parent_context=self._parent_context,
            delay=delay,
            debug=self._debug,
        )
        acquire_interceptor(self._loop)
        self._closed = False

    @property
    def parent_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def debounce_delay(self) -> float | None:
        return self._detector.delay

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_active(self) -> bool:
        """Whether tracked code is running or scheduled to run in this turn."""
        return self._detector.is_active

    @property
    def running_count(self) -> int:
        return self._detector.running_count

    @property
    def microtask_count(self) -> int:
        return self._detector.microtask_count

    def _parent_context(self) -> contextvars.Context:
        return context_with(self._parent_detectors)

    def tracked_context(self) -> contextvars.Context:
        """Return a new context whose scheduled callbacks are tracked.

        Useful with the ``context=`` argument of ``loop.call_soon`` and friends.
        """
        return tracked_context(self._detector)

    def run(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """Run ``fn`` in the tracked context and return its result.

        Exceptions raised by ``fn`` propagate unchanged. Coroutine functions
        should be started with :meth:`create_task` instead.
        """
        return run_tracked(self._detector, fn, args, kwargs)

    def run_unary(self, fn: Callable[[T], R], arg: T) -> R:
        return run_tracked(self._detector, fn, (arg,))

    def run_binary(self, fn: Callable[[T1, T2], R], arg1: T1, arg2: T2) -> R:
        return run_tracked(self._detector, fn, (arg1, arg2))

    def create_task(
        self, coro: Coroutine[Any, Any, R], *, name: str | None = None
    ) -> asyncio.Task[R]:
        """Start ``coro`` as a task whose every step is tracked."""
        return self.run(self._loop.create_task, coro, name=name)

    def add_listener(self, callback: Listener) -> None:
        """Add a callback invoked with no arguments on every settle.

        Raises:
            TrackerClosedError: If the tracker has been closed.
        """
        if self._closed:
            raise TrackerClosedError("Closed.")
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        """Remove a previously added callback; unknown callbacks are ignored."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def subscribe(self) -> Subscription:
        """Open a subscription yielding one item per settle notification.

        Consume it from outside the tracked context; a tracked consumer's
        wake-ups count as activity themselves.
        """
        return self._channel.subscribe()

    def settled(self) -> asyncio.Future[None]:
        """Return a future resolved by the next settle notification.

        The listener is registered immediately, so call this before starting
        the work to wait for.
        """
        future: asyncio.Future[None] = self._loop.create_future()

        def _on_settle() -> None:
            self.remove_listener(_on_settle)
            if not future.done():
                future.set_result(None)

        self.add_listener(_on_settle)
        future.add_done_callback(
            lambda _: self.remove_listener(_on_settle),
            context=self._parent_context(),
        )
        return future

    def close(self) -> None:
        """Clear listeners, close subscriptions and release the loop hooks.

        Idempotent. A settle check already pending fires without effect.
        """
        self._listeners.clear()
        self._channel.close()
        if not self._closed:
            self._closed = True
            release_interceptor(self._loop)

    def __enter__(self) -> AsyncTracker:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
