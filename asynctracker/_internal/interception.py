from __future__ import annotations

import asyncio
import contextvars
from collections.abc import Callable
from typing import Any, TYPE_CHECKING

from asynctracker.types import TrackerError

if TYPE_CHECKING:
    from asynctracker._internal.settle_detector import _SettleDetector

Detectors = tuple["_SettleDetector", ...]

# Detectors counting work scheduled from the current context.
_TRACKED: contextvars.ContextVar[Detectors] = contextvars.ContextVar(
    "asynctracker_tracked", default=()
)


def current_detectors() -> Detectors:
    return _TRACKED.get()


def _scheduled_detectors(context: contextvars.Context | None) -> Detectors:
    """Detectors of the context a callback will run in (the current one if None)."""
    if context is None:
        return _TRACKED.get()
    return context.get(_TRACKED, ())


def _enter(detector: _SettleDetector) -> None:
    detectors = _TRACKED.get()
    if detector not in detectors:
        _TRACKED.set(detectors + (detector,))


def tracked_context(detector: _SettleDetector) -> contextvars.Context:
    """Copy the current context and mark it as tracked by ``detector``."""
    context = contextvars.copy_context()
    context.run(_enter, detector)
    return context


def context_with(detectors: Detectors) -> contextvars.Context:
    """Copy the current context, tracked by exactly ``detectors``."""
    context = contextvars.copy_context()
    context.run(_TRACKED.set, detectors)
    return context


def _release(detectors: Detectors, record: Callable[[_SettleDetector], None]) -> None:
    for detector in detectors:
        record(detector)
    for detector in detectors:
        detector.trigger()


def _run_counted(fn: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    detectors = _TRACKED.get()
    for detector in detectors:
        detector.record_run_start()
    try:
        return fn(*args, **kwargs)
    finally:
        _release(detectors, lambda d: d.record_run_end())


def run_tracked(
    detector: _SettleDetector,
    fn: Callable[..., Any],
    args: tuple[Any, ...] = (),
    kwargs: dict[str, Any] | None = None,
) -> Any:
    """Call ``fn`` inside a context tracked by ``detector``, counted as running."""
    context = tracked_context(detector)
    return context.run(_run_counted, fn, args, kwargs or {})


class _MicrotaskCallback:
    """Wraps a ``call_soon`` callback; counted from scheduling until it ran."""

    __slots__ = ("_callback", "_detectors", "_pending")

    def __init__(self, callback: Callable[..., Any], detectors: Detectors) -> None:
        self._callback = callback
        self._detectors = detectors
        self._pending = True
        for detector in detectors:
            detector.record_microtask()

    def __call__(self, *args: Any) -> None:
        try:
            self._callback(*args)
        finally:
            self.release()

    def release(self) -> None:
        if not self._pending:
            return
        self._pending = False
        _release(self._detectors, lambda d: d.record_microtask_done())

    def __repr__(self) -> str:
        return f"<tracked {self._callback!r}>"


class _TimerCallback:
    """Wraps a timer callback; counted as running only while it fires."""

    __slots__ = ("_callback", "_detectors")

    def __init__(self, callback: Callable[..., Any], detectors: Detectors) -> None:
        self._callback = callback
        self._detectors = detectors

    def __call__(self, *args: Any) -> None:
        for detector in self._detectors:
            detector.record_run_start()
        try:
            self._callback(*args)
        finally:
            _release(self._detectors, lambda d: d.record_run_end())

    def __repr__(self) -> str:
        return f"<tracked timer {self._callback!r}>"


class _TrackedHandle(asyncio.Handle):
    """Handle returned for tracked ``call_soon`` callbacks.

    Cancelling it cancels the loop's own handle and gives back the microtask
    count the callback was holding.
    """

    __slots__ = ("_inner", "_tracked")

    def __init__(
        self,
        inner: asyncio.Handle,
        tracked: _MicrotaskCallback,
        loop: asyncio.AbstractEventLoop,
        context: contextvars.Context,
    ) -> None:
        super().__init__(tracked, (), loop, context)
        self._inner = inner
        self._tracked = tracked

    def cancel(self) -> None:
        if not self._cancelled:
            self._inner.cancel()
            self._tracked.release()
        super().cancel()


class _LoopInterceptor:
    """Installs the scheduling hooks on one event loop instance.

    The originals found on the loop at install time are the parent
    implementations every hook delegates to.
    """

    _HOOKED = ("call_soon", "call_at", "call_later")

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._users = 0
        self._parents: dict[str, Any] = {}
        self._shadowed: dict[str, Any] = {}
        self._hooks: dict[str, Any] = {}

    @property
    def installed(self) -> bool:
        return bool(self._hooks)

    def install(self) -> None:
        loop = self._loop
        instance_attrs = getattr(loop, "__dict__", None)
        if instance_attrs is None:
            raise TrackerError(
                f"Cannot instrument {type(loop).__name__}: loop attributes are read-only"
            )
        hooks = {
            "call_soon": self.call_soon,
            "call_at": self.call_at,
            "call_later": self.call_later,
        }
        for name in self._HOOKED:
            self._parents[name] = getattr(loop, name)
            if name in instance_attrs:
                self._shadowed[name] = instance_attrs[name]
            setattr(loop, name, hooks[name])
        self._hooks = hooks

    def uninstall(self) -> None:
        instance_attrs = vars(self._loop)
        for name, hook in self._hooks.items():
            # Leave the loop alone if someone patched it after us.
            if instance_attrs.get(name) is not hook:
                continue
            if name in self._shadowed:
                setattr(self._loop, name, self._shadowed[name])
            else:
                delattr(self._loop, name)
        # Parents stay available for callers still holding a hook.
        self._hooks = {}
        self._shadowed = {}

    def call_soon(
        self,
        callback: Callable[..., Any],
        *args: Any,
        context: contextvars.Context | None = None,
    ) -> asyncio.Handle:
        parent = self._parents["call_soon"]
        detectors = _scheduled_detectors(context)
        if not detectors:
            return parent(callback, *args, context=context)

        if context is None:
            context = contextvars.copy_context()
        tracked = _MicrotaskCallback(callback, detectors)
        try:
            handle = parent(tracked, *args, context=context)
        except BaseException:
            tracked.release()
            raise
        return _TrackedHandle(handle, tracked, self._loop, context)

    def call_at(
        self,
        when: float,
        callback: Callable[..., Any],
        *args: Any,
        context: contextvars.Context | None = None,
    ) -> asyncio.TimerHandle:
        parent = self._parents["call_at"]
        if isinstance(callback, _TimerCallback):
            # Already wrapped by call_later on loops that route through call_at.
            return parent(when, callback, *args, context=context)
        detectors = _scheduled_detectors(context)
        if detectors:
            callback = _TimerCallback(callback, detectors)
        return parent(when, callback, *args, context=context)

    def call_later(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        context: contextvars.Context | None = None,
    ) -> asyncio.TimerHandle:
        parent = self._parents["call_later"]
        detectors = _scheduled_detectors(context)
        if detectors and not isinstance(callback, _TimerCallback):
            callback = _TimerCallback(callback, detectors)
        return parent(delay, callback, *args, context=context)


# Stored on the loop itself so the hooks live and die with it.
_INTERCEPTOR_ATTR = "_asynctracker_interceptor"


def acquire_interceptor(loop: asyncio.AbstractEventLoop) -> _LoopInterceptor:
    """Return the loop's interceptor, installing the hooks on first use."""
    interceptor: _LoopInterceptor | None = getattr(loop, _INTERCEPTOR_ATTR, None)
    if interceptor is None:
        interceptor = _LoopInterceptor(loop)
        interceptor.install()
        setattr(loop, _INTERCEPTOR_ATTR, interceptor)
    interceptor._users += 1
    return interceptor


def release_interceptor(loop: asyncio.AbstractEventLoop) -> None:
    """Drop one user of the loop's hooks; uninstall when none remain."""
    interceptor: _LoopInterceptor | None = getattr(loop, _INTERCEPTOR_ATTR, None)
    if interceptor is None:
        return
    interceptor._users -= 1
    if interceptor._users <= 0:
        interceptor.uninstall()
        delattr(loop, _INTERCEPTOR_ATTR)
