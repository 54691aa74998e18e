import asyncio
import contextvars

import pytest

from asynctracker._internal.settle_detector import _SettleDetector
from asynctracker.stream import _BroadcastChannel
from tests.factories import ExceptionCollector, drain


def make_detector(
    delay: float | None = None,
) -> tuple[_SettleDetector, list[object], _BroadcastChannel]:
    listeners: list[object] = []
    channel = _BroadcastChannel()
    detector = _SettleDetector(
        asyncio.get_running_loop(),
        listeners,  # type: ignore[arg-type]
        channel,
        parent_context=contextvars.copy_context,
        delay=delay,
    )
    return detector, listeners, channel


async def test_detector_initial_state() -> None:
    detector, _, _ = make_detector()
    assert not detector.is_active
    assert not detector.scheduled
    assert not detector.has_listener
    assert detector.delay is None


async def test_detector_counters_drive_activity() -> None:
    detector, _, _ = make_detector()
    detector.record_run_start()
    assert detector.is_active
    detector.record_microtask()
    detector.record_run_end()
    assert detector.is_active
    assert detector.microtask_count == 1

    detector.record_microtask_done()
    assert not detector.is_active
    assert detector.running_count == 0
    assert detector.microtask_count == 0


async def test_trigger_without_listeners_schedules_nothing() -> None:
    detector, _, _ = make_detector()
    detector.trigger()
    assert not detector.scheduled


async def test_trigger_while_active_schedules_nothing() -> None:
    detector, listeners, _ = make_detector()
    listeners.append(lambda: None)
    detector.record_run_start()
    detector.trigger()
    assert not detector.scheduled


async def test_trigger_schedules_a_single_check() -> None:
    detector, listeners, _ = make_detector()
    calls: list[int] = []
    listeners.append(lambda: calls.append(1))

    detector.trigger()
    detector.trigger()
    detector.trigger()
    assert detector.scheduled
    assert calls == []

    await drain()
    assert calls == [1]
    assert not detector.scheduled


async def test_check_revalidates_activity_before_firing() -> None:
    detector, listeners, _ = make_detector()
    calls: list[int] = []
    listeners.append(lambda: calls.append(1))

    detector.trigger()
    # Work arrives between scheduling and running the check
    detector.record_microtask()
    await drain()
    assert calls == []
    assert not detector.scheduled

    detector.record_microtask_done()
    detector.trigger()
    await drain()
    assert calls == [1]


async def test_check_aborts_when_listeners_are_gone() -> None:
    detector, listeners, _ = make_detector()
    calls: list[int] = []
    listeners.append(lambda: calls.append(1))

    detector.trigger()
    listeners.clear()
    await drain()
    assert calls == []


async def test_timer_mode_waits_for_delay() -> None:
    detector, listeners, _ = make_detector(delay=0.05)
    calls: list[int] = []
    listeners.append(lambda: calls.append(1))

    detector.trigger()
    assert detector.scheduled
    assert detector._timer is not None

    await drain()
    assert calls == []

    await asyncio.sleep(0.1)
    assert calls == [1]
    assert detector._timer is None
    assert not detector.scheduled


async def test_listeners_called_in_registration_order() -> None:
    detector, listeners, _ = make_detector()
    order: list[str] = []
    listeners.extend([lambda: order.append("a"), lambda: order.append("b")])

    detector.trigger()
    await drain()
    assert order == ["a", "b"]


async def test_channel_published_before_listeners() -> None:
    detector, listeners, channel = make_detector()
    order: list[str] = []
    subscription = channel.subscribe()
    listeners.append(lambda: order.append(f"listener:{subscription._queue.qsize()}"))

    detector.trigger()
    await drain()
    assert order == ["listener:1"]


async def test_subscriber_alone_counts_as_listener() -> None:
    detector, _, channel = make_detector()
    subscription = channel.subscribe()
    assert detector.has_listener

    detector.trigger()
    assert detector.scheduled
    await asyncio.wait_for(subscription.__anext__(), timeout=1)


@pytest.mark.parametrize("failing_index", [0, 1])
async def test_listener_error_is_reported_and_rest_still_called(
    exceptions: ExceptionCollector, failing_index: int
) -> None:
    detector, listeners, _ = make_detector()
    called: list[int] = []

    def make(i: int) -> object:
        def listener() -> None:
            called.append(i)
            if i == failing_index:
                raise ValueError(f"listener {i} failed")

        return listener

    listeners.extend([make(0), make(1), make(2)])
    detector.trigger()
    await drain()

    assert called == [0, 1, 2]
    assert len(exceptions.contexts) == 1
    context = exceptions.contexts[0]
    assert isinstance(context["exception"], ValueError)
    assert context["listener"] is listeners[failing_index]
    assert "settle listener" in context["message"]
