"""Demo command for CLI."""

from __future__ import annotations

import asyncio
import random

from asynctracker import AsyncTracker
from asynctracker._internal.shared.utils import format_duration


class _WorkTree:
    """Random tree of call_soon callbacks, timers and tasks."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        rng: random.Random,
        fanout: int,
        depth: int,
    ) -> None:
        self._loop = loop
        self._rng = rng
        self._fanout = fanout
        self._depth = depth
        self.pending = 0
        self.units = 0
        self.kinds = {"soon": 0, "timer": 0, "task": 0}

    def start(self) -> None:
        self.pending += 1
        self.visit(0)

    def visit(self, level: int) -> None:
        self.pending -= 1
        self.units += 1
        if level >= self._depth:
            return
        for _ in range(self._rng.randint(1, self._fanout)):
            kind = self._rng.choice(("soon", "timer", "task"))
            self.kinds[kind] += 1
            self.pending += 1
            if kind == "soon":
                self._loop.call_soon(self.visit, level + 1)
            elif kind == "timer":
                self._loop.call_later(
                    self._rng.uniform(0.0, 0.05), self.visit, level + 1
                )
            else:
                self._loop.create_task(self._child(level + 1))

    async def _child(self, level: int) -> None:
        await asyncio.sleep(self._rng.uniform(0.0, 0.02))
        self.visit(level)


async def demo_command(
    delay: float | None = None,
    fanout: int = 3,
    depth: int = 3,
    seed: int | None = None,
) -> None:
    """Run the work tree and print one line per settle notification."""
    loop = asyncio.get_running_loop()
    tree = _WorkTree(loop, random.Random(seed), fanout, depth)
    drained = asyncio.Event()
    started = loop.time()
    settles = 0

    def on_settle() -> None:
        nonlocal settles
        settles += 1
        elapsed = format_duration(loop.time() - started)
        print(
            f"[{elapsed:>6}] settled #{settles}: "
            f"{tree.units} unit(s) done, {tree.pending} pending"
        )
        if tree.pending == 0:
            drained.set()

    with AsyncTracker(loop, debounce_delay=delay) as tracker:
        tracker.add_listener(on_settle)
        tracker.run(tree.start)
        await drained.wait()

    print()
    print("=" * 60)
    print(f"Units of work:        {tree.units}")
    print(
        "Scheduled:            "
        + ", ".join(f"{kind}={count}" for kind, count in tree.kinds.items())
    )
    print(f"Settle notifications: {settles}")
    print(f"Total Duration:       {format_duration(loop.time() - started)}")
    print("=" * 60)
