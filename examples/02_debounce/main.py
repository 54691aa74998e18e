import asyncio

from asynctracker import AsyncTracker


async def main() -> None:
    loop = asyncio.get_running_loop()
    start = loop.time()

    # Without a delay every idle moment is reported; with one, bursts that
    # arrive within the window collapse into a single notification.
    for delay in (None, 0.1):
        notifications = 0

        def on_settle() -> None:
            nonlocal notifications
            notifications += 1
            print(f"  settled at {loop.time() - start:.3f}s")

        label = "next iteration" if delay is None else f"{delay}s window"
        print(f"Debounce: {label}")
        with AsyncTracker(debounce_delay=delay) as tracker:
            tracker.add_listener(on_settle)
            for _ in range(3):
                tracker.run(loop.call_soon, lambda: None)
                await asyncio.sleep(0.02)
            await asyncio.sleep(0.2)
        print(f"  notifications: {notifications}")


if __name__ == "__main__":
    asyncio.run(main())
