import asyncio

from asynctracker import AsyncTracker


async def fetch(name: str, delay: float) -> str:
    await asyncio.sleep(delay)
    print(f"Fetched {name}")
    return name


async def main() -> None:
    tracker = AsyncTracker()
    settled = tracker.settled()
    tracker.add_listener(lambda: print("Tracker has detected an execution"))

    def start() -> None:
        loop = asyncio.get_running_loop()
        loop.create_task(fetch("users", 0.02))
        loop.create_task(fetch("orders", 0.01))

    # Both tasks are started in the tracked context, so the tracker only
    # settles once the event loop has nothing left to do for them.
    tracker.run(start)
    await settled
    await asyncio.sleep(0.05)
    tracker.close()


if __name__ == "__main__":
    asyncio.run(main())
