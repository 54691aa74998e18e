import asyncio

from asynctracker import AsyncTracker


async def crawl(page: int) -> None:
    await asyncio.sleep(0.01 * page)
    if page < 3:
        asyncio.get_running_loop().create_task(crawl(page + 1))


async def watch(tracker: AsyncTracker) -> int:
    seen = 0
    async with tracker.subscribe() as settles:
        async for _ in settles:
            seen += 1
            print(f"Settled (event {seen}), active={tracker.is_active}")
    return seen


async def main() -> None:
    tracker = AsyncTracker(debounce_delay=0.05)
    watcher = asyncio.create_task(watch(tracker))
    await asyncio.sleep(0)

    tracker.create_task(crawl(1))
    await asyncio.sleep(0.3)

    tracker.close()
    print(f"Watcher finished after {await watcher} event(s)")


if __name__ == "__main__":
    asyncio.run(main())
