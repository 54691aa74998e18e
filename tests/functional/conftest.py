from collections.abc import AsyncIterator

import pytest

from asynctracker import AsyncTracker


@pytest.fixture
async def tracker() -> AsyncIterator[AsyncTracker]:
    t = AsyncTracker()
    yield t
    t.close()


@pytest.fixture
async def debounced_tracker() -> AsyncIterator[AsyncTracker]:
    t = AsyncTracker(debounce_delay=0.1)
    yield t
    t.close()
