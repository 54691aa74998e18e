from collections.abc import AsyncIterator

import pytest

from asynctracker import AsyncTracker


@pytest.fixture
async def tracker() -> AsyncIterator[AsyncTracker]:
    t = AsyncTracker()
    yield t
    t.close()
