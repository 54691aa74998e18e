import asyncio
from collections.abc import AsyncIterator

import pytest

from tests.factories import ExceptionCollector


@pytest.fixture
async def exceptions() -> AsyncIterator[ExceptionCollector]:
    collector = ExceptionCollector(asyncio.get_running_loop())
    yield collector
    collector.restore()
