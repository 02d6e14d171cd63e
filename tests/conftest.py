from collections.abc import Callable

import pytest

from lanebot.sources import MemorySource
from tests.fakes import FakeBot, FakeClock, RecordingHandler


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> MemorySource:
    return MemorySource()


@pytest.fixture
def delivered() -> list[tuple[int, int]]:
    return []


@pytest.fixture
def handlers() -> dict[int, list[RecordingHandler]]:
    return {}


@pytest.fixture
def make_handler(
    delivered: list[tuple[int, int]],
    handlers: dict[int, list[RecordingHandler]],
) -> Callable[[int], RecordingHandler]:
    def _factory(chat_id: int) -> RecordingHandler:
        handler = RecordingHandler(chat_id, delivered)
        handlers.setdefault(chat_id, []).append(handler)
        return handler

    return _factory
