import anyio
import pytest

from lanebot.timers import TimerNotFoundError, TimerService
from tests.fakes import FakeClock


class _RecordingTaskGroup:
    def __init__(self) -> None:
        self.tasks = []

    def start_soon(self, func, *args):
        self.tasks.append((func, args))


@pytest.mark.anyio
async def test_timer_fires_on_lapse_and_rearms(clock: FakeClock) -> None:
    service = TimerService(clock=clock)
    service.add(1, "ping", lambda: None, 10)
    tg = _RecordingTaskGroup()

    clock.advance(9)
    assert service.fire_due(tg) == 0
    clock.advance(1)
    assert service.fire_due(tg) == 1
    assert service.fire_due(tg) == 0
    clock.advance(10)
    assert service.fire_due(tg) == 1
    assert len(tg.tasks) == 2


@pytest.mark.anyio
async def test_set_lapse_and_reset(clock: FakeClock) -> None:
    service = TimerService(clock=clock)
    service.add(1, "ping", lambda: None, 10)
    tg = _RecordingTaskGroup()

    clock.advance(5)
    service.set_lapse(1, "ping", 5)
    service.reset(1, "ping")
    assert service.fire_due(tg) == 0
    clock.advance(5)
    assert service.fire_due(tg) == 1


@pytest.mark.anyio
async def test_unknown_timer_raises(clock: FakeClock) -> None:
    service = TimerService(clock=clock)
    with pytest.raises(TimerNotFoundError) as excinfo:
        service.reset(1, "missing")
    assert isinstance(excinfo.value, KeyError)
    with pytest.raises(TimerNotFoundError):
        service.set_lapse(1, "missing", 3)


@pytest.mark.anyio
async def test_remove_and_remove_all(clock: FakeClock) -> None:
    service = TimerService(clock=clock)
    service.add(1, "a", lambda: None, 1)
    service.add(1, "b", lambda: None, 1)
    service.add(2, "a", lambda: None, 1)

    assert service.remove(1, "a") is True
    assert service.remove(1, "a") is False
    assert service.names(1) == ["b"]
    assert service.remove_all(1) == 1
    assert service.names(1) == []
    assert len(service) == 1


@pytest.mark.anyio
async def test_callbacks_run_as_tasks_and_failures_are_logged(clock: FakeClock) -> None:
    service = TimerService(clock=clock)
    fired: list[str] = []

    async def async_cb() -> None:
        fired.append("async")

    def broken() -> None:
        raise RuntimeError("timer broke")

    service.add(1, "sync", lambda: fired.append("sync"), 1)
    service.add(1, "async", async_cb, 1)
    service.add(2, "broken", broken, 1)
    clock.advance(1)

    async with anyio.create_task_group() as tg:
        assert service.fire_due(tg) == 3

    assert sorted(fired) == ["async", "sync"]


class _StopTicking(Exception):
    pass


@pytest.mark.anyio
async def test_run_checks_timers_every_tick(clock: FakeClock) -> None:
    ticks: list[float] = []

    async def tick(delay: float) -> None:
        if len(ticks) == 6:
            raise _StopTicking
        ticks.append(delay)
        clock.advance(delay)

    service = TimerService(clock=clock, sleep=tick, tick_s=1.0)
    service.add(1, "ping", lambda: None, 3)
    tg = _RecordingTaskGroup()

    with pytest.raises(_StopTicking):
        await service.run(tg)

    assert ticks == [1.0] * 6
    assert len(tg.tasks) == 2
    assert all(args[0] == 1 for _, args in tg.tasks)
