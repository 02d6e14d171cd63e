import pytest

from lanebot.reaper import IdleReaper
from lanebot.registry import Session, SessionRegistry
from tests.fakes import FakeClock, RecordingHandler, message_update


async def _registry_with(clock: FakeClock, *chat_ids: int) -> SessionRegistry:
    registry = SessionRegistry(clock=clock)
    for chat_id in chat_ids:
        await registry.get_or_create(chat_id, lambda cid: RecordingHandler(cid, []))
    return registry


@pytest.mark.anyio
async def test_reaps_only_expired_sessions(clock: FakeClock) -> None:
    registry = await _registry_with(clock, 1, 2)
    evicted: list[Session] = []

    async def evict(session: Session) -> None:
        evicted.append(session)

    reaper = IdleReaper(registry, ttl_s=60, evict=evict, clock=clock)
    clock.advance(30)
    registry.get(2).touch(clock())
    clock.advance(30)

    assert await reaper.reap_once() == [1]
    assert [session.conversation_id for session in evicted] == [1]
    assert registry.ids() == [2]


@pytest.mark.anyio
async def test_ttl_boundary_is_inclusive(clock: FakeClock) -> None:
    registry = await _registry_with(clock, 1)

    async def evict(session: Session) -> None:
        return None

    reaper = IdleReaper(registry, ttl_s=10, evict=evict, clock=clock)
    clock.advance(9.999)
    assert await reaper.reap_once() == []
    clock.advance(0.001)
    assert await reaper.reap_once() == [1]


@pytest.mark.anyio
async def test_busy_sessions_are_deferred(clock: FakeClock) -> None:
    registry = await _registry_with(clock, 1, 2)
    running = registry.get(1)
    queued = registry.get(2)
    running.running = True
    queued.pending.append(message_update(1, 2))

    async def evict(session: Session) -> None:
        return None

    reaper = IdleReaper(registry, ttl_s=1, evict=evict, clock=clock)
    clock.advance(100)
    assert await reaper.reap_once() == []

    running.running = False
    queued.pending.clear()
    assert sorted(await reaper.reap_once()) == [1, 2]
    assert len(registry) == 0


@pytest.mark.anyio
async def test_session_is_unregistered_before_evict_runs(clock: FakeClock) -> None:
    registry = await _registry_with(clock, 1)
    seen: list[bool] = []

    async def evict(session: Session) -> None:
        seen.append(session.conversation_id in registry)

    reaper = IdleReaper(registry, ttl_s=1, evict=evict, clock=clock)
    clock.advance(1)
    await reaper.reap_once()
    assert seen == [False]


@pytest.mark.anyio
async def test_session_touched_during_pass_survives(clock: FakeClock) -> None:
    registry = await _registry_with(clock, 1, 2)

    async def evict(session: Session) -> None:
        registry.get(2).touch(clock())

    reaper = IdleReaper(registry, ttl_s=5, evict=evict, clock=clock)
    clock.advance(5)
    assert await reaper.reap_once() == [1]
    assert registry.ids() == [2]
