import anyio
import pytest

from lanebot.registry import Session, SessionRegistry
from tests.fakes import FakeClock, RecordingHandler


@pytest.mark.anyio
async def test_concurrent_get_or_create_builds_once(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    calls: list[int] = []
    results: list[tuple[Session, bool]] = []

    async def factory(chat_id: int) -> RecordingHandler:
        calls.append(chat_id)
        await anyio.sleep(0.01)
        return RecordingHandler(chat_id, [])

    async def create() -> None:
        results.append(await registry.get_or_create(5, factory))

    async with anyio.create_task_group() as tg:
        for _ in range(10):
            tg.start_soon(create)

    assert calls == [5]
    assert len(registry) == 1
    sessions = {id(session) for session, _ in results}
    assert len(sessions) == 1
    assert [created for _, created in results].count(True) == 1
    assert registry._gates == {}


@pytest.mark.anyio
async def test_factory_error_leaves_id_absent(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    attempts = 0

    def factory(chat_id: int) -> RecordingHandler:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("nope")
        return RecordingHandler(chat_id, [])

    with pytest.raises(RuntimeError):
        await registry.get_or_create(1, factory)
    assert 1 not in registry
    assert registry.get(1) is None

    session, created = await registry.get_or_create(1, factory)
    assert created is True
    assert registry.get(1) is session


@pytest.mark.anyio
async def test_slow_factory_does_not_block_other_ids(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    release = anyio.Event()

    async def factory(chat_id: int) -> RecordingHandler:
        if chat_id == 1:
            await release.wait()
        return RecordingHandler(chat_id, [])

    async with anyio.create_task_group() as tg:
        tg.start_soon(registry.get_or_create, 1, factory)
        with anyio.fail_after(1):
            session, created = await registry.get_or_create(2, factory)
        assert created is True
        assert session.conversation_id == 2
        assert 1 not in registry
        release.set()

    assert sorted(registry.ids()) == [1, 2]


@pytest.mark.anyio
async def test_remove_and_discard(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    first, _ = await registry.get_or_create(3, lambda cid: RecordingHandler(cid, []))

    assert registry.remove(3) is first
    assert registry.remove(3) is None

    second, created = await registry.get_or_create(3, lambda cid: RecordingHandler(cid, []))
    assert created is True
    assert registry.discard(first) is False
    assert registry.get(3) is second
    assert registry.discard(second) is True
    assert len(registry) == 0


@pytest.mark.anyio
async def test_snapshot_tolerates_mutation(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    for chat_id in range(4):
        await registry.get_or_create(chat_id, lambda cid: RecordingHandler(cid, []))

    seen = []
    for session in registry:
        registry.remove(session.conversation_id)
        seen.append(session.conversation_id)

    assert seen == [0, 1, 2, 3]
    assert registry.snapshot() == []


@pytest.mark.anyio
async def test_session_touch_is_monotonic(clock: FakeClock) -> None:
    registry = SessionRegistry(clock=clock)
    session, _ = await registry.get_or_create(1, lambda cid: RecordingHandler(cid, []))
    assert session.last_activity == clock.now

    session.touch(clock.now + 5)
    session.touch(clock.now + 1)
    assert session.last_activity == clock.now + 5
    assert session.busy is False
    session.running = True
    assert session.busy is True
