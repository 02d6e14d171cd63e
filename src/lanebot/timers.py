from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio

from .logging import get_logger

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
else:
    TaskGroup = object

logger = get_logger(__name__)

TimerCallback = Callable[[], "Awaitable[Any] | Any"]


class TimerNotFoundError(KeyError):
    def __init__(self, conversation_id: int, name: str) -> None:
        super().__init__(f"cannot find timer {name!r} for conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.name = name


@dataclass(slots=True)
class Timer:
    name: str
    callback: TimerCallback
    lapse_s: float
    last_fired: float


class TimerService:
    """Named repeating timers scoped to a conversation.

    A timer fires once ``lapse_s`` has passed since it was added, reset or
    last fired. Callbacks run as separate tasks and may be sync or async.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        tick_s: float = 1.0,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._tick_s = tick_s
        self._timers: dict[int, dict[str, Timer]] = {}

    def __len__(self) -> int:
        return sum(len(timers) for timers in self._timers.values())

    def names(self, conversation_id: int) -> list[str]:
        return list(self._timers.get(conversation_id, {}))

    def add(
        self,
        conversation_id: int,
        name: str,
        callback: TimerCallback,
        lapse_s: float,
    ) -> None:
        self._timers.setdefault(conversation_id, {})[name] = Timer(
            name=name,
            callback=callback,
            lapse_s=lapse_s,
            last_fired=self._clock(),
        )

    def _get(self, conversation_id: int, name: str) -> Timer:
        timer = self._timers.get(conversation_id, {}).get(name)
        if timer is None:
            raise TimerNotFoundError(conversation_id, name)
        return timer

    def set_lapse(self, conversation_id: int, name: str, lapse_s: float) -> None:
        self._get(conversation_id, name).lapse_s = lapse_s

    def reset(self, conversation_id: int, name: str) -> None:
        self._get(conversation_id, name).last_fired = self._clock()

    def remove(self, conversation_id: int, name: str) -> bool:
        timers = self._timers.get(conversation_id)
        if timers is None or timers.pop(name, None) is None:
            return False
        if not timers:
            del self._timers[conversation_id]
        return True

    def remove_all(self, conversation_id: int) -> int:
        return len(self._timers.pop(conversation_id, {}))

    def due(self) -> list[tuple[int, Timer]]:
        now = self._clock()
        fired = []
        for conversation_id, timers in list(self._timers.items()):
            for timer in list(timers.values()):
                if now - timer.last_fired >= timer.lapse_s:
                    timer.last_fired = now
                    fired.append((conversation_id, timer))
        return fired

    def fire_due(self, task_group: TaskGroup) -> int:
        fired = self.due()
        for conversation_id, timer in fired:
            task_group.start_soon(self._invoke, conversation_id, timer)
        return len(fired)

    async def run(self, task_group: TaskGroup) -> None:
        while True:
            await self._sleep(self._tick_s)
            self.fire_due(task_group)

    async def _invoke(self, conversation_id: int, timer: Timer) -> None:
        try:
            result = timer.callback()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "timers.callback_failed",
                conversation_id=conversation_id,
                timer=timer.name,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
