from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

import anyio

from .handler import Handler, HandlerFactory, build_handler
from .logging import get_logger
from .telegram.api_models import Update

logger = get_logger(__name__)

__all__ = ["Session", "SessionRegistry"]


@dataclass(slots=True, eq=False)
class Session:
    """One live handler bound to a conversation, plus its delivery lane."""

    conversation_id: int
    handler: Handler
    last_activity: float
    pending: deque[Update] = field(default_factory=deque)
    running: bool = False
    closed: bool = False
    torn_down: bool = False
    # Set to the previous session's ``done`` when an id is recreated while
    # the old session still has an update in flight.
    after: anyio.Event | None = None
    done: anyio.Event = field(default_factory=anyio.Event)

    @property
    def busy(self) -> bool:
        return self.running or bool(self.pending)

    def touch(self, now: float) -> None:
        if now > self.last_activity:
            self.last_activity = now


@dataclass(slots=True)
class _CreateGate:
    lock: anyio.Lock = field(default_factory=anyio.Lock)
    users: int = 0


class SessionRegistry:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._sessions: dict[int, Session] = {}
        self._gates: dict[int, _CreateGate] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(self.snapshot())

    def ids(self) -> list[int]:
        return list(self._sessions)

    def get(self, conversation_id: int) -> Session | None:
        return self._sessions.get(conversation_id)

    async def get_or_create(
        self, conversation_id: int, factory: HandlerFactory
    ) -> tuple[Session, bool]:
        """Return the session for ``conversation_id``, creating it if absent.

        Creation is serialized per id only, so a slow factory never blocks
        other conversations. If the factory raises, nothing is registered and
        the next caller retries.
        """
        session = self._sessions.get(conversation_id)
        if session is not None:
            return session, False
        gate = self._gates.get(conversation_id)
        if gate is None:
            gate = _CreateGate()
            self._gates[conversation_id] = gate
        gate.users += 1
        try:
            async with gate.lock:
                session = self._sessions.get(conversation_id)
                if session is not None:
                    return session, False
                handler = await build_handler(factory, conversation_id)
                session = Session(
                    conversation_id=conversation_id,
                    handler=handler,
                    last_activity=self._clock(),
                )
                self._sessions[conversation_id] = session
                logger.debug("registry.session.created", conversation_id=conversation_id)
                return session, True
        finally:
            gate.users -= 1
            if gate.users == 0 and self._gates.get(conversation_id) is gate:
                del self._gates[conversation_id]

    def remove(self, conversation_id: int) -> Session | None:
        session = self._sessions.pop(conversation_id, None)
        if session is not None:
            logger.debug("registry.session.removed", conversation_id=conversation_id)
        return session

    def discard(self, session: Session) -> bool:
        """Remove ``session`` only if it is still the registered one for its id."""
        if self._sessions.get(session.conversation_id) is not session:
            return False
        del self._sessions[session.conversation_id]
        logger.debug(
            "registry.session.removed", conversation_id=session.conversation_id
        )
        return True

    def snapshot(self) -> list[Session]:
        return list(self._sessions.values())
