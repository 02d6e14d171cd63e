from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import anyio

from .logging import get_logger
from .registry import Session, SessionRegistry

logger = get_logger(__name__)

__all__ = ["IdleReaper"]


class IdleReaper:
    """Evicts sessions that have been idle for at least ``ttl_s``.

    Busy sessions are skipped and reconsidered on a later pass. An evicted
    session leaves the registry before ``evict`` runs, so a slow teardown
    never holds up new arrivals for the same id.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        ttl_s: float,
        evict: Callable[[Session], Awaitable[None]],
        interval_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._registry = registry
        self._ttl_s = ttl_s
        self._evict = evict
        self._interval_s = interval_s
        self._clock = clock
        self._sleep = sleep

    def is_expired(self, session: Session) -> bool:
        if session.busy:
            return False
        return self._clock() - session.last_activity >= self._ttl_s

    async def reap_once(self) -> list[int]:
        evicted: list[int] = []
        for session in self._registry.snapshot():
            # Teardowns below may await, so re-check each session on its turn.
            if not self.is_expired(session):
                continue
            if not self._registry.discard(session):
                continue
            cid = session.conversation_id
            logger.info(
                "reaper.session.evicted",
                conversation_id=cid,
                idle_s=round(self._clock() - session.last_activity, 3),
            )
            evicted.append(cid)
            await self._evict(session)
        return evicted

    async def run(self) -> None:
        while True:
            await self._sleep(self._interval_s)
            await self.reap_once()
