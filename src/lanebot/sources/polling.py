from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
import msgspec

from ..logging import get_logger
from ..settings import PollingSettings
from ..telegram.api_models import Update, convert_update
from ..telegram.client import BotClient, RetryAfter

logger = get_logger(__name__)


class PollingSource:
    """Long-polling event source.

    The offset always points one past the last update handed out, so a
    restart never requests an update twice. Updates from one response are
    returned in server order.
    """

    def __init__(
        self,
        bot: BotClient,
        settings: PollingSettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._bot = bot
        self._settings = settings or PollingSettings()
        self._sleep = sleep
        self._offset: int | None = None
        self._buffer: deque[Update] = deque()
        self._opened = False
        self._failures = 0

    @property
    def offset(self) -> int | None:
        return self._offset

    async def open(self) -> None:
        first_open = not self._opened
        self._opened = True
        while not await self._bot.delete_webhook():
            logger.warning("polling.delete_webhook.failed")
            await self._backoff()
        self._failures = 0
        if first_open and self._settings.drop_pending:
            await self._drain_backlog()
        logger.info("polling.opened", offset=self._offset)

    async def aclose(self) -> None:
        logger.info("polling.closed", offset=self._offset)

    async def receive(self) -> Update:
        while not self._buffer:
            await self._poll(self._settings.timeout_s)
        update = self._buffer.popleft()
        self._advance(update.update_id)
        return update

    async def _drain_backlog(self) -> None:
        drained = 0
        while True:
            updates = await self._get_updates(timeout_s=0)
            if updates is None:
                logger.info("polling.backlog.failed")
                return
            if not updates:
                if drained:
                    logger.info("polling.backlog.drained", count=drained)
                return
            for raw in updates:
                self._advance(_update_id(raw))
            drained += len(updates)

    async def _poll(self, timeout_s: int) -> None:
        updates = await self._get_updates(timeout_s=timeout_s)
        if updates is None:
            await self._backoff()
            return
        self._failures = 0
        logger.debug("polling.updates", count=len(updates))
        for raw in updates:
            try:
                update = convert_update(raw)
            except msgspec.ValidationError as exc:
                update_id = _update_id(raw)
                self._advance(update_id)
                logger.warning(
                    "polling.malformed_update",
                    update_id=update_id,
                    error=str(exc),
                )
                continue
            self._buffer.append(update)

    def _advance(self, update_id: int | None) -> None:
        if update_id is None:
            return
        if self._offset is None or update_id + 1 > self._offset:
            self._offset = update_id + 1

    async def _get_updates(self, *, timeout_s: int) -> list[Any] | None:
        while True:
            try:
                return await self._bot.get_updates(
                    offset=self._offset,
                    timeout_s=timeout_s,
                    allowed_updates=self._settings.allowed_updates,
                    limit=self._settings.limit,
                )
            except RetryAfter as exc:
                logger.info("polling.retry_after", retry_after=exc.retry_after)
                await self._sleep(exc.retry_after)

    async def _backoff(self) -> None:
        delay = min(
            self._settings.retry_delay_s * (2**self._failures),
            self._settings.max_retry_delay_s,
        )
        self._failures += 1
        logger.info("polling.get_updates.failed", retry_in=delay, failures=self._failures)
        await self._sleep(delay)


def _update_id(raw: Any) -> int | None:
    if isinstance(raw, dict):
        value = raw.get("update_id")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None
