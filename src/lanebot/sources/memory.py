from __future__ import annotations

import math

import anyio

from ..telegram.api_models import Update


class MemorySource:
    """In-process push channel.

    Updates pushed while no dispatcher is running stay buffered until the next
    ``receive``. ``close`` ends the stream; ``aclose`` only releases the
    current subscription so the source can be reopened.
    """

    def __init__(self, max_buffer_size: float = math.inf) -> None:
        self._send, self._receive = anyio.create_memory_object_stream[Update](
            max_buffer_size=max_buffer_size
        )

    async def open(self) -> None:
        return None

    async def receive(self) -> Update:
        return await self._receive.receive()

    async def aclose(self) -> None:
        return None

    async def push(self, update: Update) -> None:
        await self._send.send(update)

    def push_nowait(self, update: Update) -> None:
        self._send.send_nowait(update)

    def close(self) -> None:
        self._send.close()

    @property
    def pending(self) -> int:
        return self._receive.statistics().current_buffer_used
