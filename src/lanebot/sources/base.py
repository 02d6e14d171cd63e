from __future__ import annotations

from typing import Protocol

from ..telegram.api_models import Update


class EventSource(Protocol):
    """Serial stream of inbound updates.

    ``open`` subscribes (and may be called again after ``aclose``),
    ``receive`` waits for the next update and raises ``anyio.EndOfStream``
    once the stream is finished for good.
    """

    async def open(self) -> None: ...

    async def receive(self) -> Update: ...

    async def aclose(self) -> None: ...
