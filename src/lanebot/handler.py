from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from .telegram.api_models import Update

__all__ = ["Handler", "HandlerFactory", "build_handler", "run_teardown"]


@runtime_checkable
class Handler(Protocol):
    """Per-conversation update handler.

    A handler may also define ``teardown()`` (sync or async); it is called
    once when its session is removed or evicted.
    """

    async def update(self, update: Update) -> None: ...


HandlerFactory = Callable[[int], "Handler | Awaitable[Handler]"]


async def build_handler(factory: HandlerFactory, conversation_id: int) -> Handler:
    handler = factory(conversation_id)
    if inspect.isawaitable(handler):
        handler = await handler
    return handler


async def run_teardown(handler: Handler) -> bool:
    teardown = getattr(handler, "teardown", None)
    if not callable(teardown):
        return False
    result = teardown()
    if inspect.isawaitable(result):
        await result
    return True
