from __future__ import annotations

__version__ = "0.1.0"

from .dispatcher import (  # noqa: E402
    AlreadyRunningError,
    Diagnostic,
    DiagnosticKind,
    Dispatcher,
    DispatcherError,
    DispatcherState,
    ErrorAction,
    NotStartedError,
    SessionExistsError,
    serve,
)
from .handler import Handler, HandlerFactory  # noqa: E402
from .registry import Session, SessionRegistry  # noqa: E402
from .routing import conversation_id  # noqa: E402
from .sources import EventSource, MemorySource, PollingSource, WebhookSource  # noqa: E402
from .telegram import TelegramClient, Update, UpdateKind  # noqa: E402
from .timers import TimerNotFoundError, TimerService  # noqa: E402

__all__ = [
    "AlreadyRunningError",
    "Diagnostic",
    "DiagnosticKind",
    "Dispatcher",
    "DispatcherError",
    "DispatcherState",
    "ErrorAction",
    "EventSource",
    "Handler",
    "HandlerFactory",
    "MemorySource",
    "NotStartedError",
    "PollingSource",
    "Session",
    "SessionExistsError",
    "SessionRegistry",
    "TelegramClient",
    "TimerNotFoundError",
    "TimerService",
    "Update",
    "UpdateKind",
    "WebhookSource",
    "__version__",
    "conversation_id",
    "serve",
]
