from .base import EventSource
from .memory import MemorySource
from .polling import PollingSource
from .webhook import WebhookSource

__all__ = [
    "EventSource",
    "MemorySource",
    "PollingSource",
    "WebhookSource",
]
