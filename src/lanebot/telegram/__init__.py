"""Telegram Bot API wire types and HTTP client."""

from .api_models import Update, UpdateKind, convert_update, decode_update
from .client import BotClient, RetryAfter, TelegramClient, TelegramRetryAfter

__all__ = [
    "BotClient",
    "RetryAfter",
    "TelegramClient",
    "TelegramRetryAfter",
    "Update",
    "UpdateKind",
    "convert_update",
    "decode_update",
]
