from __future__ import annotations

from collections.abc import Callable

from .logging import get_logger
from .telegram.api_models import Update
from .telegram.client import BotClient

logger = get_logger(__name__)


class EchoBot:
    """Replies to every text message with the same text."""

    def __init__(self, bot: BotClient, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.echoed = 0

    @classmethod
    def factory(cls, bot: BotClient) -> Callable[[int], EchoBot]:
        def new_handler(chat_id: int) -> EchoBot:
            return cls(bot, chat_id)

        return new_handler

    async def update(self, update: Update) -> None:
        message = update.message or update.business_message
        if message is None or not message.text:
            return
        sent = await self.bot.send_message(
            chat_id=self.chat_id,
            text=message.text,
            reply_to_message_id=message.message_id,
        )
        if sent is None:
            logger.warning("echo.send_failed", chat_id=self.chat_id)
            return
        self.echoed += 1

    def teardown(self) -> None:
        logger.info("echo.teardown", chat_id=self.chat_id, echoed=self.echoed)
