import anyio
import pytest

from lanebot.dispatcher import Dispatcher
from lanebot.echo import EchoBot
from lanebot.sources import MemorySource
from lanebot.telegram.api_models import Update
from tests.fakes import FakeBot, chat_boost_update, message_update, wait_until


@pytest.mark.anyio
async def test_echo_replies_in_each_chat(fake_bot: FakeBot) -> None:
    source = MemorySource()
    async with anyio.create_task_group() as tg:
        dispatcher = Dispatcher(source, task_group=tg)
        await dispatcher.start(EchoBot.factory(fake_bot))
        await source.push(message_update(1, 10, text="one"))
        await source.push(chat_boost_update(2, 10))
        await source.push(message_update(3, 20, text="two"))
        await source.push(message_update(4, 10, text="three"))
        await wait_until(lambda: len(fake_bot.sent) == 3)
        await dispatcher.stop()

    by_chat = {}
    for sent in fake_bot.sent:
        by_chat.setdefault(sent["chat_id"], []).append(sent["text"])
    assert by_chat == {10: ["one", "three"], 20: ["two"]}
    assert fake_bot.sent[0]["reply_to_message_id"] == 1


@pytest.mark.anyio
async def test_echo_ignores_messages_without_text(fake_bot: FakeBot) -> None:
    bot = EchoBot(fake_bot, 5)
    await bot.update(Update(update_id=1))
    await bot.update(message_update(2, 5, text=""))
    assert fake_bot.sent == []
    assert bot.echoed == 0
    bot.teardown()
