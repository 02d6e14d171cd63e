from __future__ import annotations

import hmac
from urllib.parse import urlsplit

import anyio
import msgspec
from aiohttp import web

from ..logging import get_logger
from ..settings import WebhookSettings
from ..telegram.api_models import Update, decode_update
from ..telegram.client import BotClient

logger = get_logger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def webhook_path(settings: WebhookSettings) -> str:
    if settings.path:
        path = settings.path
    else:
        path = urlsplit(settings.url).path or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    return path


class WebhookSource:
    """Event source fed by Telegram pushing updates to an aiohttp listener.

    Requires the asyncio backend. Pushed updates wait in a bounded buffer, so
    a slow dispatcher makes the HTTP response wait instead of growing memory.
    """

    def __init__(self, bot: BotClient, settings: WebhookSettings) -> None:
        self._bot = bot
        self._settings = settings
        self._path = webhook_path(settings)
        self._send, self._receive = anyio.create_memory_object_stream[Update](
            max_buffer_size=settings.max_buffer_size
        )
        self._runner: web.AppRunner | None = None
        self._registered = False

    @property
    def path(self) -> str:
        return self._path

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(self._path, self._handle)
        return app

    async def open(self) -> None:
        if not self._registered:
            ok = await self._bot.set_webhook(
                self._settings.url,
                secret_token=self._settings.secret_token,
                max_connections=self._settings.max_connections,
                allowed_updates=self._settings.allowed_updates,
                drop_pending_updates=self._settings.drop_pending,
            )
            if not ok:
                raise RuntimeError(f"could not set webhook {self._settings.url}")
            self._registered = True
        runner = web.AppRunner(self.make_app())
        await runner.setup()
        site = web.TCPSite(
            runner, self._settings.listen_host, self._settings.listen_port
        )
        try:
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info(
            "webhook.listening",
            host=self._settings.listen_host,
            port=self._settings.listen_port,
            path=self._path,
        )

    async def receive(self) -> Update:
        return await self._receive.receive()

    async def aclose(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info("webhook.closed", path=self._path)

    async def _handle(self, request: web.Request) -> web.Response:
        secret = self._settings.secret_token
        if secret is not None:
            supplied = request.headers.get(SECRET_HEADER, "")
            if not hmac.compare_digest(supplied.encode(), secret.encode()):
                logger.warning("webhook.bad_secret", remote=request.remote)
                return web.Response(status=403)
        body = await request.read()
        try:
            update = decode_update(body)
        except msgspec.DecodeError as exc:
            logger.warning("webhook.malformed_update", error=str(exc), size=len(body))
            return web.Response(status=400)
        await self._send.send(update)
        return web.Response(status=200)
