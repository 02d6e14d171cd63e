from __future__ import annotations

from functools import partial
from pathlib import Path

import anyio
import typer

from . import __version__
from .config import ConfigError, load_settings
from .dispatcher import serve
from .echo import EchoBot
from .logging import get_logger, setup_logging
from .settings import LanebotSettings
from .sources import EventSource, PollingSource, WebhookSource
from .telegram.client import BotClient, TelegramClient

logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def build_source(settings: LanebotSettings, bot: BotClient) -> EventSource:
    if settings.transport == "webhook":
        if settings.webhook is None:
            raise ConfigError("transport 'webhook' requires a [webhook] table")
        return WebhookSource(bot, settings.webhook)
    return PollingSource(bot, settings.polling)


async def run_echo(settings: LanebotSettings, *, bot: BotClient | None = None) -> None:
    client = bot or TelegramClient(settings.bot_token)
    try:
        me = await client.get_me()
        if me is None:
            logger.warning("lanebot.get_me_failed")
        else:
            logger.info("lanebot.bot", username=me.get("username"), bot_id=me.get("id"))
        source = build_source(settings, client)
        await serve(source, EchoBot.factory(client), settings=settings.dispatcher)
    finally:
        await client.close()


def run(
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Path to lanebot.toml (defaults to ./.lanebot or ~/.lanebot).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log every update and Telegram request.",
    ),
) -> None:
    """Run the echo bot until interrupted."""
    setup_logging(debug=debug)
    try:
        settings, config_path = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    logger.info(
        "lanebot.starting",
        config_path=str(config_path) if config_path else None,
        transport=settings.transport,
    )
    try:
        anyio.run(partial(run_echo, settings))
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
        raise typer.Exit(code=130) from None


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Per-conversation update dispatcher for Telegram bots."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Per-conversation update dispatcher for Telegram bots.",
    )
    app.callback()(app_main)
    app.command(name="run")(run)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
