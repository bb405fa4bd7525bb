from __future__ import annotations

import asyncio
from typing import List

from telegram import Bot, BotCommand
from telegram.ext import Application, CommandHandler
from telegram.request import HTTPXRequest

from .auth import AuthClient
from .commands import STATE_KEY, start_cmd, status_cmd
from .config import Config, logger
from .events import EventRouter
from .http import make_session
from .lifecycle import CancelScope
from .notify import Notifier
from .reconnect import ReconnectController
from .state import ClientState
from .storage import TokenStore


async def run_stream_client(
    bot: Bot,
    state: ClientState,
    lifecycle: CancelScope,
    destinations: List[str] | None = None,
) -> None:
    """Wire store, auth, router and controller together and stream until shutdown."""
    store = TokenStore(Config.TOKEN_FILE)
    router = EventRouter(state, Notifier(bot), destinations if destinations is not None else Config.NOTICE_LIST)
    async with make_session() as http:
        controller = ReconnectController(
            http,
            AuthClient(http, Config.LOGIN_URL, Config.ME_URL),
            store,
            state,
            router,
            lifecycle,
            email=Config.EMAIL,
            password=Config.PASSWORD,
            stream_url=Config.GAMES_URL,
            idle_timeout=Config.stream_idle_timeout(),
        )
        await controller.run()


def main():
    try:
        Config.validate_config()
    except ValueError as e:
        raise SystemExit(f"❌ {e}. Check your .env file.")

    # Configure request with longer timeout to prevent startup failures
    request = HTTPXRequest(
        connection_pool_size=8,
        connect_timeout=30.0,
        read_timeout=30.0,
        write_timeout=30.0,
        pool_timeout=30.0,
    )

    app = Application.builder().token(Config.BOT_TOKEN).request(request).build()
    app.bot_data[STATE_KEY] = ClientState()

    commands = [
        BotCommand("start", "Show help"),
        BotCommand("status", "Show the current game status"),
    ]

    async def post_init(application: Application) -> None:
        try:
            await application.bot.set_my_commands(commands)
            logger.info("✅ Bot commands configured successfully")
        except Exception as e:
            logger.error(f"❌ Failed to set bot commands: {e}")

        lifecycle = CancelScope()
        application.bot_data["lifecycle"] = lifecycle
        application.bot_data["stream_task"] = asyncio.create_task(
            run_stream_client(application.bot, application.bot_data[STATE_KEY], lifecycle)
        )

    async def post_stop(application: Application) -> None:
        lifecycle: CancelScope | None = application.bot_data.get("lifecycle")
        task: asyncio.Task | None = application.bot_data.get("stream_task")
        if lifecycle is not None:
            lifecycle.cancel()
        if task is not None:
            try:
                await task
            except Exception as e:
                logger.error(f"Stream client ended with an error: {e}")

    app.post_init = post_init
    app.post_stop = post_stop

    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("status", status_cmd))

    app.run_polling(drop_pending_updates=True)
