from __future__ import annotations

from telegram import Update
from telegram.ext import ContextTypes

from .formatting import render_status
from .state import ClientState


STATE_KEY = "state"


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(
        "🤖 <b>Closure Studio Bot</b>\n\n"
        "/status - Show the current game status\n\n"
        "Game log messages are forwarded to the configured channels.",
        parse_mode="HTML",
    )


async def status_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    state: ClientState = context.bot_data[STATE_KEY]
    await update.message.reply_text(render_status(state))
