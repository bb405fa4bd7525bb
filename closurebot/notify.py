from __future__ import annotations

from typing import Iterable, Optional, Tuple, Union

from telegram import Bot
from telegram.error import TelegramError

from .config import logger


def parse_destination(destination: str) -> Optional[Tuple[str, str]]:
    """Split ``platform:channelId``; returns None for malformed entries."""
    platform, sep, channel_id = destination.strip().partition(":")
    if not sep or not platform or not channel_id:
        return None
    return platform.lower(), channel_id


def _telegram_chat_id(channel_id: str) -> Union[int, str]:
    try:
        return int(channel_id)
    except ValueError:
        return channel_id


class Notifier:
    """Pushes plain-text messages to the configured channels."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def broadcast(self, destinations: Iterable[str], message: str) -> int:
        delivered = 0
        for destination in destinations:
            parsed = parse_destination(destination)
            if parsed is None:
                logger.warning(f"Skipping malformed destination {destination!r}")
                continue
            platform, channel_id = parsed
            if platform != "telegram":
                logger.warning(f"Unsupported platform {platform!r} for destination {destination!r}")
                continue
            try:
                await self.bot.send_message(chat_id=_telegram_chat_id(channel_id), text=message)
                delivered += 1
            except TelegramError as e:
                logger.error(f"Failed to deliver notice to {destination}: {e}")
        logger.debug(f"Notice delivered to {delivered} destination(s)")
        return delivered
