from __future__ import annotations

import json
from typing import Any, List

from .config import logger
from .errors import DecodeError
from .notify import Notifier
from .sse import ServerSentEvent
from .state import ClientState


def _decode_json(event: ServerSentEvent) -> Any:
    try:
        return json.loads(event.data)
    except ValueError as e:
        raise DecodeError(f"Invalid JSON in {event.event!r} event: {e}") from e


class EventRouter:
    """Routes decoded stream events: ``game`` updates the cache, ``log`` is broadcast."""

    def __init__(self, state: ClientState, notifier: Notifier, destinations: List[str]) -> None:
        self.state = state
        self.notifier = notifier
        self.destinations = list(destinations)

    async def handle(self, event: ServerSentEvent) -> None:
        logger.debug(f"Stream event: {event}")
        try:
            if event.event == "game":
                self._handle_game(event)
            elif event.event == "log":
                await self._handle_log(event)
            else:
                logger.debug(f"Ignoring {event.event!r} event")
        except DecodeError as e:
            logger.error(f"Dropped {event.event!r} event: {e}")

    def _handle_game(self, event: ServerSentEvent) -> None:
        self.state.record_game_status(_decode_json(event))

    async def _handle_log(self, event: ServerSentEvent) -> None:
        payload = _decode_json(event)
        if not isinstance(payload, dict):
            raise DecodeError(f"Expected an object in 'log' event, got {type(payload).__name__}")
        content = payload.get("content")
        if not content:
            return
        await self.notifier.broadcast(self.destinations, str(content))
