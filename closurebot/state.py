from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from .errors import NoDataError


class ConnectionPhase(Enum):
    """Reconnection controller phases"""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    BACKING_OFF = "backing_off"
    REFRESHING_TOKEN = "refreshing_token"
    STOPPED = "stopped"


class ClientState:
    """Active token plus the last game status seen on the stream.

    Values are replaced wholesale and never mutated in place, so a reader
    always sees either the previous or the new snapshot.
    """

    def __init__(self, token: str = "") -> None:
        self._token = token
        self._game_status: Optional[Any] = None

    @property
    def token(self) -> str:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def record_game_status(self, payload: Any) -> None:
        self._game_status = payload

    @property
    def game_status(self) -> Optional[Any]:
        return self._game_status

    def query_status(self) -> Any:
        snapshot = self._game_status
        if snapshot is None:
            raise NoDataError("No data yet")
        return snapshot
