from __future__ import annotations

from typing import Any, Dict

from .errors import NoDataError
from .state import ClientState

NO_DATA_MSG = "No data yet"


def extract_status(snapshot: Any) -> Dict[str, Any]:
    """Pull the status record out of a game payload.

    The stream sends a list of games; the first one carries the account status.
    """
    game = snapshot[0] if isinstance(snapshot, list) and snapshot else snapshot
    if not isinstance(game, dict):
        return {}
    status = game.get("status")
    return status if isinstance(status, dict) else {}


def fmt_status(snapshot: Any) -> str:
    status = extract_status(snapshot)
    return "\n".join([
        f"Username: {status.get('nick_name', '—')}",
        f"Level: {status.get('level', '—')}",
        f"Status: {status.get('text', '—')}",
    ])


def render_status(state: ClientState) -> str:
    try:
        return fmt_status(state.query_status())
    except NoDataError:
        return NO_DATA_MSG
