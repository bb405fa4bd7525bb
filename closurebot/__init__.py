"""Closure Studio stream bot package.

Modules:
- config: environment, logging and constants
- errors: failure taxonomy
- http: session and response helpers
- storage: persisted bearer token
- auth: login and token validation
- sse: incremental event-stream decoder
- events: routing of decoded events
- stream: a single streaming connection
- lifecycle: cancellation scopes
- reconnect: reconnection state machine and backoff
- state / formatting: cached game status and its rendering
- notify: channel notifications
- commands / app: telegram handlers and bootstrap
"""

from .config import Config, BOT_TOKEN, NOTICE_LIST
from .errors import (
    ClosureError,
    AuthError,
    TransientStreamError,
    StreamEndedError,
    DecodeError,
    PersistenceError,
    NoDataError,
)
from .http import make_session, build_headers, mask_token, USER_AGENT
from .storage import TokenStore
from .auth import AuthClient
from .sse import SSEDecoder, ServerSentEvent, aiter_events
from .state import ClientState, ConnectionPhase
from .formatting import fmt_status, render_status
from .notify import Notifier, parse_destination
from .events import EventRouter
from .lifecycle import CancelScope
from .stream import StreamSession, open_stream
from .reconnect import BackoffPolicy, ReconnectController
from .app import main, run_stream_client

__all__ = [
    # Config / HTTP
    "Config", "BOT_TOKEN", "NOTICE_LIST",
    "make_session", "build_headers", "mask_token", "USER_AGENT",
    # Errors
    "ClosureError", "AuthError", "TransientStreamError", "StreamEndedError",
    "DecodeError", "PersistenceError", "NoDataError",
    # Core
    "TokenStore", "AuthClient", "SSEDecoder", "ServerSentEvent", "aiter_events",
    "ClientState", "ConnectionPhase", "fmt_status", "render_status",
    "Notifier", "parse_destination", "EventRouter", "CancelScope",
    "StreamSession", "open_stream", "BackoffPolicy", "ReconnectController",
    # App
    "main", "run_stream_client",
]
