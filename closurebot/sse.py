"""Incremental Server-Sent Events decoder.

Bytes go in as they arrive from the socket, complete events come out. The
decoder keeps partial lines, a pending ``\\r`` and partial UTF-8 sequences
between calls, so chunk boundaries can fall anywhere.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Callable, List, Optional

from .config import logger
from .errors import DecodeError


_EOL = re.compile(r"\r\n|\r|\n")
_BOM = "\ufeff"


@dataclass(frozen=True)
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: str = ""
    retry: Optional[int] = None


def _log_decode_error(error: DecodeError) -> None:
    logger.warning(f"SSE decode error: {error}")


class SSEDecoder:
    def __init__(self, on_error: Optional[Callable[[DecodeError], None]] = None) -> None:
        self._on_error = on_error or _log_decode_error
        self._chars = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._started = False
        self._event = ""
        self._data: List[str] = []
        self._last_id = ""
        self._retry: Optional[int] = None

    def feed(self, chunk: bytes) -> List[ServerSentEvent]:
        return self._feed_text(self._chars.decode(chunk), final=False)

    def flush(self) -> List[ServerSentEvent]:
        """Drain buffered bytes at end of stream and drop any unterminated record."""
        events = self._feed_text(self._chars.decode(b"", final=True), final=True)
        self._buffer = ""
        self._event = ""
        self._data = []
        return events

    def _feed_text(self, text: str, final: bool) -> List[ServerSentEvent]:
        if not self._started and text:
            self._started = True
            if text.startswith(_BOM):
                text = text[1:]
        self._buffer += text

        events: List[ServerSentEvent] = []
        pos = 0
        while True:
            match = _EOL.search(self._buffer, pos)
            if match is None:
                break
            # A trailing \r may be the first half of \r\n
            if match.group() == "\r" and match.end() == len(self._buffer) and not final:
                break
            event = self._process_line(self._buffer[pos:match.start()])
            if event is not None:
                events.append(event)
            pos = match.end()
        self._buffer = self._buffer[pos:]
        return events

    def _process_line(self, line: str) -> Optional[ServerSentEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self._last_id = value
        elif name == "retry":
            if value.isascii() and value.isdigit():
                self._retry = int(value)
            else:
                self._on_error(DecodeError(f"Invalid retry value: {value!r}"))
        else:
            self._on_error(DecodeError(f"Unknown field {name!r}"))
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data:
            self._event = ""
            return None
        event = ServerSentEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._last_id,
            retry=self._retry,
        )
        self._event = ""
        self._data = []
        return event


async def aiter_events(
    chunks: AsyncIterable[bytes],
    decoder: Optional[SSEDecoder] = None,
) -> AsyncIterator[ServerSentEvent]:
    decoder = decoder or SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
