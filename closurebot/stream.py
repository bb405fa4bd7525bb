from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional

import aiohttp

from .config import logger
from .errors import AuthError, StreamEndedError, TransientStreamError
from .events import EventRouter
from .http import raise_for_status
from .lifecycle import CancelScope
from .sse import SSEDecoder, aiter_events


STREAM_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}


async def open_stream(
    http: aiohttp.ClientSession,
    url: str,
    token: str,
    idle_timeout: Optional[float] = None,
) -> AsyncIterator[bytes]:
    """Yield raw body chunks of the event stream, in arrival order.

    The token travels as a query parameter; the service does not accept a
    bearer header on this endpoint.
    """
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=25, sock_read=idle_timeout)
    try:
        async with http.get(url, params={"token": token}, headers=STREAM_HEADERS, timeout=timeout) as r:
            await raise_for_status(r, url)
            async for chunk in r.content.iter_any():
                yield chunk
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransientStreamError(f"Stream connection error: {type(e).__name__}: {e}") from e


class StreamSession:
    """One HTTP streaming connection feeding a fresh decoder."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        url: str,
        token: str,
        router: EventRouter,
        on_connected: Optional[Callable[[], None]] = None,
        idle_timeout: Optional[float] = None,
    ) -> None:
        self.http = http
        self.url = url
        self.token = token
        self.router = router
        self.on_connected = on_connected
        self.idle_timeout = idle_timeout
        self.decoder = SSEDecoder()
        self.connected = False

    async def run(self, scope: CancelScope) -> None:
        """Stream until cancelled (returns) or the connection fails (raises)."""
        if not self.token:
            raise AuthError("No token available")
        if not await scope.run(self._consume()):
            logger.debug("Game event stream cancelled")

    async def _consume(self) -> None:
        chunks = self._watch_connected(open_stream(self.http, self.url, self.token, self.idle_timeout))
        async with aclosing(chunks), aclosing(aiter_events(chunks, self.decoder)) as events:
            async for event in events:
                await self.router.handle(event)
        raise StreamEndedError("stream ended")

    async def _watch_connected(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async with aclosing(chunks):
            async for chunk in chunks:
                if not self.connected:
                    self.connected = True
                    if self.on_connected:
                        self.on_connected()
                yield chunk
