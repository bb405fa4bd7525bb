from __future__ import annotations

import aiohttp
from typing import Dict

from .config import logger
from .errors import AuthError, TransientStreamError


# The service refuses requests that do not look like a browser
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

AUTH_FAILURE_STATUSES = (401, 403)


def build_headers() -> Dict[str, str]:
    return {
        "user-agent": USER_AGENT,
    }


def make_session() -> aiohttp.ClientSession:
    # No total timeout: the event stream stays open for hours
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=25)
    return aiohttp.ClientSession(
        timeout=timeout,
        headers=build_headers(),
        trust_env=True,
    )


def request_timeout() -> aiohttp.ClientTimeout:
    """Timeout for the short login / whoami calls."""
    return aiohttp.ClientTimeout(total=25)


async def raise_for_status(r: aiohttp.ClientResponse, url: str) -> None:
    """Classify a non-2xx response as an auth failure or a transient one."""
    if 200 <= r.status < 300:
        return
    txt = await r.text()
    if r.status in AUTH_FAILURE_STATUSES:
        logger.warning(f"Auth failure for {url}: {r.status}")
        raise AuthError(f"Auth failed ({r.status}). Body: {txt[:180]}", status=r.status)
    logger.error(f"HTTP error for {url}: {r.status}")
    raise TransientStreamError(f"HTTP {r.status} for {url} :: {txt[:300]}", status=r.status)


def mask_token(token: str) -> str:
    if not token:
        return "<empty>"
    return f"{token[:8]}...{token[-8:]}" if len(token) > 16 else "***"
