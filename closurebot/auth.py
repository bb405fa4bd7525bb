from __future__ import annotations

from typing import Any, Dict

import aiohttp

from .config import Config, logger
from .errors import AuthError
from .http import request_timeout


def extract_login_token(body: Any) -> str:
    """Passport wraps the token as ``{"data": {"token": ...}}``; a bare ``{"token": ...}`` is accepted too."""
    if not isinstance(body, dict):
        return ""
    inner = body.get("data")
    token = inner.get("token") if isinstance(inner, dict) else None
    if token is None:
        token = body.get("token")
    return token if isinstance(token, str) else ""


class AuthClient:
    """Login and token validation against the Closure Studio passport/registry."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        login_url: str = Config.LOGIN_URL,
        me_url: str = Config.ME_URL,
    ) -> None:
        self.session = session
        self.login_url = login_url
        self.me_url = me_url

    async def login(self, email: str, password: str) -> str:
        logger.debug(f"Login request: {self.login_url}")
        async with self.session.post(
            self.login_url,
            json={"email": email, "password": password},
            timeout=request_timeout(),
        ) as r:
            if not 200 <= r.status < 300:
                txt = await r.text()
                logger.warning(f"Login rejected: {r.status}")
                raise AuthError(f"Login failed ({r.status}). Body: {txt[:180]}", status=r.status)
            data = await r.json(content_type=None)

        token = extract_login_token(data)
        if not token:
            raise AuthError("Login response did not contain a token")
        return token

    async def who_am_i(self, token: str) -> Dict[str, Any]:
        logger.debug(f"Identity check: {self.me_url}")
        async with self.session.get(
            self.me_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=request_timeout(),
        ) as r:
            if not 200 <= r.status < 300:
                logger.warning(f"Identity check rejected: {r.status}")
                raise AuthError(f"Token rejected ({r.status})", status=r.status)
            try:
                data = await r.json(content_type=None)
            except ValueError:
                return {}
        return data if isinstance(data, dict) else {}
