from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp

from .auth import AuthClient
from .config import Config, logger
from .errors import AuthError, PersistenceError, TransientStreamError
from .events import EventRouter
from .http import mask_token
from .lifecycle import CancelScope
from .state import ClientState, ConnectionPhase
from .storage import TokenStore
from .stream import StreamSession


# Fixed reconnect policy
BASE_DELAY_MS = 1_000
MAX_DELAY_MS = 30_000
MAX_EXPONENT = 5
JITTER_MS = 500

Sleeper = Callable[[float, CancelScope], Awaitable[bool]]


async def cancellable_sleep(seconds: float, scope: CancelScope) -> bool:
    return await scope.sleep(seconds)


@dataclass(frozen=True)
class BackoffPolicy:
    base_ms: int = BASE_DELAY_MS
    max_ms: int = MAX_DELAY_MS
    max_exponent: int = MAX_EXPONENT
    jitter_ms: int = JITTER_MS

    def base_delay_ms(self, attempt: int) -> int:
        return min(self.max_ms, self.base_ms * 2 ** min(attempt, self.max_exponent))

    def delay_ms(self, attempt: int, rng: Optional[random.Random] = None) -> int:
        jitter = (rng or random).randrange(self.jitter_ms) if self.jitter_ms > 0 else 0
        return self.base_delay_ms(attempt) + jitter


class ReconnectController:
    """Keeps one game event stream alive until the lifecycle scope is cancelled.

    Transient failures back off exponentially; auth failures trigger a token
    refresh first. The controller never gives up on its own.
    """

    def __init__(
        self,
        http: aiohttp.ClientSession,
        auth: AuthClient,
        store: TokenStore,
        state: ClientState,
        router: EventRouter,
        lifecycle: CancelScope,
        *,
        email: str,
        password: str,
        stream_url: str = Config.GAMES_URL,
        idle_timeout: Optional[float] = None,
        policy: Optional[BackoffPolicy] = None,
        sleeper: Optional[Sleeper] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.http = http
        self.auth = auth
        self.store = store
        self.state = state
        self.router = router
        self.lifecycle = lifecycle
        self.email = email
        self.password = password
        self.stream_url = stream_url
        self.idle_timeout = idle_timeout
        self.policy = policy or BackoffPolicy()
        self._sleep = sleeper or cancellable_sleep
        self._rng = rng
        self.phase = ConnectionPhase.IDLE
        self.attempts = 0
        # Set after a refresh; cleared once data flows or a backoff has elapsed
        self._refreshed = False

    def _set_phase(self, phase: ConnectionPhase) -> None:
        if phase != self.phase:
            logger.debug(f"Stream phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    def _on_connected(self) -> None:
        self.attempts = 0
        self._refreshed = False
        self._set_phase(ConnectionPhase.STREAMING)
        logger.info("Game event stream connected")

    async def run(self) -> None:
        # Whatever is in flight (login, backoff, stream read) ends with the lifecycle
        try:
            await self.lifecycle.run(self._run())
        finally:
            self._set_phase(ConnectionPhase.STOPPED)
            logger.info("Game event stream stopped")

    async def _run(self) -> None:
        if not await self._acquire_initial_token():
            return
        await self._stream_forever()

    async def _acquire_initial_token(self) -> bool:
        try:
            token = self.store.load()
        except PersistenceError as e:
            logger.error(f"Could not load stored token: {e}")
            token = ""

        if token:
            try:
                me = await self.auth.who_am_i(token)
                name = me.get("nickname") or me.get("email") or "unknown"
                logger.info(f"✅ Stored token is valid (user: {name})")
            except AuthError:
                logger.warning("Token expired")
                token = ""
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Could not verify stored token, using it anyway: {e}")
        self.state.set_token(token)

        while not self.state.token:
            if self.lifecycle.cancelled:
                return False
            if await self._refresh_token():
                break
            self.attempts += 1
            if not await self._backoff():
                return False
        return not self.lifecycle.cancelled

    async def _stream_forever(self) -> None:
        while not self.lifecycle.cancelled:
            self._set_phase(ConnectionPhase.CONNECTING)
            try:
                await self._stream_once()
                # Only returns when the lifecycle scope was cancelled
                break
            except AuthError as e:
                if self.lifecycle.cancelled:
                    break
                self.attempts += 1
                if not self._refreshed:
                    logger.warning(f"Game event stream auth failed ({e}), refreshing token...")
                    if await self._refresh_token():
                        self._refreshed = True
                        continue
                else:
                    logger.warning(f"Fresh token rejected by the stream ({e})")
            except TransientStreamError as e:
                if self.lifecycle.cancelled:
                    break
                self.attempts += 1
                logger.warning(f"Game event stream interrupted: {e}")
            except Exception as e:
                if self.lifecycle.cancelled:
                    break
                self.attempts += 1
                logger.exception(f"Unexpected game event stream failure: {e}")

            if not await self._backoff():
                break
            self._refreshed = False

    async def _stream_once(self) -> None:
        session = StreamSession(
            self.http,
            self.stream_url,
            self.state.token,
            self.router,
            on_connected=self._on_connected,
            idle_timeout=self.idle_timeout,
        )
        with self.lifecycle.child() as scope:
            await session.run(scope)

    async def _refresh_token(self) -> bool:
        self._set_phase(ConnectionPhase.REFRESHING_TOKEN)
        try:
            token = await self.auth.login(self.email, self.password)
        except (AuthError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Token refresh failed: {e}")
            return False

        try:
            self.store.save(token)
        except PersistenceError as e:
            # Keep the fresh token in memory; the next attempt can still use it
            self.state.set_token(token)
            logger.error(f"Token refreshed but not persisted: {e}")
            return False

        self.state.set_token(token)
        logger.info(f"Token updated ({mask_token(token)})")
        return True

    async def _backoff(self) -> bool:
        """Wait out the backoff delay. Returns False if the lifecycle ended meanwhile."""
        self._set_phase(ConnectionPhase.BACKING_OFF)
        delay = self.policy.delay_ms(self.attempts, self._rng)
        logger.info(f"Reconnect in {delay}ms (attempt {self.attempts})")
        return await self._sleep(delay / 1000, self.lifecycle)
