"""Reconnection controller scenarios against a scripted local service."""

import asyncio
import random

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from closurebot import (
    AuthClient,
    BackoffPolicy,
    CancelScope,
    ClientState,
    ConnectionPhase,
    EventRouter,
    PersistenceError,
    ReconnectController,
    TokenStore,
    build_headers,
    render_status,
)

GAME_EVENT = b'event: game\ndata: [{"status":{"nick_name":"A","level":5,"text":"online"}}]\n\n'
LOG_EVENT = b'event: log\ndata: {"content":"hello"}\n\n'


class FakeService:
    """Login, whoami and an SSE endpoint whose responses follow ``script``.

    Script entries: ``"eof"`` closes before any data, ``"data-eof"`` sends one
    event then closes, an int answers with that HTTP status. Once the script
    is exhausted every connection sends the game and log events and stays open.
    """

    def __init__(self, script=(), valid_tokens=(), reject_login=False):
        self.script = list(script)
        self.valid_tokens = set(valid_tokens)
        self.reject_login = reject_login
        self.logins = 0
        self.stream_tokens = []
        self.release = asyncio.Event()

    async def login(self, request):
        self.logins += 1
        if self.reject_login:
            return web.json_response({"error": "bad credentials"}, status=401)
        token = f"token-{self.logins}"
        self.valid_tokens.add(token)
        return web.json_response({"code": 1, "data": {"token": token}, "message": "ok"})

    async def me(self, request):
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token in self.valid_tokens:
            return web.json_response({"nickname": "doctor"})
        return web.json_response({"error": "expired"}, status=401)

    async def games(self, request):
        self.stream_tokens.append(request.query.get("token"))
        step = self.script.pop(0) if self.script else "hold"
        if isinstance(step, int):
            return web.Response(status=step)
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        if step == "data-eof":
            await resp.write(GAME_EVENT)
        elif step == "hold":
            await resp.write(GAME_EVENT + LOG_EVENT)
            try:
                await asyncio.wait_for(self.release.wait(), timeout=10)
            except asyncio.TimeoutError:
                pass
        return resp

    def app(self):
        app = web.Application()
        app.router.add_post("/api/v1/login", self.login)
        app.router.add_get("/api/users/me", self.me)
        app.router.add_get("/sse/games", self.games)
        return app


class RecordingSleeper:
    """Records (attempt, seconds) for every backoff and returns immediately."""

    def __init__(self):
        self.controller = None
        self.calls = []

    async def __call__(self, seconds, scope):
        self.calls.append((self.controller.attempts, seconds))
        await asyncio.sleep(0)
        return not scope.cancelled


class ReadOnlyTokenStore(TokenStore):
    """Token file that can be read but never written."""

    def save(self, token):
        raise PersistenceError("read-only file system")


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def broadcast(self, destinations, message):
        self.calls.append((list(destinations), message))


async def wait_until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class Harness:
    def __init__(self, service, tmp_path, stored_token="", sleeper=None, store_cls=TokenStore):
        self.service = service
        if stored_token:
            (tmp_path / "token").write_text(stored_token, encoding="utf-8")
        self.store = store_cls(str(tmp_path / "token"))
        self.state = ClientState()
        self.notifier = RecordingNotifier()
        self.lifecycle = CancelScope()
        self.sleeper = sleeper
        self.server = TestServer(service.app())
        self.http = None
        self.controller = None
        self.task = None

    async def __aenter__(self):
        await self.server.start_server()
        self.http = aiohttp.ClientSession(headers=build_headers())
        router = EventRouter(self.state, self.notifier, ["telegram:1"])
        self.controller = ReconnectController(
            self.http,
            AuthClient(self.http, str(self.server.make_url("/api/v1/login")), str(self.server.make_url("/api/users/me"))),
            self.store,
            self.state,
            router,
            self.lifecycle,
            email="doctor@example.com",
            password="secret",
            stream_url=str(self.server.make_url("/sse/games")),
            sleeper=self.sleeper,
            rng=random.Random(7),
        )
        if isinstance(self.sleeper, RecordingSleeper):
            self.sleeper.controller = self.controller
        self.task = asyncio.create_task(self.controller.run())
        return self

    async def stop(self):
        self.lifecycle.cancel()
        await asyncio.wait_for(self.task, timeout=1)

    async def __aexit__(self, *exc_info):
        self.service.release.set()
        if not self.task.done():
            self.lifecycle.cancel()
            await asyncio.wait_for(self.task, timeout=1)
        await self.http.close()
        await self.server.close()


# Backoff policy

def test_backoff_deterministic_component():
    policy = BackoffPolicy()

    assert [policy.base_delay_ms(n) for n in range(0, 8)] == [
        1000, 2000, 4000, 8000, 16000, 30000, 30000, 30000,
    ]


def test_backoff_is_monotonic_and_capped():
    policy = BackoffPolicy()
    bases = [policy.base_delay_ms(n) for n in range(1, 50)]

    assert bases == sorted(bases)
    assert max(bases) == 30000


def test_backoff_jitter_range():
    policy = BackoffPolicy()
    rng = random.Random(1234)

    for attempt in range(1, 10):
        for _ in range(50):
            delay = policy.delay_ms(attempt, rng)
            base = min(30000, 1000 * 2 ** min(attempt, 5))
            assert base <= delay < base + 500


# Scenarios

@pytest.mark.asyncio
async def test_empty_token_file_logs_in_once_and_streams(tmp_path):
    service = FakeService()
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert h.store.load() == "token-1"
        assert service.stream_tokens == ["token-1"]
        assert h.sleeper.calls == []


@pytest.mark.asyncio
async def test_valid_stored_token_is_reused(tmp_path):
    service = FakeService(valid_tokens={"stored"})
    async with Harness(service, tmp_path, stored_token="stored", sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 0
        assert service.stream_tokens == ["stored"]


@pytest.mark.asyncio
async def test_expired_stored_token_is_replaced_at_startup(tmp_path):
    service = FakeService()
    async with Harness(service, tmp_path, stored_token="expired", sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert service.stream_tokens == ["token-1"]
        assert h.store.load() == "token-1"


@pytest.mark.asyncio
async def test_unauthorized_stream_refreshes_token_and_reconnects(tmp_path):
    service = FakeService(script=[401], valid_tokens={"stale"})
    async with Harness(service, tmp_path, stored_token="stale", sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert service.stream_tokens == ["stale", "token-1"]
        assert h.store.load() == "token-1"
        assert h.state.token == "token-1"
        assert h.controller.attempts == 0


@pytest.mark.asyncio
async def test_failed_refresh_backs_off_instead_of_spinning(tmp_path):
    service = FakeService(script=[403], valid_tokens={"stale"}, reject_login=True)
    async with Harness(service, tmp_path, stored_token="stale", sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert [attempt for attempt, _ in h.sleeper.calls] == [1]
        assert service.stream_tokens == ["stale", "stale"]


@pytest.mark.asyncio
async def test_unsaved_token_is_used_after_backoff(tmp_path):
    service = FakeService(script=[401], valid_tokens={"stale"})
    async with Harness(service, tmp_path, stored_token="stale", sleeper=RecordingSleeper(),
                       store_cls=ReadOnlyTokenStore) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert [attempt for attempt, _ in h.sleeper.calls] == [1]
        assert service.stream_tokens == ["stale", "token-1"]
        assert h.state.token == "token-1"
        assert h.store.load() == "stale"


@pytest.mark.asyncio
async def test_rejected_fresh_token_backs_off(tmp_path):
    service = FakeService(script=[401, 401], valid_tokens={"stale"})
    async with Harness(service, tmp_path, stored_token="stale", sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert [attempt for attempt, _ in h.sleeper.calls] == [2]
        assert service.stream_tokens == ["stale", "token-1", "token-1"]


@pytest.mark.asyncio
async def test_three_eofs_back_off_with_growing_attempts(tmp_path):
    service = FakeService(script=["eof", "eof", "eof"])
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert [attempt for attempt, _ in h.sleeper.calls] == [1, 2, 3]
        for (attempt, seconds), base in zip(h.sleeper.calls, [2.0, 4.0, 8.0]):
            assert base <= seconds < base + 0.5
        assert len(service.stream_tokens) == 4
        assert h.controller.attempts == 0


@pytest.mark.asyncio
async def test_successful_connection_resets_attempts(tmp_path):
    service = FakeService(script=["eof", "data-eof", "data-eof", 500])
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING and len(service.stream_tokens) == 5)

        assert [attempt for attempt, _ in h.sleeper.calls] == [1, 1, 1, 2]


@pytest.mark.asyncio
async def test_server_errors_are_retried(tmp_path):
    service = FakeService(script=[500, 502])
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert service.logins == 1
        assert [attempt for attempt, _ in h.sleeper.calls] == [1, 2]


@pytest.mark.asyncio
async def test_failed_initial_login_keeps_retrying(tmp_path):
    service = FakeService(reject_login=True)
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: service.logins >= 3)
        service.reject_login = False
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        assert [attempt for attempt, _ in h.sleeper.calls][:2] == [1, 2]
        assert h.state.token.startswith("token-")


@pytest.mark.asyncio
async def test_stream_events_reach_cache_and_notifier(tmp_path):
    service = FakeService()
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.notifier.calls)

        lines = render_status(h.state).split("\n")
        assert len(lines) == 3
        assert "A" in lines[0] and "5" in lines[1] and "online" in lines[2]
        assert h.notifier.calls == [(["telegram:1"], "hello")]


@pytest.mark.asyncio
async def test_shutdown_while_streaming_is_immediate(tmp_path):
    service = FakeService()
    async with Harness(service, tmp_path, sleeper=RecordingSleeper()) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.STREAMING)

        await h.stop()

        assert h.controller.phase is ConnectionPhase.STOPPED
        assert len(service.stream_tokens) == 1


@pytest.mark.asyncio
async def test_shutdown_while_backing_off_is_immediate(tmp_path):
    # Real sleeper: the first delay is at least two seconds
    service = FakeService(script=["eof"])
    async with Harness(service, tmp_path) as h:
        await wait_until(lambda: h.controller.phase is ConnectionPhase.BACKING_OFF)
        loop = asyncio.get_running_loop()
        started = loop.time()

        await h.stop()

        assert loop.time() - started < 0.5
        assert h.controller.phase is ConnectionPhase.STOPPED
        assert len(service.stream_tokens) == 1


@pytest.mark.asyncio
async def test_lifecycle_scope_cancels_children():
    parent = CancelScope()
    child = parent.child()
    sibling = parent.child()

    child.cancel()
    assert child.cancelled and not parent.cancelled and not sibling.cancelled

    parent.cancel()
    assert sibling.cancelled
    assert parent.child().cancelled


@pytest.mark.asyncio
async def test_lifecycle_scope_sleep_and_run():
    scope = CancelScope()
    assert await scope.sleep(0) is True

    async def finish():
        return "done"

    assert await scope.run(finish()) is True

    async def fail():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await scope.run(fail())

    asyncio.get_running_loop().call_later(0.05, scope.cancel)
    assert await asyncio.wait_for(scope.run(asyncio.sleep(30)), timeout=1) is False
    assert await scope.sleep(30) is False
