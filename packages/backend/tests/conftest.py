"""Test fixtures — an in-memory backend and change feed.

Learn: Nothing here talks to a real backend or Redis:

1. FakeBackend is an httpx.MockTransport handler that answers the REST,
   RPC and auth endpoints from plain dicts the test fills in. It records
   every request and can hold a path behind an asyncio.Event ("gate") so
   tests can interleave scope changes with in-flight queries.
   scripted_counts queues (event, count) pairs per path: each HEAD count
   takes the next pair and waits for its own event, so overlapping
   recounts can be finished in any order.
2. FakeChangeFeed implements the ChangeFeed interface in memory. Like
   RedisChangeFeed it tracks registrations per handle, so two counters on
   the same channel name coexist. emit() delivers a change to every live
   registration whose filter matches.
3. The `client` fixture drives the FastAPI app through ASGITransport with
   app.state.backend pointing at the fake.
"""

import asyncio
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio

from eduverse.backend.client import BackendClient
from eduverse.main import app
from eduverse.realtime.feed import ChangeFeed, ChangeFilter, ChangeHandler, FeedHandle

USER_ID = "00000000-0000-0000-0000-00000000a001"
SCHOOL_ID = "00000000-0000-0000-0000-00000000b001"
OTHER_SCHOOL_ID = "00000000-0000-0000-0000-00000000b002"
TOKEN = "user-access-token"


class FakeBackend:
    """Answers /rest/v1, /rest/v1/rpc and /auth/v1/user from dicts."""

    def __init__(self):
        self.user: Optional[dict[str, Any]] = {"id": USER_ID, "email": "teacher@example.com"}
        self.counts: dict[str, int] = {}
        self.rows: dict[str, Any] = {}
        self.rpcs: dict[str, Any] = {}
        self.failures: dict[str, tuple[int, Any]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.scripted_counts: dict[str, list[tuple[asyncio.Event, int]]] = {}
        self.requests: list[httpx.Request] = []

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()

        if path in self.failures:
            status, body = self.failures[path]
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        if path == "/auth/v1/user":
            if self.user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=self.user)

        if path.startswith("/rest/v1/rpc/"):
            name = path.rsplit("/", 1)[1]
            return httpx.Response(200, json=self.rpcs.get(name))

        if path == "/rest/v1/":
            return httpx.Response(200, json={})

        if path.startswith("/rest/v1/"):
            table = path[len("/rest/v1/"):]
            if request.method == "HEAD":
                script = self.scripted_counts.get(path)
                if script:
                    release, count = script.pop(0)
                    await release.wait()
                else:
                    count = self.counts.get(table, 0)
                return httpx.Response(200, headers={"content-range": f"*/{count}"})
            rows = self.rows.get(table, [])
            headers = {}
            if "count=" in request.headers.get("prefer", ""):
                headers["content-range"] = f"0-{max(len(rows) - 1, 0)}/{len(rows)}"
            return httpx.Response(200, json=rows, headers=headers)

        return httpx.Response(404, json={"message": "not found"})


class FakeChangeFeed(ChangeFeed):
    """In-memory ChangeFeed that records registrations."""

    def __init__(self):
        self.live: list[tuple[FeedHandle, ChangeHandler]] = []
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.fail_with: Optional[Exception] = None
        self.closed = False

    @property
    def live_channels(self) -> list[str]:
        return [handle.channel_name for handle, _ in self.live]

    async def subscribe(self, channel_name: str, change_filter: ChangeFilter, handler: ChangeHandler) -> FeedHandle:
        if self.fail_with is not None:
            raise self.fail_with
        handle = FeedHandle(channel_name=channel_name, change_filter=change_filter)
        self.live.append((handle, handler))
        self.subscribed.append(channel_name)
        return handle

    async def unsubscribe(self, handle: FeedHandle) -> None:
        if handle.released:
            return
        handle.released = True
        self.live = [entry for entry in self.live if entry[0] is not handle]
        self.unsubscribed.append(handle.channel_name)

    async def close(self) -> None:
        for handle, _ in list(self.live):
            await self.unsubscribe(handle)
        self.closed = True

    def emit(self, table: str, change_type: str = "INSERT", record: Optional[dict] = None,
             old_record: Optional[dict] = None, schema: str = "public") -> int:
        """Deliver one change; returns how many handlers received it."""
        payload = {
            "schema": schema,
            "table": table,
            "type": change_type,
            "record": record or {},
            "old_record": old_record or {},
        }
        delivered = 0
        for handle, handler in list(self.live):
            if not handle.released and handle.change_filter.matches(payload):
                handler(payload)
                delivered += 1
        return delivered


def make_backend(fake: FakeBackend, feed: ChangeFeed) -> BackendClient:
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(fake),
        base_url="http://backend.test",
    )
    return BackendClient(http=http, feed=feed, anon_key="anon-key")


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks (recounts, listeners) run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def fake_backend():
    return FakeBackend()


@pytest.fixture()
def feed():
    return FakeChangeFeed()


@pytest_asyncio.fixture()
async def backend(fake_backend, feed):
    """Process-level client (anon key)."""
    client = make_backend(fake_backend, feed)
    yield client
    await client.aclose()


@pytest.fixture()
def user_backend(backend):
    """The same client acting as the signed-in test user."""
    return backend.with_token(TOKEN)


@pytest_asyncio.fixture()
async def client(backend):
    """HTTP client for the app with the fake backend on app.state.

    Learn: ASGITransport does not run the lifespan, so app.state is set by
    hand. app.state.redis stays None, which disables rate limiting.
    """
    app.state.backend = backend
    app.state.redis = None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.backend
    app.state.redis = None


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {TOKEN}"}
