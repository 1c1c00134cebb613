from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

import pytest
import sentry_sdk
from httpx import ASGITransport, AsyncClient
from sentry_sdk.transport import Transport

from sentry_asgi.config import get_settings
from sentry_asgi.hub import Hub
from sentry_asgi.metrics import reset_metrics


TEST_DSN = "https://public@sentry.example.com/1"


class RecordingTransport(Transport):
    """Keeps envelopes in memory instead of sending them."""

    def __init__(self) -> None:
        super().__init__()
        self.envelopes: list[Any] = []
        self.flush_timeouts: list[float] = []

    def capture_envelope(self, envelope: Any) -> None:
        self.envelopes.append(envelope)

    def flush(self, timeout: float, callback: Any = None) -> None:
        _ = callback
        self.flush_timeouts.append(timeout)

    @property
    def events(self) -> list[dict]:
        events = [envelope.get_event() for envelope in self.envelopes]
        return [event for event in events if event is not None]


class FakeHub:
    """Stand-in for Hub that records what the middleware asks of it."""

    def __init__(self, event_id: str | None = "evt-1", flush_delay: float = 0.0, calls: list[str] | None = None) -> None:
        self.event_id = event_id
        self.flush_delay = flush_delay
        # Shared with clones so call order is visible from the default hub.
        self.calls: list[str] = calls if calls is not None else []
        self.clones: list[FakeHub] = []
        self.requests: list[dict] = []
        self.recovered: list[tuple[BaseException, Any]] = []
        self.flushes: list[float] = []

    def clone(self) -> FakeHub:
        child = FakeHub(self.event_id, self.flush_delay, self.calls)
        self.clones.append(child)
        return child

    def set_request(self, scope: dict) -> None:
        self.requests.append(scope)

    def recover(self, exc: BaseException, request: Any = None) -> str | None:
        self.calls.append("recover")
        self.recovered.append((exc, request))
        return self.event_id

    def flush(self, timeout: float) -> None:
        if self.flush_delay:
            time.sleep(self.flush_delay)
        self.calls.append("flush")
        self.flushes.append(timeout)


def make_scope(path: str = "/", method: str = "GET", **extra: Any) -> dict[str, Any]:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver")],
        "client": ("127.0.0.1", 51000),
        "server": ("testserver", 80),
    }
    scope.update(extra)
    return scope


async def call_asgi(app: Any, scope: dict[str, Any]) -> list[dict]:
    """Drive an ASGI app directly; works even when it never sends a response."""

    messages: list[dict] = []

    async def receive() -> dict:
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message: dict) -> None:
        messages.append(message)

    await app(scope, receive, send)
    return messages


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SENTRY_DSN",
        "SENTRY_REPANIC",
        "SENTRY_WAIT_FOR_DELIVERY",
        "SENTRY_TIMEOUT",
        "SENTRY_SEND_DEFAULT_PII",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_metrics()

    yield

    get_settings.cache_clear()
    reset_metrics()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def sentry_client(transport: RecordingTransport) -> sentry_sdk.Client:
    return sentry_sdk.Client(
        dsn=TEST_DSN,
        transport=transport,
        default_integrations=False,
        auto_enabling_integrations=False,
    )


@pytest.fixture
def hub(sentry_client: sentry_sdk.Client) -> Hub:
    return Hub(sentry_client)


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
async def api_client(hub: Hub) -> AsyncIterator[AsyncClient]:
    from sentry_asgi.example import create_app
    from sentry_asgi.handler import Handler

    app = create_app(Handler(hub=hub))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
