"""Root conftest — shared fakes and fixtures.

Invariants:
    - No test reaches the network: every ResilientApiClient is backed by
      httpx.MockTransport driven by a ScriptedServer
    - Retry delays are zero unless a test builds its own RetryPolicy
    - RegionStore runs on a FakeClock; regions are written with fetched_at=NOW

Design Decisions:
    - Fakes are plain classes with recording lists (no mock library), so
      assertions read as data
    - on_session_ended is wired to the session store's one-shot signal,
      the same way the app shell wires it
"""

import os

import httpx
import pytest

from tripspire_client.config import Settings
from tripspire_client.core.cache_region import CacheRegion, Page
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.app_state import AppStateMonitor
from tripspire_client.infrastructure.region_store import RegionStore
from tripspire_client.infrastructure.session_store import InMemorySessionStore
from tripspire_client.services.mutation_coordinator import MutationCoordinator

# Ensure tests never pick up a real deployment
os.environ.setdefault("TRIPSPIRE_API_BASE_URL", "https://api.test")

BASE_URL = "https://api.test"
NOW = 1_000.0


class RecordingTelemetry:
    """TelemetrySink that keeps every report."""

    def __init__(self):
        self.reports = []

    def report_failure(self, error, context):
        self.reports.append((error, context))


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedServer:
    """MockTransport handler replaying queued responses in order.

    Each queued item is an httpx.Response, an exception to raise, or a
    callable (sync or async) receiving the request. The last item repeats
    once the script is exhausted.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._script: list = []

    def reply(self, *items) -> "ScriptedServer":
        self._script.extend(items)
        return self

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._script:
            return httpx.Response(204)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            result = item(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


def json_response(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body)


def error_response(status: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message, "error_code": code})


def extraction_response(extraction_id: str, status: str = "processing", **fields) -> httpx.Response:
    """Extract/status reply in the {success, data} envelope."""
    data = {
        "extractionId": extraction_id, "status": status, "percentage": 0,
        "title": "Shared trip", "platform": "web", **fields,
    }
    return httpx.Response(200, json={"success": True, "data": data})


def list_region(key, *pages) -> CacheRegion:
    """Region from ([ids], cursor) pairs; entities are {"id": ..., "name": ...}."""
    return CacheRegion(
        key=key,
        pages=tuple(
            Page(
                items=tuple({"id": i, "name": f"item {i}"} for i in ids),
                next_cursor=cursor,
            )
            for ids, cursor in pages
        ),
        fetched_at=NOW,
    )


# -- Fixtures ------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        api_base_url=BASE_URL,
        request_max_retries=3,
        retry_base_delay_ms=0,
        cache_ttl_seconds=300,
        cache_max_regions=200,
    )


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def session():
    return InMemorySessionStore("token-abc")


@pytest.fixture
def session_ended(session):
    """Messages delivered to the UI's session-ended prompt."""
    messages = []
    session.signal.subscribe(messages.append)
    return messages


@pytest.fixture
def server():
    return ScriptedServer()


@pytest.fixture
async def http(server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    yield client
    await client.aclose()


@pytest.fixture
def api(session, http, telemetry, settings):
    return ResilientApiClient(
        session,
        http=http,
        telemetry=telemetry,
        on_session_ended=session.signal.fire,
        settings=settings,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(settings, clock):
    return RegionStore(settings, clock=clock)


@pytest.fixture
def coordinator(store, api, telemetry):
    return MutationCoordinator(store, api, telemetry)


@pytest.fixture
def app_state():
    return AppStateMonitor()


@pytest.fixture
def aware_api(session, http, telemetry, settings, app_state):
    """API client whose NETWORK retries follow the app_state fixture."""
    return ResilientApiClient(
        session,
        http=http,
        telemetry=telemetry,
        on_session_ended=session.signal.fire,
        connectivity=app_state.current,
        settings=settings,
    )
