"""Integration Tests: ShareImportHandler — shared links become sequential imports.

Invariants:
    - Only http(s) links are imported; text shares are scanned for one
    - Repeated shares of the same (normalized) link while pending import once
    - Each import POSTs {"url": ...} to /v1/extract and invalidates imports
    - An extraction still processing is polled to completion; completion
      refreshes recipes and cookbooks once per extraction
    - A network failure in the background keeps the share pending until foreground
"""

import asyncio
import json

import httpx
import pytest

from conftest import error_response, extraction_response, json_response, list_region

from tripspire_client.core import endpoints
from tripspire_client.core.domain_types import Connectivity, ImportStatus
from tripspire_client.infrastructure.app_state import AppStateMonitor
from tripspire_client.services.import_status import ExtractionStatusPoller
from tripspire_client.services.share_intent import (
    ShareImportHandler,
    extract_shared_url,
    is_valid_url,
    normalize_url,
)


async def _no_wait(seconds):
    return None


def _handler(api, store=None, app_state=None, **kwargs):
    app_state = app_state or AppStateMonitor()
    poller = ExtractionStatusPoller(api, app_state, sleep=_no_wait)
    return ShareImportHandler(api, store, app_state=app_state, poller=poller, **kwargs)


# -- URL helpers ---------------------------------------------------------------

def test_web_url_preferred_over_text():
    assert extract_shared_url(" https://a.test/x ", "see https://b.test") == "https://a.test/x"


def test_url_found_in_text():
    assert extract_shared_url(None, "Try this https://blog.test/pasta?id=3 tonight") == "https://blog.test/pasta?id=3"


def test_no_url():
    assert extract_shared_url(None, "no link here") is None
    assert extract_shared_url() is None


@pytest.mark.parametrize("raw,normalized", [
    ("HTTPS://Blog.Test/Pasta/", "https://blog.test/Pasta"),
    ("https://blog.test/pasta#comments", "https://blog.test/pasta"),
    ("https://blog.test/pasta?id=3", "https://blog.test/pasta?id=3"),
])
def test_normalize_url(raw, normalized):
    assert normalize_url(raw) == normalized


def test_is_valid_url():
    assert is_valid_url("https://blog.test/pasta")
    assert not is_valid_url("ftp://blog.test/pasta")
    assert not is_valid_url("https://")


# -- Handler -------------------------------------------------------------------

async def test_share_imports_and_invalidates(api, server, store):
    store.write(endpoints.IMPORTS, list_region(endpoints.IMPORTS, (["e1"], None)))
    store.write(endpoints.RECIPES, list_region(endpoints.RECIPES, (["r1"], None)))
    server.reply(extraction_response("e2", "completed", percentage=100))
    handler = _handler(api, store)

    assert handler.handle_share(web_url="https://blog.test/pasta")
    await handler.drain()

    request = server.requests[0]
    assert request.url.path == endpoints.EXTRACT_V1
    assert json.loads(request.read()) == {"url": "https://blog.test/pasta"}
    assert server.calls == 1
    assert store.get(endpoints.IMPORTS).stale
    assert store.get(endpoints.RECIPES).stale


async def test_duplicate_share_imports_once(api, server):
    release = asyncio.Event()

    async def gated(request):
        await release.wait()
        return extraction_response("e1", "completed")

    server.reply(gated)
    handler = _handler(api)

    assert handler.handle_share(web_url="https://blog.test/pasta")
    assert not handler.handle_share(text="look https://blog.test/pasta/")
    assert handler.handle_share(web_url="https://blog.test/soup")

    release.set()
    await handler.drain()
    assert [r.url.path for r in server.requests] == ["/v1/extract", "/v1/extract"]
    assert [json.loads(r.read())["url"] for r in server.requests] == [
        "https://blog.test/pasta", "https://blog.test/soup",
    ]


async def test_invalid_share_rejected(api, server):
    handler = _handler(api)
    assert not handler.handle_share(text="nothing to import")
    assert not handler.handle_share(web_url="mailto:chef@test")
    assert server.calls == 0


async def test_failed_import_does_not_block_next(api, server, telemetry):
    server.reply(
        error_response(403, "QUOTA_EXCEEDED", "All free imports used"),
        extraction_response("e2", "completed"),
    )
    handler = _handler(api)

    handler.handle_share(web_url="https://blog.test/one")
    handler.handle_share(web_url="https://blog.test/two")
    await handler.drain()

    assert server.calls == 2
    components = [context.component for _, context in telemetry.reports]
    assert components == ["API Client", "ShareIntentHandler"]


async def test_rejected_extraction_reported(api, server, telemetry):
    server.reply(json_response(200, {"success": False, "data": {"code": "BLOCKED", "message": "Unsupported"}}))
    handler = _handler(api)

    handler.handle_share(web_url="https://blog.test/one")
    await handler.drain()

    [(error, context)] = telemetry.reports
    assert context.component == "ShareIntentHandler"
    assert error.message == "Import failed"


# -- Status polling ------------------------------------------------------------

async def test_processing_import_polled_to_completion(api, server, store):
    store.write(endpoints.COOKBOOKS, list_region(endpoints.COOKBOOKS, (["c1"], None)))
    server.reply(
        extraction_response("e3", "processing", percentage=10),
        extraction_response("e3", "processing", percentage=60),
        extraction_response("e3", "completed", percentage=100),
    )
    progress, outcomes = [], []
    handler = _handler(api, store, on_progress=progress.append, on_outcome=outcomes.append)

    handler.handle_share(web_url="https://blog.test/pasta")
    await handler.drain()

    assert [r.url.path for r in server.requests] == [
        "/v1/extract", "/v1/extractions/e3/status", "/v1/extractions/e3/status",
    ]
    assert [p.percentage for p in progress] == [10, 60, 100]
    assert [o.status for o in outcomes] == [ImportStatus.COMPLETED]
    assert store.get(endpoints.COOKBOOKS).stale
    assert handler.polling_ids == []


async def test_queue_moves_on_while_polling(api, server):
    release = asyncio.Event()

    async def respond(request):
        if request.url.path == "/v1/extract":
            body = json.loads(request.read())
            return extraction_response(body["url"].rsplit("/", 1)[-1], "processing")
        await release.wait()
        return extraction_response(request.url.path.split("/")[3], "completed")

    server.reply(respond)
    handler = _handler(api)

    handler.handle_share(web_url="https://blog.test/one")
    handler.handle_share(web_url="https://blog.test/two")
    await handler.queue.join()

    assert sorted(handler.polling_ids) == ["one", "two"]
    release.set()
    await handler.drain()
    assert handler.polling_ids == []


async def test_completion_refreshes_catalog_once(api, server, store):
    server.reply(lambda request: extraction_response("e1", "completed"))
    handler = _handler(api, store)

    handler.handle_share(web_url="https://blog.test/one")
    await handler.drain()
    store.write(endpoints.RECIPES, list_region(endpoints.RECIPES, (["r1"], None)))

    handler.handle_share(web_url="https://blog.test/one-again")
    await handler.drain()

    assert server.calls == 2
    assert not store.get(endpoints.RECIPES).stale


async def test_background_network_failure_retried_on_foreground(aware_api, server, app_state, telemetry):
    def drop_in_background(request):
        app_state.update(Connectivity.BACKGROUND)
        raise httpx.ConnectError("offline")

    server.reply(drop_in_background, extraction_response("e1", "completed"))
    handler = _handler(aware_api, app_state=app_state)

    handler.handle_share(web_url="https://blog.test/pasta")
    for _ in range(50):
        if server.calls == 1:
            break
        await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert handler.queue.processing_key == "https://blog.test/pasta"

    app_state.update(Connectivity.FOREGROUND)
    await asyncio.wait_for(handler.drain(), timeout=1)

    assert server.calls == 2
    assert "ShareIntentHandler" not in [context.component for _, context in telemetry.reports]


async def test_close_cancels_polls(api, server):
    async def never(request):
        if request.url.path == "/v1/extract":
            return extraction_response("e1", "processing")
        await asyncio.sleep(10)
        return extraction_response("e1", "completed")

    server.reply(never)
    handler = _handler(api)
    handler.handle_share(web_url="https://blog.test/pasta")
    await handler.queue.join()
    assert handler.polling_ids == ["e1"]

    await handler.close()
    await asyncio.sleep(0)
    assert handler.polling_ids == []
