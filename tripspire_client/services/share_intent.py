"""Share Intent Import — turns links shared into the app into queued imports.

Invariants:
    - The dedup key is the normalized URL (scheme/host lowercased, fragment
      and trailing slash dropped)
    - Each accepted share makes its own POST to the extract endpoint; the
      next share starts once that call has settled
    - A network failure while backgrounded keeps the share pending and
      retries it on return to the foreground
    - A started import invalidates the imports region; an extraction still
      processing is followed by status polling
    - Completion refreshes imports, recipes and cookbooks once per extraction
"""

import asyncio
import logging
import re
from typing import Callable
from urllib.parse import urlsplit, urlunsplit

from tripspire_client.core import endpoints
from tripspire_client.core.domain_types import ImportStatus, RegionKey
from tripspire_client.core.errors import ImportFailedError
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.app_state import AppStateMonitor
from tripspire_client.infrastructure.region_store import RegionStore
from tripspire_client.schemas.payloads import ExtractionProgress, ExtractRequest
from tripspire_client.services.import_status import (
    ExtractionStatusPoller,
    ImportOutcome,
    ProgressListener,
    is_background_network_failure,
    parse_extraction,
)
from tripspire_client.services.intent_queue import SequentialIntentQueue

logger = logging.getLogger(__name__)

_URL_IN_TEXT = re.compile(r"https?://[^\s]+")


def extract_shared_url(web_url: str | None = None, text: str | None = None) -> str | None:
    """Web URL first, else the first http(s) link in the shared text."""
    if web_url:
        return web_url.strip()
    if text:
        match = _URL_IN_TEXT.search(text)
        if match:
            return match.group(0)
    return None


def normalize_url(url: str) -> str:
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((
        parts.scheme.lower(), parts.netloc.lower(), path, parts.query, "",
    ))


def is_valid_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class ShareImportHandler:
    """Receives share intents and imports them one after another.

    The queue only serializes the extract calls; status polling for an
    extraction that is still processing runs in its own task so the next
    share can start.
    """

    def __init__(
        self,
        api: ResilientApiClient,
        store: RegionStore | None = None,
        *,
        app_state: AppStateMonitor | None = None,
        poller: ExtractionStatusPoller | None = None,
        on_progress: ProgressListener | None = None,
        on_outcome: Callable[[ImportOutcome], None] | None = None,
    ):
        self.api = api
        self.store = store
        self.app_state = app_state or AppStateMonitor()
        self.poller = poller or ExtractionStatusPoller(api, self.app_state)
        self._on_progress = on_progress
        self._on_outcome = on_outcome
        self._polls: dict[str, asyncio.Task] = {}
        self._completed: set[str] = set()
        self.queue: SequentialIntentQueue[str] = SequentialIntentQueue(
            self._import, name="ShareIntentHandler", telemetry=api.telemetry,
        )

    @property
    def polling_ids(self) -> list[str]:
        return list(self._polls)

    def handle_share(self, web_url: str | None = None, text: str | None = None) -> bool:
        """Queue the shared link. False when no valid link or a duplicate."""
        url = extract_shared_url(web_url, text)
        if url is None or not is_valid_url(url):
            logger.info("No importable link in share intent")
            return False
        return self.queue.enqueue(normalize_url(url), url)

    async def _import(self, url: str) -> None:
        progress = await self._extract(url)
        self._invalidate(endpoints.IMPORTS)
        self._notify(progress)
        if progress.status is ImportStatus.COMPLETED:
            self._complete(progress.extraction_id)
        elif progress.status is ImportStatus.PROCESSING:
            self._follow(progress.extraction_id)
        else:
            raise ImportFailedError()

    async def _extract(self, url: str) -> ExtractionProgress:
        """POST the link; a network failure in the background waits and retries."""
        while True:
            try:
                body = await self.api.post(
                    endpoints.EXTRACT_V1, ExtractRequest(url=url).model_dump(),
                )
                return parse_extraction(body)
            except Exception as e:
                if not is_background_network_failure(e, self.app_state):
                    raise
                logger.info(
                    "Extract interrupted by background, retrying on foreground",
                    extra={"url": url},
                )
                await self.app_state.wait_foreground()

    # ─── Status polling ─────────────────────────────────────────

    def _follow(self, extraction_id: str) -> None:
        if extraction_id in self._polls:
            return
        task = asyncio.create_task(self._poll(extraction_id))
        self._polls[extraction_id] = task
        task.add_done_callback(lambda _: self._polls.pop(extraction_id, None))

    async def _poll(self, extraction_id: str) -> None:
        outcome = await self.poller.poll(extraction_id, self._notify)
        self._invalidate(endpoints.IMPORTS)
        if outcome.ok:
            self._complete(extraction_id)
        if self._on_outcome is not None:
            self._on_outcome(outcome)

    def _complete(self, extraction_id: str) -> None:
        if extraction_id in self._completed:
            return
        self._completed.add(extraction_id)
        logger.info(f"Import {extraction_id} completed, refreshing catalog")
        for family in (endpoints.IMPORTS, endpoints.RECIPES, endpoints.COOKBOOKS):
            self._invalidate(family)

    def _invalidate(self, selector: RegionKey) -> None:
        if self.store is not None:
            self.store.invalidate(selector)

    def _notify(self, progress: ExtractionProgress) -> None:
        if self._on_progress is not None:
            self._on_progress(progress)

    # ─── Lifecycle ──────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for queued imports and every running status poll."""
        await self.queue.join()
        while self._polls:
            await asyncio.gather(*self._polls.values(), return_exceptions=True)

    async def close(self) -> None:
        await self.queue.close()
        polls = list(self._polls.values())
        for task in polls:
            task.cancel()
        await asyncio.gather(*polls, return_exceptions=True)
