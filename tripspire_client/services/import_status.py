"""Import Status Polling — follows an extraction until it completes, fails or times out.

Invariants:
    - The first status request is made at once; later ones every
      import_poll_interval_seconds, and only while the app is in the foreground
    - Returning to the foreground fetches the status immediately
    - Polling stops on COMPLETED or FAILED, or once import_poll_max_seconds
      have elapsed ("Import process timed out")
    - A network failure while backgrounded is not an import failure: polling
      waits for the foreground and resumes
    - Any other failure ends polling as FAILED ("Import failed") and is reported
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from tripspire_client.config import Settings
from tripspire_client.core import endpoints
from tripspire_client.core.boundary_protocols import FailureContext
from tripspire_client.core.domain_types import ErrorKind, ImportStatus
from tripspire_client.core.error_classifier import classify
from tripspire_client.core.errors import ImportFailedError, ImportTimedOutError
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.app_state import AppStateMonitor
from tripspire_client.infrastructure.observability import report_safely, should_ignore
from tripspire_client.schemas.payloads import ExtractionEnvelope, ExtractionProgress

logger = logging.getLogger(__name__)

TELEMETRY_COMPONENT = "ImportExtract"
IMPORT_FAILED = "Import failed"

ProgressListener = Callable[[ExtractionProgress], None]


def parse_extraction(body: Any) -> ExtractionProgress:
    """Read a {success, data} extraction body; raises ImportFailedError."""
    try:
        envelope = ExtractionEnvelope.model_validate(body)
        if not envelope.success or envelope.data is None:
            raise ImportFailedError()
        return ExtractionProgress.model_validate(envelope.data)
    except ValidationError as e:
        raise ImportFailedError(
            "Invalid response format: expected extraction data",
        ) from e


def is_background_network_failure(error: BaseException, app_state: AppStateMonitor) -> bool:
    return classify(error) is ErrorKind.NETWORK and not app_state.is_foreground


@dataclass(frozen=True)
class ImportOutcome:
    extraction_id: str
    status: ImportStatus
    progress: ExtractionProgress | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ImportStatus.COMPLETED


class ExtractionStatusPoller:
    """Polls /v1/extractions/{id}/status with app-state awareness."""

    def __init__(
        self,
        api: ResilientApiClient,
        app_state: AppStateMonitor,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or api.settings
        self.api = api
        self.app_state = app_state
        self.interval_seconds = settings.import_poll_interval_seconds
        self.max_seconds = settings.import_poll_max_seconds
        self._clock = clock
        self._sleep = sleep

    async def fetch_status(self, extraction_id: str) -> ExtractionProgress:
        options = replace(self.api.default_options, surface_session_end=True)
        body = await self.api.get(
            endpoints.extraction_status_path(extraction_id), options=options,
        )
        return parse_extraction(body)

    async def poll(
        self, extraction_id: str, on_update: ProgressListener | None = None,
    ) -> ImportOutcome:
        started = self._clock()
        progress: ExtractionProgress | None = None
        while True:
            if not self.app_state.is_foreground:
                logger.info(
                    "Import polling paused in background",
                    extra={"action": "Get Import Status"},
                )
                await self.app_state.wait_foreground()

            try:
                progress = await self.fetch_status(extraction_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if is_background_network_failure(e, self.app_state):
                    logger.info(
                        "Status check interrupted by background, resuming on foreground",
                        extra={"action": "Get Import Status"},
                    )
                    continue
                return self._fail(extraction_id, e, progress, IMPORT_FAILED)

            if on_update is not None:
                on_update(progress)
            if progress.status is ImportStatus.COMPLETED:
                logger.info(f"Import {extraction_id} completed")
                return ImportOutcome(extraction_id, progress.status, progress)
            if progress.status is ImportStatus.FAILED:
                logger.warning(f"Import {extraction_id} failed server-side")
                return ImportOutcome(
                    extraction_id, progress.status, progress, IMPORT_FAILED,
                )

            if self._clock() - started >= self.max_seconds:
                error = ImportTimedOutError(extraction_id)
                return self._fail(extraction_id, error, progress, error.message)
            await self._sleep(self.interval_seconds)

    def _fail(
        self,
        extraction_id: str,
        error: BaseException,
        progress: ExtractionProgress | None,
        message: str,
    ) -> ImportOutcome:
        logger.warning(
            f"Import {extraction_id} polling stopped: {error}",
            extra={"component": TELEMETRY_COMPONENT, "action": "Get Import Status"},
        )
        if not should_ignore(error):
            report_safely(self.api.telemetry, error, FailureContext(
                component=TELEMETRY_COMPONENT,
                action="Get Import Status",
                extra={"extraction_id": extraction_id},
            ))
        return ImportOutcome(extraction_id, ImportStatus.FAILED, progress, message)
