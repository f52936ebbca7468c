"""Resilient API Client — authenticated httpx wrapper with classification-driven retry.

Invariants:
    - Every attempt re-reads the bearer credential from the SessionStore
    - Failures are classified (ErrorClassifier) and the RetryPolicy decides:
      SERVER_FAULT and foreground NETWORK retry with exponential backoff,
      everything else fails immediately
    - Backoff waits suspend on the event loop and wake early on cancellation
    - A cancelled token aborts the in-flight call and schedules no more attempts
    - Terminal failures are reported to telemetry (except user cancellations)
    - AUTH failures clear the credential, fire the session-ended notification,
      and resolve None (or raise SessionExpiredError when the caller opts in)
    - 2xx: 204, empty body or non-JSON content type resolve None
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from tripspire_client.config import Settings, get_settings
from tripspire_client.core.boundary_protocols import (
    FailureContext,
    SessionEndedListener,
    SessionStore,
    TelemetrySink,
)
from tripspire_client.core.domain_types import Connectivity, ErrorKind, HttpMethod
from tripspire_client.core.error_classifier import classify
from tripspire_client.core.errors import (
    ErrorContext,
    NetworkRequestError,
    RequestCancelledError,
    ResponseParseError,
    ServiceError,
    SessionExpiredError,
    TripspireError,
)
from tripspire_client.core.requests import ApiRequest, ApiResponse, RequestOptions
from tripspire_client.core.retry_policy import RetryPolicy
from tripspire_client.core.user_messages import SESSION_EXPIRED
from tripspire_client.infrastructure.cancellation import CancellationToken
from tripspire_client.infrastructure.observability import (
    LoggingTelemetrySink,
    report_safely,
)
from tripspire_client.schemas.payloads import ErrorPayload

logger = logging.getLogger(__name__)

TELEMETRY_COMPONENT = "API Client"


class ResilientApiClient:
    """Single authenticated entry point to the Tripspire API."""

    def __init__(
        self,
        session: SessionStore,
        *,
        http: httpx.AsyncClient | None = None,
        telemetry: TelemetrySink | None = None,
        on_session_ended: SessionEndedListener | None = None,
        connectivity: Callable[[], Connectivity] | None = None,
        retry_policy: RetryPolicy | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.session = session
        self.base_url = self.settings.api_base_url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout_seconds),
            follow_redirects=True,
        )
        self.telemetry = telemetry or LoggingTelemetrySink()
        self._on_session_ended = on_session_ended
        self._connectivity = connectivity or (lambda: Connectivity.FOREGROUND)
        self.retry_policy = retry_policy or RetryPolicy(
            base_delay_ms=self.settings.retry_base_delay_ms,
            max_delay_ms=self.settings.retry_max_delay_ms,
        )
        self.default_options = RequestOptions(
            max_retries=self.settings.request_max_retries,
        )

    async def __aenter__(self) -> "ResilientApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ─── Verbs ──────────────────────────────────────────────────

    async def get(
        self, path: str, *,
        token: CancellationToken | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.execute(ApiRequest(HttpMethod.GET, path, token=token), options)

    async def post(
        self, path: str, body: Any = None, *,
        token: CancellationToken | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.execute(
            ApiRequest(HttpMethod.POST, path, body=body, token=token), options,
        )

    async def put(
        self, path: str, body: Any = None, *,
        token: CancellationToken | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.execute(
            ApiRequest(HttpMethod.PUT, path, body=body, token=token), options,
        )

    async def delete(
        self, path: str, body: Any = None, *,
        token: CancellationToken | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.execute(
            ApiRequest(HttpMethod.DELETE, path, body=body, token=token), options,
        )

    # ─── Attempt loop ───────────────────────────────────────────

    async def execute(
        self, request: ApiRequest, options: RequestOptions | None = None,
    ) -> Any:
        """Issue ``request`` with retry; resolve the parsed body (or None)."""
        options = options or self.default_options
        url = self.resolve_url(request.path)
        attempt = 0
        while True:
            context = ErrorContext(
                method=request.method.value, url=url, attempt=attempt + 1,
            )
            try:
                response = await self._send(request, url, context)
                self._log_success(request, url, attempt)
                return response.body

            except RequestCancelledError:
                logger.info(
                    "Request cancelled",
                    extra={"method": request.method.value, "url": url, "attempt": attempt + 1},
                )
                raise

            except TripspireError as e:
                kind = classify(e)
                decision = self.retry_policy.decide(
                    kind, attempt, options.max_attempts, self._connectivity(),
                )
                if _is_cancelled(request.token):
                    raise RequestCancelledError(context) from e
                if not decision.should_retry:
                    return self._fail(request, url, e, kind, options)

                logger.warning(
                    f"{kind.value} failure, retry after {decision.delay_ms}ms: {e}",
                    extra={
                        "method": request.method.value, "url": url,
                        "attempt": attempt + 1, "delay_ms": decision.delay_ms,
                        "error_kind": kind.value,
                    },
                )
                await self._wait(decision.delay_ms, request.token, context)
                attempt += 1

    def _fail(
        self,
        request: ApiRequest,
        url: str,
        error: TripspireError,
        kind: ErrorKind,
        options: RequestOptions,
    ) -> None:
        """Terminal failure: report, handle session end, else re-raise."""
        report_safely(self.telemetry, error, FailureContext(
            component=TELEMETRY_COMPONENT,
            action=request.method.value,
            extra={
                "method": request.method.value,
                "url": url,
                "retry": options.retry,
                "max_retries": options.max_retries,
                "attempt": error.context.attempt,
            },
        ))
        if kind is ErrorKind.AUTH and isinstance(error, ServiceError):
            self._end_session(error)
            if options.surface_session_end:
                raise SessionExpiredError.from_error(error) from error
            return None
        raise error

    def _end_session(self, error: ServiceError) -> None:
        logger.warning(
            "Session expired, clearing credential",
            extra={"http_status": error.http_status, "error_code": error.error_code},
        )
        self.session.clear_credential()
        if self._on_session_ended is None:
            return
        try:
            self._on_session_ended(error.message or SESSION_EXPIRED)
        except Exception:
            logger.error("Session-ended notification failed", exc_info=True)

    # ─── Transport ──────────────────────────────────────────────

    def resolve_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    def _build_headers(self, request: ApiRequest) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        credential = self.session.get_credential()
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        headers.update(request.headers)
        return headers

    async def _send(
        self, request: ApiRequest, url: str, context: ErrorContext,
    ) -> ApiResponse:
        content = json.dumps(request.body) if request.body is not None else None
        try:
            response = await self._race_cancellation(
                self._http.request(
                    request.method.value, url,
                    headers=self._build_headers(request),
                    content=content,
                ),
                request.token,
                context,
            )
        except httpx.TransportError as e:
            raise NetworkRequestError(str(e) or type(e).__name__, context) from e
        return self._handle_response(response, context)

    async def _race_cancellation(
        self,
        call: Awaitable[httpx.Response],
        token: CancellationToken | None,
        context: ErrorContext,
    ) -> httpx.Response:
        if token is None:
            return await call
        send = asyncio.ensure_future(call)
        if token.cancelled:
            send.cancel()
            await asyncio.gather(send, return_exceptions=True)
            raise RequestCancelledError(context)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {send, waiter}, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            send.cancel()
            waiter.cancel()
            raise
        if send in done:
            waiter.cancel()
            return send.result()
        send.cancel()
        await asyncio.gather(send, return_exceptions=True)
        raise RequestCancelledError(context)

    def _handle_response(
        self, response: httpx.Response, context: ErrorContext,
    ) -> ApiResponse:
        headers = dict(response.headers)
        if not response.is_success:
            raise self._service_error(response, context)
        if response.status_code == 204 or not response.content:
            return ApiResponse(response.status_code, headers)
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return ApiResponse(response.status_code, headers)
        try:
            body = response.json()
        except ValueError as e:
            raise ResponseParseError(
                f"Undecodable JSON body ({response.status_code})", context,
            ) from e
        return ApiResponse(response.status_code, headers, body)

    @staticmethod
    def _service_error(response: httpx.Response, context: ErrorContext) -> ServiceError:
        try:
            payload = ErrorPayload.model_validate(response.json())
        except (ValueError, ValidationError):
            payload = None
        if payload is None or not payload.is_structured:
            return ServiceError.from_status_line(
                response.status_code, response.reason_phrase, context,
            )
        return ServiceError.from_payload(
            response.status_code, payload.model_dump(), context,
            reason=response.reason_phrase,
        )

    async def _wait(
        self,
        delay_ms: int,
        token: CancellationToken | None,
        context: ErrorContext,
    ) -> None:
        """Backoff delay; raises RequestCancelledError if the token fires."""
        seconds = delay_ms / 1000
        if token is None:
            await asyncio.sleep(seconds)
            return
        if token.cancelled:
            raise RequestCancelledError(context)
        try:
            await asyncio.wait_for(token.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise RequestCancelledError(context)

    def _log_success(self, request: ApiRequest, url: str, attempt: int) -> None:
        logger.info(
            "API request succeeded",
            extra={"method": request.method.value, "url": url, "attempt": attempt + 1},
        )


def _is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
