"""Error Hierarchy — typed exceptions for every data-access failure mode.

Invariants:
    - Every error has a code (str), severity (ErrorSeverity) and ErrorContext
    - ServiceError is raised only for responses with a non-2xx status
    - Errors without a response (transport, cancellation) carry http_status None
    - to_report() produces the payload handed to the telemetry sink
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from tripspire_client.core.domain_types import RegionKey


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Request-scoped details attached to an error for debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    method: str | None = None
    url: str | None = None
    attempt: int | None = None
    debug_info: dict[str, Any] | None = None


class TripspireError(Exception):
    """Base exception for all client data-access errors."""

    http_status: int | None = None

    def __init__(
        self,
        message: str,
        code: str,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.context = context or ErrorContext()

    def to_report(self) -> dict:
        """Convert to the structured shape sent to telemetry."""
        return {
            "code": self.code,
            "message": self.message,
            "http_status": self.http_status,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "method": self.context.method,
            "url": self.context.url,
            "attempt": self.context.attempt,
        }


# ─── Response Errors ────────────────────────────────────────────

class ServiceError(TripspireError):
    """The API answered with a non-2xx status."""

    def __init__(
        self,
        http_status: int,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
        context: ErrorContext | None = None,
    ):
        severity = ErrorSeverity.CRITICAL if http_status >= 500 else ErrorSeverity.ERROR
        super().__init__(message, error_code, severity, context)
        self.http_status = http_status
        self.error_code = error_code
        self.details = details or {}

    @classmethod
    def from_payload(
        cls,
        http_status: int,
        payload: dict[str, Any],
        context: ErrorContext | None = None,
        reason: str | None = None,
    ) -> "ServiceError":
        """Build from a validated {message, error_code, errors} payload.

        A missing code falls back to HTTP_<status>, a missing message to the
        status line's reason.
        """
        return cls(
            http_status,
            payload.get("error_code") or f"HTTP_{http_status}",
            payload.get("message") or reason or "Request failed",
            payload.get("errors") or {},
            context,
        )

    @classmethod
    def from_status_line(
        cls,
        http_status: int,
        reason: str | None,
        context: ErrorContext | None = None,
    ) -> "ServiceError":
        """Synthesize when the body is missing or not a structured payload."""
        return cls(
            http_status,
            f"HTTP_{http_status}",
            reason or "Request failed",
            {},
            context,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(http_status={self.http_status}, "
            f"error_code={self.error_code!r}, message={self.message!r})"
        )


class SessionExpiredError(ServiceError):
    """The session ended (401); credential already cleared, UI already notified."""

    @classmethod
    def from_error(cls, error: ServiceError) -> "SessionExpiredError":
        return cls(
            error.http_status,
            error.error_code,
            error.message,
            error.details,
            error.context,
        )


class ResponseParseError(TripspireError):
    """A 2xx response body could not be decoded or did not match its schema."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message, "RESPONSE_PARSE_ERROR", ErrorSeverity.ERROR, context)


# ─── Transport Errors ───────────────────────────────────────────

class NetworkRequestError(TripspireError):
    """No response reached the client (connect failure, timeout, reset)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Network request failed: {message}",
            "NETWORK_REQUEST_FAILED", ErrorSeverity.WARNING, context,
        )


class RequestCancelledError(TripspireError):
    """The request's cancellation token fired; no further attempts scheduled."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Request cancelled by user", "REQUEST_CANCELLED",
            ErrorSeverity.INFO, context,
        )


# ─── Cache Errors ───────────────────────────────────────────────

class SnapshotConflictError(TripspireError):
    """A second live snapshot was requested for the same mutation and region."""
    def __init__(self, mutation_id: str, region_key: RegionKey):
        super().__init__(
            f"Mutation {mutation_id} already holds a snapshot of {region_key!r}",
            "SNAPSHOT_CONFLICT", ErrorSeverity.CRITICAL,
        )
        self.mutation_id = mutation_id
        self.region_key = region_key


# ─── Import Errors ──────────────────────────────────────────────

class ImportFailedError(TripspireError):
    """An extraction was rejected, returned an unreadable body, or failed server-side."""
    def __init__(
        self,
        message: str = "Import failed",
        code: str = "IMPORT_FAILED",
        context: ErrorContext | None = None,
    ):
        super().__init__(message, code, ErrorSeverity.ERROR, context)


class ImportTimedOutError(ImportFailedError):
    """Status polling ran past its maximum duration without a terminal status."""
    def __init__(self, extraction_id: str):
        super().__init__("Import process timed out", "IMPORT_TIMED_OUT")
        self.severity = ErrorSeverity.WARNING
        self.extraction_id = extraction_id
