"""Structured Logging and Telemetry — JSON formatter, setup, and failure sink.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (component, action, error_kind, attempt, ...) surfaced when present
    - LoggingTelemetrySink.report_failure never raises into its caller
    - User cancellations are not reported as failures
    - setup_logging configures only the package logger and is idempotent
"""

import logging
import json
from datetime import datetime, timezone

from tripspire_client.core.boundary_protocols import FailureContext
from tripspire_client.core.error_classifier import classify

logger = logging.getLogger(__name__)

_EXTRA_KEYS = (
    "component", "action", "error_kind", "error_code", "http_status",
    "attempt", "delay_ms", "method", "url", "region_key", "dedup_key",
    "mutation", "mutation_id", "phase",
)

_HANDLER_MARK = "_tripspire_handler"

_IGNORED_MESSAGES = (
    "user cancelled",
    "user canceled",
    "cancelled by user",
    "canceled by user",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val if isinstance(val, (str, int, float, bool)) else str(val)
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    *,
    logger_name: str = "tripspire_client",
) -> logging.Handler:
    """Configure the client's logger; the host application's root logger is left alone.

    Calling it again replaces the handler installed by the previous call.
    """
    target = logging.getLogger(logger_name)
    for existing in list(target.handlers):
        if getattr(existing, _HANDLER_MARK, False):
            target.removeHandler(existing)

    handler = logging.StreamHandler()
    setattr(handler, _HANDLER_MARK, True)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    target.addHandler(handler)
    target.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Transport libraries log every request at INFO
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler


def should_ignore(error: BaseException) -> bool:
    message = str(error).lower()
    return any(ignored in message for ignored in _IGNORED_MESSAGES)


class LoggingTelemetrySink:
    """Default TelemetrySink: failure reports go through the logging pipeline.

    Replace with a crash-reporting backend by implementing the same
    report_failure(error, context) method.
    """

    def __init__(self, logger_name: str = "tripspire_client.telemetry"):
        self._logger = logging.getLogger(logger_name)

    def report_failure(self, error: BaseException, context: FailureContext) -> None:
        try:
            if should_ignore(error):
                return
            report = error.to_report() if hasattr(error, "to_report") else {}
            self._logger.error(
                f"{context.component} - {context.action}: {error}",
                extra={
                    "component": context.component,
                    "action": context.action,
                    "error_kind": classify(error).value,
                    "error_code": report.get("code"),
                    "http_status": report.get("http_status"),
                    **{k: v for k, v in context.extra.items() if k in _EXTRA_KEYS},
                },
            )
        except Exception:
            logger.warning("Telemetry sink failed to report", exc_info=True)


def report_safely(sink, error: BaseException, context: FailureContext) -> None:
    """Call an injected sink without letting its failures reach the caller."""
    try:
        sink.report_failure(error, context)
    except Exception:
        logger.warning(
            f"Telemetry sink raised while reporting {context.action}",
            exc_info=True,
        )
