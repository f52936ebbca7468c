"""Boundary Protocols — contracts between the data-access core and its collaborators.

Invariants:
    - Core NEVER imports from infrastructure — dependency arrows point inward only
    - Session, telemetry and UI notification are injected, never module globals
    - TelemetrySink.report_failure is fire-and-forget: it must not raise or block
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class FailureContext:
    """Business context attached to a failure report."""
    component: str
    action: str
    extra: dict[str, Any] = field(default_factory=dict)


class SessionStore(Protocol):
    """Holder of the current bearer credential. Read-only to the API client,
    apart from clearing it when the session has expired."""
    def get_credential(self) -> str | None: ...
    def clear_credential(self) -> None: ...


class TelemetrySink(Protocol):
    """Crash/telemetry reporting."""
    def report_failure(self, error: BaseException, context: FailureContext) -> None: ...


class SessionEndedListener(Protocol):
    """UI hook fired when the session ends (e.g. 'Session Expired' prompt)."""
    def __call__(self, message: str) -> None: ...
