"""Request/response value objects shared by the client, coordinator and queue."""

from dataclasses import dataclass, field
from typing import Any

from tripspire_client.core.domain_types import HttpMethod


@dataclass(frozen=True)
class ApiRequest:
    """One logical API call. Immutable once issued.

    ``token`` is a cancellation token (infrastructure.cancellation); typed
    loosely so core stays free of asyncio.
    """
    method: HttpMethod
    path: str
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    token: Any = None


@dataclass(frozen=True)
class ApiResponse:
    """A received 2xx response. body is None for 204 and non-JSON content."""
    status: int
    headers: dict[str, str]
    body: Any = None


@dataclass(frozen=True)
class RequestOptions:
    retry: bool = True
    max_retries: int = 3
    # Raise SessionExpiredError instead of resolving None on a 401
    surface_session_end: bool = False

    @property
    def max_attempts(self) -> int:
        """Retry budget handed to RetryPolicy (0 when retry is disabled)."""
        return self.max_retries if self.retry else 0
