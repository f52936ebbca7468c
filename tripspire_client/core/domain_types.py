"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - RegionKey is a tuple whose first element is the region family ("wishlists", ...)
    - EntityId is the server-assigned "id" of a cached entity
    - All valid states encoded as Enums — no raw string matching
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

EntityId = NewType("EntityId", str)
RegionKey = tuple[str, ...]
DedupKey = NewType("DedupKey", str)


# ─── Enums ───────────────────────────────────────────────────────

class ErrorKind(str, Enum):
    """Failure classification — drives retry and propagation policy."""
    AUTH = "auth"
    QUOTA = "quota"
    SERVER_FAULT = "server_fault"
    CLIENT_FAULT = "client_fault"
    NETWORK = "network"
    UNKNOWN = "unknown"


class Connectivity(str, Enum):
    """App lifecycle state as seen by the transport layer."""
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class MutationPhase(str, Enum):
    """Per-invocation state of an optimistic mutation."""
    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    APPLYING = "applying"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"
    DONE = "done"


class ImportStatus(str, Enum):
    """Server-side state of an extraction started from a shared link."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ImportStatus.PROCESSING


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryDecision:
    """Outcome of RetryPolicy.decide — delay_ms is 0 when should_retry is False."""
    should_retry: bool
    delay_ms: int = 0
