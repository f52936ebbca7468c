"""Error Classifier — maps any failure to an ErrorKind.

Invariants:
    - classify() is pure and never raises, whatever it is handed
    - Status-bearing errors are classified by status (and server code) only
    - Status-less errors are NETWORK only when no response reached the client;
      other typed client errors are never guessed from their message
"""

from tripspire_client.core.domain_types import ErrorKind
from tripspire_client.core.errors import NetworkRequestError, TripspireError

# Server error codes the client handles specifically
UNAUTHENTICATED = "UNAUTHENTICATED"
QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

_NETWORK_INDICATORS = (
    "network request failed",
    "connection",
    "timed out",
    "timeout",
    "offline",
)


def _is_quota_code(code: str) -> bool:
    return code == QUOTA_EXCEEDED or "QUOTA" in code.upper()


def _classify_status(status: int, code: str) -> ErrorKind:
    if status == 401 or code == UNAUTHENTICATED:
        return ErrorKind.AUTH
    if status == 403 and _is_quota_code(code):
        return ErrorKind.QUOTA
    if 500 <= status < 600:
        return ErrorKind.SERVER_FAULT
    if 400 <= status < 500:
        return ErrorKind.CLIENT_FAULT
    return ErrorKind.UNKNOWN


def classify(error: object) -> ErrorKind:
    """Assign an ErrorKind to ``error`` (any object, usually an exception)."""
    try:
        status = getattr(error, "http_status", None)
        if isinstance(status, int):
            code = getattr(error, "error_code", None) or ""
            return _classify_status(status, str(code))

        if isinstance(error, NetworkRequestError):
            return ErrorKind.NETWORK
        if isinstance(error, TripspireError):
            return ErrorKind.UNKNOWN
        message = str(error).lower()
        if any(indicator in message for indicator in _NETWORK_INDICATORS):
            return ErrorKind.NETWORK
    except Exception:  # str() or getattr on a foreign object
        return ErrorKind.UNKNOWN
    return ErrorKind.UNKNOWN
