"""User Messages — the text a screen shows for a surfaced failure.

Invariants:
    - SERVER_FAULT / NETWORK always map to the generic retryable message
    - QUOTA / CLIENT_FAULT use the server message verbatim when present
    - AUTH maps to the session-expired prompt (titled "Session Expired")
    - No internal details (codes, URLs, stack traces) in user-facing text
"""

from dataclasses import dataclass

from tripspire_client.core.domain_types import ErrorKind

GENERIC_RETRYABLE = "Something went wrong. Please try again."
SESSION_EXPIRED_TITLE = "Session Expired"
SESSION_EXPIRED = "Please sign in again to continue."
QUOTA_FALLBACK = "All free imports have been used."
CLIENT_FALLBACK = "We couldn't complete that request."


@dataclass(frozen=True)
class UserMessage:
    text: str
    retryable: bool
    session_expired: bool = False
    title: str | None = None


def _server_message(error: BaseException | None) -> str | None:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    return None


def user_message_for(kind: ErrorKind, error: BaseException | None = None) -> UserMessage:
    if kind is ErrorKind.AUTH:
        return UserMessage(
            _server_message(error) or SESSION_EXPIRED,
            retryable=False, session_expired=True, title=SESSION_EXPIRED_TITLE,
        )
    if kind in (ErrorKind.SERVER_FAULT, ErrorKind.NETWORK):
        return UserMessage(GENERIC_RETRYABLE, retryable=True)
    if kind is ErrorKind.QUOTA:
        return UserMessage(_server_message(error) or QUOTA_FALLBACK, retryable=False)
    if kind is ErrorKind.CLIENT_FAULT:
        return UserMessage(_server_message(error) or CLIENT_FALLBACK, retryable=False)
    return UserMessage(GENERIC_RETRYABLE, retryable=True)
