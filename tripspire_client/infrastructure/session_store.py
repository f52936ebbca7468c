"""Session Store — in-memory bearer credential holder and session-ended signal.

Invariants:
    - The credential is written only by the auth flow (set_credential) and
      cleared by the API client's session-expiry path (clear_credential)
    - SessionEndSignal fires its listeners at most once per signed-in session;
      set_credential re-arms it
    - A failing listener never prevents the remaining listeners from running
"""

import logging

from tripspire_client.core.boundary_protocols import SessionEndedListener

logger = logging.getLogger(__name__)


class SessionEndSignal:
    """One-shot 'session ended' notification towards the UI layer."""

    def __init__(self) -> None:
        self._listeners: list[SessionEndedListener] = []
        self._armed = True

    def subscribe(self, listener: SessionEndedListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SessionEndedListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def armed(self) -> bool:
        return self._armed

    def rearm(self) -> None:
        self._armed = True

    def fire(self, message: str) -> bool:
        """Notify listeners once. Returns False when already fired."""
        if not self._armed:
            return False
        self._armed = False
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.error("Session-ended listener failed", exc_info=True)
        return True


class InMemorySessionStore:
    """Process-wide credential holder, injected wherever a SessionStore is needed."""

    def __init__(
        self,
        credential: str | None = None,
        signal: SessionEndSignal | None = None,
    ) -> None:
        self._credential = credential
        self.signal = signal or SessionEndSignal()

    def get_credential(self) -> str | None:
        return self._credential

    def set_credential(self, credential: str) -> None:
        self._credential = credential
        self.signal.rearm()

    def clear_credential(self) -> None:
        self._credential = None

    @property
    def is_authenticated(self) -> bool:
        return self._credential is not None
