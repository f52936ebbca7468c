"""Retry Policy — decides whether a failed attempt is retried, and when.

Invariants:
    - attempt is 0-based: the index of the attempt that just failed
    - attempt >= max_attempts never retries, regardless of kind
    - Only SERVER_FAULT and foreground NETWORK failures are retried
    - delay_ms = base_delay_ms * 2**attempt (first retry waits base_delay_ms),
      capped by max_delay_ms when one is set
"""

from dataclasses import dataclass

from tripspire_client.core.domain_types import Connectivity, ErrorKind, RetryDecision

_NO_RETRY = RetryDecision(should_retry=False)


@dataclass(frozen=True)
class RetryPolicy:
    """Pure retry decision table with exponential backoff."""

    base_delay_ms: int = 1000
    max_delay_ms: int | None = None

    def decide(
        self,
        kind: ErrorKind,
        attempt: int,
        max_attempts: int,
        connectivity: Connectivity,
    ) -> RetryDecision:
        if attempt >= max_attempts:
            return _NO_RETRY
        if kind in (ErrorKind.AUTH, ErrorKind.QUOTA):
            return _NO_RETRY
        if kind is ErrorKind.NETWORK:
            if connectivity is Connectivity.BACKGROUND:
                return _NO_RETRY
            return RetryDecision(True, self.backoff(attempt))
        if kind is ErrorKind.SERVER_FAULT:
            return RetryDecision(True, self.backoff(attempt))
        # CLIENT_FAULT, UNKNOWN
        return _NO_RETRY

    def backoff(self, attempt: int) -> int:
        """Exponential backoff for the retry following ``attempt``."""
        delay = self.base_delay_ms * (2 ** attempt)
        if self.max_delay_ms is not None:
            return min(delay, self.max_delay_ms)
        return delay
