"""Mutation Result — success value or classified error, returned by the coordinator.

Invariants:
    - Exactly one of (value, error) is meaningful: ok ⇔ error is None
    - A failed result always carries the ErrorKind assigned by the classifier
"""

from dataclasses import dataclass
from typing import Any

from tripspire_client.core.domain_types import ErrorKind


@dataclass(frozen=True)
class MutationResult:
    value: Any = None
    error: BaseException | None = None
    kind: ErrorKind | None = None

    @classmethod
    def success(cls, value: Any = None) -> "MutationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException, kind: ErrorKind) -> "MutationResult":
        return cls(error=error, kind=kind)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value
