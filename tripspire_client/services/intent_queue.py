"""Sequential Intent Queue — FIFO, one-at-a-time processing with key dedup.

Invariants:
    - At most one entry in flight
    - enqueue() rejects a key equal to the in-flight key or to any waiting key
    - When an entry finishes (success or failure) the next one starts
      immediately; an empty queue idles until the next enqueue
    - A failing entry is logged and reported, never blocks later entries
    - enqueue() outside a running event loop raises RuntimeError; the entry
      stays waiting and starts on the next enqueue inside a loop
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from tripspire_client.core.boundary_protocols import FailureContext, TelemetrySink
from tripspire_client.infrastructure.observability import (
    LoggingTelemetrySink,
    report_safely,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QueueEntry(Generic[T]):
    key: str
    payload: T


class SequentialIntentQueue(Generic[T]):
    """Serializes externally triggered work items (e.g. shared links)."""

    def __init__(
        self,
        process: Callable[[T], Awaitable[object]],
        *,
        name: str = "SequentialIntentQueue",
        telemetry: TelemetrySink | None = None,
    ):
        self._process = process
        self.name = name
        self.telemetry = telemetry or LoggingTelemetrySink()
        self._waiting: deque[QueueEntry[T]] = deque()
        self._current: QueueEntry[T] | None = None
        self._task: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def processing_key(self) -> str | None:
        return self._current.key if self._current else None

    @property
    def waiting_keys(self) -> list[str]:
        return [entry.key for entry in self._waiting]

    @property
    def is_idle(self) -> bool:
        return self._current is None and not self._waiting

    def enqueue(self, key: str, payload: T) -> bool:
        """Queue ``payload`` under ``key``. Returns False for a duplicate."""
        if key == self.processing_key or key in self.waiting_keys:
            logger.info("Skipping duplicate intent", extra={"dedup_key": key})
            return False
        self._waiting.append(QueueEntry(key, payload))
        self._idle.clear()
        self._process_next()
        return True

    def _process_next(self) -> None:
        if self._current is not None:
            return
        if not self._waiting:
            self._idle.set()
            return
        # Raises RuntimeError outside an event loop; the entry keeps waiting
        loop = asyncio.get_running_loop()
        self._current = self._waiting.popleft()
        self._task = loop.create_task(self._run(self._current))

    async def _run(self, entry: QueueEntry[T]) -> None:
        try:
            await self._process(entry.payload)
            logger.info("Processed intent", extra={"dedup_key": entry.key})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Intent processing failed: {e}",
                extra={"dedup_key": entry.key},
            )
            report_safely(self.telemetry, e, FailureContext(
                component=self.name,
                action="Process Intent",
                extra={"dedup_key": entry.key},
            ))
        finally:
            self._current = None
            self._task = None
            self._process_next()

    async def join(self) -> None:
        """Wait until the queue has drained."""
        await self._idle.wait()

    async def close(self) -> None:
        """Drop waiting entries and cancel the in-flight one."""
        self._waiting.clear()
        task = self._task
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._idle.set()
