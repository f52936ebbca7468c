"""Mutation Coordinator — optimistic cache edits with snapshot rollback.

Invariants:
    - Phases per invocation: IDLE → SNAPSHOTTING → APPLYING →
      {COMMITTING | ROLLING_BACK} → DONE, recorded on the MutationRun
    - Snapshot + apply run synchronously (no suspension point between them),
      so no other mutation can observe a half-applied edit
    - Optimistic state is transform(pre_state); rollback writes the captured
      pre_state verbatim and never reads the region's current state
    - Exactly one live snapshot per (mutation, region); all are discarded on
      commit or rollback
    - Any failure of the remote call (including cancellation and session
      expiry) rolls back before the error is surfaced; so does a transform
      that raises while applying
    - Optimistic writes are fresh (stale cleared) and the touched regions are
      pinned in the store until commit or rollback, so no read refetches
      over them
    - A reconciliation that fails on a 2xx body still commits: the edited
      regions are invalidated instead and the failure is reported
    - Overlapping concurrent mutations each hold their own snapshots;
      last writer wins on the shared region
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

from tripspire_client.core.boundary_protocols import FailureContext, TelemetrySink
from tripspire_client.core.domain_types import ErrorKind, MutationPhase, RegionKey
from tripspire_client.core.error_classifier import classify
from tripspire_client.core.errors import SnapshotConflictError
from tripspire_client.core.mutation_result import MutationResult
from tripspire_client.core.region_edits import RegionTransform, compose
from tripspire_client.core.region_snapshot import OptimisticSnapshot, capture, restore
from tripspire_client.core.requests import ApiRequest
from tripspire_client.core.user_messages import UserMessage, user_message_for
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.cancellation import CancellationToken
from tripspire_client.infrastructure.observability import (
    LoggingTelemetrySink,
    report_safely,
    should_ignore,
)
from tripspire_client.infrastructure.region_store import RegionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionEdit:
    """Apply ``transform`` to the region ``selector`` names (exact key or prefix)."""
    selector: RegionKey
    transform: RegionTransform


@dataclass(frozen=True)
class Mutation:
    """Declarative description of one optimistic mutation."""
    name: str
    request: ApiRequest
    edits: tuple[RegionEdit, ...] = ()
    # Server truth applied on commit, computed from the response body
    reconcile: Callable[[Any], Iterable[RegionEdit]] | None = None
    invalidate: tuple[RegionKey, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class MutationRun:
    mutation_id: str
    mutation: Mutation
    phase: MutationPhase = MutationPhase.IDLE
    history: list[MutationPhase] = field(default_factory=lambda: [MutationPhase.IDLE])
    snapshots: dict[RegionKey, OptimisticSnapshot] = field(default_factory=dict)

    def advance(self, phase: MutationPhase) -> None:
        self.phase = phase
        self.history.append(phase)


class MutationCoordinator:
    """Only optimistic writer of the RegionStore."""

    def __init__(
        self,
        store: RegionStore,
        api: ResilientApiClient,
        telemetry: TelemetrySink | None = None,
    ):
        self.store = store
        self.api = api
        self.telemetry = telemetry or LoggingTelemetrySink()
        self._live: dict[tuple[str, RegionKey], OptimisticSnapshot] = {}

    @property
    def live_snapshot_count(self) -> int:
        return len(self._live)

    async def run(
        self, mutation: Mutation, token: CancellationToken | None = None,
    ) -> MutationResult:
        """Apply optimistically, call the API, then commit or roll back."""
        run = self.begin(mutation)
        return await self.settle(run, token)

    # ─── Snapshot + apply (synchronous) ─────────────────────────

    def begin(self, mutation: Mutation) -> MutationRun:
        run = MutationRun(uuid.uuid4().hex, mutation)
        targets = self._resolve_targets(mutation.edits)

        run.advance(MutationPhase.SNAPSHOTTING)
        self.store.cancel_refetches(targets.keys())
        for key in targets:
            self._take_snapshot(run, key)

        run.advance(MutationPhase.APPLYING)
        try:
            for key, transforms in targets.items():
                pre_state = restore(run.snapshots[key])
                if pre_state is None:
                    continue
                optimistic = compose(*transforms)(pre_state)
                self.store.write(key, replace(optimistic, stale=False))
        except Exception:
            logger.error(
                f"Optimistic {mutation.name} failed to apply",
                extra={"mutation": mutation.name, "mutation_id": run.mutation_id},
                exc_info=True,
            )
            self._roll_back(run)
            raise

        logger.info(
            f"Applied optimistic {mutation.name} to {len(targets)} region(s)",
            extra={"mutation": mutation.name, "mutation_id": run.mutation_id},
        )
        return run

    def _resolve_targets(
        self, edits: Iterable[RegionEdit],
    ) -> dict[RegionKey, list[RegionTransform]]:
        targets: dict[RegionKey, list[RegionTransform]] = {}
        for edit in edits:
            for key in self.store.matching(edit.selector):
                if self.store.get(key) is None:
                    continue
                targets.setdefault(key, []).append(edit.transform)
        return targets

    def _take_snapshot(self, run: MutationRun, key: RegionKey) -> None:
        live_key = (run.mutation_id, key)
        if live_key in self._live:
            raise SnapshotConflictError(run.mutation_id, key)
        snapshot = capture(run.mutation_id, key, self.store.get(key))
        self._live[live_key] = snapshot
        run.snapshots[key] = snapshot
        self.store.pin(key)

    def _discard_snapshots(self, run: MutationRun) -> None:
        for key in run.snapshots:
            self._live.pop((run.mutation_id, key), None)
            self.store.unpin(key)
        run.snapshots.clear()

    # ─── Network + settle ───────────────────────────────────────

    async def settle(
        self, run: MutationRun, token: CancellationToken | None = None,
    ) -> MutationResult:
        request = run.mutation.request
        if token is not None:
            request = replace(request, token=token)
        options = replace(self.api.default_options, surface_session_end=True)
        try:
            response = await self.api.execute(request, options)
        except asyncio.CancelledError:
            self._roll_back(run)
            raise
        except Exception as e:
            self._roll_back(run)
            kind = classify(e)
            self._report(run, e, kind)
            return MutationResult.failure(e, kind)
        self._commit(run, response)
        return MutationResult.success(response)

    def _commit(self, run: MutationRun, response: Any) -> None:
        run.advance(MutationPhase.COMMITTING)
        self._discard_snapshots(run)
        mutation = run.mutation
        if mutation.reconcile is not None:
            try:
                self._reconcile(mutation, response)
            except Exception as e:
                logger.error(
                    f"Reconciling {mutation.name} failed, invalidating edited regions: {e}",
                    extra={"mutation": mutation.name, "mutation_id": run.mutation_id},
                )
                self._report(run, e, classify(e), action=f"{mutation.name} (reconcile)")
                for edit in mutation.edits:
                    self.store.invalidate(edit.selector)
        for selector in mutation.invalidate:
            self.store.invalidate(selector)
        run.advance(MutationPhase.DONE)
        logger.info(
            f"Committed {mutation.name}",
            extra={"mutation": mutation.name, "mutation_id": run.mutation_id},
        )

    def _reconcile(self, mutation: Mutation, response: Any) -> None:
        for edit in mutation.reconcile(response):
            for key in self.store.matching(edit.selector):
                current = self.store.get(key)
                if current is not None:
                    self.store.write(key, edit.transform(current))

    def _roll_back(self, run: MutationRun) -> None:
        run.advance(MutationPhase.ROLLING_BACK)
        for key, snapshot in run.snapshots.items():
            state = restore(snapshot)
            if state is None:
                self.store.remove(key)
            else:
                self.store.write(key, state)
        restored = len(run.snapshots)
        self._discard_snapshots(run)
        run.advance(MutationPhase.DONE)
        logger.warning(
            f"Rolled back {run.mutation.name} ({restored} region(s))",
            extra={"mutation": run.mutation.name, "mutation_id": run.mutation_id},
        )

    def _report(
        self,
        run: MutationRun,
        error: BaseException,
        kind: ErrorKind,
        action: str | None = None,
    ) -> None:
        if should_ignore(error):
            return
        report_safely(self.telemetry, error, FailureContext(
            component="MutationCoordinator",
            action=action or run.mutation.name,
            extra={
                "mutation_id": run.mutation_id,
                "error_kind": kind.value,
                **run.mutation.extra,
            },
        ))


async def mutate_with_callbacks(
    coordinator: MutationCoordinator,
    mutation: Mutation,
    *,
    on_success: Callable[[Any], None] | None = None,
    on_error: Callable[[UserMessage], None] | None = None,
    token: CancellationToken | None = None,
) -> MutationResult:
    """UI-boundary adapter from MutationResult to success/error callbacks.

    Session expiry does not reach on_error: the session-ended prompt has
    already been shown by the API client.
    """
    result = await coordinator.run(mutation, token)
    if result.ok:
        if on_success is not None:
            on_success(result.value)
    elif result.kind is not ErrorKind.AUTH and on_error is not None:
        on_error(user_message_for(result.kind or ErrorKind.UNKNOWN, result.error))
    return result
