"""Integration Tests: MutationCoordinator — optimistic apply, commit, rollback.

Invariants:
    - The optimistic edit is visible as soon as begin() returns
    - Commit keeps the edit, applies reconciliation, invalidates follow-ups
    - Any failure restores every touched region to its exact pre-state
    - Phase history is IDLE → SNAPSHOTTING → APPLYING → {COMMITTING | ROLLING_BACK} → DONE
    - No snapshot outlives its mutation
    - A read of a region held by an in-flight mutation serves the optimistic copy

Design Decisions:
    - Real ResilientApiClient over MockTransport: retry and session expiry are
      exercised end-to-end, not stubbed
"""

import asyncio
from functools import partial

import pytest

from conftest import error_response, json_response, list_region

from tripspire_client.core.cache_region import Page
from tripspire_client.core.domain_types import ErrorKind, HttpMethod, MutationPhase
from tripspire_client.core.errors import RequestCancelledError, SessionExpiredError
from tripspire_client.core.region_edits import patch_entity, remove_entity
from tripspire_client.core.requests import ApiRequest
from tripspire_client.core.user_messages import GENERIC_RETRYABLE
from tripspire_client.infrastructure.cancellation import CancellationToken
from tripspire_client.services.mutation_coordinator import (
    Mutation,
    RegionEdit,
    mutate_with_callbacks,
)

KEY = ("wishlists",)


def _delete(entity_id, selector=KEY, **kwargs):
    return Mutation(
        name="Delete Wishlist",
        request=ApiRequest(HttpMethod.DELETE, f"/v1/wishlists/{entity_id}"),
        edits=(RegionEdit(selector, partial(remove_entity, entity_id=entity_id)),),
        **kwargs,
    )


def _two_pages():
    return list_region(KEY, (["w1", "w2", "w3"], "cursor-2"), (["w4", "w5"], None))


# ==============================================================================
# Commit
# ==============================================================================


async def test_delete_is_optimistic_and_survives_commit(coordinator, store, server):
    """DELETE of a page-one entity: gone immediately, still gone after commit."""
    store.write(KEY, _two_pages())
    server.reply(json_response(200, {"deleted": True}))

    run = coordinator.begin(_delete("w2"))
    assert "w2" not in store.get(KEY).entity_ids()
    assert run.phase is MutationPhase.APPLYING

    result = await coordinator.settle(run)

    assert result.ok
    assert result.value == {"deleted": True}
    assert store.get(KEY).entity_ids() == ["w1", "w3", "w4", "w5"]
    assert store.get(KEY).pages[0].next_cursor == "cursor-2"
    assert run.history == [
        MutationPhase.IDLE, MutationPhase.SNAPSHOTTING, MutationPhase.APPLYING,
        MutationPhase.COMMITTING, MutationPhase.DONE,
    ]
    assert coordinator.live_snapshot_count == 0


async def test_commit_invalidates_and_reconciles(coordinator, store, server):
    store.write(KEY, _two_pages())
    store.write(("recipes",), list_region(("recipes",), (["r1"], None)))
    server.reply(json_response(200, {"data": {"id": "w1", "name": "Server name"}}))

    mutation = Mutation(
        name="Update Wishlist",
        request=ApiRequest(HttpMethod.PUT, "/v1/wishlists/w1", body={"name": "Local"}),
        edits=(RegionEdit(KEY, partial(patch_entity, entity_id="w1", changes={"name": "Local"})),),
        reconcile=lambda body: [
            RegionEdit(KEY, partial(patch_entity, entity_id="w1", changes=body["data"])),
        ],
        invalidate=(("recipes",),),
    )
    result = await coordinator.run(mutation)

    assert result.ok
    assert store.get(KEY).find("w1")["name"] == "Server name"
    assert store.get(("recipes",)).stale


async def test_prefix_selector_edits_every_matching_region(coordinator, store, server):
    store.write(KEY, list_region(KEY, (["w1", "w2"], None)))
    store.write(KEY + ("rec9",), list_region(KEY + ("rec9",), (["w1"], None)))
    server.reply(json_response(200, {}))

    await coordinator.run(_delete("w1"))

    assert store.get(KEY).entity_ids() == ["w2"]
    assert store.get(KEY + ("rec9",)).entity_ids() == []


async def test_no_cached_region_still_calls_api(coordinator, store, server):
    server.reply(json_response(200, {}))
    result = await coordinator.run(_delete("w1"))

    assert result.ok
    assert server.calls == 1
    assert store.keys() == []


async def test_reconcile_failure_still_commits(coordinator, store, server, telemetry):
    """A 2xx body the reconciliation cannot read: edit kept, regions refetch."""
    store.write(KEY, _two_pages())
    store.write(("recipes",), list_region(("recipes",), (["r1"], None)))
    server.reply(json_response(200, {"unexpected": True}))

    mutation = _delete(
        "w2",
        reconcile=lambda body: [RegionEdit(KEY, body["data"])],
        invalidate=(("recipes",),),
    )
    result = await coordinator.run(mutation)

    assert result.ok
    assert "w2" not in store.get(KEY).entity_ids()
    assert store.get(KEY).stale
    assert store.get(("recipes",)).stale
    assert coordinator.live_snapshot_count == 0
    assert [context.action for _, context in telemetry.reports] == [
        "Delete Wishlist (reconcile)",
    ]


# ==============================================================================
# Rollback
# ==============================================================================


async def test_server_fault_rolls_back_to_original_position(coordinator, store, server, telemetry):
    """DELETE returning 500 after 3 retries: entity back where it was."""
    original = _two_pages()
    store.write(KEY, original)
    server.reply(error_response(500, "HTTP_500", "boom"))

    run = coordinator.begin(_delete("w2"))
    result = await coordinator.settle(run)

    assert not result.ok
    assert result.kind is ErrorKind.SERVER_FAULT
    assert server.calls == 4
    assert store.get(KEY) == original
    assert store.get(KEY).position_of("w2") == (0, 1)
    assert run.history[-2:] == [MutationPhase.ROLLING_BACK, MutationPhase.DONE]
    assert coordinator.live_snapshot_count == 0
    components = [context.component for _, context in telemetry.reports]
    assert components == ["API Client", "MutationCoordinator"]


async def test_rollback_ignores_interleaved_writes(coordinator, store, server):
    store.write(KEY, _two_pages())
    server.reply(error_response(404, "NOT_FOUND", "gone"))

    run = coordinator.begin(_delete("w2"))
    store.write(KEY, list_region(KEY, (["unrelated"], None)))
    await coordinator.settle(run)

    assert store.get(KEY).entity_ids() == ["w1", "w2", "w3", "w4", "w5"]


async def test_unauthorized_rolls_back_and_ends_session(coordinator, store, server, session, session_ended):
    original = _two_pages()
    store.write(KEY, original)
    server.reply(error_response(401, "UNAUTHENTICATED", "Session expired"))

    result = await coordinator.run(_delete("w2"))

    assert result.kind is ErrorKind.AUTH
    assert isinstance(result.error, SessionExpiredError)
    assert store.get(KEY) == original
    assert session.get_credential() is None
    assert len(session_ended) == 1


async def test_cancellation_rolls_back_without_report(coordinator, store, server, telemetry):
    original = _two_pages()
    store.write(KEY, original)
    started = asyncio.Event()

    async def slow(request):
        started.set()
        await asyncio.sleep(10)
        return json_response(200, {})

    server.reply(slow)
    token = CancellationToken()
    pending = asyncio.create_task(coordinator.run(_delete("w2"), token))
    await started.wait()
    token.cancel()

    result = await asyncio.wait_for(pending, timeout=1)

    assert isinstance(result.error, RequestCancelledError)
    assert store.get(KEY) == original
    assert telemetry.reports == []


async def test_task_cancellation_rolls_back_and_propagates(coordinator, store, server):
    original = _two_pages()
    store.write(KEY, original)
    started = asyncio.Event()

    async def slow(request):
        started.set()
        await asyncio.sleep(10)
        return json_response(200, {})

    server.reply(slow)
    pending = asyncio.create_task(coordinator.run(_delete("w2")))
    await started.wait()
    pending.cancel()

    with pytest.raises(asyncio.CancelledError):
        await pending
    assert store.get(KEY) == original
    assert coordinator.live_snapshot_count == 0


async def test_region_absent_before_mutation_stays_absent(coordinator, store, server):
    server.reply(error_response(500, "HTTP_500", "boom"))
    await coordinator.run(_delete("w1"))
    assert store.get(KEY) is None


async def test_raising_transform_restores_applied_regions(coordinator, store, server):
    store.write(KEY, _two_pages())
    store.write(("recipes",), list_region(("recipes",), (["r1"], None)))
    before = {key: store.get(key) for key in (KEY, ("recipes",))}

    def broken(region):
        raise ValueError("bad edit")

    mutation = Mutation(
        name="Broken Edit",
        request=ApiRequest(HttpMethod.DELETE, "/v1/wishlists/w1"),
        edits=(
            RegionEdit(KEY, partial(remove_entity, entity_id="w1")),
            RegionEdit(("recipes",), broken),
        ),
    )
    with pytest.raises(ValueError):
        coordinator.begin(mutation)

    assert {key: store.get(key) for key in (KEY, ("recipes",))} == before
    assert coordinator.live_snapshot_count == 0
    assert not store.is_pinned(KEY)
    assert server.calls == 0


# ==============================================================================
# Concurrency
# ==============================================================================


async def test_overlapping_mutations_hold_separate_snapshots(coordinator, store, server):
    store.write(KEY, _two_pages())
    release = asyncio.Event()

    async def gated(request):
        await release.wait()
        if request.url.path.endswith("w1"):
            return error_response(422, "VALIDATION_ERROR", "nope")
        return json_response(200, {})

    server.reply(gated)
    first = asyncio.create_task(coordinator.run(_delete("w1")))
    second = asyncio.create_task(coordinator.run(_delete("w4")))
    await asyncio.sleep(0)

    assert coordinator.live_snapshot_count == 2
    assert store.get(KEY).entity_ids() == ["w2", "w3", "w5"]

    release.set()
    results = await asyncio.gather(first, second)

    assert [r.ok for r in results] == [False, True]
    assert coordinator.live_snapshot_count == 0


# ==============================================================================
# UI callbacks
# ==============================================================================


async def test_callbacks_success(coordinator, store, server):
    server.reply(json_response(200, {"ok": True}))
    seen = []

    await mutate_with_callbacks(coordinator, _delete("w1"), on_success=seen.append, on_error=seen.append)
    assert seen == [{"ok": True}]


async def test_callbacks_error_gets_user_message(coordinator, server):
    server.reply(error_response(500, "HTTP_500", "db exploded"))
    errors = []

    await mutate_with_callbacks(coordinator, _delete("w1"), on_error=errors.append)
    assert [e.text for e in errors] == [GENERIC_RETRYABLE]


async def test_callbacks_skip_error_on_session_end(coordinator, server):
    server.reply(error_response(401, "UNAUTHENTICATED", "Session expired"))
    errors = []

    result = await mutate_with_callbacks(coordinator, _delete("w1"), on_error=errors.append)
    assert result.kind is ErrorKind.AUTH
    assert errors == []


# ==============================================================================
# Reads while a mutation is in flight
# ==============================================================================


async def test_read_of_invalidated_region_keeps_optimistic_delete(coordinator, store, server):
    """Stale region + in-flight DELETE: a screen read must not bring the entity back."""
    store.write(KEY, list_region(KEY, (["w1", "w2"], None)))
    store.invalidate(KEY)
    fetched = []

    async def fetch_page(cursor):
        fetched.append(cursor)
        return Page(items=({"id": "w1"}, {"id": "w2"}))

    server.reply(json_response(204, None))
    run = coordinator.begin(_delete("w2"))
    assert not store.get(KEY).stale

    region = await store.read(KEY, fetch_page)

    assert fetched == []
    assert region.entity_ids() == ["w1"]

    result = await coordinator.settle(run)

    assert result.ok
    assert store.get(KEY).entity_ids() == ["w1"]
    assert not store.is_pinned(KEY)
