"""Region Edits — pure transforms applied to a CacheRegion's pre-state.

Invariants:
    - Every function returns a new region and never mutates its input
    - Edits are keyed by entity id, so re-applying one is idempotent
    - Entities not matched by an edit are carried over by identity
"""

from typing import Any, Callable

from tripspire_client.core.cache_region import CacheRegion, Entity, Page

RegionTransform = Callable[[CacheRegion], CacheRegion]


def _same_id(entity: Entity, entity_id: str) -> bool:
    return str(entity.get("id")) == entity_id


def _map_entities(
    region: CacheRegion, fn: Callable[[Entity], Entity],
) -> CacheRegion:
    return region.with_pages(tuple(
        Page(items=tuple(fn(e) for e in page.items), next_cursor=page.next_cursor)
        for page in region.pages
    ))


def remove_entity(region: CacheRegion, entity_id: str) -> CacheRegion:
    """Drop the entity from every page, keeping page cursors."""
    return region.with_pages(tuple(
        Page(
            items=tuple(e for e in page.items if not _same_id(e, entity_id)),
            next_cursor=page.next_cursor,
        )
        for page in region.pages
    ))


def remove_entities(region: CacheRegion, entity_ids: set[str]) -> CacheRegion:
    return region.with_pages(tuple(
        Page(
            items=tuple(e for e in page.items if str(e.get("id")) not in entity_ids),
            next_cursor=page.next_cursor,
        )
        for page in region.pages
    ))


def patch_entity(
    region: CacheRegion, entity_id: str, changes: dict[str, Any],
) -> CacheRegion:
    """Shallow-merge ``changes`` into the matching entity."""
    return _map_entities(
        region,
        lambda e: {**e, **changes} if _same_id(e, entity_id) else e,
    )


def replace_entity(
    region: CacheRegion, entity_id: str, update: Callable[[Entity], Entity],
) -> CacheRegion:
    """Replace the matching entity with ``update(entity)``."""
    return _map_entities(
        region,
        lambda e: update(dict(e)) if _same_id(e, entity_id) else e,
    )


def strike_embedded_reference(
    region: CacheRegion, field_name: str, value: str,
    entity_id: str | None = None,
) -> CacheRegion:
    """Remove ``value`` from the list field ``field_name`` of each entity
    (only the entity ``entity_id`` when given)."""
    def strike(e: Entity) -> Entity:
        if entity_id is not None and not _same_id(e, entity_id):
            return e
        refs = e.get(field_name)
        if not isinstance(refs, list) or value not in refs:
            return e
        return {**e, field_name: [r for r in refs if r != value]}

    return _map_entities(region, strike)


def set_embedded_references(
    region: CacheRegion, field_name: str, values: list[str], entity_id: str,
) -> CacheRegion:
    """Overwrite the list field of one entity (server reconciliation)."""
    return patch_entity(region, entity_id, {field_name: list(values)})


def adjust_counter(
    region: CacheRegion, entity_id: str, field_name: str, delta: int,
) -> CacheRegion:
    """Add ``delta`` to a numeric field, floored at zero."""
    def bump(e: Entity) -> Entity:
        current = e.get(field_name) or 0
        return {**e, field_name: max(0, current + delta)}

    return replace_entity(region, entity_id, bump)


def append_page(region: CacheRegion, page: Page) -> CacheRegion:
    """Append a fetched page, dropping ids already present in the region."""
    seen = set(region.entity_ids())
    fresh = []
    for entity in page.items:
        entity_id = str(entity.get("id"))
        if entity_id in seen:
            continue
        seen.add(entity_id)
        fresh.append(entity)
    return region.with_pages(
        region.pages + (Page(items=tuple(fresh), next_cursor=page.next_cursor),),
    )


def compose(*transforms: RegionTransform) -> RegionTransform:
    """Chain transforms left to right."""
    def run(region: CacheRegion) -> CacheRegion:
        for transform in transforms:
            region = transform(region)
        return region
    return run
