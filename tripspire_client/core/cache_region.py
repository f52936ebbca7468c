"""Cache Region — immutable paginated copy of a remote collection.

Invariants:
    - Regions and pages are frozen; every edit produces a new region
    - Entity ids are unique across all pages of a region
    - A detail region is a region with one page holding one entity
"""

from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from tripspire_client.core.domain_types import EntityId, RegionKey

Entity = dict[str, Any]


@dataclass(frozen=True)
class Page:
    items: tuple[Entity, ...] = ()
    next_cursor: str | None = None


@dataclass(frozen=True)
class CacheRegion:
    key: RegionKey
    pages: tuple[Page, ...] = ()
    stale: bool = False
    fetched_at: float = 0.0
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def detail(cls, key: RegionKey, entity: Entity, fetched_at: float = 0.0) -> "CacheRegion":
        return cls(key=key, pages=(Page(items=(entity,)),), fetched_at=fetched_at)

    def entities(self) -> Iterator[Entity]:
        for page in self.pages:
            yield from page.items

    def entity_ids(self) -> list[EntityId]:
        return [EntityId(str(e.get("id"))) for e in self.entities()]

    def find(self, entity_id: str) -> Entity | None:
        for entity in self.entities():
            if str(entity.get("id")) == entity_id:
                return entity
        return None

    def position_of(self, entity_id: str) -> tuple[int, int] | None:
        """(page index, item index) of an entity, or None."""
        for p, page in enumerate(self.pages):
            for i, entity in enumerate(page.items):
                if str(entity.get("id")) == entity_id:
                    return p, i
        return None

    @property
    def next_cursor(self) -> str | None:
        return self.pages[-1].next_cursor if self.pages else None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    def with_pages(self, pages: tuple[Page, ...]) -> "CacheRegion":
        return replace(self, pages=pages)

    def mark_stale(self) -> "CacheRegion":
        return replace(self, stale=True)


def matches(key: RegionKey, selector: RegionKey) -> bool:
    """True when ``selector`` equals ``key`` or is a prefix of it."""
    return key[: len(selector)] == selector
