"""Region Snapshot — capture and restore of a CacheRegion's pre-mutation state.

Invariants:
    - capture() deep-copies entities: later edits to the live region (or to
      the entity dicts it shares) can never leak into the snapshot
    - restore() returns the captured state verbatim; it never consults the
      region's current state
    - A snapshot of an absent region restores to "absent" (None)
"""

import copy
from dataclasses import dataclass

from tripspire_client.core.cache_region import CacheRegion
from tripspire_client.core.domain_types import RegionKey


@dataclass(frozen=True)
class OptimisticSnapshot:
    """Opaque, region-scoped pre-state held for one mutation attempt."""
    mutation_id: str
    region_key: RegionKey
    _state: CacheRegion | None

    @property
    def existed(self) -> bool:
        return self._state is not None


def capture(
    mutation_id: str, region_key: RegionKey, region: CacheRegion | None,
) -> OptimisticSnapshot:
    """Snapshot a region. Pure, no IO."""
    return OptimisticSnapshot(mutation_id, region_key, copy.deepcopy(region))


def restore(snapshot: OptimisticSnapshot) -> CacheRegion | None:
    """Region state to write back on rollback (a fresh copy of the capture)."""
    return copy.deepcopy(snapshot._state)
