"""Region Store — keyed in-memory store of paginated CacheRegions.

Invariants:
    - A region is created by its first successful fetch; failed fetches store nothing
    - Writes come only from the MutationCoordinator (write/remove) and from
      fetch completions inside this store
    - A fetch started before cancel_refetches() returns its data to its reader
      but does not write it (the optimistic edit is not overwritten)
    - Stale or expired regions are refetched on the next read, except while
      pinned by a live optimistic snapshot (the cached copy is served)
    - Eviction: regions older than ttl_seconds are dropped on access; beyond
      max_regions the least recently used region is dropped
"""

import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Iterable

from tripspire_client.config import Settings, get_settings
from tripspire_client.core.cache_region import CacheRegion, Page, matches
from tripspire_client.core.domain_types import RegionKey
from tripspire_client.core.region_edits import append_page

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str | None], Awaitable[Page]]


class RegionStore:
    """Caching layer shared by screens, the coordinator and refetches."""

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = settings or get_settings()
        self.ttl_seconds = settings.cache_ttl_seconds
        self.max_regions = settings.cache_max_regions
        self._clock = clock
        self._regions: OrderedDict[RegionKey, CacheRegion] = OrderedDict()
        # Bumped to discard in-flight fetch results for a key
        self._epochs: dict[RegionKey, int] = {}
        # Live optimistic snapshots per key
        self._pins: dict[RegionKey, int] = {}

    # ─── Reads ──────────────────────────────────────────────────

    def get(self, key: RegionKey) -> CacheRegion | None:
        region = self._regions.get(key)
        if region is None:
            return None
        if self._expired(region):
            logger.debug("Region expired", extra={"region_key": key})
            del self._regions[key]
            return None
        self._regions.move_to_end(key)
        return region

    def keys(self) -> list[RegionKey]:
        return list(self._regions.keys())

    def matching(self, selector: RegionKey) -> list[RegionKey]:
        """Keys equal to ``selector`` or having it as prefix."""
        return [key for key in self._regions if matches(key, selector)]

    async def read(self, key: RegionKey, fetch_page: PageFetcher) -> CacheRegion:
        """Return the cached region, fetching page one when absent or stale."""
        cached = self.get(key)
        if cached is not None and (not cached.stale or self.is_pinned(key)):
            return cached
        epoch = self._epochs.get(key, 0)
        page = await fetch_page(None)
        region = CacheRegion(key=key, pages=(page,), fetched_at=self._clock())
        if self._epochs.get(key, 0) == epoch:
            self.write(key, region)
        else:
            logger.info("Discarding superseded fetch", extra={"region_key": key})
        return region

    async def fetch_next_page(self, key: RegionKey, fetch_page: PageFetcher) -> CacheRegion:
        """Append the page after the region's last cursor."""
        region = self.get(key)
        if region is None:
            return await self.read(key, fetch_page)
        if not region.has_more:
            return region
        epoch = self._epochs.get(key, 0)
        page = await fetch_page(region.next_cursor)
        current = self.get(key) or region
        extended = append_page(current, page)
        if self._epochs.get(key, 0) == epoch:
            self.write(key, extended)
        return extended

    # ─── Writes ─────────────────────────────────────────────────

    def write(self, key: RegionKey, region: CacheRegion) -> None:
        self._regions[key] = region
        self._regions.move_to_end(key)
        self._evict_overflow()

    def remove(self, key: RegionKey) -> None:
        self._regions.pop(key, None)

    def invalidate(self, selector: RegionKey) -> list[RegionKey]:
        """Mark matching regions stale; they refetch on next read."""
        stale = self.matching(selector)
        for key in stale:
            self._regions[key] = self._regions[key].mark_stale()
        if stale:
            logger.info(
                f"Invalidated {len(stale)} region(s)",
                extra={"region_key": selector},
            )
        return stale

    def cancel_refetches(self, keys: Iterable[RegionKey]) -> None:
        for key in keys:
            self._epochs[key] = self._epochs.get(key, 0) + 1

    def pin(self, key: RegionKey) -> None:
        """Serve the cached copy of ``key`` without refetching until unpinned."""
        self._pins[key] = self._pins.get(key, 0) + 1

    def unpin(self, key: RegionKey) -> None:
        remaining = self._pins.get(key, 0) - 1
        if remaining > 0:
            self._pins[key] = remaining
        else:
            self._pins.pop(key, None)

    def is_pinned(self, key: RegionKey) -> bool:
        return key in self._pins

    def clear(self) -> None:
        self._regions.clear()

    # ─── Eviction ───────────────────────────────────────────────

    def _expired(self, region: CacheRegion) -> bool:
        return self._clock() - region.fetched_at > self.ttl_seconds

    def _evict_overflow(self) -> None:
        while len(self._regions) > self.max_regions:
            key, _ = self._regions.popitem(last=False)
            logger.debug("Evicted region", extra={"region_key": key})
