"""Catalog Reads — read-through fetchers that fill the RegionStore from the API.

Invariants:
    - Lists are fetched a page at a time; the cursor travels as the ``cursor``
      query parameter and the next one is read from meta.next_cursor
    - Every body is validated (PagePayload / DetailPayload /
      WishlistRecommendationsPayload) before anything is cached; an invalid
      body raises ResponseParseError and stores nothing
    - Reads surface session expiry as SessionExpiredError, so a 401 never
      caches an empty region
    - Served from cache while fresh or while a mutation holds the region
"""

import logging
from dataclasses import replace
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ValidationError

from tripspire_client.core import endpoints
from tripspire_client.core.cache_region import CacheRegion, Page
from tripspire_client.core.domain_types import RegionKey
from tripspire_client.core.errors import ErrorContext, ResponseParseError
from tripspire_client.infrastructure.api_client import ResilientApiClient
from tripspire_client.infrastructure.region_store import PageFetcher, RegionStore
from tripspire_client.schemas.payloads import (
    DetailPayload,
    PagePayload,
    WishlistRecommendationsPayload,
)

logger = logging.getLogger(__name__)


def api_page_fetcher(
    api: ResilientApiClient,
    path: str,
    params: dict[str, str] | None = None,
    payload: type[BaseModel] = PagePayload,
) -> PageFetcher:
    """PageFetcher for ``path``; ``payload`` must provide ``to_page()``."""
    options = replace(api.default_options, surface_session_end=True)

    async def fetch(cursor: str | None) -> Page:
        query = dict(params or {})
        if cursor:
            query["cursor"] = cursor
        url = f"{path}?{urlencode(query)}" if query else path
        body = await api.get(url, options=options)
        try:
            return payload.model_validate(body).to_page()
        except ValidationError as e:
            logger.error(
                f"Invalid {payload.__name__} body from {path}",
                extra={"url": url},
            )
            raise ResponseParseError(
                f"Invalid response format for {path}",
                ErrorContext(method="GET", url=api.resolve_url(url)),
            ) from e

    return fetch


class CatalogReader:
    """Screen-facing reads; each returns the cached or freshly fetched region."""

    def __init__(self, store: RegionStore, api: ResilientApiClient):
        self.store = store
        self.api = api

    async def _list(
        self, key: RegionKey, fetch_page: PageFetcher, more: bool,
    ) -> CacheRegion:
        if more:
            return await self.store.fetch_next_page(key, fetch_page)
        return await self.store.read(key, fetch_page)

    # ─── Paginated lists ────────────────────────────────────────

    async def wishlists(
        self, include_recommendation_id: str | None = None, *, more: bool = False,
    ) -> CacheRegion:
        """All wishlists, or the membership-filtered view for one recommendation."""
        key = endpoints.WISHLISTS
        params = {}
        if include_recommendation_id:
            key = key + (include_recommendation_id,)
            params["include_recommendation_id"] = include_recommendation_id
        fetch = api_page_fetcher(self.api, endpoints.WISHLISTS_V1, params)
        return await self._list(key, fetch, more)

    async def recipes(self, *, more: bool = False) -> CacheRegion:
        fetch = api_page_fetcher(self.api, endpoints.RECIPES_V1)
        return await self._list(endpoints.RECIPES, fetch, more)

    async def imports(self, *, more: bool = False) -> CacheRegion:
        fetch = api_page_fetcher(self.api, endpoints.EXTRACTIONS_V1)
        return await self._list(endpoints.IMPORTS, fetch, more)

    # ─── Single-page reads ──────────────────────────────────────

    async def wishlist_recommendations(self, wishlist_id: str) -> CacheRegion:
        fetch = api_page_fetcher(
            self.api, endpoints.wishlist_recommendations_path(wishlist_id),
            payload=WishlistRecommendationsPayload,
        )
        return await self.store.read(endpoints.wishlist_recommendations(wishlist_id), fetch)

    async def recommendation_details(self, recommendation_id: str) -> dict[str, Any] | None:
        return await self._detail(
            endpoints.recommendation_details(recommendation_id),
            endpoints.recommendation_path(recommendation_id),
            recommendation_id,
        )

    async def recipe_details(self, recipe_id: str) -> dict[str, Any] | None:
        return await self._detail(
            endpoints.recipe_details(recipe_id),
            endpoints.recipe_path(recipe_id),
            recipe_id,
        )

    async def _detail(
        self, key: RegionKey, path: str, entity_id: str,
    ) -> dict[str, Any] | None:
        fetch = api_page_fetcher(self.api, path, payload=DetailPayload)
        region = await self.store.read(key, fetch)
        return region.find(entity_id)
