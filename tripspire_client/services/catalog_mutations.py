"""Catalog Mutations — the optimistic mutations screens run through the coordinator.

Each builder returns a Mutation: the API request, the pure edits applied
before the call, the server reconciliation applied on commit, and the region
families invalidated afterwards.
"""

from functools import partial
from typing import Any

from tripspire_client.core import endpoints
from tripspire_client.core.cache_region import CacheRegion
from tripspire_client.core.domain_types import HttpMethod
from tripspire_client.core.region_edits import (
    adjust_counter,
    patch_entity,
    remove_entities,
    remove_entity,
    set_embedded_references,
    strike_embedded_reference,
)
from tripspire_client.core.requests import ApiRequest
from tripspire_client.schemas.payloads import WishlistIdsResponse
from tripspire_client.services.mutation_coordinator import Mutation, RegionEdit

WISHLIST_IDS = "wishlistIds"


def delete_wishlist(wishlist_id: str) -> Mutation:
    return Mutation(
        name="Delete Wishlist",
        request=ApiRequest(HttpMethod.DELETE, endpoints.wishlist_path(wishlist_id)),
        edits=(
            RegionEdit(endpoints.WISHLISTS, partial(remove_entity, entity_id=wishlist_id)),
        ),
        invalidate=(endpoints.wishlist_recommendations(wishlist_id),),
        extra={"wishlist_id": wishlist_id},
    )


def update_wishlist(wishlist_id: str, changes: dict[str, Any]) -> Mutation:
    """Rename / edit a wishlist; the server's copy replaces the optimistic one."""
    def reconcile(response: Any) -> list[RegionEdit]:
        data = response.get("data") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            return []
        return [RegionEdit(
            endpoints.WISHLISTS,
            partial(patch_entity, entity_id=wishlist_id, changes=data),
        )]

    return Mutation(
        name="Update Wishlist",
        request=ApiRequest(
            HttpMethod.PUT, endpoints.wishlist_path(wishlist_id), body=changes,
        ),
        edits=(
            RegionEdit(
                endpoints.WISHLISTS,
                partial(patch_entity, entity_id=wishlist_id, changes=changes),
            ),
        ),
        reconcile=reconcile,
        extra={"wishlist_id": wishlist_id},
    )


def _wishlist_card_edit(wishlist_id: str, region: CacheRegion) -> CacheRegion:
    region = adjust_counter(region, wishlist_id, "savedCount", -1)
    # Filtered wishlist lists (key longer than the family) show membership
    if len(region.key) > len(endpoints.WISHLISTS):
        region = patch_entity(region, wishlist_id, {"containsRecommendation": False})
    return region


def remove_recommendation_from_wishlist(
    wishlist_id: str, recommendation_id: str,
) -> Mutation:
    """Strike the wishlist from the recommendation everywhere it is cached."""
    strike = partial(
        strike_embedded_reference,
        field_name=WISHLIST_IDS, value=wishlist_id, entity_id=recommendation_id,
    )
    edits = [
        RegionEdit(endpoints.recommendation_details(recommendation_id), strike),
        RegionEdit(
            endpoints.wishlist_recommendations(wishlist_id),
            partial(remove_entity, entity_id=recommendation_id),
        ),
        RegionEdit(endpoints.WISHLISTS, partial(_wishlist_card_edit, wishlist_id)),
    ]
    edits += [
        RegionEdit(family, strike)
        for family in endpoints.RECOMMENDATION_LIST_FAMILIES
        if family != endpoints.WISHLIST_RECOMMENDATIONS_BASE
    ]

    def reconcile(response: Any) -> list[RegionEdit]:
        if not isinstance(response, dict) or WISHLIST_IDS not in response:
            return []
        server = WishlistIdsResponse.model_validate(response)
        overwrite = partial(
            set_embedded_references,
            field_name=WISHLIST_IDS, values=server.wishlist_ids,
            entity_id=recommendation_id,
        )
        return [
            RegionEdit(endpoints.recommendation_details(recommendation_id), overwrite),
            *(RegionEdit(family, overwrite) for family in endpoints.RECOMMENDATION_LIST_FAMILIES),
        ]

    return Mutation(
        name="Delete Recommendation From Wishlist",
        request=ApiRequest(
            HttpMethod.DELETE,
            endpoints.wishlist_recommendation_path(wishlist_id, recommendation_id),
        ),
        edits=tuple(edits),
        reconcile=reconcile,
        invalidate=(
            endpoints.recommendation_details(recommendation_id),
            endpoints.RECIPE_DETAILS_BASE,
            *endpoints.RECOMMENDATION_LIST_FAMILIES,
            endpoints.WISHLISTS,
        ),
        extra={"wishlist_id": wishlist_id, "recommendation_id": recommendation_id},
    )


def delete_import(extraction_id: str) -> Mutation:
    return Mutation(
        name="Delete Import",
        request=ApiRequest(HttpMethod.DELETE, endpoints.extraction_path(extraction_id)),
        edits=(
            RegionEdit(endpoints.IMPORTS, partial(remove_entity, entity_id=extraction_id)),
        ),
        invalidate=(endpoints.RECIPES,),
        extra={"extraction_id": extraction_id},
    )


def bulk_delete_recipes(recipe_ids: list[str]) -> Mutation:
    return Mutation(
        name="Bulk Delete Recipes",
        request=ApiRequest(
            HttpMethod.DELETE, endpoints.RECIPES_BULK_DELETE_V1,
            body={"recipe_ids": list(recipe_ids)},
        ),
        edits=(
            RegionEdit(endpoints.RECIPES, partial(remove_entities, entity_ids=set(recipe_ids))),
        ),
        invalidate=(endpoints.COOKBOOKS, endpoints.COOKBOOK_DETAILS_BASE),
        extra={"recipe_count": len(recipe_ids)},
    )
