"""API endpoints and cache region keys.

Paths are relative to Settings.api_base_url. Region keys are tuples; the
first element is the family used for prefix invalidation.
"""

from tripspire_client.core.domain_types import RegionKey

# ─── Endpoints ───────────────────────────────────────────────────

EXTRACT_V1 = "/v1/extract"
EXTRACTIONS_V1 = "/v1/extractions"
RECOMMENDATIONS_V1 = "/v1/recommendations"
RECIPES_V1 = "/v1/recipes"
RECIPES_BULK_DELETE_V1 = f"{RECIPES_V1}/bulk-delete"
WISHLISTS_V1 = "/v1/wishlists"


def wishlist_path(wishlist_id: str) -> str:
    return f"{WISHLISTS_V1}/{wishlist_id}"


def wishlist_recommendation_path(wishlist_id: str, recommendation_id: str) -> str:
    return f"{WISHLISTS_V1}/{wishlist_id}/recommendations/{recommendation_id}"


def extraction_path(extraction_id: str) -> str:
    return f"{EXTRACTIONS_V1}/{extraction_id}"


def extraction_status_path(extraction_id: str) -> str:
    return f"{EXTRACTIONS_V1}/{extraction_id}/status"


def recommendation_path(recommendation_id: str) -> str:
    return f"{RECOMMENDATIONS_V1}/{recommendation_id}"


def recipe_path(recipe_id: str) -> str:
    return f"{RECIPES_V1}/{recipe_id}"


def wishlist_recommendations_path(wishlist_id: str) -> str:
    return f"{WISHLISTS_V1}/{wishlist_id}/recommendations"


# ─── Region keys ─────────────────────────────────────────────────

WISHLISTS: RegionKey = ("wishlists",)
RECIPES: RegionKey = ("recipes",)
IMPORTS: RegionKey = ("imports",)
COOKBOOKS: RegionKey = ("cookbooks",)
COOKBOOK_DETAILS_BASE: RegionKey = ("cookbook-details",)
RECIPE_DETAILS_BASE: RegionKey = ("recipe-details",)
RECIPE_RECOMMENDATIONS_BASE: RegionKey = ("recipe-recommendations",)
COOKBOOK_RECOMMENDATIONS_BASE: RegionKey = ("cookbook-recommendations",)
WISHLIST_RECOMMENDATIONS_BASE: RegionKey = ("wishlist-recommendations",)
RECOMMENDATION_DETAILS_BASE: RegionKey = ("recommendation-details",)

# Regions whose entities are recommendations carrying wishlistIds
RECOMMENDATION_LIST_FAMILIES: tuple[RegionKey, ...] = (
    RECIPE_RECOMMENDATIONS_BASE,
    COOKBOOK_RECOMMENDATIONS_BASE,
    WISHLIST_RECOMMENDATIONS_BASE,
)


def recommendation_details(recommendation_id: str) -> RegionKey:
    return RECOMMENDATION_DETAILS_BASE + (recommendation_id,)


def wishlist_recommendations(wishlist_id: str) -> RegionKey:
    return WISHLIST_RECOMMENDATIONS_BASE + (wishlist_id,)


def recipe_details(recipe_id: str) -> RegionKey:
    return RECIPE_DETAILS_BASE + (recipe_id,)
