"""Payload schemas — validated at the boundary before entering the core.

Invariants:
    - ErrorPayload fields are each optional; errors that is
      missing, null or not an object becomes {}
    - PagePayload requires a data list; a missing meta means the last page
    - Extraction status strings are case-insensitive; unknown ones read as processing
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tripspire_client.core.cache_region import Page
from tripspire_client.core.domain_types import ImportStatus


class ErrorPayload(BaseModel):
    """Structured error body returned by the API on non-2xx responses."""
    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    error_code: str | None = None
    errors: dict[str, Any] = Field(default_factory=dict)

    @field_validator("errors", mode="before")
    @classmethod
    def errors_as_dict(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    @property
    def is_structured(self) -> bool:
        """True when the server sent at least a code or a message."""
        return bool(self.error_code or self.message)


class PageMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str | None = None
    per_page: int | None = None
    next_cursor: str | None = None
    prev_cursor: str | None = None


class PagePayload(BaseModel):
    """One page of a cursor-paginated list: {data: [...], meta: {...}}."""
    model_config = ConfigDict(extra="ignore")

    data: list[dict[str, Any]]
    meta: PageMeta | None = None

    def to_page(self) -> Page:
        cursor = self.meta.next_cursor if self.meta else None
        return Page(items=tuple(self.data), next_cursor=cursor)


class DetailPayload(BaseModel):
    """A single entity: {data: {...}}."""
    model_config = ConfigDict(extra="ignore")

    data: dict[str, Any]

    def to_page(self) -> Page:
        return Page(items=(self.data,))


class WishlistRecommendationsData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    recommendations: list[dict[str, Any]] | None = None


class WishlistRecommendationsPayload(BaseModel):
    """Recommendations saved to one wishlist; the list is not paginated."""
    model_config = ConfigDict(extra="ignore")

    data: WishlistRecommendationsData

    def to_page(self) -> Page:
        return Page(items=tuple(self.data.recommendations or ()))


class ExtractRequest(BaseModel):
    url: str


class ExtractionProgress(BaseModel):
    """Progress of one extraction, as returned by extract and status calls."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    extraction_id: str = Field(alias="extractionId")
    status: ImportStatus = ImportStatus.PROCESSING
    percentage: float = 0
    target_percentage: float | None = Field(default=None, alias="targetPercentage")
    title: str | None = None
    platform: str | None = None
    thumbnail_uri: str | None = Field(default=None, alias="thumbnailUri")
    has_recommendations: bool | None = Field(default=None, alias="hasRecommendations")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if not isinstance(v, str):
            return v
        try:
            return ImportStatus(v.lower())
        except ValueError:
            return ImportStatus.PROCESSING


class ExtractionEnvelope(BaseModel):
    """{success, data} wrapper; data is an error object when success is false."""
    model_config = ConfigDict(extra="ignore")

    success: bool
    data: dict[str, Any] | None = None


class WishlistIdsResponse(BaseModel):
    """Server truth after adding/removing a recommendation to/from wishlists."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    wishlist_ids: list[str] = Field(default_factory=list, alias="wishlistIds")
