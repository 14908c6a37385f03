"""Pydantic models for listing criteria and catalog pages."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

ItemT = TypeVar("ItemT")

# URL/request parameter names owned by FilterCriteria; facets may not reuse them
RESERVED_PARAMS = frozenset(
    {
        "search",
        "searchFields",
        "minPrice",
        "maxPrice",
        "isSellable",
        "isTradeable",
        "sortBy",
        "sortOrder",
        "limit",
        "offset",
    }
)


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class SearchField(str, Enum):
    """Scope of the free-text search."""

    ALL = "all"
    NAME = "name"
    DESCRIPTION = "description"
    PERSONALITY = "personality"
    BACKSTORY = "backstory"


class SortBy(str, Enum):
    """Sortable catalog fields."""

    CREATED = "created"
    UPDATED = "updated"
    NAME = "name"
    PRICE = "price"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class ListingStatus(str, Enum):
    """State of a listing controller."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    ERROR = "error"


class FilterCriteria(BaseModel):
    """User-facing filter and sort state of one listing surface.

    Pagination is not part of the criteria; the offset is derived from the
    number of accumulated items.
    """

    search: str | None = Field(None, description="Free-text query")
    search_fields: SearchField | None = Field(None, description="Scope of the free-text query")
    category_fields: dict[str, str] = Field(
        default_factory=dict, description="Domain facets (species, gender, ageRange, ...)"
    )
    min_price: Decimal | None = Field(None, ge=0, description="Minimum price")
    max_price: Decimal | None = Field(None, ge=0, description="Maximum price")
    is_sellable: bool | None = Field(None, description="Tri-state: None means unset")
    is_tradeable: bool | None = Field(None, description="Tri-state: None means unset")
    sort_by: SortBy = SortBy.CREATED
    sort_order: SortOrder = SortOrder.DESC
    base_filters: dict[str, Any] = Field(
        default_factory=dict,
        description="Fixed scoping filters, never serialized to the URL",
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("search", mode="before")
    @classmethod
    def _blank_search_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("min_price", "max_price")
    @classmethod
    def _two_decimal_places(cls, value: Decimal | None) -> Decimal | None:
        if value is None:
            return None
        exponent = value.normalize().as_tuple().exponent
        if isinstance(exponent, int) and exponent < -2:
            raise ValueError("prices allow at most two decimal places")
        return value

    @field_validator("category_fields")
    @classmethod
    def _clean_category_fields(cls, value: dict[str, str]) -> dict[str, str]:
        clashes = sorted(key for key in value if key in RESERVED_PARAMS)
        if clashes:
            raise ValueError(f"category keys clash with reserved parameters: {', '.join(clashes)}")
        return {key: val for key, val in value.items() if val}

    def to_request_filters(self) -> dict[str, Any]:
        """Build the flat filter mapping sent to the catalog.

        Base filters are merged last so user criteria can never override
        the surface's scoping.

        Returns:
            Mapping using the catalog's camelCase parameter names.
        """
        filters: dict[str, Any] = {}
        if self.search is not None:
            filters["search"] = self.search
        if self.search_fields is not None:
            filters["searchFields"] = self.search_fields.value
        filters.update(self.category_fields)
        if self.min_price is not None:
            filters["minPrice"] = float(self.min_price)
        if self.max_price is not None:
            filters["maxPrice"] = float(self.max_price)
        if self.is_sellable is not None:
            filters["isSellable"] = self.is_sellable
        if self.is_tradeable is not None:
            filters["isTradeable"] = self.is_tradeable
        filters["sortBy"] = self.sort_by.value
        filters["sortOrder"] = self.sort_order.value
        filters.update(self.base_filters)
        return filters


class ResultPage(BaseModel, Generic[ItemT]):
    """One page of results returned by the catalog."""

    items: list[ItemT] = Field(default_factory=list)
    total: int = Field(0, ge=0, description="Total items matching the query")
    has_more: bool = Field(False, description="Whether more pages are available")


class CatalogItem(BaseModel):
    """Catalog entry served by the in-memory catalog."""

    id: str
    name: str
    description: str | None = None
    personality: str | None = None
    backstory: str | None = None
    price: Decimal | None = Field(None, ge=0)
    is_sellable: bool = False
    is_tradeable: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    attributes: dict[str, str] = Field(
        default_factory=dict, description="Facets and scoping keys (species, communityId, ...)"
    )

    model_config = ConfigDict(frozen=True)
