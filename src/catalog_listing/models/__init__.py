"""Data models for catalog listings."""

from catalog_listing.models.pydantic_models import (
    CatalogItem,
    FilterCriteria,
    ListingStatus,
    ResultPage,
    SearchField,
    SortBy,
    SortOrder,
)

__all__ = [
    "CatalogItem",
    "FilterCriteria",
    "ListingStatus",
    "ResultPage",
    "SearchField",
    "SortBy",
    "SortOrder",
]
