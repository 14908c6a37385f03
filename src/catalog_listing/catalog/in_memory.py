"""In-memory catalog with the remote catalog's filter semantics."""

import json
from collections.abc import Iterable, Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from catalog_listing.catalog.base import CatalogClient
from catalog_listing.errors import FetchError
from catalog_listing.models.pydantic_models import (
    RESERVED_PARAMS,
    CatalogItem,
    ResultPage,
    SearchField,
    SortBy,
    SortOrder,
)

_ITEMS_ADAPTER = TypeAdapter(list[CatalogItem])

# Item fields covered by each search scope
_SEARCH_SCOPES: dict[SearchField, tuple[str, ...]] = {
    SearchField.NAME: ("name",),
    SearchField.DESCRIPTION: ("description",),
    SearchField.PERSONALITY: ("personality",),
    SearchField.BACKSTORY: ("backstory",),
    SearchField.ALL: ("name", "description", "personality", "backstory", "species"),
}


def load_catalog_items(path: Path) -> list[CatalogItem]:
    """Load catalog items from a JSON file.

    Accepts either a list of items or an object with an "items" list.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        pydantic.ValidationError: If an item is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Items file not found: {path}")

    with open(path, "r") as f:
        raw = json.load(f)

    if isinstance(raw, dict):
        raw = raw.get("items", [])
    return _ITEMS_ADAPTER.validate_python(raw)


class InMemoryCatalog(CatalogClient):
    """Catalog backed by a list of CatalogItem.

    Filtering uses AND semantics:
    - search: case-insensitive substring over the fields of ``searchFields``
      ("all" also covers the species attribute)
    - facet keys: case-insensitive substring on the item attribute
    - any other key (scoping/base filters): exact match on the attribute
    - minPrice/maxPrice: inclusive range; items without a price never match
    - isSellable/isTradeable: exact match

    Paging is applied after filtering and sorting.
    """

    def __init__(self, items: Iterable[CatalogItem], facet_keys: Iterable[str] = ()) -> None:
        """Initialize with catalog contents.

        Args:
            items: Catalog items, in insertion order.
            facet_keys: Attribute names matched by substring instead of equality.
        """
        self._items = list(items)
        self._facet_keys = frozenset(facet_keys)

    @property
    def items(self) -> list[CatalogItem]:
        return list(self._items)

    async def fetch_page(
        self,
        filters: Mapping[str, Any],
        offset: int,
        limit: int,
    ) -> ResultPage[CatalogItem]:
        if offset < 0:
            raise FetchError(f"offset must be >= 0, got {offset}")
        if limit < 1:
            raise FetchError(f"limit must be >= 1, got {limit}")

        matches = [item for item in self._items if self._matches(item, filters)]
        matches = self._sort(matches, filters)
        total = len(matches)

        return ResultPage[CatalogItem](
            items=matches[offset : offset + limit],
            total=total,
            has_more=offset + limit < total,
        )

    def _matches(self, item: CatalogItem, filters: Mapping[str, Any]) -> bool:
        search = filters.get("search")
        if search and not self._matches_search(item, str(search), filters.get("searchFields")):
            return False

        min_price = filters.get("minPrice")
        if min_price is not None and (item.price is None or item.price < _to_decimal(min_price)):
            return False
        max_price = filters.get("maxPrice")
        if max_price is not None and (item.price is None or item.price > _to_decimal(max_price)):
            return False

        is_sellable = filters.get("isSellable")
        if is_sellable is not None and item.is_sellable != is_sellable:
            return False
        is_tradeable = filters.get("isTradeable")
        if is_tradeable is not None and item.is_tradeable != is_tradeable:
            return False

        for key, value in filters.items():
            if key in RESERVED_PARAMS or value is None or value == "":
                continue
            attribute = item.attributes.get(key)
            if attribute is None:
                return False
            if key in self._facet_keys:
                if str(value).lower() not in attribute.lower():
                    return False
            elif attribute != str(value):
                return False

        return True

    def _matches_search(self, item: CatalogItem, search: str, search_fields: Any) -> bool:
        try:
            scope = SearchField(search_fields) if search_fields else SearchField.ALL
        except ValueError:
            scope = SearchField.ALL

        needle = search.lower()
        for field in _SEARCH_SCOPES[scope]:
            if field == "species":
                text = item.attributes.get("species")
            else:
                text = getattr(item, field)
            if text and needle in text.lower():
                return True
        return False

    def _sort(self, items: list[CatalogItem], filters: Mapping[str, Any]) -> list[CatalogItem]:
        try:
            sort_by = SortBy(filters.get("sortBy") or SortBy.CREATED)
        except ValueError:
            sort_by = SortBy.CREATED
        descending = filters.get("sortOrder") != SortOrder.ASC.value

        if sort_by is SortBy.NAME:
            return sorted(items, key=lambda item: item.name, reverse=descending)
        if sort_by is SortBy.UPDATED:
            return sorted(items, key=lambda item: item.updated_at, reverse=descending)
        if sort_by is SortBy.PRICE:
            # Unpriced items sort last ascending, first descending
            return sorted(
                items,
                key=lambda item: (item.price is None, item.price or Decimal(0)),
                reverse=descending,
            )
        return sorted(items, key=lambda item: item.created_at, reverse=descending)


def _to_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))
