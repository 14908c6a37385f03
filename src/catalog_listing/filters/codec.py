"""URL query-string codec for filter criteria.

The URL is a projection of the listing's filter state: ``encode`` mirrors the
criteria into query parameters, ``decode`` seeds criteria from the URL when a
surface is mounted. Pagination and base filters never appear in the URL.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from urllib.parse import parse_qsl, urlencode

from catalog_listing.filters.coercion import (
    build_criteria,
    parse_enum,
    parse_price,
    parse_tri_state,
)
from catalog_listing.models.pydantic_models import (
    RESERVED_PARAMS,
    FilterCriteria,
    SearchField,
    SortBy,
    SortOrder,
)


def format_price(value: Decimal) -> str:
    """Render a price as a fixed-point decimal string (no exponent)."""
    return format(value, "f")


def encode(criteria: FilterCriteria, defaults: FilterCriteria | None = None) -> str:
    """Encode criteria as a URL query string.

    Only fields that differ from "absent" are emitted: blank search, unset
    prices and tri-states, and the default sort are omitted.

    Args:
        criteria: Criteria to encode.
        defaults: Surface defaults whose sort is treated as "absent".
            Uses created/desc when not provided.

    Returns:
        Query string without leading "?" (empty when nothing is set).
    """
    default_sort_by = defaults.sort_by if defaults is not None else SortBy.CREATED
    default_sort_order = defaults.sort_order if defaults is not None else SortOrder.DESC

    params: list[tuple[str, str]] = []
    if criteria.search:
        params.append(("search", criteria.search))
    if criteria.search_fields is not None:
        params.append(("searchFields", criteria.search_fields.value))
    for key in sorted(criteria.category_fields):
        value = criteria.category_fields[key]
        if value:
            params.append((key, value))
    if criteria.min_price is not None:
        params.append(("minPrice", format_price(criteria.min_price)))
    if criteria.max_price is not None:
        params.append(("maxPrice", format_price(criteria.max_price)))
    if criteria.is_sellable is not None:
        params.append(("isSellable", "true" if criteria.is_sellable else "false"))
    if criteria.is_tradeable is not None:
        params.append(("isTradeable", "true" if criteria.is_tradeable else "false"))
    if criteria.sort_by != default_sort_by:
        params.append(("sortBy", criteria.sort_by.value))
    if criteria.sort_order != default_sort_order:
        params.append(("sortOrder", criteria.sort_order.value))

    return urlencode(params)


def decode(
    query_string: str,
    defaults: FilterCriteria,
    facet_keys: Iterable[str] = (),
) -> FilterCriteria:
    """Decode a URL query string onto surface defaults.

    Recognized parameters overlay ``defaults``; anything else is ignored.
    When a parameter repeats, its first value wins.

    Tri-state parameters accept only "true"/"false"; any other value is
    treated as unset. Unknown enum values (searchFields, sortBy, sortOrder)
    keep the default.

    Args:
        query_string: Query string, with or without the leading "?".
        defaults: Criteria supplying every value the URL does not set.
        facet_keys: Domain facet parameter names recognized by the surface.

    Returns:
        Decoded FilterCriteria.

    Raises:
        ValidationError: If a price parameter is not a non-negative number.
    """
    params = _first_values(query_string)
    updates: dict[str, Any] = {}

    search = params.get("search")
    if search:
        updates["search"] = search

    search_fields = parse_enum(SearchField, params.get("searchFields"))
    if search_fields is not None:
        updates["search_fields"] = search_fields

    category_fields = dict(defaults.category_fields)
    for key in facet_keys:
        if key in RESERVED_PARAMS:
            continue
        value = params.get(key)
        if value:
            category_fields[key] = value
    updates["category_fields"] = category_fields

    for param, field in (("minPrice", "min_price"), ("maxPrice", "max_price")):
        price = parse_price(param, params.get(param))
        if price is not None:
            updates[field] = price

    for param, field in (("isSellable", "is_sellable"), ("isTradeable", "is_tradeable")):
        flag = parse_tri_state(params.get(param))
        if flag is not None:
            updates[field] = flag

    sort_by = parse_enum(SortBy, params.get("sortBy"))
    if sort_by is not None:
        updates["sort_by"] = sort_by
    sort_order = parse_enum(SortOrder, params.get("sortOrder"))
    if sort_order is not None:
        updates["sort_order"] = sort_order

    return build_criteria({**defaults.model_dump(), **updates})


def _first_values(query_string: str) -> dict[str, str]:
    """Parse a query string keeping the first value of each parameter."""
    values: dict[str, str] = {}
    for key, value in parse_qsl(query_string.lstrip("?"), keep_blank_values=True):
        values.setdefault(key, value)
    return values
