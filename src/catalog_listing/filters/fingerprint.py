"""Stable identity of a logical query."""

import hashlib
import json
from decimal import Decimal
from typing import Any

from catalog_listing.models.pydantic_models import FilterCriteria


def _canonical_price(value: Decimal | None) -> str | None:
    # 12.5 and 12.50 are the same query
    if value is None:
        return None
    return format(value.normalize(), "f")


def canonical_form(criteria: FilterCriteria) -> dict[str, Any]:
    """Return the JSON-ready fields that identify a query.

    Base filters are excluded: they scope a whole surface, not a query.
    """
    return {
        "search": criteria.search,
        "search_fields": criteria.search_fields.value if criteria.search_fields else None,
        "category_fields": dict(criteria.category_fields),
        "min_price": _canonical_price(criteria.min_price),
        "max_price": _canonical_price(criteria.max_price),
        "is_sellable": criteria.is_sellable,
        "is_tradeable": criteria.is_tradeable,
        "sort_by": criteria.sort_by.value,
        "sort_order": criteria.sort_order.value,
    }


def fingerprint(criteria: FilterCriteria) -> str:
    """Compute the fingerprint of a query.

    Deterministic and independent of construction order: two criteria that
    are equal on every field except ``base_filters`` share a fingerprint.

    Args:
        criteria: Criteria to identify.

    Returns:
        SHA256 hex digest of the canonical JSON form.
    """
    payload = json.dumps(canonical_form(criteria), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()
